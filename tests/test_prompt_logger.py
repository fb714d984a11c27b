"""Tests for structuring prompt logging."""

from decimal import Decimal

import pytest

from reelchef.llm import prompt_logger
from reelchef.pipeline.models import UsageMetrics


@pytest.fixture
def log_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(prompt_logger, "LOG_DIR", tmp_path / "prompt_logs")
    prompt_logger.reset_session()
    yield tmp_path / "prompt_logs"
    prompt_logger.enable_prompt_logging(False)
    prompt_logger.reset_session()


class TestPromptLogger:
    def test_disabled_writes_nothing(self, log_dir):
        prompt_logger.enable_prompt_logging(False)
        assert prompt_logger.log_prompt(node="page", model="m", prompt="p") is None
        assert prompt_logger.get_session_log_dir() is None
        assert not log_dir.exists()

    def test_writes_numbered_markdown(self, log_dir):
        prompt_logger.enable_prompt_logging(True)

        first = prompt_logger.log_prompt(
            node="page", model="gemini-flash-latest", prompt="Extract", attachments=["image/jpeg, 84KB"],
            response_text='{"title": "Crêpes"}',
            usage=UsageMetrics(prompt_tokens=100, candidates_tokens=20, total_tokens=120, cost_eur=Decimal("0.0001")),
        )
        second = prompt_logger.log_prompt(node="video", model="gemini-flash-latest", prompt="Watch", error="quota")

        assert first.name == "01_page.md"
        assert second.name == "02_video.md"
        content = first.read_text(encoding="utf-8")
        assert "attachment: image/jpeg, 84KB" in content
        assert '"title": "Crêpes"' in content
        assert "100 in / 20 out (120 total" in content
        assert "**ERROR:** quota" in second.read_text(encoding="utf-8")
        assert prompt_logger.get_session_log_dir() == first.parent

    def test_non_json_answer_written_as_is(self, log_dir):
        prompt_logger.enable_prompt_logging(True)
        path = prompt_logger.log_prompt(node="page", model="m", prompt="p", response_text="not json")
        assert "not json" in path.read_text(encoding="utf-8")
