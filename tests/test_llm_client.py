"""Tests for the structuring backend client (google-genai client mocked)."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.genai import errors as genai_errors

from reelchef.errors import StructuringError
from reelchef.llm.client import extract_usage, generate_json, is_quota_error
from reelchef.pipeline.structuring import VideoRecipeSchema


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio needed)."""
    return asyncio.run(coro)


def _client(result=None, error=None):
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=result, side_effect=error)
    return client


class TestGenerateJson:
    def test_returns_text_and_usage(self):
        response = SimpleNamespace(
            text='{"title": "Crêpes"}',
            usage_metadata=SimpleNamespace(prompt_token_count=1000, candidates_token_count=200, total_token_count=1200),
        )
        client = _client(result=response)

        result = _run(generate_json(
            node="video",
            prompt="Watch this",
            parts=[],
            response_schema=VideoRecipeSchema,
            model="gemini-flash-latest",
            client=client,
        ))

        assert result.text == '{"title": "Crêpes"}'
        assert result.usage.total_tokens == 1200
        assert result.usage.cost_eur > 0
        kwargs = client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-flash-latest"
        assert kwargs["contents"] == ["Watch this"]
        assert kwargs["config"].response_mime_type == "application/json"

    def test_quota_error_is_flagged(self):
        error = genai_errors.ClientError(
            429, {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}}
        )
        assert is_quota_error(error)

        with pytest.raises(StructuringError) as exc_info:
            _run(generate_json(
                node="page",
                prompt="p",
                parts=[],
                response_schema=VideoRecipeSchema,
                model="gemini-flash-latest",
                client=_client(error=error),
            ))
        assert exc_info.value.quota_exhausted

    def test_other_backend_error(self):
        error = genai_errors.ServerError(503, {"error": {"code": 503, "message": "Overloaded", "status": "UNAVAILABLE"}})
        assert not is_quota_error(error)

        with pytest.raises(StructuringError) as exc_info:
            _run(generate_json(
                node="page",
                prompt="p",
                parts=[],
                response_schema=VideoRecipeSchema,
                model="gemini-flash-latest",
                client=_client(error=error),
            ))
        assert not exc_info.value.quota_exhausted


class TestExtractUsage:
    def test_missing_metadata(self):
        assert extract_usage(SimpleNamespace(), "gemini-flash-latest") is None
