"""
Pytest configuration and fixtures for ReelChef tests.

External services (browser, yt-dlp, Gemini, Supabase) are replaced with
deterministic stubs so the pipeline can be exercised without network.
"""

import os
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Set test environment before importing reelchef modules
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["REELCHEF_ENV"] = "development"
os.environ["LOG_PROMPTS"] = "0"
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_KEY"] = ""

from reelchef.pipeline.models import (
    PageStructuringResult,
    Recipe,
    ScrapedPage,
    UsageMetrics,
    VideoStructuringResult,
)
from reelchef.pipeline.orchestrator import RecipePipeline

SOURCE_URL = "https://www.instagram.com/reel/ABC123/"


# ---------------------------------------------------------------------------
# Stub collaborators
# ---------------------------------------------------------------------------


class StubPageFetcher:
    """Returns a fixed page, or raises."""

    def __init__(self, page: ScrapedPage | None = None, error: Exception | None = None):
        self.page = page
        self.error = error
        self.calls: list[str] = []

    async def fetch_page(self, url: str) -> ScrapedPage:
        self.calls.append(url)
        if self.error:
            raise self.error
        return self.page or ScrapedPage(raw_text="", source_url=url)


class StubVideoFetcher:
    """Writes a small fake video into tmp_path, or raises."""

    def __init__(self, directory: Path, error: Exception | None = None):
        self.directory = directory
        self.error = error
        self.calls: list[str] = []
        self.paths: list[Path] = []

    async def download_video(self, url: str) -> Path:
        self.calls.append(url)
        if self.error:
            raise self.error
        path = self.directory / f"video_{len(self.paths)}.mp4"
        path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
        self.paths.append(path)
        return path


class StubStructuringService:
    """Deterministic structuring backend returning fixed candidates."""

    def __init__(
        self,
        page_result: PageStructuringResult | None = None,
        video_result: VideoStructuringResult | None = None,
        page_error: Exception | None = None,
        video_error: Exception | None = None,
        empty_video_usage: UsageMetrics | None = None,
    ):
        self.page_result = page_result
        self.video_result = video_result
        self.page_error = page_error
        self.video_error = video_error
        self.empty_video_usage = empty_video_usage
        self.page_calls: list[ScrapedPage] = []
        self.video_calls: list[tuple[Path, str]] = []
        self.video_existed_during_call: list[bool] = []

    async def structure_from_page(self, page: ScrapedPage) -> PageStructuringResult:
        self.page_calls.append(page)
        if self.page_error:
            raise self.page_error
        return self.page_result

    async def structure_from_video(self, path: Path, url: str) -> VideoStructuringResult:
        self.video_calls.append((path, url))
        self.video_existed_during_call.append(Path(path).exists())
        if self.video_error:
            raise self.video_error
        if self.video_result is None:
            return VideoStructuringResult(Recipe(title="", source_url=url), usage=self.empty_video_usage)
        return self.video_result


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def usage_web():
    return UsageMetrics(prompt_tokens=1200, candidates_tokens=300, total_tokens=1500, cost_eur=Decimal("0.001026"))


@pytest.fixture
def usage_video():
    return UsageMetrics(prompt_tokens=8000, candidates_tokens=500, total_tokens=8500, cost_eur=Decimal("0.00339"))


@pytest.fixture
def sample_page():
    return ScrapedPage(
        raw_text="PRIORITY_CAPTION_DOM: Ingrédients: farine, sucre\nÉtapes: Mélanger, cuire 20 min",
        source_url=SOURCE_URL,
        screenshot=b"\xff\xd8\xff",
        page_title="Gâteau express",
        comments=("Cuire à 180 plutôt que 160",),
    )


@pytest.fixture
def complete_recipe():
    return Recipe(
        title="Gâteau express",
        source_url=SOURCE_URL,
        ingredients=["farine", "sucre"],
        steps=["Mélanger", "cuire 20 min"],
    )


@pytest.fixture
def stepless_recipe():
    return Recipe(
        title="Gâteau express #cake #recette",
        source_url=SOURCE_URL,
        ingredients=["200g farine", "100g sucre"],
        steps=[],
    )


@pytest.fixture
def video_recipe():
    return Recipe(
        title="Gâteau express",
        source_url=SOURCE_URL,
        ingredients=["200g farine", "100g sucre", "3 oeufs"],
        steps=[
            "Préchauffer le four à 180°C",
            "Mélanger la farine et le sucre",
            "Ajouter les oeufs un à un",
            "Cuire 20 minutes au four",
        ],
        cook_time="20 min",
    )


@pytest.fixture
def make_pipeline(tmp_path):
    """
    Build a RecipePipeline from stubs.

    Returns (pipeline, page_fetcher, video_fetcher, structuring).
    """

    def _make(
        page: ScrapedPage | None = None,
        fetch_error: Exception | None = None,
        download_error: Exception | None = None,
        store=None,
        **structuring_kwargs,
    ):
        page_fetcher = StubPageFetcher(page=page, error=fetch_error)
        video_fetcher = StubVideoFetcher(tmp_path, error=download_error)
        structuring = StubStructuringService(**structuring_kwargs)
        pipeline = RecipePipeline(page_fetcher, video_fetcher, structuring, store=store)
        return pipeline, page_fetcher, video_fetcher, structuring

    return _make


@pytest.fixture
def mock_supabase():
    """
    Mock Supabase client with one chainable mock per table.

    Set `mock_supabase.tables["recipes"].execute.return_value.data = [...]`
    to control what a table returns.
    """
    tables: dict[str, MagicMock] = {}

    def table(name: str) -> MagicMock:
        if name not in tables:
            mock_table = MagicMock(name=f"table:{name}")
            for method in ("select", "insert", "update", "delete", "eq", "in_", "order", "limit"):
                getattr(mock_table, method).return_value = mock_table
            mock_table.execute.return_value = MagicMock(data=[])
            tables[name] = mock_table
        return tables[name]

    mock_client = MagicMock()
    mock_client.table.side_effect = table
    mock_client.tables = tables
    return mock_client
