"""
Structuring service: turns page evidence or a video into a candidate recipe.

`StructuringService` is the seam the pipeline depends on; the Gemini
implementation lives here, tests swap in deterministic stubs.
"""

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Protocol, runtime_checkable

from google.genai import types
from pydantic import BaseModel

from ..errors import StructuringError
from ..llm.client import generate_json, get_client
from .models import PageStructuringResult, ScrapedPage, VideoStructuringResult
from .normalizer import is_empty_recipe, payload_to_recipe
from .prompts import PAGE_PROMPT, VIDEO_PROMPT, format_comments

logger = logging.getLogger(__name__)

FILE_POLL_SECONDS = 2.0
FILE_POLL_ATTEMPTS = 90


# =============================================================================
# Backend output schemas (no defaults: the Gemini schema API rejects them)
# =============================================================================


class PageRecipeSchema(BaseModel):
    title: str
    ingredients: list[str]
    steps: list[str]
    servings: str | None
    prep_time: str | None
    cook_time: str | None
    tips: list[str]
    is_incomplete: bool


class VideoRecipeSchema(BaseModel):
    title: str
    ingredients: list[str]
    steps: list[str]
    servings: str | None
    prep_time: str | None
    cook_time: str | None
    tips: list[str]


@runtime_checkable
class StructuringService(Protocol):
    """Multimodal structuring capability used by the pipeline."""

    async def structure_from_page(self, page: ScrapedPage) -> PageStructuringResult:
        """Structure a scraped page. Raises StructuringError on unusable output."""
        ...

    async def structure_from_video(self, path: Path, url: str) -> VideoStructuringResult:
        """Structure a video file. The recipe is empty when the video holds none; usage is always set."""
        ...


def parse_json_object(text: str) -> dict:
    """
    Parse the backend's JSON answer.

    Tolerates markdown code fences. Raises StructuringError for anything
    that is not a JSON object.
    """
    text = (text or "").strip()
    if "```" in text:
        match = re.search(r"```(?:json)?\s*(.*?)\s*```", text, re.DOTALL)
        if match:
            text = match.group(1)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.error(f"Could not parse backend JSON: {text[:500]}")
        raise StructuringError(f"Backend did not return valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise StructuringError(f"Backend returned {type(data).__name__}, expected an object")
    return data


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


class GeminiStructuringService:
    """Structuring backed by Gemini multimodal models."""

    def __init__(
        self,
        model: str,
        language: str = "French",
        max_text_chars: int = 15000,
        inline_video_max_mb: float = 20.0,
        client=None,
    ):
        self.model = model
        self.language = language
        self.max_text_chars = max_text_chars
        self.inline_video_max_bytes = int(inline_video_max_mb * 1024 * 1024)
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> "GeminiStructuringService":
        return cls(
            model=settings.gemini_model,
            language=settings.output_language,
            max_text_chars=settings.max_text_chars,
            inline_video_max_mb=settings.inline_video_max_mb,
        )

    @property
    def client(self):
        if self._client is None:
            self._client = get_client()
        return self._client

    async def structure_from_page(self, page: ScrapedPage) -> PageStructuringResult:
        logger.info(f"Structuring page {page.source_url} ({len(page.comments)} comments)")

        prompt = PAGE_PROMPT.format(
            language=self.language,
            title=page.page_title or "(none)",
            url=page.source_url,
            comments=format_comments(page.comments),
            text=page.raw_text[: self.max_text_chars],
        )
        parts = []
        if page.screenshot:
            parts.append(types.Part.from_bytes(data=page.screenshot, mime_type="image/jpeg"))

        response = await generate_json(
            node="page",
            prompt=prompt,
            parts=parts,
            response_schema=PageRecipeSchema,
            model=self.model,
            client=self.client,
        )

        data = parse_json_object(response.text)
        recipe = payload_to_recipe(data, page.source_url)
        is_incomplete = _as_bool(data.get("is_incomplete", False))

        logger.info(
            f"Page structuring: '{recipe.title}' {len(recipe.ingredients)} ingredients, "
            f"{len(recipe.steps)} steps, is_incomplete={is_incomplete}"
        )
        return PageStructuringResult(recipe=recipe, is_incomplete=is_incomplete, usage=response.usage)

    async def structure_from_video(self, path: Path, url: str) -> VideoStructuringResult:
        path = Path(path)
        size = path.stat().st_size
        prompt = VIDEO_PROMPT.format(language=self.language, url=url)

        if size <= self.inline_video_max_bytes:
            data = await asyncio.to_thread(path.read_bytes)
            video_part = types.Part.from_bytes(data=data, mime_type="video/mp4")
            response = await generate_json(
                node="video",
                prompt=prompt,
                parts=[video_part],
                response_schema=VideoRecipeSchema,
                model=self.model,
                client=self.client,
            )
        else:
            logger.info(f"Video is {size / (1024 * 1024):.1f}MB, using file upload")
            uploaded = await self._upload(path)
            try:
                response = await generate_json(
                    node="video",
                    prompt=prompt,
                    parts=[uploaded],
                    response_schema=VideoRecipeSchema,
                    model=self.model,
                    client=self.client,
                )
            finally:
                try:
                    await self.client.aio.files.delete(name=uploaded.name)
                except Exception as e:
                    logger.debug(f"Could not delete uploaded file {uploaded.name}: {e}")

        recipe = payload_to_recipe(parse_json_object(response.text), url)
        if is_empty_recipe(recipe):
            logger.warning(f"Video analysis found no recipe for {url}")
        else:
            logger.info(
                f"Video structuring: '{recipe.title}' {len(recipe.ingredients)} ingredients, "
                f"{len(recipe.steps)} steps"
            )
        return VideoStructuringResult(recipe=recipe, usage=response.usage)

    async def _upload(self, path: Path):
        """Upload a large video and wait until the backend has processed it."""
        uploaded = await self.client.aio.files.upload(
            file=str(path),
            config=types.UploadFileConfig(mime_type="video/mp4"),
        )
        for _ in range(FILE_POLL_ATTEMPTS):
            state = getattr(uploaded.state, "name", str(uploaded.state))
            if state != "PROCESSING":
                break
            await asyncio.sleep(FILE_POLL_SECONDS)
            uploaded = await self.client.aio.files.get(name=uploaded.name)

        state = getattr(uploaded.state, "name", str(uploaded.state))
        if state != "ACTIVE":
            raise StructuringError(f"Video upload not usable (state {state})")
        return uploaded
