"""
ReelChef - Structuring backend client.

Wraps google-genai for schema-constrained JSON generation.
All backend calls go through here for consistent logging, tracing,
usage extraction and error classification.
"""

import logging
from dataclasses import dataclass
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import BaseModel

from ..config import settings
from ..errors import StructuringError
from ..observability.tracing import trace_llm_call
from ..pipeline.models import UsageMetrics
from ..pipeline.usage import build_usage
from .prompt_logger import log_prompt

logger = logging.getLogger(__name__)

# Singleton client instance
_client: genai.Client | None = None

QUOTA_STATUSES = ("RESOURCE_EXHAUSTED",)


@dataclass(frozen=True)
class BackendResponse:
    """Raw JSON text and usage from one backend call."""

    text: str
    usage: UsageMetrics | None
    model: str


def get_client() -> genai.Client:
    """
    Get the google-genai client.

    Uses singleton pattern to reuse connection.
    """
    global _client

    if _client is None:
        _client = genai.Client(api_key=settings.gemini_api_key)

    return _client


def is_quota_error(error: Exception) -> bool:
    """True for rate-limit / quota-exhausted responses from the backend."""
    if isinstance(error, genai_errors.APIError):
        return error.code == 429 or (error.status or "") in QUOTA_STATUSES
    return False


def _describe(part: Any) -> str | None:
    if isinstance(part, types.Part):
        if part.inline_data is not None:
            size_kb = len(part.inline_data.data or b"") // 1024
            return f"{part.inline_data.mime_type}, {size_kb}KB"
        if part.file_data is not None:
            return f"{part.file_data.mime_type}, {part.file_data.file_uri}"
    if isinstance(part, types.File):
        return f"{part.mime_type}, {part.uri}"
    return None


def extract_usage(response: Any, model: str) -> UsageMetrics | None:
    """Read token counts from a response; None when the backend sent none."""
    meta = getattr(response, "usage_metadata", None)
    if meta is None:
        return None
    return build_usage(
        model,
        getattr(meta, "prompt_token_count", None),
        getattr(meta, "candidates_token_count", None),
        getattr(meta, "total_token_count", None),
    )


async def generate_json(
    *,
    node: str,
    prompt: str,
    parts: list[Any],
    response_schema: type[BaseModel],
    model: str | None = None,
    temperature: float = 0.2,
    client: genai.Client | None = None,
) -> BackendResponse:
    """
    Make a schema-constrained backend call.

    Args:
        node: Stage name for logs and traces ("page", "video")
        prompt: Text instructions
        parts: Binary parts sent before the prompt (screenshot, video)
        response_schema: Pydantic model describing the JSON output
        model: Override the configured model
        client: Override the shared client (tests)

    Returns:
        BackendResponse with raw JSON text and usage

    Raises:
        StructuringError: backend failure; quota_exhausted set for 429s
    """
    client = client or get_client()
    model = model or settings.gemini_model
    attachments = [d for d in (_describe(p) for p in parts) if d]

    config = types.GenerateContentConfig(
        response_mime_type="application/json",
        response_schema=response_schema,
        temperature=temperature,
    )

    async with trace_llm_call(
        f"structure_{node}",
        inputs={"prompt": prompt[:2000], "attachments": attachments},
        metadata={"model": model},
    ) as run:
        try:
            response = await client.aio.models.generate_content(
                model=model,
                contents=[*parts, prompt],
                config=config,
            )
        except genai_errors.APIError as e:
            log_prompt(node=node, model=model, prompt=prompt, attachments=attachments, error=str(e))
            if is_quota_error(e):
                logger.error(f"Backend quota exhausted (429) during {node} structuring: {e.message}")
                raise StructuringError(f"Backend quota exhausted: {e.message}", quota_exhausted=True) from e
            raise StructuringError(f"Backend error ({e.code}): {e.message}") from e

        text = response.text or ""
        usage = extract_usage(response, model)
        run.end(outputs={"text": text[:2000]})

    log_prompt(node=node, model=model, prompt=prompt, attachments=attachments, response_text=text, usage=usage)
    logger.info(f"Structuring call ({node}) used {usage.total_tokens if usage else 0} tokens")

    return BackendResponse(text=text, usage=usage, model=model)
