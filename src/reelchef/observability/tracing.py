"""
ReelChef - LangSmith Integration.

Optional tracing of structuring calls:
1. Set LANGCHAIN_TRACING_V2=true
2. Set LANGCHAIN_API_KEY=<your-key>
3. Set LANGCHAIN_PROJECT=reelchef (optional)
"""

import logging
from contextlib import asynccontextmanager
from uuid import uuid4

from langsmith import Client as LangSmithClient
from langsmith.run_trees import RunTree

logger = logging.getLogger(__name__)

# Global state
_langsmith_client: LangSmithClient | None = None
_tracing_enabled: bool = False
_project: str = "reelchef"


class _NoopRun:
    def end(self, **kwargs) -> None:
        pass


def init_tracing(settings) -> bool:
    """
    Initialize LangSmith tracing if configured.

    Returns True if tracing is enabled. Call once at startup.
    """
    global _langsmith_client, _tracing_enabled, _project

    if not settings.langchain_tracing_v2:
        logger.info("LangSmith tracing disabled (set LANGCHAIN_TRACING_V2=true to enable)")
        return False

    if not settings.langchain_api_key:
        logger.warning("LangSmith API key not set (LANGCHAIN_API_KEY)")
        return False

    try:
        _langsmith_client = LangSmithClient(api_key=settings.langchain_api_key)
        _project = settings.langchain_project
        _tracing_enabled = True
        logger.info(f"LangSmith tracing enabled for project: {_project}")
        return True
    except Exception as e:
        logger.warning(f"Failed to initialize LangSmith: {e}")
        return False


@asynccontextmanager
async def trace_llm_call(
    name: str,
    run_type: str = "llm",
    inputs: dict | None = None,
    metadata: dict | None = None,
):
    """
    Context manager for tracing a backend call.

    Usage:
        async with trace_llm_call("structure_page", inputs={"url": url}) as run:
            response = await client.aio.models.generate_content(...)
            run.end(outputs={"text": response.text})
    """
    if not _tracing_enabled:
        yield _NoopRun()
        return

    run = RunTree(
        name=name,
        run_type=run_type,
        inputs=inputs or {},
        extra={"metadata": metadata or {}},
        project_name=_project,
        id=str(uuid4()),
        ls_client=_langsmith_client,
    )

    try:
        run.post()
        yield run
    except Exception as e:
        run.end(error=str(e))
        run.patch()
        raise
    else:
        run.patch()
