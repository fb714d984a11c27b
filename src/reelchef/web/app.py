"""
ReelChef Web API - FastAPI application.

POST /process runs the extraction pipeline; the recipe library lives under
/recipes, /tags and /folders. Every failure is answered with the envelope
{"success": false, "error": ..., "message": ... (development only)}.
"""

import logging
import resource
import sys

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .. import __version__
from ..config import settings
from ..errors import ReelChefError
from ..llm.prompt_logger import enable_prompt_logging
from ..observability import configure_logging, init_tracing
from ..pipeline.models import ExtractionMethod, PipelineOptions
from ..pipeline.orchestrator import RecipeExtractionService
from .dependencies import get_extraction_service
from .folder_routes import router as folder_router
from .recipe_routes import router as recipe_router
from .tag_routes import router as tag_router

logger = logging.getLogger(__name__)

DEFAULT_ERROR = "Failed to process recipe"
RATE_LIMITED_ERROR = "Too many requests, please try again later"
BODY_METHODS = ("POST", "PUT", "PATCH")


# =============================================================================
# Models
# =============================================================================


class ProcessRequest(BaseModel):
    """Extraction request for one post URL."""

    url: str
    force_method: ExtractionMethod | None = None
    save: bool = False
    tag_ids: list[str] = []
    folder_id: str | None = None


# =============================================================================
# Error envelope
# =============================================================================


def error_response(status_code: int, error: str, detail: str | None = None) -> JSONResponse:
    body = {"success": False, "error": error}
    if detail and settings.is_development:
        body["message"] = detail
    return JSONResponse(status_code=status_code, content=body)


async def handle_reelchef_error(request: Request, exc: ReelChefError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return error_response(exc.status_code, exc.public_message, str(exc))
    # Client errors carry their own message
    logger.warning(f"{request.method} {request.url.path} rejected: {exc}")
    return error_response(exc.status_code, str(exc) or exc.public_message, str(exc))


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f"Invalid request to {request.url.path}: {exc.errors()}")
    return error_response(400, "Invalid request", str(exc.errors()))


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(500, DEFAULT_ERROR, str(exc))


async def handle_rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(f"Rate limit hit on {request.url.path} by {get_remote_address(request)}: {exc.detail}")
    return error_response(429, RATE_LIMITED_ERROR, f"Limit: {exc.detail}")


async def limit_body_size(request: Request, call_next):
    """Refuse bodies larger than settings.max_body_bytes before any route reads them."""
    if request.method not in BODY_METHODS:
        return await call_next(request)

    declared = request.headers.get("content-length")
    if declared is None:
        if "chunked" in request.headers.get("transfer-encoding", "").lower():
            return error_response(411, "Content-Length required")
        return await call_next(request)

    if not declared.isdigit():
        return error_response(400, "Invalid request", f"Bad Content-Length: {declared!r}")
    if int(declared) > settings.max_body_bytes:
        logger.warning(f"Rejected {declared}-byte body on {request.url.path}")
        return error_response(
            413, "Request body too large", f"{declared} bytes, limit is {settings.max_body_bytes}"
        )
    return await call_next(request)


def _memory_mb() -> float:
    """Peak resident memory of this process in MB."""
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # Linux reports KB, macOS bytes
    divisor = 1024 * 1024 if sys.platform == "darwin" else 1024
    return round(peak / divisor, 1)


# =============================================================================
# App
# =============================================================================


def create_app() -> FastAPI:
    app = FastAPI(title="ReelChef", version=__version__)

    # One limiter per app: in-memory counters keyed by client IP
    limiter = Limiter(key_func=get_remote_address)
    app.state.limiter = limiter

    @app.on_event("startup")
    async def startup_event():
        """Configure logging, tracing and prompt logging."""
        configure_logging(settings.log_level)
        init_tracing(settings)
        if settings.log_prompts:
            enable_prompt_logging(True)
        logger.info(f"ReelChef {__version__} starting ({settings.reelchef_env})")
        logger.info(
            f"  Queue capacity={settings.max_concurrent_pipelines}, "
            f"timeout={settings.request_timeout_seconds:.0f}s, "
            f"library={'on' if settings.persistence_enabled else 'off'}"
        )

    app.middleware("http")(limit_body_size)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.add_exception_handler(ReelChefError, handle_reelchef_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(RateLimitExceeded, handle_rate_limited)
    app.add_exception_handler(Exception, handle_unexpected)

    app.include_router(recipe_router)
    app.include_router(tag_router)
    app.include_router(folder_router)

    @app.get("/health")
    async def health_check(service: RecipeExtractionService = Depends(get_extraction_service)):
        """Liveness plus queue pressure and memory."""
        return {
            "status": "ok",
            "version": __version__,
            "queue": service.queue.snapshot(),
            "memory_mb": _memory_mb(),
        }

    @app.post("/process")
    @limiter.limit(settings.process_rate_limit)
    async def process(
        request: Request,
        req: ProcessRequest,
        service: RecipeExtractionService = Depends(get_extraction_service),
    ):
        """Extract a recipe from a social post URL."""
        options = PipelineOptions(
            force_method=req.force_method,
            save=req.save,
            tag_ids=req.tag_ids,
            folder_id=req.folder_id,
        )
        result = await service.extract(req.url, options)
        return {
            "success": True,
            "method": result.method.value,
            "data": result.recipe.to_dict(),
            "progress": result.progress.to_dict() if result.progress else None,
            "usage": result.usage.to_dict(),
            "saved": result.saved,
        }

    return app


app = create_app()
