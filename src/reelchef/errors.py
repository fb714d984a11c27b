"""
Exception hierarchy for ReelChef.

Every error carries an HTTP-style status so the web layer can turn it into
a response envelope without knowing where it came from.
"""

from enum import Enum


class ReelChefError(Exception):
    """Base exception for ReelChef"""

    status_code = 500
    public_message = "Failed to process recipe"


class ValidationError(ReelChefError):
    """Raised when input is malformed or unsafe (rejected before queueing)"""

    status_code = 400
    public_message = "Invalid URL provided"


class NotFoundError(ReelChefError):
    """Raised when a stored entity does not exist"""

    status_code = 404
    public_message = "Not found"

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} '{entity_id}' not found")


class FetchError(ReelChefError):
    """Raised when a page cannot be loaded"""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch {url}: {reason}")


class DownloadFailure(str, Enum):
    """Why a video could not be downloaded."""

    RATE_LIMITED = "rate_limited"
    AUTH_REQUIRED = "auth_required"
    ALL_STRATEGIES_FAILED = "all_strategies_failed"


class DownloadError(ReelChefError):
    """Raised when every download strategy failed"""

    def __init__(self, cause: DownloadFailure, message: str, platform: str | None = None):
        self.cause = cause
        self.platform = platform
        super().__init__(message)


class StructuringError(ReelChefError):
    """Raised when the structuring backend fails or returns unusable output"""

    def __init__(self, message: str, quota_exhausted: bool = False):
        self.quota_exhausted = quota_exhausted
        super().__init__(message)


class PipelineExhausted(ReelChefError):
    """Raised when both the web path and the video path failed"""

    def __init__(self, web_error: Exception | None, video_error: Exception | None):
        self.web_error = web_error
        self.video_error = video_error
        root = web_error or video_error
        if root is None:
            super().__init__("All extraction paths failed: no recipe found")
        else:
            super().__init__(f"All extraction paths failed: {root}")


class PipelineTimeout(ReelChefError):
    """Raised when a request exceeds its time budget"""

    status_code = 504
    public_message = "Recipe processing timed out"

    def __init__(self, url: str, timeout_seconds: float):
        self.url = url
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Timed out after {timeout_seconds:.0f}s processing {url}")


class StoreUnavailable(ReelChefError):
    """Raised when a library route is called without a configured store"""

    status_code = 503
    public_message = "Recipe library is not configured"

    def __init__(self):
        super().__init__("SUPABASE_URL and SUPABASE_KEY must be set to use the recipe library")
