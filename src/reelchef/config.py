"""
ReelChef - Configuration and settings.

All knobs come from environment variables (or a local .env file).
Import `settings` for lazy access; call `get_settings()` for the cached instance.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    ReelChef application settings.

    Only GEMINI_API_KEY is required. Supabase fields are optional:
    without them the pipeline runs but results cannot be saved.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Structuring backend (Gemini)
    gemini_api_key: str
    gemini_model: str = "gemini-flash-latest"
    output_language: str = "French"

    # Application
    reelchef_env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    allowed_origins: list[str] = ["*"]  # JSON list in env, e.g. ["https://example.com"]

    # LOG_PROMPTS=1 - log structuring prompts to local files (dev only)
    log_prompts: bool = False

    # Pipeline limits
    max_concurrent_pipelines: int = Field(default=2, ge=1)  # 1 browser ~ 1GB RAM worst case
    request_timeout_seconds: float = Field(default=180.0, gt=0)
    page_load_timeout_seconds: float = Field(default=90.0, gt=0)
    download_timeout_seconds: float = Field(default=120.0, gt=0)
    scroll_iterations: int = Field(default=3, ge=0)
    max_comments: int = Field(default=20, ge=0)
    max_text_chars: int = Field(default=15000, gt=0)
    inline_video_max_mb: float = Field(default=20.0, gt=0)

    # Request guards
    process_rate_limit: str = "100/15minutes"  # per client IP, slowapi/limits syntax
    max_body_bytes: int = Field(default=1024 * 1024, gt=0)

    # Platform cookies (Netscape format, one file per platform)
    cookies_instagram_path: Path = Path("cookies.txt")
    cookies_tiktok_path: Path = Path("cookies-tiktok.txt")
    download_dir: Path | None = None  # None = system temp dir

    # Supabase (optional persistence)
    supabase_url: str | None = None
    supabase_key: str | None = None

    # LangSmith (optional)
    langchain_tracing_v2: bool = False
    langchain_api_key: str | None = None
    langchain_project: str = "reelchef"

    @property
    def is_development(self) -> bool:
        return self.reelchef_env == "development"

    @property
    def persistence_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class _SettingsProxy:
    """Lazy proxy for settings to avoid loading .env at import time."""

    _instance: Settings | None = None

    def __getattr__(self, name: str):
        if self._instance is None:
            self._instance = get_settings()
        return getattr(self._instance, name)


settings = _SettingsProxy()
