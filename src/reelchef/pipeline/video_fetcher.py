"""
Video download via yt-dlp.

Strategies run from most specific (720p, merged audio+video) to most
permissive (any format). A non-empty output file counts as success even
when yt-dlp exits with an error: it often fails only while writing the
cookie jar back at exit, after the video is already on disk.
"""

import asyncio
import logging
import tempfile
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from ..errors import DownloadError, DownloadFailure
from .credentials import CredentialStore, detect_platform, scoped_copy

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) "
    "AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


@dataclass(frozen=True)
class DownloadStrategy:
    name: str
    format: str


STRATEGIES = (
    DownloadStrategy("720p optimized", "bestvideo[height<=720]+bestaudio/best[height<=720]"),
    DownloadStrategy("720p MP4 fallback", "best[height<=720][ext=mp4]/best[height<=720]"),
    DownloadStrategy("best quality (720p limit)", "best[height<=720]/best"),
    DownloadStrategy("any format", "best"),
)

# Whole yt-dlp phrases only: words like "private" or "429" also occur in URLs and ids
RATE_LIMIT_SIGNATURES = ("http error 429", "too many requests", "rate-limit", "rate limit")
AUTH_SIGNATURES = (
    "http error 401",
    "unauthorized",
    "login required",
    "you need to log in",
    "private video",
    "this content is private",
    "requested content is not available",
)
READ_ONLY_SIGNATURES = ("read-only file system", "[errno 30]")


def classify_output(output: str) -> DownloadFailure | None:
    """Map yt-dlp output to a failure cause, or None if nothing recognisable."""
    text = output.lower()
    if any(sig in text for sig in RATE_LIMIT_SIGNATURES):
        return DownloadFailure.RATE_LIMITED
    if any(sig in text for sig in AUTH_SIGNATURES):
        return DownloadFailure.AUTH_REQUIRED
    return None


def _hint(platform: str | None, had_cookies: bool) -> str:
    if platform == "tiktok":
        if had_cookies:
            return "TikTok rejected the cookies; export fresh cookies from tiktok.com (COOKIES_TIKTOK_PATH)."
        return "Add cookies exported from tiktok.com (COOKIES_TIKTOK_PATH); Instagram cookies do not apply to TikTok."
    if platform == "instagram":
        if had_cookies:
            return "Check that the Instagram cookies (COOKIES_INSTAGRAM_PATH) are still valid."
        return "Instagram often blocks datacenter IPs without cookies (COOKIES_INSTAGRAM_PATH)."
    return "Check the logs for yt-dlp output."


def _file_ready(path: Path) -> bool:
    try:
        return path.is_file() and path.stat().st_size > 0
    except OSError:
        return False


def _remove(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not delete {path}: {e}")


class VideoFetcher:
    """Download the video behind a social post URL."""

    def __init__(
        self,
        credentials: CredentialStore | None = None,
        download_dir: Path | None = None,
        timeout: float = 120.0,
        strategies: tuple[DownloadStrategy, ...] = STRATEGIES,
        executable: str = "yt-dlp",
    ):
        self.credentials = credentials
        self.download_dir = Path(download_dir) if download_dir else Path(tempfile.gettempdir())
        self.timeout = timeout
        self.strategies = strategies
        self.executable = executable

    @classmethod
    def from_settings(cls, settings, credentials: CredentialStore | None = None) -> "VideoFetcher":
        return cls(
            credentials=credentials,
            download_dir=settings.download_dir,
            timeout=settings.download_timeout_seconds,
        )

    @asynccontextmanager
    async def downloaded(self, url: str) -> AsyncIterator[Path]:
        """Download the video and delete it when the block exits."""
        path = await self.download_video(url)
        try:
            yield path
        finally:
            _remove(path)
            logger.info(f"Deleted local video {path.name}")

    async def download_video(self, url: str) -> Path:
        """
        Download a video, trying each strategy in order.

        Returns:
            Path to a non-empty video file (caller owns and must delete it)

        Raises:
            DownloadError: every strategy failed; cause is rate_limited or
                auth_required when yt-dlp output said so
        """
        platform = detect_platform(url)
        creds = self.credentials.credentials_for(url) if self.credentials else None
        if creds is None:
            logger.warning(f"No cookies for {platform or 'this host'}; download may be blocked")

        self.download_dir.mkdir(parents=True, exist_ok=True)
        output_path = self.download_dir / f"recipe_{uuid.uuid4().hex}.mp4"
        causes: list[DownloadFailure] = []

        try:
            # yt-dlp writes the cookie jar back: give it a throwaway copy
            with scoped_copy(creds) as cookie_file:
                for strategy in self.strategies:
                    logger.info(f"Downloading {url} ({strategy.name})")
                    output = await self._attempt(strategy, url, output_path, cookie_file)

                    if _file_ready(output_path):
                        size_mb = output_path.stat().st_size / (1024 * 1024)
                        logger.info(f"Video downloaded: {size_mb:.2f}MB ({strategy.name})")
                        return output_path

                    cause = self._log_failure(strategy, output, platform, creds is not None)
                    if cause:
                        causes.append(cause)
                    _remove(output_path)
        except BaseException:
            # Cancelled or crashed mid-download: leave nothing behind
            _remove(output_path)
            raise

        if DownloadFailure.RATE_LIMITED in causes:
            final = DownloadFailure.RATE_LIMITED
        elif DownloadFailure.AUTH_REQUIRED in causes:
            final = DownloadFailure.AUTH_REQUIRED
        else:
            final = DownloadFailure.ALL_STRATEGIES_FAILED

        cookies_note = "" if creds else " (no cookies)"
        raise DownloadError(
            final,
            f"Could not download video{cookies_note}: {final.value}. {_hint(platform, creds is not None)}",
            platform=platform,
        )

    def _log_failure(
        self,
        strategy: DownloadStrategy,
        output: str,
        platform: str | None,
        had_cookies: bool,
    ) -> DownloadFailure | None:
        cause = classify_output(output)
        if cause is DownloadFailure.RATE_LIMITED:
            logger.error(f"Rate limited by {platform or 'host'} (429). {_hint(platform, had_cookies)}")
        elif cause is DownloadFailure.AUTH_REQUIRED:
            logger.error(f"Login required by {platform or 'host'}. {_hint(platform, had_cookies)}")
        elif any(sig in output.lower() for sig in READ_ONLY_SIGNATURES):
            logger.warning("yt-dlp could not save cookies (read-only) and produced no file")
        else:
            logger.warning(f"Strategy '{strategy.name}' failed: {output.strip()[:150]}")
        return cause

    async def _attempt(
        self,
        strategy: DownloadStrategy,
        url: str,
        output_path: Path,
        cookie_file: Path | None,
    ) -> str:
        """Run yt-dlp once. Returns its combined output; never raises for tool failures."""
        args = [
            self.executable,
            "-f", strategy.format,
            "--user-agent", USER_AGENT,
            "--force-overwrites",
            "--no-warnings",
            "--no-playlist",
            "--merge-output-format", "mp4",
            "-o", str(output_path),
        ]
        if cookie_file is not None:
            args += ["--cookies", str(cookie_file)]
        args += ["--", url]  # Argument injection protection

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return f"{self.executable} not installed"

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return f"timed out after {self.timeout:.0f}s"
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise

        return (stderr or b"").decode(errors="replace") + (stdout or b"").decode(errors="replace")
