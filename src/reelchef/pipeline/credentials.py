"""
Per-platform cookie credentials.

Cookies are domain-scoped: an Instagram cookie file never serves a TikTok
request. When the matching platform has no cookies, callers get None.
"""

import logging
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

PLATFORM_DOMAINS = {
    "instagram": ("instagram.com",),
    "tiktok": ("tiktok.com",),
}
HTTP_ONLY_PREFIX = "#HttpOnly_"


@dataclass(frozen=True)
class Cookie:
    """One Netscape cookie line."""

    name: str
    value: str
    domain: str
    path: str = "/"
    expires: int | None = None
    secure: bool = False
    http_only: bool = False

    def to_browser_cookie(self) -> dict:
        """Format for Playwright's BrowserContext.add_cookies()."""
        cookie = {
            "name": self.name,
            "value": self.value,
            "domain": self.domain,
            "path": self.path,
            "secure": self.secure,
            "httpOnly": self.http_only,
        }
        if self.expires:
            cookie["expires"] = self.expires
        return cookie

    def to_netscape_line(self) -> str:
        include_subdomains = "TRUE" if self.domain.startswith(".") else "FALSE"
        domain = HTTP_ONLY_PREFIX + self.domain if self.http_only else self.domain
        return "\t".join([
            domain,
            include_subdomains,
            self.path,
            "TRUE" if self.secure else "FALSE",
            str(self.expires or 0),
            self.name,
            self.value,
        ])


@dataclass(frozen=True)
class CredentialSet:
    """Cookie material for one platform."""

    platform: str
    path: Path
    cookies: tuple[Cookie, ...] = field(default_factory=tuple)


def detect_platform(url: str) -> str | None:
    """Return the platform name for a URL host, or None if unsupported."""
    try:
        hostname = (urlparse(url).hostname or "").lower()
    except ValueError:
        return None

    for platform, domains in PLATFORM_DOMAINS.items():
        for domain in domains:
            if hostname == domain or hostname.endswith("." + domain):
                return platform
    return None


def _cookie_matches(cookie_domain: str, platform: str) -> bool:
    domain = cookie_domain.lstrip(".").lower()
    return any(
        domain == d or domain.endswith("." + d)
        for d in PLATFORM_DOMAINS[platform]
    )


def parse_netscape_cookies(text: str) -> list[Cookie]:
    """
    Parse a Netscape cookies.txt file.

    Format (tab-separated): domain flag path secure expiration name value
    Comment lines and lines with fewer than 7 fields are skipped.
    """
    cookies = []
    for line in text.splitlines():
        stripped = line.strip()
        # "#HttpOnly_" prefixed lines are real cookies
        http_only = stripped.startswith(HTTP_ONLY_PREFIX)
        if http_only:
            stripped = stripped[len(HTTP_ONLY_PREFIX):]
        elif not stripped or stripped.startswith("#"):
            continue

        parts = stripped.split("\t")
        if len(parts) < 7:
            continue

        domain, _, path, secure, expiration, name, value = parts[:7]
        try:
            expires = int(expiration or "0")
        except ValueError:
            expires = 0

        cookies.append(Cookie(
            name=name,
            value=value,
            domain=domain.strip(),
            path=path.strip() or "/",
            expires=expires if expires > 0 else None,
            secure=secure.strip().lower() == "true",
            http_only=http_only,
        ))
    return cookies


class CredentialStore:
    """
    Loads platform cookie files.

    The canonical files are only ever read. Tools that write cookies back
    (yt-dlp does at exit) must work on `scoped_copy()`.
    """

    def __init__(self, paths: dict[str, Path]):
        self.paths = {platform: Path(p) for platform, p in paths.items()}

    @classmethod
    def from_settings(cls, settings) -> "CredentialStore":
        return cls({
            "instagram": settings.cookies_instagram_path,
            "tiktok": settings.cookies_tiktok_path,
        })

    def credentials_for(self, url: str) -> CredentialSet | None:
        """Return the cookie set for the URL's platform, or None."""
        platform = detect_platform(url)
        if platform is None:
            return None

        path = self.paths.get(platform)
        if path is None or not path.is_file():
            logger.info(f"No cookies for {platform} (looked for {path})")
            return None

        try:
            cookies = parse_netscape_cookies(path.read_text(encoding="utf-8"))
        except OSError as e:
            logger.warning(f"Could not read cookies for {platform}: {e}")
            return None

        # Drop lines that belong to another domain
        scoped = tuple(c for c in cookies if _cookie_matches(c.domain, platform))
        if len(scoped) < len(cookies):
            logger.warning(
                f"Ignored {len(cookies) - len(scoped)} cookies in {path} not scoped to {platform}"
            )

        return CredentialSet(platform=platform, path=path, cookies=scoped)


@contextmanager
def scoped_copy(credentials: CredentialSet | None) -> Iterator[Path | None]:
    """
    Yield a disposable cookie file holding only the set's scoped cookies.

    The copy is deleted on exit. Yields None when there are no credentials.
    """
    if credentials is None:
        yield None
        return

    tmp_dir = Path(tempfile.mkdtemp(prefix="reelchef_cookies_"))
    try:
        copy_path = tmp_dir / credentials.path.name
        lines = ["# Netscape HTTP Cookie File"]
        lines.extend(c.to_netscape_line() for c in credentials.cookies)
        copy_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        yield copy_path
    finally:
        shutil.rmtree(tmp_dir, ignore_errors=True)
