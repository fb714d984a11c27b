"""
Headless page fetcher for social posts.

Loads the post in a mobile browser context, strips login overlays,
expands the caption, scrolls for comments, then collects labelled text,
a screenshot and the comments. The browser is always closed.
"""

import logging
import re

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PWTimeoutError
from playwright.async_api import async_playwright

from ..errors import FetchError
from .credentials import CredentialStore
from .models import ScrapedPage

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) "
    "AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)

COMMENT_MIN_LENGTH = 10
COMMENT_MAX_LENGTH = 500
CAPTION_MIN_LENGTH = 50
HEADING_MIN_LENGTH = 20

# Caption blocks mentioning any of these are treated as the recipe caption
RECIPE_KEYWORDS = re.compile(
    r"ingr[ée]dients?|recette|recipe|steps?|[ée]tapes?|instructions|pr[ée]paration"
    r"|cuisson|\d+\s?(?:min|minutes|h)\b",
    re.IGNORECASE,
)
COMMENT_NOISE = ("Reply", "View all", "Répondre", "Voir les")
EXPAND_BUTTON = re.compile(r"more|plus|suite", re.IGNORECASE)
VIEW_COMMENTS = re.compile(r"View all.*comments|Voir les.*commentaires", re.IGNORECASE)

_REMOVE_OVERLAYS_JS = """
() => {
  const selectors = [
    '[role="dialog"]',
    '[role="presentation"]',
    'div[class*="Backdrop"]',
    'div[class*="Overlay"]',
  ];
  const wall = /log in|sign up|connectez-vous|inscrivez-vous|se connecter/i;
  selectors.forEach(sel => {
    document.querySelectorAll(sel).forEach(el => {
      if (wall.test(el.textContent || '')) el.remove();
    });
  });
  if (document.body) document.body.style.overflow = 'auto';
}
"""

_COMMENT_TEXTS_JS = """
() => Array.from(document.querySelectorAll('ul li, div[role="button"] + div'))
  .map(el => el.textContent || '')
"""

_TEXT_BLOCKS_JS = """
() => Array.from(document.querySelectorAll('span, div, li, h1'))
  .map(el => el.innerText || '')
  .filter(t => t.length > 0)
"""

_HEADING_JS = """
() => { const h1 = document.querySelector('h1'); return h1 ? (h1.innerText || '') : ''; }
"""

_JSON_LD_JS = """
() => Array.from(document.querySelectorAll('script[type="application/ld+json"]'))
  .map(s => s.textContent || '').join('\\n')
"""

_META_DESCRIPTION_JS = """
() => {
  const m = document.querySelector('meta[name="description"]')
         || document.querySelector('meta[property="og:description"]');
  return m ? (m.getAttribute('content') || '') : '';
}
"""


# =============================================================================
# Pure helpers
# =============================================================================


def clean_comments(raw: list[str], limit: int) -> tuple[str, ...]:
    """Filter noise, deduplicate (keeping first occurrence) and cap comments."""
    seen: set[str] = set()
    comments = []
    for text in raw:
        text = (text or "").strip()
        if not COMMENT_MIN_LENGTH < len(text) < COMMENT_MAX_LENGTH:
            continue
        if any(noise in text for noise in COMMENT_NOISE):
            continue
        if text in seen:
            continue
        seen.add(text)
        comments.append(text)
        if len(comments) >= limit:
            break
    return tuple(comments)


def pick_priority_caption(blocks: list[str], heading: str = "") -> str:
    """
    Pick the text most likely to be the recipe caption.

    The longest block mentioning recipe keywords wins; otherwise the
    page heading if it is long enough; otherwise nothing.
    """
    candidates = [
        b for b in blocks
        if b and len(b) > CAPTION_MIN_LENGTH and RECIPE_KEYWORDS.search(b)
    ]
    if candidates:
        return max(candidates, key=len)
    if heading and len(heading.strip()) > HEADING_MIN_LENGTH:
        return heading.strip()
    return ""


def compose_raw_text(caption: str, meta_description: str, json_ld: str, body: str) -> str:
    """
    Concatenate page sources with labels.

    META_DESCRIPTION is often truncated; PRIORITY_CAPTION_DOM and
    FULL_VISIBLE_BODY carry the full text.
    """
    return "\n".join([
        f"PRIORITY_CAPTION_DOM: {caption.strip()}",
        f"META_DESCRIPTION: {meta_description.strip()}",
        f"JSON_LD: {json_ld.strip()}",
        f"FULL_VISIBLE_BODY: {body.strip()}",
    ])


# =============================================================================
# Fetcher
# =============================================================================


class PageFetcher:
    """Fetch a social post with a headless Chromium."""

    def __init__(
        self,
        credentials: CredentialStore | None = None,
        page_load_timeout: float = 90.0,
        scroll_iterations: int = 3,
        max_comments: int = 20,
    ):
        self.credentials = credentials
        self.page_load_timeout = page_load_timeout
        self.scroll_iterations = scroll_iterations
        self.max_comments = max_comments

    @classmethod
    def from_settings(cls, settings, credentials: CredentialStore | None = None) -> "PageFetcher":
        return cls(
            credentials=credentials,
            page_load_timeout=settings.page_load_timeout_seconds,
            scroll_iterations=settings.scroll_iterations,
            max_comments=settings.max_comments,
        )

    async def fetch_page(self, url: str) -> ScrapedPage:
        """
        Load a post and collect text, screenshot and comments.

        Raises:
            FetchError: navigation timeout or browser/network failure
        """
        logger.info(f"Starting page fetch for {url}")

        try:
            async with async_playwright() as p:
                browser = await p.chromium.launch(
                    headless=True,
                    args=["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"],
                )
                try:
                    context = await browser.new_context(
                        user_agent=USER_AGENT,
                        viewport={"width": 390, "height": 844},
                        device_scale_factor=3,
                        is_mobile=True,
                        has_touch=True,
                        locale="fr-FR",
                        timezone_id="Europe/Paris",
                    )
                    await self._add_cookies(context, url)
                    page = await context.new_page()
                    return await self._scrape(page, url)
                finally:
                    await browser.close()

        except PWTimeoutError as e:
            raise FetchError(url, f"navigation timed out after {self.page_load_timeout:.0f}s") from e
        except PlaywrightError as e:
            raise FetchError(url, str(e)) from e

    async def _add_cookies(self, context, url: str) -> None:
        if self.credentials is None:
            return
        creds = self.credentials.credentials_for(url)
        if creds and creds.cookies:
            await context.add_cookies([c.to_browser_cookie() for c in creds.cookies])
            logger.info(f"Loaded {len(creds.cookies)} {creds.platform} cookies into browser")

    async def _scrape(self, page: Page, url: str) -> ScrapedPage:
        await page.goto(url, wait_until="domcontentloaded", timeout=self.page_load_timeout * 1000)
        try:
            await page.wait_for_load_state("networkidle", timeout=10_000)
        except PWTimeoutError:
            pass  # Social pages rarely go idle

        await self._remove_overlays(page)
        await self._expand_caption(page)
        comments = await self._harvest_comments(page)

        json_ld = await page.evaluate(_JSON_LD_JS)
        meta_description = await page.evaluate(_META_DESCRIPTION_JS)
        body = await page.evaluate("() => document.body ? document.body.innerText : ''")
        caption = pick_priority_caption(
            await page.evaluate(_TEXT_BLOCKS_JS),
            await page.evaluate(_HEADING_JS),
        )

        await page.evaluate("() => window.scrollTo(0, 0)")
        await page.wait_for_timeout(500)
        screenshot = await page.screenshot(full_page=False, type="jpeg", quality=70)
        title = await page.title()

        raw_text = compose_raw_text(caption, meta_description, json_ld, body)
        logger.info(
            f"Fetched {url}: {len(raw_text)} chars, {len(comments)} comments, "
            f"caption={'yes' if caption else 'no'}"
        )

        return ScrapedPage(
            raw_text=raw_text,
            source_url=url,
            screenshot=screenshot,
            page_title=title or "",
            comments=comments,
        )

    async def _remove_overlays(self, page: Page) -> None:
        try:
            await page.evaluate(_REMOVE_OVERLAYS_JS)
        except PlaywrightError as e:
            logger.debug(f"Overlay removal failed: {e}")

    async def _expand_caption(self, page: Page) -> None:
        """Click every visible "more" button to unfold truncated captions."""
        try:
            buttons = await page.get_by_role("button", name=EXPAND_BUTTON).all()
        except PlaywrightError:
            return

        for button in buttons:
            try:
                if await button.is_visible():
                    await button.click(timeout=1000)
                    await page.wait_for_timeout(200)
            except PlaywrightError:
                continue

    async def _harvest_comments(self, page: Page) -> tuple[str, ...]:
        try:
            view_all = page.get_by_text(VIEW_COMMENTS).first
            if await view_all.is_visible():
                await view_all.click(timeout=2000)
                await page.wait_for_timeout(1000)
        except PlaywrightError:
            pass

        raw: list[str] = []
        for _ in range(self.scroll_iterations):
            await page.mouse.wheel(0, 800)
            await page.wait_for_timeout(1500)
            # Overlays come back after scrolling
            await self._remove_overlays(page)
            try:
                raw.extend(await page.evaluate(_COMMENT_TEXTS_JS))
            except PlaywrightError as e:
                logger.debug(f"Comment harvest failed: {e}")

        return clean_comments(raw, self.max_comments)
