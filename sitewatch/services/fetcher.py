"""
Fetcher - Page text extraction with Playwright.

Loads a URL in headless Chromium and returns the inner text of the watched
region. A missing selector is non-fatal: the fetcher falls back to <main>
(or <body>) and still returns text.

One browser per headless setting is shared by all jobs; every fetch gets
its own browser context, always closed afterwards.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

logger = logging.getLogger(__name__)

# Booking platforms that never reach networkidle
HEAVY_JS_DOMAINS = ("exploretock.com", "resy.com", "opentable.com")
HEAVY_JS_MAX_TIMEOUT_SECONDS = 60

SETTLE_SECONDS = 2
HEAVY_JS_SETTLE_SECONDS = 5
SELECTOR_WAIT_MS = 15000

BROWSER_ARGS = [
    '--disable-gpu',
    '--disable-dev-shm-usage',
    '--disable-setuid-sandbox',
    '--no-sandbox',
    '--disable-extensions',
]


class FetchError(Exception):
    """Base class for fetch failures."""


class FetchTimeout(FetchError):
    """Navigation or load timed out. Retryable."""


class NavigationFailed(FetchError):
    """Navigation failed for a non-timeout reason."""


class SelectorMissing(FetchError):
    """Neither the configured selector nor any fallback produced text."""


class Fetcher(ABC):
    """Capability interface: load a URL and return text for a region."""

    @abstractmethod
    async def fetch(
        self,
        url: str,
        selector: str,
        timeout_seconds: float,
        wait_until: str,
        headless: Optional[bool] = None,
    ) -> str:
        """
        Returns:
            Raw inner text of the selected region

        Raises:
            FetchTimeout, NavigationFailed, SelectorMissing
        """

    async def close(self) -> None:
        """Release any resources held by the fetcher."""


def is_heavy_js_site(url: str) -> bool:
    return any(domain in url for domain in HEAVY_JS_DOMAINS)


class PlaywrightFetcher(Fetcher):
    """
    Chromium-backed fetcher.

    Browsers are launched lazily under an asyncio.Lock and relaunched if
    they disconnect.
    """

    def __init__(self, default_headless: bool = True):
        self._default_headless = default_headless
        self._playwright = None
        self._browsers: Dict[bool, object] = {}
        self._browser_lock = asyncio.Lock()
        self._fetch_count = 0
        self._fallback_count = 0

    async def _get_browser(self, headless: bool):
        async with self._browser_lock:
            browser = self._browsers.get(headless)
            if browser is not None and browser.is_connected():
                return browser

            if browser is not None:
                logger.warning("⚠️ [FETCHER] Browser disconnected, relaunching...")
                try:
                    await browser.close()
                except PlaywrightError:
                    pass

            if self._playwright is None:
                logger.info("🌐 [FETCHER] Launching Playwright...")
                self._playwright = await async_playwright().start()

            browser = await self._playwright.chromium.launch(headless=headless, args=BROWSER_ARGS)
            self._browsers[headless] = browser
            logger.info(f"✅ [FETCHER] Chromium launched (headless={headless})")
            return browser

    async def fetch(
        self,
        url: str,
        selector: str,
        timeout_seconds: float,
        wait_until: str,
        headless: Optional[bool] = None,
    ) -> str:
        headless = self._default_headless if headless is None else headless
        heavy = is_heavy_js_site(url)
        wait_condition = "domcontentloaded" if heavy else wait_until
        timeout = min(timeout_seconds, HEAVY_JS_MAX_TIMEOUT_SECONDS) if heavy else timeout_seconds

        try:
            browser = await self._get_browser(headless)
            context = await browser.new_context()
        except PlaywrightError as e:
            raise NavigationFailed(f"Browser unavailable: {e}") from e

        try:
            page = await context.new_page()
            logger.info(f"🚀 [FETCHER] Navigating {url} ({wait_condition}, {timeout:.0f}s timeout)")

            try:
                await page.goto(url, wait_until=wait_condition, timeout=timeout * 1000)
            except PlaywrightTimeoutError as e:
                raise FetchTimeout(f"Timeout loading {url} after {timeout:.0f}s") from e
            except PlaywrightError as e:
                raise NavigationFailed(f"Navigation to {url} failed: {e}") from e

            # Dynamic content settle time
            await page.wait_for_timeout((HEAVY_JS_SETTLE_SECONDS if heavy else SETTLE_SECONDS) * 1000)

            target = await self._resolve_target(page, selector)
            try:
                await page.wait_for_selector(target, timeout=SELECTOR_WAIT_MS)
            except PlaywrightTimeoutError:
                logger.warning(f"⚠️ [FETCHER] Selector {target} not ready within timeout, proceeding anyway")

            try:
                text = await page.locator(target).first.inner_text()
            except PlaywrightTimeoutError as e:
                raise SelectorMissing(f"No text found for {target} on {url}") from e
            except PlaywrightError as e:
                raise SelectorMissing(f"Could not extract {target} on {url}: {e}") from e

            self._fetch_count += 1
            logger.info(f"📄 [FETCHER] Extracted {len(text)} chars from {target}")
            return text
        finally:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.debug(f"[FETCHER] Error closing context: {e}")

    async def _resolve_target(self, page, selector: str) -> str:
        """Configured selector if visible, else main, else body."""
        try:
            visible = await page.locator(selector).first.is_visible()
        except PlaywrightError:
            visible = False

        if visible:
            return selector

        fallback = "main" if await page.locator("main").count() else "body"
        self._fallback_count += 1
        logger.info(f"ℹ️ [FETCHER] Selector {selector} not visible, falling back to: {fallback}")
        return fallback

    async def close(self) -> None:
        """Close all browsers and stop Playwright."""
        async with self._browser_lock:
            for browser in self._browsers.values():
                try:
                    await browser.close()
                except PlaywrightError as e:
                    logger.warning(f"⚠️ [FETCHER] Error closing browser: {e}")
            self._browsers.clear()

            if self._playwright is not None:
                try:
                    await self._playwright.stop()
                except PlaywrightError as e:
                    logger.warning(f"⚠️ [FETCHER] Error stopping Playwright: {e}")
                self._playwright = None
        logger.info("🛑 [FETCHER] Browser resources released")

    def get_stats(self) -> Dict[str, int]:
        return {
            "fetches": self._fetch_count,
            "selector_fallbacks": self._fallback_count,
        }
