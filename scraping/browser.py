#!/usr/bin/env python3
"""
Browser Service - Shared headless browser session for page scraping

Owns exactly one Playwright browser and one browser context for the lifetime
of the process, so each scrape only pays for opening a page.

Features:
- Lazy, once-only initialization (Chromium, headless)
- Desktop user agent and English language headers on every request
- Ad/tracker/AMP request blocking on every page
- Navigation with a bounded number of attempts and a fixed backoff

Lifecycle:
    UNINITIALIZED -> INITIALIZING -> READY, and close() returns to
    UNINITIALIZED. Pages are independent once the context is ready.

Usage:
    browser = BrowserService.get_instance()
    page = await browser.new_page()
    try:
        await browser.navigate_with_retry(page, url)
        html = await page.content()
    finally:
        await page.close()
    await browser.close()
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from playwright.async_api import async_playwright

logger = logging.getLogger(__name__)

# Navigation configuration
DEFAULT_MAX_RETRIES = 3
NAVIGATION_TIMEOUT_MS = 30000
RETRY_DELAY_SECONDS = 2.0

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)

EXTRA_HTTP_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-GB,en;q=0.9",
    "Upgrade-Insecure-Requests": "1",
}

LAUNCH_ARGS = [
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
]

# Host/path fragments of ad, tracking and consent providers
BLOCKED_URL_FRAGMENTS = (
    "doubleclick",
    "googlesyndication",
    "googleadservices",
    "google-analytics",
    "googletagmanager",
    "adservice",
    "prebid",
    "facebook.com/tr",
    "connect.facebook.net",
    "pixel.gif",
    "appconsent.io",
    "wonderpush",
    "scorecardresearch",
    "amazon-adsystem",
    "taboola",
    "outbrain",
)

# Accelerated Mobile Pages variants redirect away from the desktop markup
AMP_URL_FRAGMENTS = (
    "cdn.ampproject.org",
    "/amp/",
    "amp=1",
    "amp_latest",
    "amp-latest",
)

BLOCKED_RESOURCE_TYPES = ("image", "media", "font")


class FetchError(Exception):
    """Raised when a page cannot be loaded after all attempts."""
    def __init__(self, message: str, url: str = None, attempts: int = 0):
        super().__init__(message)
        self.url = url
        self.attempts = attempts


class SessionState(Enum):
    """Lifecycle of the shared browser session."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class ContentBlocker:
    """
    Route filter that aborts ad, tracker, AMP and heavy media requests.
    """

    def __init__(
        self,
        url_fragments: Sequence[str] = BLOCKED_URL_FRAGMENTS + AMP_URL_FRAGMENTS,
        resource_types: Sequence[str] = BLOCKED_RESOURCE_TYPES,
    ):
        self.url_fragments = tuple(fragment.lower() for fragment in url_fragments)
        self.resource_types = frozenset(resource_types)
        self.blocked_count = 0

    def should_block(self, url: str, resource_type: str = "") -> bool:
        """Return True if a request for url should be aborted."""
        if resource_type in self.resource_types:
            return True
        url_lower = (url or "").lower()
        return any(fragment in url_lower for fragment in self.url_fragments)

    async def handle_route(self, route: Any) -> None:
        """Playwright route handler."""
        request = route.request
        if self.should_block(request.url, request.resource_type):
            self.blocked_count += 1
            logger.debug(f"Blocking {request.resource_type}: {request.url}")
            await route.abort()
        else:
            await route.continue_()


class BrowserService:
    """
    Process-wide headless browser session.

    The orchestrator receives an instance explicitly; ``get_instance`` is the
    lazily created default used by the command line entry point.
    """

    _instance: Optional['BrowserService'] = None

    def __init__(
        self,
        headless: bool = True,
        retry_delay_seconds: float = RETRY_DELAY_SECONDS,
        navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS,
        blocker: Optional[ContentBlocker] = None,
        playwright_factory: Callable[[], Any] = async_playwright,
    ):
        self.headless = headless
        self.retry_delay_seconds = retry_delay_seconds
        self.navigation_timeout_ms = navigation_timeout_ms
        self.blocker = blocker or ContentBlocker()
        self._playwright_factory = playwright_factory

        self._playwright = None
        self._browser = None
        self._context = None
        self._init_lock = asyncio.Lock()
        self.state = SessionState.UNINITIALIZED
        self.logger = logging.getLogger(f"{__name__}.BrowserService")

    @classmethod
    def get_instance(cls) -> 'BrowserService':
        """Return the process-wide service, creating it on first use."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY and self._context is not None

    async def init(self) -> None:
        """Launch the browser and create the shared context (once)."""
        async with self._init_lock:
            if self.is_ready:
                return

            self.state = SessionState.INITIALIZING
            self.logger.info("Initializing browser...")
            try:
                self._playwright = await self._playwright_factory().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless,
                    args=LAUNCH_ARGS,
                )
                self._context = await self._browser.new_context(
                    user_agent=USER_AGENT,
                    locale="en-GB",
                    viewport={"width": 1920, "height": 1080},
                    accept_downloads=False,
                    extra_http_headers=EXTRA_HTTP_HEADERS,
                )
                await self._context.add_init_script(
                    "Object.defineProperty(navigator, 'webdriver', {get: () => undefined})"
                )
            except Exception:
                await self._teardown()
                raise

            self.state = SessionState.READY
            self.logger.info("Browser ready")

    async def new_page(self) -> Any:
        """
        Open a new page in the shared context with request blocking attached.

        Returns:
            A Playwright page; the caller owns it and must close it.
        """
        if not self.is_ready:
            await self.init()

        page = await self._context.new_page()
        await page.route("**/*", self.blocker.handle_route)
        return page

    async def navigate_with_retry(
        self,
        page: Any,
        url: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> Any:
        """
        Navigate page to url, retrying on any failure.

        Each attempt waits for DOMContentLoaded within the navigation timeout.
        HTTP status codes of 400 and above count as failures. Failed attempts
        are followed by a fixed delay.

        Args:
            page: Page to navigate
            url: Target URL
            max_retries: Total number of attempts

        Returns:
            The navigation response (may be None for same-document navigation)

        Raises:
            FetchError: If every attempt failed
        """
        attempts = max(1, max_retries)
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                self.logger.info(f"Navigating to {url} (attempt {attempt}/{attempts})")
                response = await page.goto(
                    url,
                    wait_until="domcontentloaded",
                    timeout=self.navigation_timeout_ms,
                )
                if response is not None and response.status >= 400:
                    raise FetchError(f"HTTP error {response.status}", url=url, attempts=attempt)
                return response
            except Exception as e:
                last_error = e
                self.logger.warning(f"Navigation attempt {attempt}/{attempts} failed for {url}: {e}")
                if attempt < attempts:
                    await asyncio.sleep(self.retry_delay_seconds)

        raise FetchError(
            f"Failed to load {url} after {attempts} attempts: {last_error}",
            url=url,
            attempts=attempts,
        ) from last_error

    async def close(self) -> None:
        """Close context and browser. Safe to call when not initialized."""
        if self.state is SessionState.UNINITIALIZED and self._playwright is None:
            return
        await self._teardown()
        self.logger.info("Browser closed")

    async def _teardown(self) -> None:
        if self._context is not None:
            try:
                await self._context.close()
            except Exception as e:
                self.logger.warning(f"Error closing browser context: {e}")
            self._context = None

        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                self.logger.warning(f"Error closing browser: {e}")
            self._browser = None

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                self.logger.warning(f"Error stopping Playwright: {e}")
            self._playwright = None

        self.state = SessionState.UNINITIALIZED
