#!/usr/bin/env python3
"""
Unit Tests for the Browser Service

Tests for scraping/browser.py covering:
- navigate_with_retry attempt counting, status handling and FetchError
- ContentBlocker decisions and route handling
- Lazy, once-only session initialization (fake Playwright)
- Teardown and close semantics
"""

import asyncio
import pytest
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from scraping.browser import (
    BrowserService,
    ContentBlocker,
    FetchError,
    SessionState,
    LAUNCH_ARGS,
    USER_AGENT,
)


class FakeResponse:
    def __init__(self, status: int = 200):
        self.status = status


class FlakyPage:
    """Page whose goto outcomes are scripted: exceptions are raised, ints become responses."""
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.goto_calls = []

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append({"url": url, "wait_until": wait_until, "timeout": timeout})
        outcome = self.outcomes.pop(0) if self.outcomes else TimeoutError("timed out")
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResponse(outcome)


def make_playwright():
    """Build a fake async_playwright factory and the objects behind it."""
    page = MagicMock()
    page.route = AsyncMock()

    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.add_init_script = AsyncMock()
    context.close = AsyncMock()

    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()

    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=browser)
    playwright.stop = AsyncMock()

    manager = MagicMock()
    manager.start = AsyncMock(return_value=playwright)
    factory = MagicMock(return_value=manager)

    return factory, playwright, browser, context, page


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def service():
    factory, *_ = make_playwright()
    return BrowserService(retry_delay_seconds=0, playwright_factory=factory)


# =============================================================================
# NAVIGATION
# =============================================================================

class TestNavigateWithRetry:
    """Tests for the retry policy."""

    def test_success_on_first_attempt(self, service):
        page = FlakyPage([200])
        response = asyncio.run(service.navigate_with_retry(page, "https://example.com/a"))
        assert response.status == 200
        assert len(page.goto_calls) == 1
        assert page.goto_calls[0]["wait_until"] == "domcontentloaded"
        assert page.goto_calls[0]["timeout"] == 30000

    def test_always_failing_makes_exactly_max_retries_attempts(self, service):
        page = FlakyPage([TimeoutError("t1"), TimeoutError("t2"), TimeoutError("t3"), 200])
        with pytest.raises(FetchError) as exc_info:
            asyncio.run(service.navigate_with_retry(page, "https://example.com/a", max_retries=3))
        assert len(page.goto_calls) == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.url == "https://example.com/a"
        assert isinstance(exc_info.value.__cause__, TimeoutError)

    def test_recovers_after_transient_failure(self, service):
        page = FlakyPage([ConnectionError("reset"), 200])
        response = asyncio.run(service.navigate_with_retry(page, "https://example.com/a"))
        assert response.status == 200
        assert len(page.goto_calls) == 2

    def test_error_status_counts_as_failure(self, service):
        page = FlakyPage([503, 200])
        response = asyncio.run(service.navigate_with_retry(page, "https://example.com/a"))
        assert response.status == 200
        assert len(page.goto_calls) == 2

    def test_error_status_on_every_attempt_raises(self, service):
        page = FlakyPage([404, 404])
        with pytest.raises(FetchError):
            asyncio.run(service.navigate_with_retry(page, "https://example.com/a", max_retries=2))
        assert len(page.goto_calls) == 2

    def test_zero_retries_still_tries_once(self, service):
        page = FlakyPage([200])
        asyncio.run(service.navigate_with_retry(page, "https://example.com/a", max_retries=0))
        assert len(page.goto_calls) == 1


# =============================================================================
# CONTENT BLOCKING
# =============================================================================

class TestContentBlocker:
    """Tests for request filtering."""

    @pytest.mark.parametrize("url", [
        "https://securepubads.g.doubleclick.net/gampad/ads",
        "https://www.googletagmanager.com/gtm.js",
        "https://www-sportsmole-co-uk.cdn.ampproject.org/c/s/page",
        "https://www.sportsmole.co.uk/amp/football/preview.html",
    ])
    def test_blocks_ads_trackers_and_amp(self, url):
        assert ContentBlocker().should_block(url, "script")

    @pytest.mark.parametrize("resource_type", ["image", "media", "font"])
    def test_blocks_heavy_resource_types(self, resource_type):
        assert ContentBlocker().should_block("https://www.sportsmole.co.uk/x", resource_type)

    def test_allows_documents(self):
        assert not ContentBlocker().should_block(
            "https://www.sportsmole.co.uk/football/preview/", "document"
        )

    def test_handle_route_aborts_blocked_request(self):
        blocker = ContentBlocker()
        route = MagicMock()
        route.request.url = "https://adservice.google.com/x"
        route.request.resource_type = "script"
        route.abort = AsyncMock()
        route.continue_ = AsyncMock()

        asyncio.run(blocker.handle_route(route))

        route.abort.assert_awaited_once()
        route.continue_.assert_not_awaited()
        assert blocker.blocked_count == 1

    def test_handle_route_continues_allowed_request(self):
        blocker = ContentBlocker()
        route = MagicMock()
        route.request.url = "https://www.sportsmole.co.uk/football/preview/"
        route.request.resource_type = "document"
        route.abort = AsyncMock()
        route.continue_ = AsyncMock()

        asyncio.run(blocker.handle_route(route))

        route.continue_.assert_awaited_once()
        assert blocker.blocked_count == 0


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

class TestSessionLifecycle:
    """Tests for init, new_page and close."""

    def test_init_launches_once(self):
        factory, playwright, browser, context, _ = make_playwright()
        service = BrowserService(playwright_factory=factory)

        async def scenario():
            await service.init()
            await service.init()

        asyncio.run(scenario())

        assert service.state is SessionState.READY
        factory.assert_called_once()
        playwright.chromium.launch.assert_awaited_once_with(headless=True, args=LAUNCH_ARGS)
        kwargs = browser.new_context.call_args.kwargs
        assert kwargs["user_agent"] == USER_AGENT
        assert kwargs["locale"] == "en-GB"
        context.add_init_script.assert_awaited_once()

    def test_new_page_initializes_and_attaches_blocker(self):
        factory, _, _, context, page = make_playwright()
        service = BrowserService(playwright_factory=factory)

        result = asyncio.run(service.new_page())

        assert result is page
        assert service.is_ready
        context.new_page.assert_awaited_once()
        page.route.assert_awaited_once_with("**/*", service.blocker.handle_route)

    def test_init_failure_cleans_up(self):
        factory, playwright, _, _, _ = make_playwright()
        playwright.chromium.launch.side_effect = RuntimeError("no chromium")
        service = BrowserService(playwright_factory=factory)

        with pytest.raises(RuntimeError):
            asyncio.run(service.init())

        assert service.state is SessionState.UNINITIALIZED
        playwright.stop.assert_awaited_once()

    def test_close_releases_everything(self):
        factory, playwright, browser, context, _ = make_playwright()
        service = BrowserService(playwright_factory=factory)

        async def scenario():
            await service.init()
            await service.close()

        asyncio.run(scenario())

        context.close.assert_awaited_once()
        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()
        assert service.state is SessionState.UNINITIALIZED
        assert not service.is_ready

    def test_close_when_uninitialized_is_noop(self):
        factory, *_ = make_playwright()
        service = BrowserService(playwright_factory=factory)
        asyncio.run(service.close())
        factory.assert_not_called()
        assert service.state is SessionState.UNINITIALIZED

    def test_get_instance_returns_same_object(self):
        BrowserService._instance = None
        try:
            assert BrowserService.get_instance() is BrowserService.get_instance()
        finally:
            BrowserService._instance = None
