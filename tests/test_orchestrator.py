#!/usr/bin/env python3
"""
Tests for the Preview Orchestrator

Covers orchestrator.py:
- Configuration from environment and arguments, and validation
- Listing and preview caching
- Per-match failure isolation and page cleanup
- Publishing modes and JSON output
- End-to-end run: listing -> scrape -> publish (fake browser and chat)
- Command line exit codes
"""

import asyncio
import json
import os
import pytest
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from orchestrator import PreviewBotConfig, PreviewOrchestrator, RunResult, main, parse_args
from publishing.publisher import PreviewPublisher
from scraping.browser import FetchError
from scraping.cache import CacheManager
from scraping.link_enumerator import PREVIEWS_URL
from scraping.models import MatchPreview


BASE = "https://www.sportsmole.co.uk"
MATCH_URL = f"{BASE}/preview/a-vs-b"
SECOND_URL = f"{BASE}/preview/c-vs-d"
ANALYSIS_URL = f"{BASE}/preview/a-vs-b/data-analysis"

LISTING_HTML = """
<table class="matches">
  <tr class="section"><td>Premier League</td></tr>
  <tr><td>15:00</td><td></td><td><a href="/preview/a-vs-b">Team A vs Team B</a></td></tr>
</table>
"""

TWO_MATCH_LISTING_HTML = """
<table class="matches">
  <tr class="section"><td>Premier League</td></tr>
  <tr><td>15:00</td><td></td><td><a href="/preview/a-vs-b">Team A vs Team B</a></td></tr>
  <tr class="section"><td>Championship</td></tr>
  <tr><td>19:45</td><td></td><td><a href="/preview/c-vs-d">Team C vs Team D</a></td></tr>
</table>
"""

PREVIEW_HTML = """
<html><head><title>Team A vs. Team B - prediction, team news, lineups</title></head>
<body>
  <span class="competition">Premier League</span>
  <a title="Data Analysis" href="/preview/a-vs-b/data-analysis">Data Analysis</a>
  <div class="article_content">
    <p>Team A welcome Team B.</p>
    <h2>Team News</h2>
    <p>Team A have no new injury concerns.</p>
    <p>Team B are missing two defenders.</p>
    <h2>We say: Team A 1-0 Team B</h2>
    <p>A tight one.</p>
  </div>
</body></html>
"""

ANALYSIS_HTML = """
<div class="probability">45%</div><div class="probability">30%</div><div class="probability">25%</div>
<div class="scoreline"><span class="score">1-0</span><span class="prob">12%</span></div>
"""


# =============================================================================
# FAKES
# =============================================================================

class FakePage:
    """Page serving fixture HTML by URL."""
    def __init__(self, site):
        self.site = site
        self.url = None
        self.closed = False

    async def goto(self, url, wait_until=None, timeout=None):
        self.url = url
        return None

    async def wait_for_load_state(self, state=None):
        return None

    async def wait_for_selector(self, selector, timeout=None):
        return None

    async def content(self):
        return self.site[self.url]

    async def title(self):
        return ""

    async def close(self):
        self.closed = True


class FakeBrowser:
    """Stands in for BrowserService; unknown URLs fail navigation."""
    def __init__(self, site):
        self.site = site
        self.pages = []
        self.navigations = []
        self.closed = False

    async def new_page(self):
        page = FakePage(self.site)
        self.pages.append(page)
        return page

    async def navigate_with_retry(self, page, url, max_retries=3):
        self.navigations.append(url)
        if url not in self.site:
            raise FetchError(f"Failed to load {url}", url=url, attempts=max_retries)
        return await page.goto(url)

    async def close(self):
        self.closed = True


class FakeTarget:
    def __init__(self, name=""):
        self.name = name
        self.sent = []
        self.threads = []

    async def send(self, content=None, embeds=None):
        self.sent.append({"content": content, "embeds": embeds})
        return FakeMessage(self)


class FakeMessage:
    def __init__(self, target):
        self.target = target

    async def start_thread(self, name, auto_archive_duration=1440):
        thread = FakeTarget(name)
        self.target.threads.append(thread)
        return thread


class FakeClient:
    def __init__(self):
        self.channel = FakeTarget("previews")

    async def get_channel(self, channel_id):
        return self.channel


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def site():
    return {PREVIEWS_URL: LISTING_HTML, MATCH_URL: PREVIEW_HTML, ANALYSIS_URL: ANALYSIS_HTML}


@pytest.fixture
def cache(tmp_path):
    return CacheManager(cache_dir=tmp_path / "cache")


@pytest.fixture
def config():
    return PreviewBotConfig(
        mode="bot",
        discord_token="token",
        channel_id="123",
        scrape_delay_seconds=0,
    )


@pytest.fixture
def chat():
    return FakeClient()


def run(config, browser, cache, publisher=None, notifier=None) -> RunResult:
    orchestrator = PreviewOrchestrator(config, browser, cache, publisher=publisher, notifier=notifier)
    return asyncio.run(orchestrator.run())


# =============================================================================
# CONFIGURATION
# =============================================================================

class TestConfig:
    """Tests for PreviewBotConfig."""

    def test_from_env_and_args(self, tmp_path):
        env = {
            "DISCORD_API_TOKEN": "abc",
            "DISCORD_CHANNEL_ID": "42",
            "PREVIEW_TIMEZONE": "Europe/Madrid",
            "PREVIEW_CACHE_DIR": str(tmp_path),
            "PREVIEW_CACHE_TTL_MINUTES": "30",
        }
        args = parse_args(["--team", "Arsenal", "--limit", "3", "--no-cache", "--with-analysis",
                           "--output-json", "out.json", "--max-retries", "5"])
        with patch.dict(os.environ, env, clear=True):
            config = PreviewBotConfig.from_env_and_args(args)

        assert config.discord_token == "abc"
        assert config.channel_id == "42"
        assert config.timezone == "Europe/Madrid"
        assert config.cache_dir == tmp_path
        assert config.cache_ttl_seconds == 1800
        assert config.team == "Arsenal"
        assert config.limit == 3
        assert config.use_cache is False
        assert config.with_analysis is True
        assert config.output_json == Path("out.json")
        assert config.max_retries == 5
        assert config.is_valid() == (True, "Configuration valid")

    def test_defaults(self):
        args = parse_args([])
        with patch.dict(os.environ, {}, clear=True):
            config = PreviewBotConfig.from_env_and_args(args)
        assert config.mode == "bot"
        assert config.timezone == "Europe/London"
        assert config.cache_ttl_minutes == 15
        assert config.use_cache and config.publish
        assert config.max_retries == 3

    def test_webhook_url_fallback(self):
        args = parse_args(["--mode", "webhook"])
        with patch.dict(os.environ, {"NOTIFY_URL": "discord://1/2"}, clear=True):
            config = PreviewBotConfig.from_env_and_args(args)
        assert config.webhook_url == "discord://1/2"
        assert config.is_valid()[0]

    @pytest.mark.parametrize("kwargs,message", [
        ({"mode": "bot"}, "DISCORD_API_TOKEN not configured"),
        ({"mode": "bot", "discord_token": "t"}, "DISCORD_CHANNEL_ID not configured"),
        ({"mode": "webhook"}, "DISCORD_WEBHOOK_URL or NOTIFY_URL not configured"),
        ({"mode": "carrier-pigeon"}, "Unknown mode: carrier-pigeon"),
        ({"publish": False, "timezone": "Mars/Olympus"}, "Unknown timezone: Mars/Olympus"),
        ({"publish": False, "max_retries": 0}, "--max-retries must be at least 1"),
    ])
    def test_invalid(self, kwargs, message):
        assert PreviewBotConfig(**kwargs).is_valid() == (False, message)

    def test_no_publish_needs_no_credentials(self):
        assert PreviewBotConfig(publish=False).is_valid()[0]


# =============================================================================
# END TO END
# =============================================================================

class TestEndToEnd:
    """Full run against fixture pages."""

    def test_listing_scrape_publish(self, site, cache, config, chat):
        browser = FakeBrowser(site)
        publisher = PreviewPublisher(chat, config.channel_id)
        result = run(config, browser, cache, publisher=publisher)

        assert result.success
        assert result.published
        assert [s.section for s in result.sections] == ["Premier League"]
        assert list(result.previews) == [MATCH_URL]

        preview = result.previews[MATCH_URL]
        assert preview.home_team == "Team A"
        assert preview.away_team == "Team B"
        assert preview.team_news.home or preview.team_news.away

        assert len(chat.channel.threads) == 1
        assert chat.channel.threads[0].name == "Premier League"
        assert result.publish_result.threads_created == 1

        assert all(page.closed for page in browser.pages)
        assert browser.closed

    def test_second_run_served_from_cache(self, site, cache, config):
        config.publish = False
        run(config, FakeBrowser(site), cache)

        browser = FakeBrowser(site)
        result = run(config, browser, cache)

        assert browser.pages == []
        assert result.previews[MATCH_URL].home_team == "Team A"

    def test_no_cache_scrapes_again(self, site, cache, config):
        config.publish = False
        run(config, FakeBrowser(site), cache)

        config.use_cache = False
        browser = FakeBrowser(site)
        run(config, browser, cache)
        assert browser.navigations == [PREVIEWS_URL, MATCH_URL]

    def test_malformed_cached_listing_is_refetched(self, site, cache, config):
        config.publish = False
        key = PreviewOrchestrator(config, FakeBrowser(site), cache).listing_cache_key()
        cache.set(key, {"stale": "format"})

        browser = FakeBrowser(site)
        result = run(config, browser, cache)

        assert result.success
        assert browser.navigations == [PREVIEWS_URL, MATCH_URL]
        assert result.sections[0].section == "Premier League"
        assert cache.get(key)[0]["section"] == "Premier League"

    def test_malformed_cached_preview_is_rescraped(self, site, cache, config):
        config.publish = False
        cache.set(MATCH_URL, ["not", "a", "preview"])

        browser = FakeBrowser(site)
        result = run(config, browser, cache)

        assert result.failures == 0
        assert browser.navigations == [PREVIEWS_URL, MATCH_URL]
        assert result.previews[MATCH_URL].home_team == "Team A"
        assert cache.get(MATCH_URL)["home_team"] == "Team A"

    def test_with_analysis(self, site, cache, config):
        config.publish = False
        config.with_analysis = True
        result = run(config, FakeBrowser(site), cache)
        assert "Home 45% / Draw 30% / Away 25%" in result.previews[MATCH_URL].probabilities


# =============================================================================
# FAILURES
# =============================================================================

class TestFailures:
    """Failure handling during a run."""

    def test_failed_match_is_skipped(self, site, cache, config):
        site[PREVIEWS_URL] = TWO_MATCH_LISTING_HTML
        config.publish = False
        browser = FakeBrowser(site)
        result = run(config, browser, cache)

        assert list(result.previews) == [MATCH_URL]
        assert result.failures == 1
        assert result.success
        assert all(page.closed for page in browser.pages)

    def test_listing_failure_ends_run(self, cache, config, chat):
        browser = FakeBrowser({})
        result = run(config, browser, cache, publisher=PreviewPublisher(chat, "123"))

        assert not result.success
        assert result.sections == []
        assert chat.channel.sent == []
        assert browser.closed

    def test_missing_publisher_fails_run(self, site, cache, config):
        result = run(config, FakeBrowser(site), cache)
        assert not result.published
        assert not result.success

    def test_team_filter_without_matches_skips_publishing(self, site, cache, config, chat):
        config.team = "Nobody FC"
        result = run(config, FakeBrowser(site), cache, publisher=PreviewPublisher(chat, "123"))
        assert result.success
        assert result.previews == {}
        assert chat.channel.sent == []


# =============================================================================
# OUTPUT
# =============================================================================

class TestOutput:
    """Publishing modes and JSON output."""

    def test_webhook_mode(self, site, cache, config):
        config.mode = "webhook"
        notifier = MagicMock()
        notifier.send_previews = AsyncMock(return_value=True)
        result = run(config, FakeBrowser(site), cache, notifier=notifier)

        assert result.published
        previews = notifier.send_previews.call_args.args[0]
        assert list(previews) == [MATCH_URL]

    def test_output_json(self, site, cache, config, tmp_path):
        config.publish = False
        config.output_json = tmp_path / "out" / "previews.json"
        run(config, FakeBrowser(site), cache)

        data = json.loads(config.output_json.read_text(encoding="utf-8"))
        assert data["sections"][0]["section"] == "Premier League"
        assert MatchPreview.from_dict(data["previews"][MATCH_URL]).home_team == "Team A"

    def test_listing_cache_key_includes_date(self, cache, config):
        orchestrator = PreviewOrchestrator(config, FakeBrowser({}), cache)
        key = json.loads(orchestrator.listing_cache_key())
        assert key["listing"] == PREVIEWS_URL
        assert len(key["date"]) == 10


# =============================================================================
# COMMAND LINE
# =============================================================================

class TestMain:
    """Tests for the entry point."""

    def test_missing_configuration_exits_1(self):
        with patch.dict(os.environ, {}, clear=True), patch("orchestrator.load_dotenv"):
            with pytest.raises(SystemExit) as exc_info:
                asyncio.run(main(["--mode", "bot"]))
        assert exc_info.value.code == 1

    def test_parse_args_rejects_unknown_mode(self):
        with pytest.raises(SystemExit):
            parse_args(["--mode", "email"])
