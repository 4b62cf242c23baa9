#!/usr/bin/env python3
"""
Match Preview Bot Orchestrator

This module runs the full preview pipeline:

1. Listing Phase:
   - Load the Sports Mole previews listing (cached per day)
   - Group match links by competition section
   - Apply --league / --team / --limit filters

2. Scraping Phase:
   - Scrape each preview article (cached per URL)
   - Optionally scrape the linked Data Analysis page

3. Publishing Phase:
   - Bot mode: summary message plus one thread per section
   - Webhook mode: one structured message per match
   - Optional JSON dump of every preview

Usage:
    # Publish today's previews to a channel
    python orchestrator.py

    # Only Arsenal, through a webhook, with data analysis
    python orchestrator.py --mode webhook --team Arsenal --with-analysis

    # Scrape without publishing
    python orchestrator.py --no-publish --output-json previews.json

    # Environment variables (a .env file is read if present):
    # DISCORD_API_TOKEN, DISCORD_CHANNEL_ID - Bot mode
    # DISCORD_WEBHOOK_URL or NOTIFY_URL - Webhook mode
    # PREVIEW_TIMEZONE - Zone for the summary date (default: Europe/London)
    # PREVIEW_CACHE_DIR, PREVIEW_CACHE_TTL_MINUTES - Cache location and TTL
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytz
from dotenv import load_dotenv

from analysis.match_analysis import scrape_data_analysis
from publishing.discord_client import DiscordClient
from publishing.formatter import DEFAULT_TIMEZONE
from publishing.publisher import PreviewPublisher, PublishResult
from publishing.webhook_notifier import WebhookNotifier
from scraping.browser import DEFAULT_MAX_RETRIES, BrowserService, FetchError
from scraping.cache import CacheManager
from scraping.link_enumerator import PREVIEWS_URL, filter_sections, get_preview_links
from scraping.models import MatchPreview, PreviewSection
from scraping.preview_scraper import scrape_preview

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = Path(".cache")
DEFAULT_CACHE_TTL_MINUTES = 15
DEFAULT_SCRAPE_DELAY_SECONDS = 1.0
MODES = ("bot", "webhook")


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class PreviewBotConfig:
    """Configuration for a preview run."""
    mode: str = "bot"

    # Discord (read from environment)
    discord_token: Optional[str] = None
    channel_id: Optional[str] = None
    webhook_url: Optional[str] = None
    timezone: str = DEFAULT_TIMEZONE

    # Cache
    cache_dir: Path = DEFAULT_CACHE_DIR
    cache_ttl_minutes: float = DEFAULT_CACHE_TTL_MINUTES
    use_cache: bool = True

    # Scraping
    listing_url: str = PREVIEWS_URL
    league: Optional[str] = None
    team: Optional[str] = None
    limit: Optional[int] = None
    with_analysis: bool = False
    max_retries: int = DEFAULT_MAX_RETRIES
    scrape_delay_seconds: float = DEFAULT_SCRAPE_DELAY_SECONDS

    # Output
    publish: bool = True
    output_json: Optional[Path] = None

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_minutes * 60

    @classmethod
    def from_env_and_args(cls, args: argparse.Namespace) -> 'PreviewBotConfig':
        """Create config from environment variables and command-line args."""
        output_json = getattr(args, 'output_json', None)
        return cls(
            mode=getattr(args, 'mode', 'bot'),
            discord_token=os.environ.get("DISCORD_API_TOKEN"),
            channel_id=os.environ.get("DISCORD_CHANNEL_ID"),
            webhook_url=os.environ.get("DISCORD_WEBHOOK_URL") or os.environ.get("NOTIFY_URL"),
            timezone=os.environ.get("PREVIEW_TIMEZONE", DEFAULT_TIMEZONE),
            cache_dir=Path(os.environ.get("PREVIEW_CACHE_DIR", str(DEFAULT_CACHE_DIR))),
            cache_ttl_minutes=float(os.environ.get("PREVIEW_CACHE_TTL_MINUTES", DEFAULT_CACHE_TTL_MINUTES)),
            use_cache=not getattr(args, 'no_cache', False),
            league=getattr(args, 'league', None),
            team=getattr(args, 'team', None),
            limit=getattr(args, 'limit', None),
            with_analysis=getattr(args, 'with_analysis', False),
            max_retries=getattr(args, 'max_retries', DEFAULT_MAX_RETRIES),
            publish=not getattr(args, 'no_publish', False),
            output_json=Path(output_json) if output_json else None,
        )

    def is_valid(self) -> Tuple[bool, str]:
        """Check the configuration is complete for the selected mode."""
        if self.mode not in MODES:
            return False, f"Unknown mode: {self.mode}"
        if self.timezone not in pytz.all_timezones_set:
            return False, f"Unknown timezone: {self.timezone}"
        if self.max_retries < 1:
            return False, "--max-retries must be at least 1"
        if self.publish and self.mode == "bot":
            if not self.discord_token:
                return False, "DISCORD_API_TOKEN not configured"
            if not self.channel_id:
                return False, "DISCORD_CHANNEL_ID not configured"
        if self.publish and self.mode == "webhook" and not self.webhook_url:
            return False, "DISCORD_WEBHOOK_URL or NOTIFY_URL not configured"
        return True, "Configuration valid"


# =============================================================================
# RUN RESULTS
# =============================================================================

@dataclass
class RunResult:
    """Complete result of one preview run."""
    sections: List[PreviewSection] = field(default_factory=list)
    previews: Dict[str, MatchPreview] = field(default_factory=dict)
    failures: int = 0
    published: bool = False
    success: bool = True
    publish_result: Optional[PublishResult] = None
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat() + "Z")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "success": self.success,
            "published": self.published,
            "failures": self.failures,
            "publish_result": self.publish_result.to_dict() if self.publish_result else None,
            "sections": [s.to_dict() for s in self.sections],
            "previews": {url: p.to_dict() for url, p in self.previews.items()},
        }


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================

class PreviewOrchestrator:
    """
    Coordinates listing, scraping and publishing for one run.

    The browser session and cache are passed in, so tests can supply fakes.
    Pages are opened per unit of work and always closed; the browser itself
    is closed when the run ends.
    """

    def __init__(
        self,
        config: PreviewBotConfig,
        browser: BrowserService,
        cache: CacheManager,
        publisher: Optional[PreviewPublisher] = None,
        notifier: Optional[WebhookNotifier] = None,
    ):
        self.config = config
        self.browser = browser
        self.cache = cache
        self.publisher = publisher
        self.notifier = notifier
        self.logger = logging.getLogger(f"{__name__}.Orchestrator")

    def _today(self) -> str:
        return datetime.now(pytz.timezone(self.config.timezone)).strftime("%Y-%m-%d")

    def listing_cache_key(self) -> str:
        return json.dumps({"listing": self.config.listing_url, "date": self._today()}, sort_keys=True)

    async def fetch_sections(self) -> List[PreviewSection]:
        """
        Load the listing, from cache when possible.

        Raises:
            FetchError: If the listing could not be loaded
        """
        key = self.listing_cache_key()
        if self.config.use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                try:
                    sections = [PreviewSection.from_dict(s) for s in cached]
                except (AttributeError, TypeError, ValueError) as e:
                    self.logger.debug(f"Discarding malformed cached listing: {e}")
                    self.cache.delete(key)
                else:
                    self.logger.info("Using cached preview listing")
                    return sections

        page = await self.browser.new_page()
        try:
            await self.browser.navigate_with_retry(page, self.config.listing_url, self.config.max_retries)
            sections = await get_preview_links(page)
        finally:
            await page.close()

        self.cache.set(key, [s.to_dict() for s in sections], ttl_seconds=self.config.cache_ttl_seconds)
        return sections

    async def get_cached_or_scrape(self, url: str) -> Optional[MatchPreview]:
        """
        Return the preview for url, scraping it on a cache miss.

        Raises:
            FetchError: If navigation to the article failed on every attempt
        """
        if self.config.use_cache:
            cached = self.cache.get(url)
            if cached is not None:
                try:
                    preview = MatchPreview.from_dict(cached)
                except (AttributeError, TypeError, ValueError) as e:
                    self.logger.debug(f"Discarding malformed cached preview {url}: {e}")
                    self.cache.delete(url)
                else:
                    self.logger.info(f"Cache hit: {url}")
                    return preview

        page = await self.browser.new_page()
        try:
            preview = await scrape_preview(page, url, self.browser, max_retries=self.config.max_retries)
            if preview is not None and self.config.with_analysis and preview.data_analysis_url:
                analysis = await scrape_data_analysis(
                    page, preview.data_analysis_url, self.browser, max_retries=self.config.max_retries
                )
                if analysis is not None:
                    preview.probabilities = analysis.summary()
        finally:
            await page.close()

        if preview is not None:
            self.cache.set(url, preview.to_dict(), ttl_seconds=self.config.cache_ttl_seconds)
        return preview

    async def scrape_sections(self, sections: List[PreviewSection], result: RunResult) -> None:
        """Scrape every match sequentially; failures are counted, not raised."""
        first = True
        for section in sections:
            for match in section.matches:
                if not first and self.config.scrape_delay_seconds > 0:
                    await asyncio.sleep(self.config.scrape_delay_seconds)
                first = False

                try:
                    preview = await self.get_cached_or_scrape(match.url)
                except FetchError as e:
                    result.failures += 1
                    self.logger.error(f"Failed to load {match.match}: {e}")
                    continue
                except Exception as e:
                    result.failures += 1
                    self.logger.error(f"Error scraping {match.match}: {e}")
                    continue

                if preview is None:
                    result.failures += 1
                    self.logger.warning(f"No preview content for {match.match}")
                    continue
                result.previews[match.url] = preview

    async def publish(self, result: RunResult) -> bool:
        """Deliver the run's previews in the configured mode."""
        if self.config.mode == "webhook":
            if self.notifier is None:
                self.logger.error("Webhook mode selected but no notifier configured")
                return False
            return await self.notifier.send_previews(result.previews)

        if self.publisher is None:
            self.logger.error("Bot mode selected but no publisher configured")
            return False
        result.publish_result = await self.publisher.send_match_overview(result.sections, result.previews)
        return result.publish_result.success

    def save_json(self, result: RunResult) -> None:
        path = self.config.output_json
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)
        self.logger.info(f"Previews saved to {path}")

    async def run(self) -> RunResult:
        """Run the full pipeline."""
        self.logger.info("=" * 60)
        self.logger.info("Match Preview Bot")
        self.logger.info("=" * 60)
        result = RunResult()

        try:
            # =============================================================
            # PHASE 1: LISTING
            # =============================================================
            try:
                sections = await self.fetch_sections()
            except Exception as e:
                self.logger.error(f"Could not load preview listing: {e}")
                result.success = False
                return result

            result.sections = filter_sections(
                sections,
                team=self.config.team,
                limit=self.config.limit,
                league=self.config.league,
            )
            total = sum(len(s.matches) for s in result.sections)
            self.logger.info(f"{total} matches in {len(result.sections)} sections")

            # =============================================================
            # PHASE 2: SCRAPING
            # =============================================================
            await self.scrape_sections(result.sections, result)
            self.logger.info(f"Scraped {len(result.previews)}/{total} previews")

            # =============================================================
            # PHASE 3: PUBLISHING
            # =============================================================
            if self.config.publish and result.sections:
                try:
                    result.published = await self.publish(result)
                except Exception as e:
                    self.logger.error(f"Publishing failed: {e}")
                    result.published = False
                if not result.published:
                    result.success = False

            if self.config.output_json:
                try:
                    self.save_json(result)
                except OSError as e:
                    self.logger.error(f"Could not write {self.config.output_json}: {e}")
                    result.success = False
        finally:
            await self.browser.close()

        self.logger.info("=" * 60)
        self.logger.info(f"Status: {'SUCCESS' if result.success else 'FAILURE'}")
        self.logger.info(f"Previews: {len(result.previews)}, failures: {result.failures}")
        self.logger.info("=" * 60)
        return result


# =============================================================================
# COMMAND LINE INTERFACE
# =============================================================================

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Match Preview Bot - publish Sports Mole previews to Discord",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python orchestrator.py
  python orchestrator.py --league "Premier League" --with-analysis
  python orchestrator.py --mode webhook --team Arsenal
  python orchestrator.py --no-publish --output-json previews.json

Environment Variables:
  DISCORD_API_TOKEN          - Bot token (bot mode)
  DISCORD_CHANNEL_ID         - Channel for the summary and threads (bot mode)
  DISCORD_WEBHOOK_URL        - Webhook URL (webhook mode)
  NOTIFY_URL                 - Any Apprise URL (webhook mode fallback)
  PREVIEW_TIMEZONE           - Zone for the summary date (default: Europe/London)
  PREVIEW_CACHE_DIR          - Cache directory (default: .cache)
  PREVIEW_CACHE_TTL_MINUTES  - Cache lifetime in minutes (default: 15)
        """
    )

    parser.add_argument(
        '--mode',
        choices=list(MODES),
        default='bot',
        help='Delivery mode (default: bot)'
    )
    parser.add_argument('--league', help='Only sections whose heading contains this text')
    parser.add_argument('--team', '-t', help='Only matches involving this team')
    parser.add_argument('--limit', '-n', type=int, help='Maximum number of matches to scrape')
    parser.add_argument('--no-cache', action='store_true', help='Ignore cached listing and previews')
    parser.add_argument(
        '--with-analysis',
        action='store_true',
        help='Also scrape the Data Analysis page of each preview'
    )
    parser.add_argument('--no-publish', action='store_true', help='Scrape only, do not publish')
    parser.add_argument('--output-json', help='Write previews to this JSON file')
    parser.add_argument(
        '--max-retries',
        type=int,
        default=DEFAULT_MAX_RETRIES,
        help=f'Navigation attempts per page (default: {DEFAULT_MAX_RETRIES})'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    load_dotenv()
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = PreviewBotConfig.from_env_and_args(args)
    valid, message = config.is_valid()
    if not valid:
        logger.error(message)
        sys.exit(1)

    browser = BrowserService.get_instance()
    cache = CacheManager(cache_dir=config.cache_dir, default_ttl_seconds=config.cache_ttl_seconds)

    if config.publish and config.mode == "bot":
        async with DiscordClient(config.discord_token) as client:
            publisher = PreviewPublisher(client, config.channel_id, timezone=config.timezone)
            result = await PreviewOrchestrator(config, browser, cache, publisher=publisher).run()
    else:
        notifier = WebhookNotifier(config.webhook_url) if config.publish else None
        result = await PreviewOrchestrator(config, browser, cache, notifier=notifier).run()

    sys.exit(0 if result.success else 1)


def cli():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    cli()
