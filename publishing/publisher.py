#!/usr/bin/env python3
"""
Preview Publisher - deliver the day's previews to a Discord channel

Layout produced in the channel:

    Summary message (split into several if over 2000 characters)
    For each section:
        Anchor message "📂 **Premier League**"
          └─ Thread "Premier League" (archives after 24 hours)
               For each match: embed, then context / key information /
               team news / form guide / prediction / statistics messages

A Discord message can start only one thread, so each section gets its own
anchor message for its thread to hang from.

Failures are isolated: an error on one section or one match is logged and
counted in PublishResult.failures, and publishing carries on.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from scraping.models import MatchPreview, PreviewMatch, PreviewSection
from .discord_client import DEFAULT_AUTO_ARCHIVE_MINUTES
from .formatter import (
    DEFAULT_TIMEZONE,
    NO_PREVIEW_MESSAGE,
    create_preview_embed,
    format_match_messages,
    format_summary,
    split_message,
    thread_name,
)

logger = logging.getLogger(__name__)


@dataclass
class PublishResult:
    """Counters for one publishing run."""
    threads_created: int = 0
    messages_sent: int = 0
    failures: int = 0

    @property
    def success(self) -> bool:
        return self.failures == 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "threads_created": self.threads_created,
            "messages_sent": self.messages_sent,
            "failures": self.failures,
        }


class PreviewPublisher:
    """
    Publishes sections and previews through a chat client.

    The client only needs ``await client.get_channel(id)`` returning an
    object with ``send``; sent messages need ``start_thread``; threads need
    ``send`` (see publishing.discord_client).

    Usage:
        async with DiscordClient(token) as client:
            publisher = PreviewPublisher(client, channel_id)
            result = await publisher.send_match_overview(sections, previews)
    """

    def __init__(
        self,
        client: Any,
        channel_id: str,
        timezone: str = DEFAULT_TIMEZONE,
        auto_archive_duration: int = DEFAULT_AUTO_ARCHIVE_MINUTES,
    ):
        self.client = client
        self.channel_id = channel_id
        self.timezone = timezone
        self.auto_archive_duration = auto_archive_duration
        self.logger = logging.getLogger(f"{__name__}.PreviewPublisher")

    async def _send_text(self, target: Any, content: str, result: PublishResult) -> Any:
        """Send content in as many chunks as needed; returns the first message."""
        first = None
        for chunk in split_message(content):
            if not chunk.strip():
                continue
            message = await target.send(content=chunk)
            result.messages_sent += 1
            if first is None:
                first = message
        return first

    async def _publish_match(
        self,
        thread: Any,
        match: PreviewMatch,
        preview: Optional[MatchPreview],
        result: PublishResult,
    ) -> None:
        if preview is None:
            await self._send_text(thread, NO_PREVIEW_MESSAGE, result)
            return

        await thread.send(embeds=[create_preview_embed(match, preview)])
        result.messages_sent += 1

        for message in format_match_messages(preview):
            await self._send_text(thread, message, result)

    async def _publish_section(
        self,
        channel: Any,
        section: PreviewSection,
        previews: Dict[str, MatchPreview],
        result: PublishResult,
    ) -> None:
        anchor = await self._send_text(channel, f"📂 **{section.section}**", result)
        thread = await anchor.start_thread(
            name=thread_name(section.section),
            auto_archive_duration=self.auto_archive_duration,
        )
        result.threads_created += 1
        self.logger.info(f"Created thread for {section.section}")

        for match in section.matches:
            try:
                await self._publish_match(thread, match, previews.get(match.url), result)
            except Exception as e:
                result.failures += 1
                self.logger.error(f"Error publishing {match.match}: {e}")

    async def send_match_overview(
        self,
        sections: List[PreviewSection],
        previews: Dict[str, MatchPreview],
        now: Optional[datetime] = None,
    ) -> PublishResult:
        """
        Send the summary message and one thread per section.

        Args:
            sections: Sections to publish, in order
            previews: Scraped previews keyed by match URL; matches without
                an entry get a "not available" notice
            now: Reference time for the summary date

        Returns:
            PublishResult with counters; never raises for delivery errors
        """
        result = PublishResult()

        try:
            channel = await self.client.get_channel(self.channel_id)
        except Exception as e:
            result.failures += 1
            self.logger.error(f"Could not fetch channel {self.channel_id}: {e}")
            return result

        try:
            summary = format_summary(sections, timezone=self.timezone, now=now)
            await self._send_text(channel, summary, result)
        except Exception as e:
            result.failures += 1
            self.logger.error(f"Error sending summary message: {e}")

        for section in sections:
            try:
                await self._publish_section(channel, section, previews, result)
            except Exception as e:
                result.failures += 1
                self.logger.error(f"Error publishing section {section.section}: {e}")

        self.logger.info(
            f"Published {result.threads_created} threads, {result.messages_sent} messages, "
            f"{result.failures} failures"
        )
        return result
