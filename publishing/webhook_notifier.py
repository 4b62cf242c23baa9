#!/usr/bin/env python3
"""
Webhook Notifier - one structured message per match via Apprise

Alternative to the bot publisher for channels reached through a webhook.
Any Apprise URL works; for Discord use ``discord://webhook_id/webhook_token``
or the plain ``https://discord.com/api/webhooks/...`` URL. Messages are
posted under BOT_NAME unless the URL already sets ``botname``.

Environment Variables:
    DISCORD_WEBHOOK_URL - Webhook URL (takes precedence)
    NOTIFY_URL - Any Apprise notification URL
"""

import logging
from typing import Dict, List, Optional
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

import apprise

from scraping.models import MatchPreview
from .formatter import MAX_MESSAGE_LENGTH, create_structured_preview, split_message

logger = logging.getLogger(__name__)

BOT_NAME = "Match Preview Bot"


def with_botname(notify_url: str, botname: str = BOT_NAME) -> str:
    """Add a ``botname`` query parameter to an Apprise URL if it has none."""
    parts = urlsplit(notify_url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    if any(key == "botname" for key, _ in query):
        return notify_url
    query.append(("botname", botname))
    return urlunsplit(parts._replace(query=urlencode(query, quote_via=quote)))


class WebhookNotifier:
    """Sends previews as plain structured text through an Apprise URL."""

    def __init__(self, notify_url: str, apprise_obj: Optional[apprise.Apprise] = None):
        self.notify_url = with_botname(notify_url) if notify_url else notify_url
        self.apobj = apprise_obj if apprise_obj is not None else apprise.Apprise()
        if self.notify_url and not self.apobj.add(self.notify_url):
            logger.error(f"Apprise rejected notification URL for {BOT_NAME}")
        self.logger = logging.getLogger(f"{__name__}.WebhookNotifier")

    async def send_preview(self, preview: MatchPreview) -> bool:
        """Send one preview; long content goes out as consecutive messages."""
        content = create_structured_preview(preview)
        success = True
        for chunk in split_message(content, MAX_MESSAGE_LENGTH):
            if not chunk.strip():
                continue
            if not await self.apobj.async_notify(title="", body=chunk):
                success = False
        if success:
            self.logger.info(f"✓ Sent preview for {preview.title}")
        else:
            self.logger.error(f"✗ Failed to send preview for {preview.title}")
        return success

    async def send_previews(self, previews: Dict[str, MatchPreview]) -> bool:
        """Send every preview; returns True only if all were delivered."""
        results: List[bool] = []
        for preview in previews.values():
            try:
                results.append(await self.send_preview(preview))
            except Exception as e:
                self.logger.error(f"Error sending preview {preview.url}: {e}")
                results.append(False)
        return all(results)
