"""
Publishing module for the Match Preview Bot.

Delivers scraped previews to Discord, either as threads through the REST
API (bot mode) or as one message per match through a webhook.
"""

from .discord_client import DiscordClient, DiscordAPIError, Channel, Message, Thread
from .formatter import (
    split_message,
    truncate,
    format_summary,
    format_match_messages,
    create_preview_embed,
    create_structured_preview,
)
from .publisher import PreviewPublisher, PublishResult
from .webhook_notifier import WebhookNotifier

__all__ = [
    'DiscordClient',
    'DiscordAPIError',
    'Channel',
    'Message',
    'Thread',
    'split_message',
    'truncate',
    'format_summary',
    'format_match_messages',
    'create_preview_embed',
    'create_structured_preview',
    'PreviewPublisher',
    'PublishResult',
    'WebhookNotifier',
]
