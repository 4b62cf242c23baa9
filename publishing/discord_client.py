#!/usr/bin/env python3
"""
Discord REST Client

A small aiohttp client for the parts of the Discord v10 HTTP API the
publisher needs:

- Fetch a text channel
- Send a message (content and/or embeds) to a channel or thread
- Start a thread from an existing message

Rate limiting:
    A 429 response is retried after the ``retry_after`` seconds the API
    reports, up to ``max_rate_limit_retries`` times. Any other non-2xx
    response raises DiscordAPIError.

Usage:
    async with DiscordClient(token) as client:
        channel = await client.get_channel(channel_id)
        message = await channel.send("**Today's Available Match Previews**")
        thread = await message.start_thread("Premier League")
        await thread.send(embeds=[embed])
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

logger = logging.getLogger(__name__)

API_BASE = "https://discord.com/api/v10"
DEFAULT_AUTO_ARCHIVE_MINUTES = 1440
DEFAULT_RATE_LIMIT_RETRIES = 3
USER_AGENT = "DiscordBot (https://github.com/match-preview-bot, 1.0)"


class DiscordAPIError(Exception):
    """Raised when the Discord API returns an error."""
    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class DiscordClient:
    """
    Bot-token authenticated Discord REST client.

    Attributes:
        token: Bot token (sent as ``Authorization: Bot <token>``)
        api_base: API root URL
        max_rate_limit_retries: Retries allowed per request on HTTP 429
    """

    def __init__(
        self,
        token: str,
        api_base: str = API_BASE,
        max_rate_limit_retries: int = DEFAULT_RATE_LIMIT_RETRIES,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.token = token
        self.api_base = api_base.rstrip("/")
        self.max_rate_limit_retries = max_rate_limit_retries
        self._session = session
        self._owns_session = session is None
        self.logger = logging.getLogger(f"{__name__}.DiscordClient")

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=30)
            headers = {
                "Authorization": f"Bot {self.token}",
                "User-Agent": USER_AGENT,
                "Content-Type": "application/json",
            }
            self._session = aiohttp.ClientSession(timeout=timeout, headers=headers)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Perform an API request and return the decoded JSON body.

        Raises:
            DiscordAPIError: On a non-2xx response, or when rate limited
                more often than allowed
        """
        url = f"{self.api_base}{path}"
        session = await self._get_session()

        for attempt in range(self.max_rate_limit_retries + 1):
            async with session.request(method, url, json=payload) as response:
                if response.status == 429:
                    body = await response.json(content_type=None)
                    retry_after = float((body or {}).get("retry_after", 1.0))
                    if attempt >= self.max_rate_limit_retries:
                        raise DiscordAPIError(f"Rate limited on {method} {path}", status_code=429)
                    self.logger.warning(f"Rate limited on {method} {path}, retrying in {retry_after}s")
                    await asyncio.sleep(retry_after)
                    continue

                if response.status >= 400:
                    text = await response.text()
                    raise DiscordAPIError(
                        f"HTTP {response.status} on {method} {path}: {text[:200]}",
                        status_code=response.status,
                    )

                if response.status == 204:
                    return {}
                return await response.json(content_type=None) or {}

        raise DiscordAPIError(f"Rate limited on {method} {path}", status_code=429)

    async def get_channel(self, channel_id: str) -> 'Channel':
        """Fetch a channel by id."""
        data = await self.request("GET", f"/channels/{channel_id}")
        return Channel(client=self, id=str(data.get("id", channel_id)), name=data.get("name", ""))


@dataclass
class Channel:
    """A text channel (or thread) messages can be sent to."""
    client: DiscordClient
    id: str
    name: str = ""

    async def send(
        self,
        content: Optional[str] = None,
        embeds: Optional[List[Dict[str, Any]]] = None,
    ) -> 'Message':
        payload: Dict[str, Any] = {}
        if content:
            payload["content"] = content
        if embeds:
            payload["embeds"] = embeds
        if not payload:
            raise ValueError("A message needs content or embeds")

        data = await self.client.request("POST", f"/channels/{self.id}/messages", payload)
        return Message(client=self.client, id=str(data.get("id", "")), channel_id=self.id)


@dataclass
class Thread(Channel):
    """A thread started from a message; sends like a channel."""
    auto_archive_duration: int = DEFAULT_AUTO_ARCHIVE_MINUTES


@dataclass
class Message:
    """A sent message."""
    client: DiscordClient
    id: str
    channel_id: str

    async def start_thread(
        self,
        name: str,
        auto_archive_duration: int = DEFAULT_AUTO_ARCHIVE_MINUTES,
    ) -> Thread:
        """Start a public thread from this message. Names are capped at 100 chars."""
        payload = {"name": name[:100], "auto_archive_duration": auto_archive_duration}
        data = await self.client.request(
            "POST", f"/channels/{self.channel_id}/messages/{self.id}/threads", payload
        )
        return Thread(
            client=self.client,
            id=str(data.get("id", "")),
            name=data.get("name", payload["name"]),
            auto_archive_duration=auto_archive_duration,
        )
