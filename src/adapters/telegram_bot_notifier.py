"""Telegram bot notification adapter.

Sends announcements through a Telethon client logged in as a bot and
answers the /ping and /start commands on the same connection.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, Union

from telethon import events

from adapters.notification_formatting import (
    format_chain_message,
    format_error_message,
    format_startup_message,
    format_status_message,
    format_summary_message,
    format_welcome_message,
)
from core.models import Chain, ScanStats

LOGGER = logging.getLogger(__name__)

StatsProvider = Callable[[], ScanStats]

PING_PATTERN = r"^/ping(?:@\w+)?(?:\s|$)"
START_PATTERN = r"^/start(?:@\w+)?(?:\s|$)"


def parse_chat_id(raw: str) -> Union[int, str]:
    """Numeric chat ids go to Telethon as ints, usernames stay strings."""

    value = raw.strip()
    if value.lstrip("-").isdigit():
        return int(value)
    return value


class TelegramBotNotifier:
    """Notifier adapter that talks to a single chat through a bot client."""

    def __init__(
        self,
        client,
        chat_id: str,
        interval_seconds: float,
        message_delay_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._chat_id = parse_chat_id(chat_id)
        self._interval_seconds = interval_seconds
        self._message_delay = message_delay_seconds
        self._sleep = sleep
        self._stats_provider: Optional[StatsProvider] = None

    async def _send(self, text: str, link_preview: bool = False) -> None:
        await self._client.send_message(
            self._chat_id,
            text,
            parse_mode="html",
            link_preview=link_preview,
        )

    def set_stats_provider(self, provider: StatsProvider) -> None:
        """Register the callback answering /ping. Done once at startup."""

        self._stats_provider = provider

    def register_commands(self) -> None:
        """Attach /ping and /start handlers to the client."""

        self._client.add_event_handler(self._on_ping, events.NewMessage(pattern=PING_PATTERN))
        self._client.add_event_handler(self._on_start, events.NewMessage(pattern=START_PATTERN))

    async def _on_ping(self, event) -> None:
        if self._stats_provider is None:
            return
        try:
            stats = self._stats_provider()
            await event.respond(format_status_message(stats), parse_mode="html")
        except Exception:
            LOGGER.exception("Error handling /ping command")

    async def _on_start(self, event) -> None:
        try:
            await event.respond(format_welcome_message(self._interval_seconds), parse_mode="html")
        except Exception:
            LOGGER.exception("Error handling /start command")

    async def send_startup_message(self) -> None:
        """Announce that monitoring has started. Failures propagate to the caller."""

        await self._client.send_message(self._chat_id, format_startup_message())

    async def notify_new_chains(self, chains: Sequence[Chain]) -> None:
        """Send one message per chain, preceded by a summary for bursts."""

        if not chains:
            return

        if len(chains) > 1:
            try:
                await self._send(format_summary_message(len(chains)))
            except Exception:
                LOGGER.exception("Failed to send summary message")

        for index, chain in enumerate(chains):
            try:
                await self._send(format_chain_message(chain))
            except Exception:
                LOGGER.exception("Failed to send notification for chain %s (ID: %s)", chain.name, chain.chain_id)
            # Spacing keeps bursts under Telegram's per-chat rate limit.
            if index < len(chains) - 1 and self._message_delay > 0:
                await self._sleep(self._message_delay)

    async def notify_error(self, error: BaseException) -> None:
        """Report a failed scan cycle. Delivery errors are logged only."""

        try:
            await self._send(format_error_message(error))
        except Exception:
            LOGGER.exception("Failed to send error notification")
