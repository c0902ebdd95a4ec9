"""Telegram client factory for the chain detector.

The bot talks MTProto through Telethon, which needs the application's
API_ID/API_HASH in addition to the bot token used at start().
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from telethon import TelegramClient


def build_client(session_name: str) -> TelegramClient:
    """Create a Telethon client from environment variables.

    Must be called from inside the running event loop so the client binds
    to it.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")

    # Fail fast on missing credentials to avoid an ambiguous login prompt.
    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    logging.getLogger(__name__).info("Initializing Telegram client")

    return TelegramClient(session_name, int(api_id), api_hash)
