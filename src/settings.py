"""Static configuration for the chain detector.

Non-secret settings live in an optional config.json at the project root.
Environment variables (loaded from .env) override them and carry all
secrets.
"""

import json
import os

from dotenv import load_dotenv

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

load_dotenv(os.path.join(PROJECT_ROOT, ".env"))

CONFIG_PATH = os.getenv("CONFIG_PATH", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json if present; an env-only setup is also valid."""

    if not os.path.exists(CONFIG_PATH):
        return {}

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() == "true"


_CONFIG = _load_json_config()

# Chains inventory endpoint and fetch retry policy.
_api = _CONFIG.get("api", {})
API_URL = os.getenv("API_URL") or _api.get("url")
API_TIMEOUT_SECONDS = float(_api.get("timeout_seconds", 10))
API_MAX_RETRIES = max(1, int(_api.get("max_retries", 3)))
API_BACKOFF_BASE_SECONDS = float(_api.get("backoff_base_seconds", 1.0))
API_BACKOFF_MAX_SECONDS = float(_api.get("backoff_max_seconds", 10.0))

# Polling cadence. POLLING_INTERVAL is in milliseconds for compatibility with
# existing .env files; config.json uses seconds.
_polling = _CONFIG.get("polling", {})
_interval_ms = os.getenv("POLLING_INTERVAL")
if _interval_ms:
    POLLING_INTERVAL_SECONDS = int(_interval_ms) / 1000
else:
    POLLING_INTERVAL_SECONDS = float(_polling.get("interval_seconds", 10))

# Where to store the SQLite database. Relative paths resolve from the project root.
_database = _CONFIG.get("database", {})
DB_PATH = os.getenv("DATABASE_PATH") or _database.get("path", os.path.join("data", "chains.db"))
if not os.path.isabs(DB_PATH):
    DB_PATH = os.path.join(PROJECT_ROOT, DB_PATH)

# Silent mode keeps scanning and logging but sends nothing to Telegram.
SILENT_MODE = _env_flag("SILENT_MODE", bool(_CONFIG.get("silent_mode", False)))

# Spacing between per-chain messages.
_notifications = _CONFIG.get("notifications", {})
MESSAGE_DELAY_SECONDS = float(_notifications.get("message_delay_seconds", 1.0))

# Telegram credentials. The bot token and chat id are required to run the bot;
# API_ID/API_HASH identify the MTProto application Telethon connects as.
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN")
TELEGRAM_CHAT_ID = os.getenv("TELEGRAM_CHAT_ID")
SESSION_NAME = os.getenv("SESSION_NAME", "newchain_detector")

# Logging configuration. Console logging is on unless disabled.
LOGGING = _CONFIG.get(
    "logging",
    {
        "enabled": True,
        "level": "INFO",
        "console": True,
        "redact": {"enabled": True, "patterns": ["TELEGRAM_BOT_TOKEN", "API_HASH"]},
    },
)
