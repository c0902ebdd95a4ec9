"""Application entry point for the chain detector."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint

import settings
from adapters.chain_api import ChainApiClient
from adapters.sqlite_storage import SQLiteChainStore
from adapters.telegram_bot_notifier import TelegramBotNotifier
from client import build_client
from core.config import RetryConfig, ScanConfig
from core.detector import ChainDetector
from core.scanner import ScanController

NAME = "NEWCHAIN"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/newchain.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)

    # Telethon is chatty at INFO; keep our own lines readable.
    logging.getLogger("telethon").setLevel(max(level, logging.WARNING))


def _require(**values: Optional[str]) -> None:
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")


def _build_fetcher() -> ChainApiClient:
    retry = RetryConfig(
        max_retries=settings.API_MAX_RETRIES,
        backoff_base_seconds=settings.API_BACKOFF_BASE_SECONDS,
        backoff_max_seconds=settings.API_BACKOFF_MAX_SECONDS,
    )
    return ChainApiClient(settings.API_URL, retry=retry, timeout_seconds=settings.API_TIMEOUT_SECONDS)


def _open_store() -> SQLiteChainStore:
    store = SQLiteChainStore(settings.DB_PATH)
    store.init_db()
    return store


async def _wait_for_shutdown(client) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still
            # surfaces as KeyboardInterrupt.
            pass

    stop_waiter = asyncio.ensure_future(stop_event.wait())
    disconnected = asyncio.ensure_future(client.disconnected)
    await asyncio.wait({stop_waiter, disconnected}, return_when=asyncio.FIRST_COMPLETED)
    stop_waiter.cancel()
    disconnected.cancel()


async def _run_async() -> None:
    logger = logging.getLogger(__name__)

    _require(
        API_URL=settings.API_URL,
        TELEGRAM_BOT_TOKEN=settings.TELEGRAM_BOT_TOKEN,
        TELEGRAM_CHAT_ID=settings.TELEGRAM_CHAT_ID,
    )

    client = build_client(settings.SESSION_NAME)
    store = _open_store()
    fetcher = _build_fetcher()
    detector = ChainDetector(store)

    controller: Optional[ScanController] = None
    try:
        await client.start(bot_token=settings.TELEGRAM_BOT_TOKEN)

        notifier = TelegramBotNotifier(
            client,
            chat_id=settings.TELEGRAM_CHAT_ID,
            interval_seconds=settings.POLLING_INTERVAL_SECONDS,
            message_delay_seconds=settings.MESSAGE_DELAY_SECONDS,
        )
        controller = ScanController(
            fetcher=fetcher,
            detector=detector,
            store=store,
            notifier=notifier,
            config=ScanConfig(
                interval_seconds=settings.POLLING_INTERVAL_SECONDS,
                silent_mode=settings.SILENT_MODE,
            ),
        )

        # The command layer only sees a stats callback, never the controller.
        notifier.set_stats_provider(controller.get_stats)
        notifier.register_commands()

        if not settings.SILENT_MODE:
            try:
                await notifier.send_startup_message()
                logger.info("Telegram bot connected successfully")
            except Exception:
                logger.warning("Failed to send startup message, but continuing anyway", exc_info=True)

        await controller.start()
        logger.info("Bot started. Press Ctrl+C to stop")
        await _wait_for_shutdown(client)
        logger.info("Received shutdown signal...")
    finally:
        if controller is not None and controller.is_running:
            await controller.stop()
        else:
            store.close()
        await fetcher.close()
        await client.disconnect()
        logger.info("Application stopped successfully")


def _run() -> None:
    _print_banner()
    _configure_logging()
    logging.getLogger(__name__).info("Starting NewChain Detector")
    try:
        asyncio.run(_run_async())
    except KeyboardInterrupt:
        pass


async def _init_async() -> None:
    _require(API_URL=settings.API_URL)

    store = _open_store()
    try:
        async with _build_fetcher() as fetcher:
            print("Fetching chains from API...")
            chains = await fetcher.fetch_with_retry()
        print(f"Fetched {len(chains)} chains from API")

        result = ChainDetector(store).reconcile(chains)
        print("Database initialized successfully!")
        print(f"   Total chains saved: {store.count()}")
        print(f"   New chains: {len(result.detections)}")
        print(f"   Updated chains: {result.updated}")
        if result.failures:
            print(f"   Failed chains: {len(result.failures)}")
        print(f"   Database path: {store.db_path}")
    finally:
        store.close()


def _init() -> None:
    """Populate the database without sending any notification."""

    _print_banner()
    _configure_logging()
    asyncio.run(_init_async())


def _list() -> None:
    store = _open_store()
    try:
        records = store.list()
    finally:
        store.close()

    if not records:
        print("No chains stored yet.")
        return

    for record in records:
        chain = record.chain
        network = "mainnet" if chain.mainnet else "testnet"
        print(
            f"{chain.chain_id} | {chain.name} | {chain.symbol} | {network} | "
            f"first seen {record.created_at.isoformat()}"
        )


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="newchain-detector")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the detector bot")
    subparsers.add_parser("init", help="Fetch once and store all chains without notifying")
    subparsers.add_parser("list", help="Print stored chains, newest first")

    args = parser.parse_args(argv)
    if args.command == "init":
        _init()
        return
    if args.command == "list":
        _list()
        return
    _run()


if __name__ == "__main__":
    main()
