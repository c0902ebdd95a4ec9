"""Scan cycle controller.

One cycle is fetch -> detect/persist -> notify. The controller owns the
polling timer, keeps cycles from overlapping, and answers status queries
without waiting on a scan that is in flight.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from core.config import ScanConfig
from core.detector import ChainDetector
from core.models import NewChainDetection, ScanStats
from core.ports import ChainStorePort, FetcherPort, NotifierPort

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScanController:
    """Drives periodic scans and isolates per-cycle failures."""

    def __init__(
        self,
        fetcher: FetcherPort,
        detector: ChainDetector,
        store: ChainStorePort,
        notifier: NotifierPort,
        config: ScanConfig,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._fetcher = fetcher
        self._detector = detector
        self._store = store
        self._notifier = notifier
        self._config = config
        self._clock = clock or _utcnow

        self._started_at = self._clock()
        self._last_scan_time: Optional[datetime] = None
        self._next_scan_time: Optional[datetime] = None

        self._scan_lock = asyncio.Lock()
        self._cycle_task: Optional[asyncio.Task] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_scanning(self) -> bool:
        return self._scan_lock.locked()

    async def start(self) -> None:
        """Run one immediate scan, then arm the polling timer."""

        if self._running:
            LOGGER.warning("Scan controller is already running")
            return

        self._running = True
        self._started_at = self._clock()
        if self._config.silent_mode:
            LOGGER.info("Silent mode enabled - notifications will be skipped")

        await self.run_cycle()
        self._timer_task = asyncio.create_task(self._timer_loop(), name="chain-scan-timer")
        LOGGER.info(
            "Checking for new chains every %s seconds%s",
            self._config.interval_seconds,
            " (silent mode)" if self._config.silent_mode else "",
        )

    async def stop(self) -> None:
        """Stop the timer, let an in-flight cycle finish, and release the store."""

        if not self._running:
            LOGGER.warning("Scan controller is not running")
            return

        self._running = False
        if self._timer_task is not None:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None

        if self._cycle_task is not None and not self._cycle_task.done():
            LOGGER.info("Waiting for the in-flight scan to finish")
            await self._cycle_task
        self._cycle_task = None

        self._store.close()
        LOGGER.info("Scan controller stopped")

    async def _timer_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._config.interval_seconds)
            self.tick()

    def tick(self) -> bool:
        """Schedule a cycle unless one is already in flight.

        A tick that lands while scanning is dropped, not queued.
        """

        if self.is_scanning or (self._cycle_task is not None and not self._cycle_task.done()):
            LOGGER.warning("Previous scan still running, skipping this tick")
            return False
        self._cycle_task = asyncio.create_task(self.run_cycle(), name="chain-scan-cycle")
        return True

    async def run_cycle(self) -> bool:
        """Run one fetch -> detect -> notify cycle.

        Returns False when the cycle was dropped because another one holds the
        scan lock. Errors are reported and never escape.
        """

        if self._scan_lock.locked():
            LOGGER.warning("Scan already in progress, dropping concurrent request")
            return False

        async with self._scan_lock:
            self._last_scan_time = self._clock()
            LOGGER.info("Checking for new chains...")
            try:
                chains = await self._fetcher.fetch_with_retry()
                LOGGER.info("Fetched %s chains from API", len(chains))

                # SQLite writes are blocking; keep them off the event loop so
                # /ping and shutdown stay responsive during a long batch.
                detections = await asyncio.to_thread(self._detector.process_chains, chains)
                self._next_scan_time = self._clock() + timedelta(seconds=self._config.interval_seconds)
            except Exception as exc:
                LOGGER.exception("Error during chain check")
                await self._report_error(exc)
                return True

            await self._announce(detections)
        return True

    async def _announce(self, detections: list[NewChainDetection]) -> None:
        if not detections:
            LOGGER.info("No new chains detected")
            return

        LOGGER.info("Found %s new chain(s)!", len(detections))
        if self._config.silent_mode:
            LOGGER.info("Silent mode - skipping notifications")
            return

        try:
            await self._notifier.notify_new_chains([detection.chain for detection in detections])
        except Exception:
            LOGGER.exception("Failed to send new chain notifications")
            return
        LOGGER.info("Notifications sent successfully")

    async def _report_error(self, error: BaseException) -> None:
        if self._config.silent_mode:
            return
        try:
            await self._notifier.notify_error(error)
        except Exception:
            LOGGER.exception("Failed to send error notification")

    def get_stats(self) -> ScanStats:
        """Return current scan statistics without touching the network."""

        now = self._clock()
        next_scan_in = 0.0
        if self._next_scan_time is not None:
            next_scan_in = max(0.0, (self._next_scan_time - now).total_seconds())

        return ScanStats(
            uptime_seconds=(now - self._started_at).total_seconds(),
            last_scan_time=self._last_scan_time,
            next_scan_in_seconds=next_scan_in,
            polling_interval_seconds=self._config.interval_seconds,
            total_chains=len(self._store.all_ids()),
        )
