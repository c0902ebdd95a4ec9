from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from adapters.sqlite_storage import SQLiteChainStore
from core.config import ScanConfig
from core.detector import ChainDetector
from core.errors import FetchError, StorageUnavailableError
from core.models import Chain
from core.scanner import ScanController


def _chain(chain_id: int, **overrides) -> Chain:
    base = Chain(
        chain_id=chain_id,
        name=f"Chain {chain_id}",
        symbol="TKN",
        decimals=18,
        mainnet=False,
        price=1.0,
        bal="0",
        gas="0",
        gwei="0",
        inbound=True,
        max_inbound=0.0,
        max_inbound_native="0",
        max_outbound=0.0,
        max_outbound_native="0",
        min_outbound=0.0,
        min_outbound_native="0",
        explorer=None,
        rpcs=("https://rpc.example",),
        short=1,
    )
    return replace(base, **overrides)


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


class FakeFetcher:
    def __init__(self, *results) -> None:
        self._results = list(results)
        self.calls = 0
        self.gate: Optional[asyncio.Event] = None

    async def fetch_with_retry(self) -> list[Chain]:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        result = self._results[min(self.calls, len(self._results)) - 1]
        if isinstance(result, Exception):
            raise result
        return list(result)


class FakeNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.announced: list[list[int]] = []
        self.errors: list[BaseException] = []

    async def notify_new_chains(self, chains) -> None:
        if self.fail:
            raise RuntimeError("telegram down")
        self.announced.append([chain.chain_id for chain in chains])

    async def notify_error(self, error: BaseException) -> None:
        if self.fail:
            raise RuntimeError("telegram down")
        self.errors.append(error)


def _store(tmp_path) -> SQLiteChainStore:
    store = SQLiteChainStore(str(tmp_path / "chains.db"))
    store.init_db()
    return store


def _controller(
    tmp_path,
    fetcher: FakeFetcher,
    notifier: FakeNotifier,
    *,
    interval: float = 3600,
    silent: bool = False,
    clock: Optional[Clock] = None,
) -> tuple[ScanController, SQLiteChainStore]:
    store = _store(tmp_path)
    controller = ScanController(
        fetcher=fetcher,
        detector=ChainDetector(store),
        store=store,
        notifier=notifier,
        config=ScanConfig(interval_seconds=interval, silent_mode=silent),
        clock=clock,
    )
    return controller, store


def test_cycle_announces_only_new_chains(tmp_path) -> None:
    fetcher = FakeFetcher([_chain(1), _chain(2)], [_chain(1, price=3.0), _chain(3)])
    notifier = FakeNotifier()

    async def scenario() -> None:
        controller, store = _controller(tmp_path, fetcher, notifier)
        assert await controller.run_cycle()
        assert await controller.run_cycle()
        assert store.all_ids() == {1, 2, 3}
        assert store.get(1).chain.price == 3.0

    asyncio.run(scenario())

    assert notifier.announced == [[1, 2], [3]]
    assert notifier.errors == []


def test_same_payload_twice_is_not_reannounced(tmp_path) -> None:
    batch = [_chain(1), _chain(2)]
    fetcher = FakeFetcher(batch, batch)
    notifier = FakeNotifier()

    async def scenario() -> None:
        controller, _ = _controller(tmp_path, fetcher, notifier)
        await controller.run_cycle()
        await controller.run_cycle()

    asyncio.run(scenario())

    assert notifier.announced == [[1, 2]]


def test_fetch_failure_reports_error_and_leaves_store_untouched(tmp_path) -> None:
    error = FetchError("Failed to fetch chains after 3 attempts: boom")
    fetcher = FakeFetcher(error, [_chain(5)])
    notifier = FakeNotifier()

    async def scenario() -> None:
        controller, store = _controller(tmp_path, fetcher, notifier)
        assert await controller.run_cycle()
        assert store.all_ids() == set()
        assert controller.get_stats().next_scan_in_seconds == 0

        # The next scheduled cycle still runs normally.
        await controller.run_cycle()
        assert store.all_ids() == {5}

    asyncio.run(scenario())

    assert notifier.errors == [error]
    assert notifier.announced == [[5]]


def test_storage_failure_is_reported_like_fetch_failure(tmp_path) -> None:
    fetcher = FakeFetcher([_chain(1)])
    notifier = FakeNotifier()

    async def scenario() -> None:
        controller, store = _controller(tmp_path, fetcher, notifier)
        store.close()
        assert await controller.run_cycle()

    asyncio.run(scenario())

    assert len(notifier.errors) == 1
    assert isinstance(notifier.errors[0], StorageUnavailableError)
    assert notifier.announced == []


def test_silent_mode_sends_nothing(tmp_path) -> None:
    fetcher = FakeFetcher([_chain(1)], FetchError("down"))
    notifier = FakeNotifier()

    async def scenario() -> None:
        controller, store = _controller(tmp_path, fetcher, notifier, silent=True)
        await controller.run_cycle()
        await controller.run_cycle()
        assert store.all_ids() == {1}

    asyncio.run(scenario())

    assert notifier.announced == []
    assert notifier.errors == []


def test_notifier_failures_do_not_escape(tmp_path) -> None:
    fetcher = FakeFetcher([_chain(1)], FetchError("down"))
    notifier = FakeNotifier(fail=True)

    async def scenario() -> None:
        controller, store = _controller(tmp_path, fetcher, notifier)
        assert await controller.run_cycle()
        assert await controller.run_cycle()
        assert store.all_ids() == {1}
        assert not controller.is_scanning

    asyncio.run(scenario())


def test_overlapping_tick_is_dropped(tmp_path) -> None:
    fetcher = FakeFetcher([_chain(1)])
    notifier = FakeNotifier()

    async def scenario() -> None:
        fetcher.gate = asyncio.Event()
        controller, _ = _controller(tmp_path, fetcher, notifier)

        assert controller.tick() is True
        await asyncio.sleep(0)
        assert controller.is_scanning
        assert controller.tick() is False
        assert await controller.run_cycle() is False

        # Status stays answerable while the scan waits on the network.
        stats = controller.get_stats()
        assert stats.last_scan_time is not None
        assert stats.total_chains == 0

        fetcher.gate.set()
        for _ in range(100):
            if not controller.is_scanning:
                break
            await asyncio.sleep(0.01)

    asyncio.run(scenario())

    assert fetcher.calls == 1
    assert notifier.announced == [[1]]


def test_stats_report_schedule_and_totals(tmp_path) -> None:
    clock = Clock()
    fetcher = FakeFetcher([_chain(1), _chain(2)])
    notifier = FakeNotifier()

    async def scenario() -> None:
        controller, _ = _controller(tmp_path, fetcher, notifier, interval=60, clock=clock)
        stats = controller.get_stats()
        assert stats.last_scan_time is None
        assert stats.total_chains == 0

        scanned_at = clock.now
        await controller.run_cycle()
        clock.now = scanned_at + timedelta(seconds=15)

        stats = controller.get_stats()
        assert stats.last_scan_time == scanned_at
        assert stats.next_scan_in_seconds == pytest.approx(45)
        assert stats.uptime_seconds == pytest.approx(15)
        assert stats.polling_interval_seconds == 60
        assert stats.total_chains == 2

    asyncio.run(scenario())


def test_start_scans_immediately_and_stop_releases_store(tmp_path) -> None:
    fetcher = FakeFetcher([_chain(1)])
    notifier = FakeNotifier()

    async def scenario() -> None:
        controller, store = _controller(tmp_path, fetcher, notifier)
        await controller.start()
        assert controller.is_running
        assert fetcher.calls == 1
        assert store.all_ids() == {1}

        await controller.stop()
        assert not controller.is_running
        with pytest.raises(StorageUnavailableError):
            store.all_ids()

    asyncio.run(scenario())

    assert notifier.announced == [[1]]


def test_timer_keeps_scanning_after_failures(tmp_path) -> None:
    fetcher = FakeFetcher(FetchError("down"), FetchError("down"), [_chain(1)])
    notifier = FakeNotifier()

    async def scenario() -> None:
        controller, store = _controller(tmp_path, fetcher, notifier, interval=0.01)
        await controller.start()
        for _ in range(200):
            if fetcher.calls >= 3 and not controller.is_scanning:
                break
            await asyncio.sleep(0.01)
        await controller.stop()

    asyncio.run(scenario())

    assert fetcher.calls >= 3
    assert len(notifier.errors) == 2
    assert notifier.announced == [[1]]
