"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for storage, fetching, and notification
adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

from core.models import Chain, ChainRecord


class ChainStorePort(Protocol):
    """Storage operations required by the detector and the controller."""

    def exists(self, chain_id: int) -> bool:
        ...

    def all_ids(self) -> set[int]:
        ...

    def insert(self, chain: Chain) -> None:
        ...

    def update(self, chain: Chain) -> None:
        ...

    def get(self, chain_id: int) -> Optional[ChainRecord]:
        ...

    def list(self) -> list[ChainRecord]:
        ...

    def close(self) -> None:
        ...


class FetcherPort(Protocol):
    """Fetch operation returning one batch of chains per call."""

    async def fetch_with_retry(self) -> list[Chain]:
        ...


class NotifierPort(Protocol):
    """Notification operations required by the scan controller."""

    async def notify_new_chains(self, chains: Sequence[Chain]) -> None:
        ...

    async def notify_error(self, error: BaseException) -> None:
        ...
