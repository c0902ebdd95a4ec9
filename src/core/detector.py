"""Chain detection and reconciliation.

This module is integration-agnostic. It only relies on the store port, so
the same reconciliation runs against SQLite in production and fakes in tests.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from core.errors import DuplicateKeyError, InvalidRecordError, NotFoundError
from core.models import Chain, NewChainDetection, ReconcileResult
from core.ports import ChainStorePort

LOGGER = logging.getLogger(__name__)

# Per-chain misuse errors. Anything else (notably StorageUnavailableError)
# aborts the whole pass.
_ISOLATED_ERRORS = (DuplicateKeyError, NotFoundError, InvalidRecordError)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChainDetector:
    """Partitions a fetched batch into new and existing chains and persists both."""

    def __init__(
        self,
        store: ChainStorePort,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._clock = clock or _utcnow

    @staticmethod
    def partition(batch: Iterable[Chain], known_ids: set[int]) -> tuple[list[Chain], list[Chain]]:
        """Split a batch into (new, existing) relative to a key snapshot."""

        new: list[Chain] = []
        existing: list[Chain] = []
        for chain in batch:
            if chain.chain_id in known_ids:
                existing.append(chain)
            else:
                new.append(chain)
        return new, existing

    def reconcile(self, batch: Iterable[Chain]) -> ReconcileResult:
        """Persist a batch and report what happened.

        The key set is read once up front, so every chain in the batch is
        judged against the same point in time. Duplicate ids inside one batch
        are therefore all "new" and the repeated insert fails in isolation.
        """

        snapshot = self._store.all_ids()
        new, existing = self.partition(batch, snapshot)

        detections: list[NewChainDetection] = []
        failures: list[tuple[int, Exception]] = []

        for chain in new:
            try:
                self._store.insert(chain)
            except _ISOLATED_ERRORS as exc:
                LOGGER.error("Failed to save chain %s (ID: %s): %s", chain.name, chain.chain_id, exc)
                failures.append((chain.chain_id, exc))
                continue
            detection = NewChainDetection(chain=chain, detected_at=self._clock())
            detections.append(detection)
            LOGGER.info(
                "[%s] New chain saved: %s (ID: %s)",
                detection.detected_at.isoformat(),
                chain.name,
                chain.chain_id,
            )

        updated = 0
        for chain in existing:
            try:
                self._store.update(chain)
            except _ISOLATED_ERRORS as exc:
                LOGGER.error("Failed to update chain %s (ID: %s): %s", chain.name, chain.chain_id, exc)
                failures.append((chain.chain_id, exc))
                continue
            updated += 1

        if detections:
            LOGGER.info("Detected and saved %s new chain(s)", len(detections))
        if failures:
            LOGGER.warning("%s chain(s) failed to persist this pass", len(failures))

        return ReconcileResult(detections=detections, updated=updated, failures=failures)

    def process_chains(self, batch: Iterable[Chain]) -> list[NewChainDetection]:
        """Persist a batch and return only the chains inserted for the first time."""

        return self.reconcile(batch).detections
