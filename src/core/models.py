"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Chain:
    """A blockchain network as reported by the chains API."""

    chain_id: int
    name: str
    symbol: str
    decimals: int
    mainnet: bool
    price: float
    bal: str
    gas: str
    gwei: str
    inbound: bool
    max_inbound: float
    max_inbound_native: str
    max_outbound: float
    max_outbound_native: str
    min_outbound: float
    min_outbound_native: str
    explorer: Optional[str]
    rpcs: tuple[str, ...]
    short: int

    @property
    def primary_rpc(self) -> Optional[str]:
        return self.rpcs[0] if self.rpcs else None


@dataclass(frozen=True)
class ChainRecord:
    """Persisted chain with storage metadata."""

    id: int
    chain: Chain
    created_at: datetime
    updated_at: datetime

    @property
    def chain_id(self) -> int:
        return self.chain.chain_id


@dataclass(frozen=True)
class NewChainDetection:
    """A chain seen for the first time, paired with when it was observed."""

    chain: Chain
    detected_at: datetime


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one detection pass over a fetched batch."""

    detections: list[NewChainDetection] = field(default_factory=list)
    updated: int = 0
    failures: list[tuple[int, Exception]] = field(default_factory=list)

    @property
    def new_chains(self) -> list[Chain]:
        return [detection.chain for detection in self.detections]


@dataclass(frozen=True)
class ScanStats:
    """Snapshot answered to status queries such as the /ping command."""

    uptime_seconds: float
    last_scan_time: Optional[datetime]
    next_scan_in_seconds: float
    polling_interval_seconds: float
    total_chains: int
