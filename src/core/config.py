"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ScanConfig:
    """Scan cadence settings for the cycle controller."""

    interval_seconds: float
    silent_mode: bool = False


@dataclass(frozen=True)
class RetryConfig:
    """Retry and backoff settings for the chains API fetcher."""

    max_retries: int = 3
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 10.0

    def delay_for(self, attempt: int) -> float:
        """Return the backoff delay after a failed 1-based attempt."""

        return min(self.backoff_base_seconds * (2 ** (attempt - 1)), self.backoff_max_seconds)
