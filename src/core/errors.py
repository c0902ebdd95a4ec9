"""Error taxonomy shared by the core and its adapters."""

from __future__ import annotations


class ChainDetectorError(Exception):
    """Base class for all detector errors."""


class FetchError(ChainDetectorError):
    """The chains API could not be reached or returned an unusable payload."""


class ChainStoreError(ChainDetectorError):
    """Base class for chain store failures."""


class DuplicateKeyError(ChainStoreError):
    """Insert was attempted for a chain_id that is already stored."""

    def __init__(self, chain_id: int) -> None:
        super().__init__(f"Chain {chain_id} already exists")
        self.chain_id = chain_id


class NotFoundError(ChainStoreError):
    """Update was attempted for a chain_id that is not stored."""

    def __init__(self, chain_id: int) -> None:
        super().__init__(f"Chain {chain_id} not found")
        self.chain_id = chain_id


class StorageUnavailableError(ChainStoreError):
    """The underlying database is unreachable, corrupt, or closed."""


class InvalidRecordError(ChainStoreError):
    """A chain's values violate a column constraint (for example a missing price)."""

    def __init__(self, chain_id: int, reason: str) -> None:
        super().__init__(f"Chain {chain_id} rejected by store: {reason}")
        self.chain_id = chain_id
