"""SQLite storage adapter.

Implements the core ChainStorePort using a single SQLite database file.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from core.errors import (
    DuplicateKeyError,
    InvalidRecordError,
    NotFoundError,
    StorageUnavailableError,
)
from core.models import Chain, ChainRecord

LOGGER = logging.getLogger(__name__)

_CHAIN_COLUMNS = (
    "chain_id",
    "name",
    "symbol",
    "decimals",
    "mainnet",
    "price",
    "bal",
    "gas",
    "gwei",
    "inbound",
    "max_inbound",
    "max_inbound_native",
    "max_outbound",
    "max_outbound_native",
    "min_outbound",
    "min_outbound_native",
    "explorer",
    "rpcs",
    "short",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _chain_params(chain: Chain) -> dict:
    return {
        "chain_id": chain.chain_id,
        "name": chain.name,
        "symbol": chain.symbol,
        "decimals": chain.decimals,
        "mainnet": 1 if chain.mainnet else 0,
        "price": chain.price,
        "bal": chain.bal,
        "gas": chain.gas,
        "gwei": chain.gwei,
        "inbound": 1 if chain.inbound else 0,
        "max_inbound": chain.max_inbound,
        "max_inbound_native": chain.max_inbound_native,
        "max_outbound": chain.max_outbound,
        "max_outbound_native": chain.max_outbound_native,
        "min_outbound": chain.min_outbound,
        "min_outbound_native": chain.min_outbound_native,
        "explorer": chain.explorer or None,
        "rpcs": json.dumps(list(chain.rpcs)),
        "short": chain.short,
    }


def _is_chain_id_conflict(exc: sqlite3.IntegrityError) -> bool:
    # sqlite reports "UNIQUE constraint failed: chains.chain_id"; NOT NULL
    # and other constraint failures are not duplicates.
    message = str(exc)
    return "UNIQUE" in message and "chains.chain_id" in message


def _row_to_record(row: sqlite3.Row) -> ChainRecord:
    chain = Chain(
        chain_id=int(row["chain_id"]),
        name=row["name"],
        symbol=row["symbol"],
        decimals=int(row["decimals"]),
        mainnet=row["mainnet"] == 1,
        price=float(row["price"]),
        bal=row["bal"],
        gas=row["gas"],
        gwei=row["gwei"],
        inbound=row["inbound"] == 1,
        max_inbound=float(row["max_inbound"]),
        max_inbound_native=row["max_inbound_native"],
        max_outbound=float(row["max_outbound"]),
        max_outbound_native=row["max_outbound_native"],
        min_outbound=float(row["min_outbound"]),
        min_outbound_native=row["min_outbound_native"],
        explorer=row["explorer"],
        rpcs=tuple(json.loads(row["rpcs"])),
        short=int(row["short"]),
    )
    return ChainRecord(
        id=int(row["id"]),
        chain=chain,
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


class SQLiteChainStore:
    """Thin SQLite wrapper that satisfies the ChainStorePort contract.

    One connection is shared by the event loop and the worker thread that
    runs reconciliation, so every statement goes through a lock. Each write
    commits before the call returns.
    """

    def __init__(self, db_path: str, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._db_path = db_path
        self._clock = clock or _utcnow
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageUnavailableError(f"Chain store is not open: {self._db_path}")
        return self._conn

    def init_db(self) -> None:
        """Open the database and create the chains table if it does not exist."""

        directory = os.path.dirname(self._db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        try:
            conn = sqlite3.connect(self._db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            with conn:
                # chains holds one row per chain id ever seen. Rows are never
                # deleted; repeated sightings overwrite the mutable columns.
                # Fields:
                # - chain_id: API chain identifier, the dedup key (UNIQUE)
                # - rpcs: JSON array of RPC URLs, first one is primary
                # - mainnet / inbound: booleans stored as 0/1
                # - created_at: ISO timestamp of first insert, never rewritten
                # - updated_at: ISO timestamp of the latest write
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS chains (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        chain_id INTEGER UNIQUE NOT NULL,
                        name TEXT NOT NULL,
                        symbol TEXT NOT NULL,
                        decimals INTEGER NOT NULL,
                        mainnet INTEGER NOT NULL,
                        price REAL NOT NULL,
                        bal TEXT NOT NULL,
                        gas TEXT NOT NULL,
                        gwei TEXT NOT NULL,
                        inbound INTEGER NOT NULL,
                        max_inbound REAL NOT NULL,
                        max_inbound_native TEXT NOT NULL,
                        max_outbound REAL NOT NULL,
                        max_outbound_native TEXT NOT NULL,
                        min_outbound REAL NOT NULL,
                        min_outbound_native TEXT NOT NULL,
                        explorer TEXT,
                        rpcs TEXT NOT NULL,
                        short INTEGER NOT NULL,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_chains_chain_id ON chains(chain_id)")
        except sqlite3.Error as exc:
            raise StorageUnavailableError(f"Cannot open chain store {self._db_path}: {exc}") from exc

        self._conn = conn
        LOGGER.info("Chain store ready at %s", self._db_path)

    def close(self) -> None:
        """Close the connection. Further calls raise StorageUnavailableError."""

        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None

    def exists(self, chain_id: int) -> bool:
        """Check if a chain id is stored."""

        with self._lock:
            try:
                row = self._connection().execute(
                    "SELECT 1 FROM chains WHERE chain_id = ? LIMIT 1",
                    (chain_id,),
                ).fetchone()
            except sqlite3.Error as exc:
                raise StorageUnavailableError(str(exc)) from exc
        return row is not None

    def all_ids(self) -> set[int]:
        """Return every stored chain id."""

        with self._lock:
            try:
                rows = self._connection().execute("SELECT chain_id FROM chains").fetchall()
            except sqlite3.Error as exc:
                raise StorageUnavailableError(str(exc)) from exc
        return {int(row["chain_id"]) for row in rows}

    def count(self) -> int:
        """Return the number of stored chains."""

        with self._lock:
            try:
                row = self._connection().execute("SELECT COUNT(*) AS total FROM chains").fetchone()
            except sqlite3.Error as exc:
                raise StorageUnavailableError(str(exc)) from exc
        return int(row["total"])

    def insert(self, chain: Chain) -> None:
        """Insert a chain seen for the first time."""

        now = self._clock().isoformat(timespec="microseconds")
        params = _chain_params(chain)
        params["created_at"] = now
        params["updated_at"] = now
        columns = _CHAIN_COLUMNS + ("created_at", "updated_at")

        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    conn.execute(
                        f"INSERT INTO chains ({', '.join(columns)}) "
                        f"VALUES ({', '.join(':' + column for column in columns)})",
                        params,
                    )
            except sqlite3.IntegrityError as exc:
                if _is_chain_id_conflict(exc):
                    raise DuplicateKeyError(chain.chain_id) from exc
                raise InvalidRecordError(chain.chain_id, str(exc)) from exc
            except sqlite3.Error as exc:
                raise StorageUnavailableError(str(exc)) from exc

    def update(self, chain: Chain) -> None:
        """Overwrite the mutable columns of a stored chain.

        created_at is left alone. updated_at always moves forward, even when
        the clock has not advanced since the previous write.
        """

        params = _chain_params(chain)
        assignments = ", ".join(f"{column} = :{column}" for column in _CHAIN_COLUMNS if column != "chain_id")

        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    row = conn.execute(
                        "SELECT updated_at FROM chains WHERE chain_id = ?",
                        (chain.chain_id,),
                    ).fetchone()
                    if row is None:
                        raise NotFoundError(chain.chain_id)

                    now = self._clock()
                    previous = datetime.fromisoformat(row["updated_at"])
                    if now <= previous:
                        now = previous + timedelta(microseconds=1)
                    params["updated_at"] = now.isoformat(timespec="microseconds")

                    conn.execute(
                        f"UPDATE chains SET {assignments}, updated_at = :updated_at WHERE chain_id = :chain_id",
                        params,
                    )
            except sqlite3.IntegrityError as exc:
                raise InvalidRecordError(chain.chain_id, str(exc)) from exc
            except sqlite3.Error as exc:
                raise StorageUnavailableError(str(exc)) from exc

    def get(self, chain_id: int) -> Optional[ChainRecord]:
        """Return one stored chain, if present."""

        with self._lock:
            try:
                row = self._connection().execute(
                    "SELECT * FROM chains WHERE chain_id = ?",
                    (chain_id,),
                ).fetchone()
            except sqlite3.Error as exc:
                raise StorageUnavailableError(str(exc)) from exc
        return _row_to_record(row) if row else None

    def list(self) -> list[ChainRecord]:
        """Return all stored chains, newest first."""

        with self._lock:
            try:
                rows = self._connection().execute(
                    "SELECT * FROM chains ORDER BY created_at DESC, id DESC"
                ).fetchall()
            except sqlite3.Error as exc:
                raise StorageUnavailableError(str(exc)) from exc
        return [_row_to_record(row) for row in rows]
