"""Mapping between the chains API payload and core models.

The API speaks camelCase JSON; the core only sees frozen Chain objects.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Optional

from core.errors import FetchError
from core.models import Chain

LOGGER = logging.getLogger(__name__)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)


def _as_float(value: Any) -> float:
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"non-finite number {value!r}")
    return number


def _as_str(value: Any) -> str:
    return "" if value is None else str(value)


def _as_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def chain_from_payload(entry: dict) -> Chain:
    """Build a Chain from one API entry.

    Raises ValueError when the identity or a numeric field is missing or
    cannot be parsed.
    """

    if not isinstance(entry, dict):
        raise ValueError(f"Chain entry must be an object, got {type(entry).__name__}")
    if entry.get("chain") is None:
        raise ValueError("Chain entry has no 'chain' id")

    rpcs = entry.get("rpcs") or []
    if isinstance(rpcs, str):
        rpcs = [rpcs]

    try:
        return Chain(
            chain_id=int(entry["chain"]),
            name=_as_str(entry.get("name")),
            symbol=_as_str(entry.get("symbol")),
            decimals=int(entry.get("decimals", 0)),
            mainnet=_as_bool(entry.get("mainnet", False)),
            price=_as_float(entry.get("price", 0)),
            bal=_as_str(entry.get("bal")),
            gas=_as_str(entry.get("gas")),
            gwei=_as_str(entry.get("gwei")),
            inbound=_as_bool(entry.get("inbound", False)),
            max_inbound=_as_float(entry.get("maxInbound", 0)),
            max_inbound_native=_as_str(entry.get("maxInboundNative")),
            max_outbound=_as_float(entry.get("maxOutbound", 0)),
            max_outbound_native=_as_str(entry.get("maxOutboundNative")),
            min_outbound=_as_float(entry.get("minOutbound", 0)),
            min_outbound_native=_as_str(entry.get("minOutboundNative")),
            explorer=_as_optional_str(entry.get("explorer")),
            rpcs=tuple(str(url) for url in rpcs if url),
            short=int(entry.get("short", 0)),
        )
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid chain entry {entry.get('chain')!r}: {exc}") from exc


def chains_from_response(payload: Any) -> list[Chain]:
    """Parse a whole API response.

    A response without a "chains" list is rejected as a FetchError. Single
    malformed entries are skipped so one bad record does not hide the rest.
    """

    if not isinstance(payload, dict) or not isinstance(payload.get("chains"), list):
        raise FetchError("Invalid API response format")

    chains: list[Chain] = []
    for entry in payload["chains"]:
        try:
            chains.append(chain_from_payload(entry))
        except ValueError as exc:
            LOGGER.warning("Skipping malformed chain entry: %s", exc)
    return chains
