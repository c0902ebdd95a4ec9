"""Chains API fetcher.

Implements the core FetcherPort over HTTP with bounded retries and
exponential backoff.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import aiohttp

from adapters.chain_mapper import chains_from_response
from core.config import RetryConfig
from core.errors import FetchError
from core.models import Chain

LOGGER = logging.getLogger(__name__)


class ChainApiClient:
    """aiohttp client for the chains inventory endpoint."""

    def __init__(
        self,
        api_url: str,
        retry: Optional[RetryConfig] = None,
        timeout_seconds: float = 10,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._api_url = api_url
        self._retry = retry or RetryConfig()
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._sleep = sleep
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "ChainApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session."""

        if self._session is not None:
            await self._session.close()
            self._session = None

    async def fetch_chains(self) -> list[Chain]:
        """Fetch all chains once, raising FetchError on any failure."""

        session = await self._ensure_session()
        try:
            async with session.get(self._api_url) as response:
                if response.status >= 400:
                    raise FetchError(f"API request failed: HTTP {response.status}")
                payload = await response.json(content_type=None)
        except asyncio.TimeoutError as exc:
            raise FetchError("API request failed: timeout") from exc
        except aiohttp.ClientError as exc:
            raise FetchError(f"API request failed: {exc}") from exc
        except ValueError as exc:
            raise FetchError(f"API returned invalid JSON: {exc}") from exc

        return chains_from_response(payload)

    async def fetch_with_retry(self) -> list[Chain]:
        """Fetch chains, retrying with exponential backoff before giving up."""

        max_retries = self._retry.max_retries
        last_error: Optional[Exception] = None

        for attempt in range(1, max_retries + 1):
            try:
                return await self.fetch_chains()
            except FetchError as exc:
                last_error = exc
                LOGGER.warning("Attempt %s/%s failed: %s", attempt, max_retries, exc)
                if attempt < max_retries:
                    await self._sleep(self._retry.delay_for(attempt))

        raise FetchError(f"Failed to fetch chains after {max_retries} attempts: {last_error}")
