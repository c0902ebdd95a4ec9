from __future__ import annotations

import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from adapters.chain_api import ChainApiClient
from adapters.chain_mapper import chain_from_payload, chains_from_response
from core.config import RetryConfig
from core.errors import FetchError
from core.models import Chain

ENTRY = {
    "bal": "12.5",
    "chain": 8453,
    "decimals": 18,
    "explorer": "https://basescan.org",
    "gas": "21000",
    "gwei": "0.01",
    "inbound": True,
    "mainnet": True,
    "maxInbound": 5000,
    "maxInboundNative": "5000000000000000000000",
    "maxOutbound": 2500.5,
    "maxOutboundNative": "2500500000000000000000",
    "minOutbound": 0.001,
    "minOutboundNative": "1000000000000000",
    "name": "Base",
    "price": 3120.42,
    "rpcs": ["https://mainnet.base.org", "https://base.llamarpc.com"],
    "short": 12,
    "symbol": "ETH",
}


def test_chain_from_payload_maps_all_fields() -> None:
    chain = chain_from_payload(ENTRY)

    assert chain.chain_id == 8453
    assert chain.name == "Base"
    assert chain.mainnet is True
    assert chain.max_outbound == 2500.5
    assert chain.min_outbound_native == "1000000000000000"
    assert chain.rpcs == ("https://mainnet.base.org", "https://base.llamarpc.com")
    assert chain.primary_rpc == "https://mainnet.base.org"


def test_chain_from_payload_handles_missing_explorer_and_rpcs() -> None:
    entry = dict(ENTRY, explorer="", rpcs=[])
    chain = chain_from_payload(entry)

    assert chain.explorer is None
    assert chain.primary_rpc is None


def test_chain_from_payload_rejects_missing_id() -> None:
    entry = dict(ENTRY)
    del entry["chain"]

    with pytest.raises(ValueError):
        chain_from_payload(entry)


def test_chains_from_response_skips_malformed_entries() -> None:
    payload = {"chains": [ENTRY, {"name": "no id"}, dict(ENTRY, chain=10, price="n/a"), dict(ENTRY, chain=10)]}

    chains = chains_from_response(payload)

    assert [chain.chain_id for chain in chains] == [8453, 10]


@pytest.mark.parametrize("payload", [None, [], {"data": []}, {"chains": "nope"}])
def test_chains_from_response_rejects_bad_shape(payload) -> None:
    with pytest.raises(FetchError):
        chains_from_response(payload)


class ScriptedClient(ChainApiClient):
    def __init__(self, outcomes, retry: RetryConfig) -> None:
        self.delays: list[float] = []

        async def fake_sleep(delay: float) -> None:
            self.delays.append(delay)

        super().__init__("http://unused", retry=retry, sleep=fake_sleep)
        self._outcomes = list(outcomes)
        self.calls = 0

    async def fetch_chains(self) -> list[Chain]:
        self.calls += 1
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_fetch_with_retry_backs_off_then_succeeds() -> None:
    chain = chain_from_payload(ENTRY)
    client = ScriptedClient([FetchError("a"), FetchError("b"), [chain]], RetryConfig(max_retries=3))

    chains = asyncio.run(client.fetch_with_retry())

    assert chains == [chain]
    assert client.calls == 3
    assert client.delays == [1.0, 2.0]


def test_fetch_with_retry_gives_up_after_max_attempts() -> None:
    client = ScriptedClient(
        [FetchError("a"), FetchError("b"), FetchError("last")],
        RetryConfig(max_retries=3),
    )

    with pytest.raises(FetchError, match="after 3 attempts: last"):
        asyncio.run(client.fetch_with_retry())

    assert client.calls == 3
    assert client.delays == [1.0, 2.0]


def test_backoff_delay_is_capped() -> None:
    retry = RetryConfig(max_retries=10, backoff_base_seconds=1.0, backoff_max_seconds=10.0)

    assert [retry.delay_for(n) for n in range(1, 7)] == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]


async def _serve(handler):
    app = web.Application()
    app.router.add_get("/chains", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    return server


def test_fetch_chains_over_http() -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.json_response({"chains": [ENTRY]})

    async def scenario() -> list[Chain]:
        server = await _serve(handler)
        try:
            async with ChainApiClient(str(server.make_url("/chains"))) as client:
                return await client.fetch_chains()
        finally:
            await server.close()

    chains = asyncio.run(scenario())

    assert [chain.chain_id for chain in chains] == [8453]


def test_fetch_chains_http_error_is_fetch_error() -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.Response(status=503, text="maintenance")

    async def scenario() -> None:
        server = await _serve(handler)
        try:
            async with ChainApiClient(str(server.make_url("/chains"))) as client:
                await client.fetch_chains()
        finally:
            await server.close()

    with pytest.raises(FetchError, match="HTTP 503"):
        asyncio.run(scenario())


def test_fetch_chains_invalid_json_is_fetch_error() -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.Response(status=200, text="<html>oops</html>", content_type="text/html")

    async def scenario() -> None:
        server = await _serve(handler)
        try:
            async with ChainApiClient(str(server.make_url("/chains"))) as client:
                await client.fetch_chains()
        finally:
            await server.close()

    with pytest.raises(FetchError):
        asyncio.run(scenario())


@pytest.mark.parametrize("bad_price", ["NaN", float("nan"), "inf", float("-inf")])
def test_non_finite_numbers_are_skipped(bad_price) -> None:
    payload = {"chains": [dict(ENTRY, chain=1), dict(ENTRY, chain=2, price=bad_price), dict(ENTRY, chain=3)]}

    chains = chains_from_response(payload)

    assert [chain.chain_id for chain in chains] == [1, 3]


def test_non_finite_limit_is_rejected() -> None:
    with pytest.raises(ValueError, match="non-finite"):
        chain_from_payload(dict(ENTRY, maxOutbound="NaN"))
