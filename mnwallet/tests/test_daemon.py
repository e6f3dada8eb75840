"""
Tests for the self-hosted wallet daemon session.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from mnwallet.adapter import WalletAdapter
from mnwallet.backends.daemon import DaemonWallet
from mnwallet.capabilities import Capability, ProviderAdapter
from mnwallet.errors import UpstreamUnavailableError
from mnwallet.ledger import SecretKeys
from mnwallet.models import NetworkId
from mnwallet.pipeline import SerializedTransaction

URL = "http://daemon.test/"


class FakeDaemon:
    """JSON-RPC wallet daemon answering from a table of results."""

    def __init__(self, results: dict[str, Any] | None = None):
        self.calls: list[dict[str, Any]] = []
        self.results = {"build": {"session": "s1"}, "start": True, "close": True}
        self.results.update(results or {})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.calls.append(payload)
        result = self.results.get(payload["method"])
        if isinstance(result, Exception):
            error = {"code": -1, "message": str(result)}
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "error": error})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": result})

    def methods(self) -> list[str]:
        return [c["method"] for c in self.calls]


async def build_wallet(daemon: FakeDaemon) -> DaemonWallet:
    return await DaemonWallet.build(
        URL,
        indexer_http="http://indexer",
        indexer_ws="ws://indexer",
        prover_http="http://prover",
        rpc_http="http://node",
        seed_hex="00" * 32,
        network_id=NetworkId.TESTNET,
        transport=httpx.MockTransport(daemon),
    )


@pytest.mark.asyncio
async def test_build_starts_session() -> None:
    daemon = FakeDaemon()
    wallet = await build_wallet(daemon)
    try:
        assert wallet.session_id == "s1"
        assert daemon.methods() == ["build", "start"]
        build_params = daemon.calls[0]["params"]
        assert build_params["networkId"] == "testnet"
        assert build_params["proverServerUri"] == "http://prover"
        assert "session" not in build_params
        assert daemon.calls[1]["params"] == {"session": "s1"}
    finally:
        await wallet.close()


@pytest.mark.asyncio
async def test_close_releases_session() -> None:
    daemon = FakeDaemon()
    wallet = await build_wallet(daemon)
    await wallet.close()

    assert daemon.methods()[-1] == "close"
    assert wallet.session_id is None
    assert wallet.client.is_closed


@pytest.mark.asyncio
async def test_rpc_error() -> None:
    daemon = FakeDaemon({"state": RuntimeError("wallet not started")})
    wallet = await build_wallet(daemon)
    try:
        with pytest.raises(ValueError, match="wallet not started"):
            await wallet.state()
    finally:
        await wallet.close()


@pytest.mark.asyncio
async def test_build_failure() -> None:
    daemon = FakeDaemon({"start": RuntimeError("indexer unreachable")})
    with pytest.raises(ValueError, match="indexer unreachable"):
        await build_wallet(daemon)


@pytest.mark.asyncio
async def test_daemon_unreachable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamUnavailableError):
        await DaemonWallet.build(
            URL,
            indexer_http="",
            indexer_ws="",
            prover_http="",
            rpc_http="",
            seed_hex="00" * 32,
            transport=httpx.MockTransport(handler),
        )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>bad gateway</html>"),
        httpx.Response(200, content=b"null"),
        httpx.Response(200, json=["not", "an", "object"]),
    ],
)
async def test_malformed_daemon_response(response: httpx.Response) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return response

    with pytest.raises(UpstreamUnavailableError):
        await DaemonWallet.build(
            URL,
            indexer_http="",
            indexer_ws="",
            prover_http="",
            rpc_http="",
            seed_hex="00" * 32,
            transport=httpx.MockTransport(handler),
        )


@pytest.mark.asyncio
async def test_service_uris_reported() -> None:
    wallet = await build_wallet(FakeDaemon())
    try:
        provider = await ProviderAdapter.connect(wallet, "wallet-daemon")
        assert provider.describe()["wallet"]["serviceUris"] == {
            "indexerUrl": "http://indexer",
            "indexerWsUrl": "ws://indexer",
            "provingServerUrl": "http://prover",
            "nodeUrl": "http://node",
        }
    finally:
        await wallet.close()


@pytest.mark.asyncio
async def test_transactions_sent_as_hex() -> None:
    daemon = FakeDaemon({"submitTransaction": "tx1"})
    wallet = await build_wallet(daemon)
    try:
        assert await wallet.submit_transaction(b"\x01\x02") == "tx1"
        assert await wallet.submit_transaction(SerializedTransaction(b"\xff")) == "tx1"
    finally:
        await wallet.close()

    submitted = [
        c["params"]["transaction"] for c in daemon.calls if c["method"] == "submitTransaction"
    ]
    assert submitted == ["0102", "ff"]


@pytest.mark.asyncio
async def test_capabilities() -> None:
    wallet = await build_wallet(FakeDaemon())
    try:
        provider = ProviderAdapter(wallet, "wallet-daemon")
        assert provider.capabilities.has_high_level_transfer
        assert provider.supports(Capability.SUBMIT)
        assert provider.supports(Capability.STATE_SERIALIZATION)
        assert provider.supports(Capability.ADDRESS_GETTER)
        assert not provider.supports(Capability.COIN_ENUMERATION)
    finally:
        await wallet.close()


@pytest.mark.asyncio
async def test_send_through_daemon(sender_keys: SecretKeys, recipient_address: str) -> None:
    daemon = FakeDaemon(
        {
            "transferTransaction": {"recipe": "r1"},
            "proveTransaction": {"transaction": "abcd"},
            "submitTransaction": {"txId": "tx-daemon"},
        }
    )
    wallet = await build_wallet(daemon)
    adapter = await WalletAdapter.connect(wallet, "wallet-daemon", sender_keys=sender_keys)
    try:
        result = await adapter.send(recipient_address, 3)
    finally:
        await adapter.close()

    assert result.tx_id == "tx-daemon"
    assert result.strategy == "wallet_managed"
    by_method = {c["method"]: c["params"] for c in daemon.calls}
    assert by_method["transferTransaction"]["transfers"][0]["amount"] == 3
    assert by_method["proveTransaction"]["recipe"] == {"recipe": "r1"}
    assert by_method["submitTransaction"]["transaction"] == {"transaction": "abcd"}
    assert daemon.methods()[-1] == "close"
