"""
Self-hosted wallet session over JSON-RPC.

The wallet daemon builds a wallet from indexer / prover / node endpoints and a
seed, keeps it synced, and exposes the wallet operations as JSON-RPC methods.
DaemonWallet is a provider handle like any injected one: its method names are
picked up by capability probing.
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from mnwallet.constants import DEFAULT_REQUEST_TIMEOUT
from mnwallet.errors import UpstreamUnavailableError
from mnwallet.models import NetworkId


def _encode_param(value: Any) -> Any:
    """Bytes travel as hex; objects with ``serialize()`` travel as their serialized hex."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    serialize = getattr(value, "serialize", None)
    if callable(serialize) and not isinstance(value, (dict, list, str)):
        return _encode_param(serialize())
    if isinstance(value, dict):
        return {k: _encode_param(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode_param(v) for v in value]
    return value


class DaemonWallet:
    """
    Wallet session held by a wallet daemon.

    Build it with ``DaemonWallet.build()``; ``close()`` releases the session
    on the daemon and the HTTP client.
    """

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url.rstrip("/")
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self.session_id: str | None = None
        self.service_uris: dict[str, str] = {}
        self._request_id = 0

    @classmethod
    async def build(
        cls,
        url: str,
        indexer_http: str,
        indexer_ws: str,
        prover_http: str,
        rpc_http: str,
        seed_hex: str,
        network_id: NetworkId = NetworkId.TESTNET,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> DaemonWallet:
        """Build and start a wallet session on the daemon."""
        wallet = cls(url, timeout=timeout, transport=transport)
        wallet.service_uris = {
            "indexerUrl": indexer_http,
            "indexerWsUrl": indexer_ws,
            "provingServerUrl": prover_http,
            "nodeUrl": rpc_http,
        }
        try:
            result = await wallet._rpc_call(
                "build",
                {
                    "indexerUri": indexer_http,
                    "indexerWsUri": indexer_ws,
                    "proverServerUri": prover_http,
                    "substrateNodeUri": rpc_http,
                    "seed": seed_hex,
                    "networkId": network_id.value,
                },
            )
            wallet.session_id = result.get("session") if isinstance(result, dict) else result
            await wallet._rpc_call("start")
        except BaseException:
            await wallet.client.aclose()
            raise
        logger.info(f"Wallet daemon session {wallet.session_id} started at {wallet.url}")
        return wallet

    async def _rpc_call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """
        Make an RPC call to the wallet daemon.

        Raises:
            ValueError: On RPC errors
            UpstreamUnavailableError: On connection/timeout/HTTP errors
        """
        self._request_id += 1
        call_params = _encode_param(params or {})
        if self.session_id is not None:
            call_params["session"] = self.session_id
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": call_params,
        }

        try:
            response = await self.client.post(self.url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Wallet daemon call failed: {method} - {e}")
            raise UpstreamUnavailableError(f"Wallet daemon unreachable ({method}): {e}") from e
        except ValueError as e:
            logger.error(f"Wallet daemon returned invalid JSON: {method} - {e}")
            raise UpstreamUnavailableError(f"Wallet daemon returned invalid JSON ({method})") from e

        if not isinstance(data, dict):
            raise UpstreamUnavailableError(
                f"Wallet daemon returned an unexpected response ({method})"
            )

        if data.get("error"):
            error_info = data["error"]
            error_code = error_info.get("code", "unknown")
            error_msg = error_info.get("message", str(error_info))
            raise ValueError(f"RPC error {error_code}: {error_msg}")

        return data.get("result")

    def service_uri_config(self) -> dict[str, str]:
        """Endpoints this session was built with."""
        return dict(self.service_uris)

    async def state(self) -> Any:
        return await self._rpc_call("state")

    async def serialize_state(self) -> Any:
        return await self._rpc_call("serializeState")

    async def get_address(self) -> Any:
        return await self._rpc_call("getAddress")

    async def transfer_transaction(self, transfers: list[dict[str, Any]]) -> Any:
        return await self._rpc_call("transferTransaction", {"transfers": transfers})

    async def prove_transaction(self, recipe: Any) -> Any:
        return await self._rpc_call("proveTransaction", {"recipe": recipe})

    async def submit_transaction(self, transaction: Any) -> Any:
        return await self._rpc_call("submitTransaction", {"transaction": transaction})

    async def close(self) -> None:
        try:
            if self.session_id is not None:
                await self._rpc_call("close")
        finally:
            self.session_id = None
            await self.client.aclose()
