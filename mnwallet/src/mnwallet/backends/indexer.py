"""
Indexer GraphQL client.
Only used for the balance fallback; the wallet session talks to the indexer itself.
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from mnwallet.constants import DEFAULT_REQUEST_TIMEOUT
from mnwallet.errors import UpstreamUnavailableError

BALANCES_QUERY = """
query Balances($address: String!) {
  address(address: $address) {
    balances { symbol amount quantity denom unit asset }
  }
}
"""


class IndexerClient:
    """
    Minimal GraphQL client for the Midnight indexer.

    GraphQL-level errors are treated as "no data"; transport failures and
    HTTP errors raise UpstreamUnavailableError.
    """

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def query(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Run a GraphQL query.

        Returns:
            The ``data`` object, or an empty dict if the indexer reported errors

        Raises:
            UpstreamUnavailableError: On transport errors or HTTP status >= 400
        """
        try:
            response = await self.client.post(
                self.url, json={"query": query, "variables": variables or {}}
            )
        except httpx.HTTPError as e:
            logger.error(f"Indexer request failed: {e}")
            raise UpstreamUnavailableError(f"Indexer unreachable: {e}") from e

        if response.status_code >= 400:
            raise UpstreamUnavailableError(f"indexer HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamUnavailableError(f"Indexer returned invalid JSON: {e}") from e
        if not isinstance(body, dict):
            raise UpstreamUnavailableError("Indexer returned an unexpected response")

        if body.get("errors"):
            logger.debug(f"Indexer GraphQL errors: {body['errors']}")
            return {}
        return body.get("data") or {}

    async def balances(self, address: str) -> list[dict[str, Any]]:
        """Balance rows for an address; empty when the indexer has no data."""
        data = await self.query(BALANCES_QUERY, {"address": address})
        entry = data.get("address") or {}
        balances = entry.get("balances") if isinstance(entry, dict) else None
        return balances if isinstance(balances, list) else []

    async def close(self) -> None:
        await self.client.aclose()
