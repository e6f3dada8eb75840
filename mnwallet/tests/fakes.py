"""
Fake wallet providers and helpers shared by the tests.
"""

from __future__ import annotations

from typing import Any

from mnwallet.address import encode_shield_address
from mnwallet.constants import TDUST_TOKEN_TYPE
from mnwallet.ledger import SecretKeys
from mnwallet.models import Coin


def make_coin(value: int, index: int = 0) -> Coin:
    return Coin(type=TDUST_TOKEN_TYPE, nonce=f"{index + 1:064x}", value=value, mt_index=index)


def address_for(keys: SecretKeys) -> str:
    return encode_shield_address(
        bytes.fromhex(keys.coin_public_key), bytes.fromhex(keys.encryption_public_key)
    )


class ManualWallet:
    """Old wallet build: coins can be listed and bytes submitted, nothing high level."""

    def __init__(
        self,
        coins: list[Coin],
        address: str | None = None,
        submit_result: Any = "tx-manual",
        reject_bytes: bool = False,
    ):
        self._coins = coins
        self._address = address
        self.submit_result = submit_result
        self.reject_bytes = reject_bytes
        self.submitted: list[Any] = []

    async def listCoins(self) -> list[dict[str, Any]]:
        return [coin.to_dict() for coin in self._coins]

    async def state(self) -> dict[str, Any]:
        return {
            "state": {
                "address": self._address,
                "balances": {"tDUST": str(sum(c.value for c in self._coins))},
            }
        }

    async def submitTransaction(self, tx: Any) -> Any:
        self.submitted.append(tx)
        if self.reject_bytes and isinstance(tx, bytes):
            raise TypeError("submitTransaction expects a Transaction")
        return self.submit_result


class ManagedWallet:
    """Current wallet build: balances and proves transfers itself."""

    def __init__(self, proven: Any = None, tx_id: Any = "tx-managed"):
        self.proven = proven if proven is not None else {"transaction": "proven-tx"}
        self.tx_id = tx_id
        self.requests: list[Any] = []
        self.submitted: list[Any] = []

    def balanceAndProveTransaction(self, request: Any) -> Any:
        self.requests.append(request)
        return self.proven

    async def submitTransaction(self, tx: Any) -> Any:
        self.submitted.append(tx)
        return self.tx_id


class Subscription:
    def __init__(self) -> None:
        self.unsubscribed = False

    def unsubscribe(self) -> None:
        self.unsubscribed = True


class SubscribingWallet:
    """Pushes the given snapshots to subscribers as soon as they subscribe."""

    def __init__(self, snapshots: list[Any]):
        self._snapshots = snapshots
        self.handles: list[Subscription] = []

    def subscribe(self, callback: Any) -> Subscription:
        for snapshot in self._snapshots:
            callback(snapshot)
        handle = Subscription()
        self.handles.append(handle)
        return handle


class SnapshotStream:
    """Observable-style state: the snapshot is only reachable through ``subscribe``."""

    def __init__(self, snapshot: Any, silent: bool = False):
        self.handles: list[Subscription] = []

        def emit(callback: Any) -> None:
            if not silent:
                callback(snapshot)

        self._emit = emit

    def subscribe(self, callback: Any) -> Subscription:
        self._emit(callback)
        handle = Subscription()
        self.handles.append(handle)
        return handle


class StreamingWallet:
    """Wallet build whose ``state()`` returns a stream instead of a snapshot."""

    def __init__(self, snapshot: Any, silent: bool = False):
        self.stream = SnapshotStream(snapshot, silent)

    def state(self) -> SnapshotStream:
        return self.stream
