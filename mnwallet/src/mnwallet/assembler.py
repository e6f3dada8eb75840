"""
Transaction assembly for tDUST transfers.

Two strategies:
- wallet-managed: hand transfer requests to the wallet, which balances,
  proves and returns a submittable transaction
- manual offer: spend owned coins directly, pay the recipient, return change
  to the sender and erase proofs before submission
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from mnwallet.address import RecipientKeys
from mnwallet.constants import TDUST_TOKEN_TYPE
from mnwallet.errors import InsufficientFundsError, NoSpendableCoinsError
from mnwallet.ledger import (
    ProofErasedTransaction,
    SecretKeys,
    UnprovenOffer,
    UnprovenOutput,
    UnprovenTransaction,
    create_coin_info,
    encode_u128,
    key_bytes,
    spend,
    tagged_hash,
)
from mnwallet.models import Coin, NetworkId, Transfer, parse_amount, validate_recipient

PAYMENT_SEGMENT = 0
CHANGE_SEGMENT = 1

# Shapes a wallet may wrap its proven transaction in, tried after the result itself
_RESULT_FIELDS: tuple[tuple[str, ...], ...] = (
    ("transaction",),
    ("tx",),
    ("value",),
    ("provenTransaction", "proven_transaction"),
    ("signed",),
    ("signedTx", "signed_tx"),
    ("payload",),
)


class Strategy(str, Enum):
    WALLET_MANAGED = "wallet_managed"
    MANUAL_OFFER = "manual_offer"


class CoinSelection(str, Enum):
    FIRST_FIT = "first_fit"
    AGGREGATE = "aggregate"


def select_coins(
    coins: list[Coin], target: int, mode: CoinSelection = CoinSelection.FIRST_FIT
) -> list[Coin]:
    """
    Select coins to fund ``target``.

    first_fit takes the first coin covering the target, falling back to the
    first coin (the caller then rejects the shortfall). aggregate is greedy,
    largest coins first, and may return coins that still fall short.
    """
    if not coins:
        raise NoSpendableCoinsError("No spendable coins available")

    if mode == CoinSelection.FIRST_FIT:
        return [next((c for c in coins if c.value >= target), coins[0])]

    selected = []
    total = 0
    for coin in sorted(coins, key=lambda c: c.value, reverse=True):
        selected.append(coin)
        total += coin.value
        if total >= target:
            break
    return selected


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    if obj is None or isinstance(obj, (str, bytes, bytearray, int, float)):
        return None
    return getattr(obj, name, None)


def result_candidates(result: Any) -> list[Any]:
    """The result itself, then every known wrapper field, without duplicates."""
    candidates: list[Any] = []
    if result is not None:
        candidates.append(result)
    for names in _RESULT_FIELDS:
        for name in names:
            value = _field(result, name)
            if value is not None:
                candidates.append(value)
                break

    unique = []
    for candidate in candidates:
        if not any(candidate is seen for seen in unique):
            unique.append(candidate)
    return unique


@dataclass
class ManualTransfer:
    transaction: ProofErasedTransaction
    serialized: bytes
    inputs: list[Coin] = field(default_factory=list)
    change_value: int = 0

    @property
    def tx_ids(self) -> list[str]:
        return self.transaction.identifiers()


class TransactionAssembler:
    """
    Builds wallet-managed transfer payloads and manual proof-erased transactions.

    Args:
        sender_keys: Keys that own the spent coins and receive change
        network_id: Network the serialized transaction is scoped to
        token_type: Token type paid to the recipient
        coin_selection: Coin selection mode for manual transfers
        manual_fee: Amount withheld from change for fees (0 = fees not modelled)
    """

    def __init__(
        self,
        sender_keys: SecretKeys,
        network_id: NetworkId = NetworkId.TESTNET,
        token_type: str = TDUST_TOKEN_TYPE,
        coin_selection: CoinSelection = CoinSelection.FIRST_FIT,
        manual_fee: int = 0,
    ):
        if manual_fee < 0:
            raise ValueError("manual_fee must be >= 0")
        self.sender_keys = sender_keys
        self.network_id = network_id
        self.token_type = token_type
        self.coin_selection = coin_selection
        self.manual_fee = manual_fee

    def build_transfers(self, recipient: Any, amount: int) -> list[dict[str, Any]]:
        """Transfer list for a wallet-managed build. Parsed address objects pass through."""
        if isinstance(recipient, str):
            recipient = validate_recipient(recipient)
        transfer = Transfer(
            amount=parse_amount(amount), receiver_address=recipient, token_type=self.token_type
        )
        return [transfer.to_wire()]

    def _output_entropy(
        self, nullifiers: list[str], recipient: RecipientKeys, amount: int, index: int
    ) -> bytes:
        return tagged_hash(
            "midnight:output-entropy",
            b"".join(bytes.fromhex(n) for n in nullifiers),
            key_bytes(recipient.coin_public_key),
            key_bytes(recipient.encryption_public_key),
            encode_u128(amount),
            bytes([index]),
        )

    def build_manual(
        self, coins: list[Coin], recipient: RecipientKeys, amount: int
    ) -> ManualTransfer:
        """
        Spend owned coins into a payment plus optional change.

        Raises:
            NoSpendableCoinsError: If there are no coins
            InsufficientFundsError: If the selected coins do not cover amount + fee
        """
        amount = parse_amount(amount)
        target = amount + self.manual_fee
        selected = select_coins(coins, target, self.coin_selection)

        total = sum(c.value for c in selected)
        change = total - target
        if change < 0:
            raise InsufficientFundsError(f"Insufficient funds: need {target}, have {total}")

        inputs = [spend(self.sender_keys, coin) for coin in selected]
        nullifiers = [i.nullifier for i in inputs]

        payment = UnprovenOutput.new(
            create_coin_info(
                self.token_type, amount, self._output_entropy(nullifiers, recipient, amount, 0)
            ),
            PAYMENT_SEGMENT,
            recipient.coin_public_key,
            recipient.encryption_public_key,
        )
        offer = UnprovenOffer.from_output(payment, self.token_type, amount)
        for inp in inputs:
            offer = offer.merge(UnprovenOffer.from_input(inp, inp.coin.type, inp.coin.value))

        if change > 0:
            change_output = UnprovenOutput.new(
                create_coin_info(
                    self.token_type, change, self._output_entropy(nullifiers, recipient, amount, 1)
                ),
                CHANGE_SEGMENT,
                self.sender_keys.coin_public_key,
                self.sender_keys.encryption_public_key,
            )
            offer = offer.merge(UnprovenOffer.from_output(change_output, self.token_type, change))

        transaction = UnprovenTransaction(guaranteed=offer).erase_proofs()
        serialized = transaction.serialize(self.network_id)

        logger.info(
            f"Built manual transfer: {len(selected)} input(s), amount={amount}, "
            f"change={change}, fee={self.manual_fee}, {len(serialized)} bytes"
        )
        return ManualTransfer(
            transaction=transaction, serialized=serialized, inputs=selected, change_value=change
        )
