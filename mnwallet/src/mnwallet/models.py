"""
Core data models for the wallet adapter.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, field_validator

from mnwallet.constants import SHIELD_ADDRESS_PREFIX, TDUST_TOKEN_TYPE
from mnwallet.errors import InvalidAmountError, InvalidRecipientError

_AMOUNT_RE = re.compile(r"^\d+$")


class NetworkId(str, Enum):
    UNDEPLOYED = "undeployed"
    DEVNET = "devnet"
    TESTNET = "testnet"
    MAINNET = "mainnet"

    @property
    def wire_id(self) -> int:
        """Byte used to scope serialized transactions to this network."""
        return _NETWORK_WIRE_IDS[self]


_NETWORK_WIRE_IDS = {
    NetworkId.UNDEPLOYED: 0,
    NetworkId.DEVNET: 1,
    NetworkId.TESTNET: 2,
    NetworkId.MAINNET: 3,
}


@dataclass(frozen=True)
class Coin:
    """Qualified coin info: a spendable note owned by the wallet."""

    type: str
    nonce: str
    value: int
    mt_index: int

    @property
    def key(self) -> tuple[str, str, int, int]:
        return (self.type, self.nonce, self.value, self.mt_index)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "nonce": self.nonce,
            "value": str(self.value),
            "mt_index": self.mt_index,
        }


@dataclass
class Transfer:
    """A single wallet-managed transfer request."""

    amount: int
    receiver_address: Any
    token_type: str = TDUST_TOKEN_TYPE

    def to_wire(self) -> dict[str, Any]:
        return {
            "amount": self.amount,
            "receiverAddress": self.receiver_address,
            "type": self.token_type,
        }


@dataclass
class BalanceReport:
    """Best-effort balance facts. Unknown fields stay empty."""

    address: str = ""
    tdust: str = ""
    balances: list[Any] = field(default_factory=list)
    via: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "tDUST": self.tdust,
            "balances": self.balances,
            "via": self.via,
        }


@dataclass
class SendResult:
    """Outcome of a submitted transfer."""

    tx_id: str
    strategy: str
    change_value: int | None = None
    inputs: list[Coin] = field(default_factory=list)


def parse_amount(value: Any) -> int:
    """
    Parse a transfer amount.

    Accepts ints, integral floats and digit strings. Booleans, fractions,
    signs and anything non-positive are rejected.
    """
    if isinstance(value, bool):
        raise InvalidAmountError("amount must be an integer (string or number)")

    if isinstance(value, int):
        amount = value
    elif isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            raise InvalidAmountError("amount must be an integer (string or number)")
        amount = int(value)
    elif isinstance(value, str) and _AMOUNT_RE.match(value.strip()):
        amount = int(value.strip())
    else:
        raise InvalidAmountError("amount must be an integer (string or number)")

    if amount <= 0:
        raise InvalidAmountError("amount must be > 0")
    return amount


def validate_recipient(value: Any) -> str:
    """Check the fixed shield address prefix and return the trimmed address."""
    if not isinstance(value, str) or not value.strip().startswith(SHIELD_ADDRESS_PREFIX):
        raise InvalidRecipientError(
            f"recipient must be a Midnight shield address ({SHIELD_ADDRESS_PREFIX}...)"
        )
    return value.strip()


class SendRequest(BaseModel):
    """Body of POST /api/send."""

    recipient: str
    amount: int

    @field_validator("recipient", mode="before")
    @classmethod
    def check_recipient(cls, v: Any) -> str:
        return validate_recipient(v)

    @field_validator("amount", mode="before")
    @classmethod
    def check_amount(cls, v: Any) -> int:
        return parse_amount(v)
