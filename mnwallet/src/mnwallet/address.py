"""
Shield address handling.

A shield address is a bech32m string (human readable part starting with
``mn_shield-addr_``) whose payload is the recipient's 32-byte coin public key
followed by its encryption public key. Shield addresses routinely exceed the
90 character limit of segwit addresses, so only the bech32 primitives
(charset, polymod, bit conversion) are borrowed from the ``bech32`` package.
"""

from __future__ import annotations

from dataclasses import dataclass

import bech32

from mnwallet.constants import SHIELD_ADDRESS_PREFIX, TESTNET_ADDRESS_HRP
from mnwallet.errors import InvalidRecipientError
from mnwallet.models import validate_recipient

BECH32M_CONST = 0x2BC830A3
COIN_PUBLIC_KEY_LENGTH = 32
CHECKSUM_LENGTH = 6


@dataclass(frozen=True)
class RecipientKeys:
    """Coin / encryption public key pair a manual output is paid to (hex)."""

    coin_public_key: str
    encryption_public_key: str


@dataclass(frozen=True)
class ShieldAddress:
    hrp: str
    keys: RecipientKeys

    @property
    def is_testnet(self) -> bool:
        return self.hrp == TESTNET_ADDRESS_HRP


def _checksum(hrp: str, data: list[int]) -> list[int]:
    values = bech32.bech32_hrp_expand(hrp) + data
    polymod = bech32.bech32_polymod(values + [0] * CHECKSUM_LENGTH) ^ BECH32M_CONST
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(CHECKSUM_LENGTH)]


def encode_shield_address(
    coin_public_key: bytes, encryption_public_key: bytes, hrp: str = TESTNET_ADDRESS_HRP
) -> str:
    """Encode a key pair as a bech32m shield address."""
    if len(coin_public_key) != COIN_PUBLIC_KEY_LENGTH:
        raise ValueError(f"Coin public key must be {COIN_PUBLIC_KEY_LENGTH} bytes")
    if not hrp.startswith(SHIELD_ADDRESS_PREFIX):
        raise ValueError(f"HRP must start with {SHIELD_ADDRESS_PREFIX}")

    data = bech32.convertbits(list(coin_public_key + encryption_public_key), 8, 5)
    if data is None:
        raise ValueError("Failed to convert key bytes")
    return hrp + "1" + "".join(bech32.CHARSET[d] for d in data + _checksum(hrp, data))


def decode_shield_address(address: str) -> ShieldAddress:
    """
    Decode a shield address into its key pair.

    Raises:
        InvalidRecipientError: If the prefix, characters, checksum or payload
            length are wrong.
    """
    address = validate_recipient(address)
    if address.lower() != address and address.upper() != address:
        raise InvalidRecipientError("Shield address must not mix upper and lower case")

    text = address.lower()
    separator = text.rfind("1")
    hrp, payload = text[:separator], text[separator + 1 :]
    if not hrp.startswith(SHIELD_ADDRESS_PREFIX) or len(payload) <= CHECKSUM_LENGTH:
        raise InvalidRecipientError(f"Malformed shield address: {address[:32]}...")

    try:
        data = [bech32.CHARSET.index(c) for c in payload]
    except ValueError:
        raise InvalidRecipientError("Shield address contains non-bech32 characters") from None

    if bech32.bech32_polymod(bech32.bech32_hrp_expand(hrp) + data) != BECH32M_CONST:
        raise InvalidRecipientError("Shield address checksum mismatch")

    raw = bech32.convertbits(data[:-CHECKSUM_LENGTH], 5, 8, False)
    if raw is None or len(raw) <= COIN_PUBLIC_KEY_LENGTH:
        raise InvalidRecipientError("Shield address payload too short for a key pair")

    key_bytes = bytes(raw)
    return ShieldAddress(
        hrp=hrp,
        keys=RecipientKeys(
            coin_public_key=key_bytes[:COIN_PUBLIC_KEY_LENGTH].hex(),
            encryption_public_key=key_bytes[COIN_PUBLIC_KEY_LENGTH:].hex(),
        ),
    )

