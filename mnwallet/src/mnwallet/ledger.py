"""
Offer and transaction primitives for manual tDUST transfers.

Covers the part of the ledger needed to spend owned coins without the wallet's
help:
- SecretKeys derived from the wallet seed (change goes back to these keys)
- Unproven inputs (coin spends) and outputs (payments to a key pair)
- Offers, which merge across token types without duplicating inputs
- Unproven transactions and their proof-erased, network-scoped byte form
"""

from __future__ import annotations

import hashlib
import hmac
import struct
from dataclasses import dataclass, field

from coincurve import PrivateKey

from mnwallet.constants import MAX_COIN_VALUE
from mnwallet.models import Coin, NetworkId

TRANSACTION_MAGIC = b"MNTX"
TRANSACTION_VERSION = 1

# Written wherever a zero-knowledge proof would sit in a proven transaction
PROOF_ERASED_MARKER = b"\x00"


def varint(n: int) -> bytes:
    """Encode integer as a compact-size varint."""
    if n < 0xFD:
        return bytes([n])
    elif n <= 0xFFFF:
        return bytes([0xFD]) + struct.pack("<H", n)
    elif n <= 0xFFFFFFFF:
        return bytes([0xFE]) + struct.pack("<I", n)
    else:
        return bytes([0xFF]) + struct.pack("<Q", n)


def encode_u128(value: int) -> bytes:
    if value < 0 or value > MAX_COIN_VALUE:
        raise ValueError(f"Value out of range for u128: {value}")
    return value.to_bytes(16, "little")


def encode_i128(value: int) -> bytes:
    return value.to_bytes(16, "little", signed=True)


def key_bytes(key: str) -> bytes:
    """Hex keys are decoded, anything else (e.g. bech32m key strings) is taken as text."""
    try:
        return bytes.fromhex(key)
    except ValueError:
        return key.encode()


def length_prefixed(data: bytes) -> bytes:
    return varint(len(data)) + data


def tagged_hash(tag: str, *parts: bytes) -> bytes:
    h = hashlib.sha256(tag.encode())
    for part in parts:
        h.update(length_prefixed(part))
    return h.digest()


@dataclass(frozen=True)
class SecretKeys:
    """Wallet key material: a coin key pair and an encryption key pair."""

    coin_secret_key: bytes = field(repr=False)
    encryption_secret_key: bytes = field(repr=False)

    @classmethod
    def from_seed(cls, seed: bytes) -> SecretKeys:
        if len(seed) != 32:
            raise ValueError(f"Seed must be 32 bytes, got {len(seed)}")
        return cls(
            coin_secret_key=hmac.new(b"midnight:coin-sk", seed, hashlib.sha256).digest(),
            encryption_secret_key=hmac.new(b"midnight:enc-sk", seed, hashlib.sha256).digest(),
        )

    @property
    def coin_public_key(self) -> str:
        return tagged_hash("midnight:cpk", self.coin_secret_key).hex()

    @property
    def encryption_public_key(self) -> str:
        return PrivateKey(self.encryption_secret_key).public_key.format(compressed=True).hex()


@dataclass(frozen=True)
class CoinInfo:
    """An unqualified coin: not yet placed in the commitment tree."""

    type: str
    nonce: str
    value: int


def create_coin_info(token_type: str, value: int, entropy: bytes) -> CoinInfo:
    """
    Create coin info for a new output.

    The nonce is derived from caller supplied entropy rather than drawn at
    random, so the same spend produces the same bytes.
    """
    nonce = tagged_hash(
        "midnight:coin-nonce", key_bytes(token_type), encode_u128(value), entropy
    ).hex()
    return CoinInfo(type=token_type, nonce=nonce, value=value)


@dataclass(frozen=True)
class UnprovenInput:
    coin: Coin
    nullifier: str
    segment: int = 0

    def serialize(self) -> bytes:
        return bytes.fromhex(self.nullifier) + struct.pack("<H", self.segment) + PROOF_ERASED_MARKER


def spend(keys: SecretKeys, coin: Coin, segment: int = 0) -> UnprovenInput:
    """Spend an owned coin, producing its input and nullifier."""
    nullifier = tagged_hash(
        "midnight:nullifier",
        keys.coin_secret_key,
        key_bytes(coin.type),
        key_bytes(coin.nonce),
        encode_u128(coin.value),
        struct.pack("<Q", coin.mt_index),
    ).hex()
    return UnprovenInput(coin=coin, nullifier=nullifier, segment=segment)


@dataclass(frozen=True)
class UnprovenOutput:
    coin: CoinInfo
    segment: int
    coin_public_key: str
    encryption_public_key: str

    @classmethod
    def new(
        cls, coin: CoinInfo, segment: int, coin_public_key: str, encryption_public_key: str
    ) -> UnprovenOutput:
        return cls(
            coin=coin,
            segment=segment,
            coin_public_key=coin_public_key,
            encryption_public_key=encryption_public_key,
        )

    @property
    def commitment(self) -> str:
        return tagged_hash(
            "midnight:commitment",
            key_bytes(self.coin.type),
            key_bytes(self.coin.nonce),
            encode_u128(self.coin.value),
            key_bytes(self.coin_public_key),
        ).hex()

    def serialize(self) -> bytes:
        return (
            bytes.fromhex(self.commitment)
            + struct.pack("<H", self.segment)
            + length_prefixed(key_bytes(self.encryption_public_key))
            + PROOF_ERASED_MARKER
        )


@dataclass(frozen=True)
class UnprovenOffer:
    """
    Inputs and outputs plus the net value each token type contributes.

    Inputs add to a token's delta and outputs subtract from it, so a balanced
    offer has non-negative deltas (the surplus pays fees).
    """

    inputs: tuple[UnprovenInput, ...] = ()
    outputs: tuple[UnprovenOutput, ...] = ()
    deltas: tuple[tuple[str, int], ...] = ()

    @classmethod
    def from_input(cls, inp: UnprovenInput, token_type: str, value: int) -> UnprovenOffer:
        return cls(inputs=(inp,), deltas=((token_type, value),))

    @classmethod
    def from_output(cls, out: UnprovenOutput, token_type: str, value: int) -> UnprovenOffer:
        return cls(outputs=(out,), deltas=((token_type, -value),))

    def merge(self, other: UnprovenOffer) -> UnprovenOffer:
        """
        Merge two offers.

        The result is canonically ordered, so merging is commutative.

        Raises:
            ValueError: If both offers spend the same coin or create the same output
        """
        shared_inputs = {i.nullifier for i in self.inputs} & {i.nullifier for i in other.inputs}
        if shared_inputs:
            raise ValueError(f"Offer merge would spend {len(shared_inputs)} coin(s) twice")
        shared_outputs = {o.commitment for o in self.outputs} & {
            o.commitment for o in other.outputs
        }
        if shared_outputs:
            raise ValueError(f"Offer merge would duplicate {len(shared_outputs)} output(s)")

        deltas = dict(self.deltas)
        for token_type, value in other.deltas:
            deltas[token_type] = deltas.get(token_type, 0) + value

        return UnprovenOffer(
            inputs=tuple(sorted(self.inputs + other.inputs, key=lambda i: i.nullifier)),
            outputs=tuple(sorted(self.outputs + other.outputs, key=lambda o: o.commitment)),
            deltas=tuple(sorted(deltas.items())),
        )

    def delta(self, token_type: str) -> int:
        return dict(self.deltas).get(token_type, 0)

    def serialize(self) -> bytes:
        result = varint(len(self.inputs))
        for inp in self.inputs:
            result += inp.serialize()
        result += varint(len(self.outputs))
        for out in self.outputs:
            result += out.serialize()
        result += varint(len(self.deltas))
        for token_type, value in self.deltas:
            result += length_prefixed(key_bytes(token_type)) + encode_i128(value)
        return result


def _serialize_offers(guaranteed: UnprovenOffer, fallible: UnprovenOffer | None) -> bytes:
    body = guaranteed.serialize()
    if fallible is None:
        return body + b"\x00"
    return body + b"\x01" + fallible.serialize()


@dataclass(frozen=True)
class ProofErasedTransaction:
    """Transaction with every proof slot erased. Cannot be turned back into a proven one."""

    guaranteed: UnprovenOffer
    fallible: UnprovenOffer | None = None

    def serialize(self, network_id: NetworkId) -> bytes:
        return (
            TRANSACTION_MAGIC
            + bytes([TRANSACTION_VERSION, network_id.wire_id])
            + _serialize_offers(self.guaranteed, self.fallible)
        )

    def identifiers(self) -> list[str]:
        return [tagged_hash("midnight:tx-id", _serialize_offers(self.guaranteed, self.fallible)).hex()]

    def delta(self, token_type: str) -> int:
        total = self.guaranteed.delta(token_type)
        if self.fallible is not None:
            total += self.fallible.delta(token_type)
        return total


@dataclass(frozen=True)
class UnprovenTransaction:
    guaranteed: UnprovenOffer
    fallible: UnprovenOffer | None = None

    def erase_proofs(self) -> ProofErasedTransaction:
        return ProofErasedTransaction(guaranteed=self.guaranteed, fallible=self.fallible)
