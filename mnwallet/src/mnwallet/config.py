"""
Configuration management for the wallet adapter service.
"""

from __future__ import annotations

from typing import Literal

from mnemonic import Mnemonic
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mnwallet.assembler import CoinSelection
from mnwallet.constants import (
    DEFAULT_INDEXER_HTTP,
    DEFAULT_INDEXER_WS,
    DEFAULT_PROVER_HTTP,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RPC_HTTP,
    DEFAULT_SYNC_WAIT_SECONDS,
    DEFAULT_WALLET_DAEMON_URL,
    DEMO_SEED_HEX,
    MNEMONIC_WORD_COUNT,
    SEED_HEX_LENGTH,
)
from mnwallet.models import NetworkId


def normalize_seed_hex(value: str) -> str:
    """Lower-case 64 hex chars with any ``0x`` prefix removed."""
    seed = value.strip()
    if seed[:2].lower() == "0x":
        seed = seed[2:]
    if len(seed) != SEED_HEX_LENGTH:
        raise ValueError(f"seed must be {SEED_HEX_LENGTH} hex chars (32 bytes), got {len(seed)}")
    try:
        bytes.fromhex(seed)
    except ValueError:
        raise ValueError("seed must contain only hex characters") from None
    return seed.lower()


def mnemonic_to_seed_hex(phrase: str) -> str:
    """
    Wallet seed of a BIP-39 mnemonic, as 64 hex chars.

    The seed is the mnemonic's 32 bytes of entropy, so only 24-word phrases
    qualify.

    Raises:
        ValueError: If the phrase is not a valid 24-word English BIP-39 mnemonic
    """
    words = " ".join(phrase.lower().split())
    count = len(words.split())
    if count != MNEMONIC_WORD_COUNT:
        raise ValueError(f"mnemonic must have {MNEMONIC_WORD_COUNT} words, got {count}")
    mnemo = Mnemonic("english")
    if not mnemo.check(words):
        raise ValueError("mnemonic is not valid BIP-39 (check words and order)")
    return bytes(mnemo.to_entropy(words)).hex()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    indexer_http: str = DEFAULT_INDEXER_HTTP
    indexer_ws: str = DEFAULT_INDEXER_WS
    rpc_http: str = DEFAULT_RPC_HTTP
    prover_http: str = DEFAULT_PROVER_HTTP

    seed_hex: str = DEMO_SEED_HEX
    # Used for the seed when SEED_HEX is not set
    mnemonic: str | None = Field(default=None, repr=False)
    network: NetworkId = NetworkId.TESTNET

    # "daemon" builds a self-hosted session, "injected" uses installed provider entry points
    provider: Literal["daemon", "injected"] = "daemon"
    wallet_daemon_url: str = DEFAULT_WALLET_DAEMON_URL

    host: str = "0.0.0.0"
    port: int = 8787

    log_level: str = "INFO"

    sync_on_start: bool = True
    sync_wait_seconds: float = DEFAULT_SYNC_WAIT_SECONDS

    manual_fee: int = 0
    coin_selection: CoinSelection = CoinSelection.FIRST_FIT

    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    @field_validator("seed_hex")
    @classmethod
    def validate_seed_hex(cls, v: str) -> str:
        return normalize_seed_hex(v)

    @field_validator("mnemonic")
    @classmethod
    def validate_mnemonic(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        mnemonic_to_seed_hex(v)
        return " ".join(v.lower().split())

    @field_validator("manual_fee")
    @classmethod
    def validate_manual_fee(cls, v: int) -> int:
        if v < 0:
            raise ValueError("manual_fee must be >= 0")
        return v

    @model_validator(mode="after")
    def derive_seed_from_mnemonic(self) -> Settings:
        if self.mnemonic and "seed_hex" not in self.model_fields_set:
            self.seed_hex = mnemonic_to_seed_hex(self.mnemonic)
        return self

    @property
    def seed(self) -> bytes:
        return bytes.fromhex(self.seed_hex)

    @property
    def uses_demo_seed(self) -> bool:
        return self.seed_hex == DEMO_SEED_HEX


def get_settings() -> Settings:
    return Settings()
