"""
Tests for configuration management.
"""

import pytest
from pydantic import ValidationError

from mnwallet.assembler import CoinSelection
from mnwallet.config import Settings, mnemonic_to_seed_hex, normalize_seed_hex
from mnwallet.constants import DEFAULT_INDEXER_HTTP, DEMO_SEED_HEX
from mnwallet.models import NetworkId


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    for name in (
        "SEED_HEX",
        "MNEMONIC",
        "NETWORK",
        "PROVIDER",
        "PORT",
        "MANUAL_FEE",
        "COIN_SELECTION",
    ):
        monkeypatch.delenv(name, raising=False)


def test_default_settings() -> None:
    settings = Settings()
    assert settings.indexer_http == DEFAULT_INDEXER_HTTP
    assert settings.network == NetworkId.TESTNET
    assert settings.provider == "daemon"
    assert settings.port == 8787
    assert settings.manual_fee == 0
    assert settings.coin_selection == CoinSelection.FIRST_FIT
    assert settings.uses_demo_seed
    assert settings.seed == bytes(32)


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SEED_HEX", "0x" + "AB" * 32)
    monkeypatch.setenv("NETWORK", "devnet")
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("COIN_SELECTION", "aggregate")

    settings = Settings()

    assert settings.seed_hex == "ab" * 32
    assert not settings.uses_demo_seed
    assert settings.network == NetworkId.DEVNET
    assert settings.port == 9000
    assert settings.coin_selection == CoinSelection.AGGREGATE


def test_dotenv_file(tmp_path) -> None:
    (tmp_path / ".env").write_text("PROVIDER=injected\nMANUAL_FEE=3\n")
    settings = Settings()
    assert settings.provider == "injected"
    assert settings.manual_fee == 3


def test_invalid_values() -> None:
    with pytest.raises(ValidationError):
        Settings(seed_hex="1234")
    with pytest.raises(ValidationError):
        Settings(manual_fee=-1)
    with pytest.raises(ValidationError):
        Settings(provider="browser")
    with pytest.raises(ValidationError):
        Settings(network="regtest")


def test_normalize_seed_hex() -> None:
    assert normalize_seed_hex(f"  0X{'F' * 64} ") == "f" * 64
    assert normalize_seed_hex(DEMO_SEED_HEX) == DEMO_SEED_HEX
    with pytest.raises(ValueError, match="64 hex chars"):
        normalize_seed_hex("ab")
    with pytest.raises(ValueError, match="only hex"):
        normalize_seed_hex("zz" * 32)


ZOO_MNEMONIC = " ".join(["zoo"] * 23 + ["vote"])
LEGAL_MNEMONIC = " ".join(
    ["legal", "winner", "thank", "year", "wave", "sausage", "worth", "useful"] * 2
    + ["legal", "winner", "thank", "year", "wave", "sausage", "worth", "title"]
)


def test_mnemonic_to_seed_hex() -> None:
    assert mnemonic_to_seed_hex(ZOO_MNEMONIC) == "ff" * 32
    assert mnemonic_to_seed_hex(f"  {LEGAL_MNEMONIC.upper()}\n") == "7f" * 32


def test_mnemonic_to_seed_hex_rejects_invalid() -> None:
    with pytest.raises(ValueError, match="24 words"):
        mnemonic_to_seed_hex(" ".join(["abandon"] * 11 + ["about"]))
    with pytest.raises(ValueError, match="not valid BIP-39"):
        mnemonic_to_seed_hex(" ".join(["abandon"] * 24))
    with pytest.raises(ValueError, match="not valid BIP-39"):
        mnemonic_to_seed_hex(" ".join(["zoo"] * 23 + ["notaword"]))


def test_mnemonic_setting_derives_seed(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MNEMONIC", ZOO_MNEMONIC)
    settings = Settings()
    assert settings.seed_hex == "ff" * 32
    assert not settings.uses_demo_seed
    assert ZOO_MNEMONIC not in repr(settings)


def test_seed_hex_wins_over_mnemonic(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MNEMONIC", ZOO_MNEMONIC)
    monkeypatch.setenv("SEED_HEX", "01" * 32)
    assert Settings().seed_hex == "01" * 32


def test_invalid_mnemonic_setting() -> None:
    with pytest.raises(ValidationError):
        Settings(mnemonic=" ".join(["abandon"] * 24))
