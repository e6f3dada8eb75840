"""
Tests for wallet provider discovery.
"""

from types import SimpleNamespace

import pytest

from mnwallet import discovery
from mnwallet.discovery import discover_provider, is_provider_like, load_injected_providers
from mnwallet.errors import ProviderNotFoundError


class TestDiscoverProvider:
    def test_preferred_name_wins_over_order(self) -> None:
        """mnLace is chosen even when other providers come first."""
        lace, mn_lace = SimpleNamespace(), SimpleNamespace()
        name, handle = discover_provider({"custom": object(), "lace": lace, "mnLace": mn_lace})
        assert name == "mnLace"
        assert handle is mn_lace

    def test_falls_back_to_first_object_entry(self) -> None:
        custom = {"enable": lambda: None}
        name, handle = discover_provider({"version": "1.0", "count": 3, "custom": custom})
        assert name == "custom"
        assert handle is custom

    def test_scalar_preferred_entry_is_skipped(self) -> None:
        wallet = SimpleNamespace()
        name, _ = discover_provider({"mnLace": "not-a-provider", "lace": wallet})
        assert name == "lace"

    def test_no_object_entry_lists_keys(self) -> None:
        with pytest.raises(ProviderNotFoundError, match="version, flag"):
            discover_provider({"version": "1.0", "flag": True})

    def test_empty_namespace(self) -> None:
        with pytest.raises(ProviderNotFoundError, match=r"\(none\)"):
            discover_provider({})

    @pytest.mark.parametrize("namespace", [None, "window.midnight", 42, ["lace"]])
    def test_missing_namespace(self, namespace: object) -> None:
        with pytest.raises(ProviderNotFoundError, match="not injected"):
            discover_provider(namespace)


def test_is_provider_like() -> None:
    assert is_provider_like({})
    assert is_provider_like(SimpleNamespace())
    assert not is_provider_like(None)
    assert not is_provider_like("lace")
    assert not is_provider_like(0)
    assert not is_provider_like(b"\x00")


class _EntryPoint:
    def __init__(self, name: str, value: object = None, error: Exception | None = None):
        self.name = name
        self._value = value
        self._error = error

    def load(self) -> object:
        if self._error is not None:
            raise self._error
        return self._value


def test_load_injected_providers_skips_broken_entry_points(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    wallet = SimpleNamespace()
    seen_groups = []

    def fake_entry_points(group: str) -> list[_EntryPoint]:
        seen_groups.append(group)
        return [
            _EntryPoint("mnLace", wallet),
            _EntryPoint("broken", error=ImportError("missing dependency")),
        ]

    monkeypatch.setattr(discovery, "entry_points", fake_entry_points)

    namespace = load_injected_providers()

    assert seen_groups == ["mnwallet.providers"]
    assert namespace == {"mnLace": wallet}
