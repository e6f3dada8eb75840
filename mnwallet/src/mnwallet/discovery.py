"""
Wallet provider discovery.

Providers are looked up in a namespace mapping (the analogue of an injected
``window.midnight`` object). Installed packages can inject providers through
the ``mnwallet.providers`` entry point group.
"""

from __future__ import annotations

from collections.abc import Mapping
from importlib.metadata import entry_points
from typing import Any

from loguru import logger

from mnwallet.constants import PREFERRED_PROVIDER_NAMES, PROVIDER_ENTRY_POINT_GROUP
from mnwallet.errors import ProviderNotFoundError

_SCALAR_TYPES = (str, bytes, bytearray, int, float, complex, bool)


def is_provider_like(value: Any) -> bool:
    """Only objects can be providers; scalars and None never are."""
    return value is not None and not isinstance(value, _SCALAR_TYPES)


def discover_provider(
    namespace: Any,
    preferred: tuple[str, ...] = PREFERRED_PROVIDER_NAMES,
) -> tuple[str, Any]:
    """
    Pick a provider handle from the namespace.

    Known names are tried in priority order; failing that the first entry
    holding an object wins.

    Returns:
        (name, handle)

    Raises:
        ProviderNotFoundError: If the namespace is missing or holds no provider
    """
    if not isinstance(namespace, Mapping):
        raise ProviderNotFoundError(
            "Wallet not injected: provider namespace is missing. "
            "Install and unlock a Midnight wallet provider."
        )

    for name in preferred:
        handle = namespace.get(name)
        if is_provider_like(handle):
            logger.debug(f"Selected preferred provider '{name}'")
            return name, handle

    for name, handle in namespace.items():
        if is_provider_like(handle):
            logger.debug(f"Selected first available provider '{name}'")
            return str(name), handle

    keys = ", ".join(str(k) for k in namespace) or "(none)"
    raise ProviderNotFoundError(f"Midnight wallet not detected. Providers found: {keys}")


def load_injected_providers(group: str = PROVIDER_ENTRY_POINT_GROUP) -> dict[str, Any]:
    """Build a provider namespace from installed entry points."""
    namespace: dict[str, Any] = {}
    for ep in entry_points(group=group):
        try:
            namespace[ep.name] = ep.load()
        except Exception as e:
            logger.warning(f"Failed to load provider entry point '{ep.name}': {e}")
    return namespace
