"""
Capability detection for wallet provider handles.

Wallet builds in the wild disagree on which operations exist and what they are
called. Probing resolves every known alias once, at connect time, into a
ProviderAdapter that exposes one coroutine per capability. Probing never calls
the operations it finds and never evaluates properties.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger

from mnwallet.constants import DEFAULT_STATE_STREAM_TIMEOUT
from mnwallet.discovery import is_provider_like
from mnwallet.errors import CapabilityUnavailableError


class Capability(str, Enum):
    ENABLE = "enable"
    STATE = "state"
    STATE_SERIALIZATION = "state_serialization"
    STATE_SUBSCRIPTION = "state_subscription"
    COIN_ENUMERATION = "coin_enumeration"
    BALANCE_AND_PROVE = "balance_and_prove"
    TRANSFER_RECIPE = "transfer_recipe"
    PROVE = "prove"
    SUBMIT = "submit"
    SIGN_AND_SUBMIT = "sign_and_submit"
    ADDRESS_GETTER = "address_getter"
    ADDRESS_CODEC = "address_codec"
    SERVICE_CONFIG = "service_config"
    CLOSE = "close"


# Recognised method names per capability, in the order they are tried
METHOD_ALIASES: dict[Capability, tuple[str, ...]] = {
    Capability.ENABLE: ("enable",),
    Capability.STATE: ("state", "get_state"),
    Capability.STATE_SERIALIZATION: ("serializeState", "serialize_state"),
    Capability.STATE_SUBSCRIPTION: ("subscribe", "subscribeState", "subscribe_state"),
    Capability.COIN_ENUMERATION: (
        "listCoins",
        "list_coins",
        "getUtxos",
        "get_utxos",
        "coins",
    ),
    Capability.BALANCE_AND_PROVE: (
        "balanceAndProveTransaction",
        "balance_and_prove_transaction",
    ),
    Capability.TRANSFER_RECIPE: ("transferTransaction", "transfer_transaction"),
    Capability.PROVE: ("proveTransaction", "prove_transaction"),
    Capability.SUBMIT: ("submitTransaction", "submit_transaction"),
    Capability.SIGN_AND_SUBMIT: ("signAndSubmitTx", "sign_and_submit_tx"),
    Capability.ADDRESS_GETTER: (
        "getShieldAddress",
        "get_shield_address",
        "shieldAddress",
        "getReceivingAddress",
        "get_receiving_address",
        "receivingAddress",
        "getAddress",
        "get_address",
        "address",
        "getAddresses",
        "get_addresses",
    ),
    Capability.ADDRESS_CODEC: (
        "parseAddress",
        "parse_address",
        "decodeAddress",
        "decode_address",
        "decode",
        "fromBech32m",
    ),
    Capability.SERVICE_CONFIG: ("serviceUriConfig", "service_uri_config"),
    Capability.CLOSE: ("close",),
}


def data_attribute(handle: Any, name: str) -> Any:
    """Plain attribute value of the handle; properties are not evaluated."""
    if isinstance(handle, Mapping):
        return handle.get(name)
    try:
        static = inspect.getattr_static(handle, name)
    except AttributeError:
        return None
    if isinstance(static, property):
        return None
    return getattr(handle, name, None)


def resolve_method(handle: Any, name: str) -> Callable[..., Any] | None:
    """Return the callable named ``name`` on the handle without invoking anything."""
    candidate = data_attribute(handle, name)
    return candidate if callable(candidate) else None


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


_UNSUBSCRIBE_METHODS = ("unsubscribe", "close", "cancel", "dispose")


def is_stream(value: Any) -> bool:
    """True for observable-like values that deliver snapshots through ``subscribe(cb)``."""
    return resolve_method(value, "subscribe") is not None


async def release_subscription(handle: Any) -> None:
    """Unsubscribe a handle returned by ``subscribe``, whatever it calls the operation."""
    for name in _UNSUBSCRIBE_METHODS:
        method = resolve_method(handle, name)
        if method is not None:
            await maybe_await(method())
            return
    if callable(handle):
        await maybe_await(handle())


async def first_emission(
    stream: Any, timeout: float | None = DEFAULT_STATE_STREAM_TIMEOUT
) -> Any:
    """
    Subscribe to a snapshot stream, take its first emission and unsubscribe.

    Raises:
        asyncio.TimeoutError: If nothing is emitted within ``timeout`` seconds
    """
    received: asyncio.Future[Any] = asyncio.get_running_loop().create_future()

    def on_next(value: Any) -> None:
        if not received.done():
            received.set_result(value)

    subscribe = resolve_method(stream, "subscribe")
    if subscribe is None:
        raise TypeError(f"{type(stream).__name__} has no subscribe()")

    handle = await maybe_await(subscribe(on_next))
    try:
        return await asyncio.wait_for(received, timeout)
    finally:
        if handle is not None:
            await release_subscription(handle)


@dataclass(frozen=True)
class CapabilitySet:
    supported: frozenset[Capability] = frozenset()

    def __contains__(self, capability: object) -> bool:
        return capability in self.supported

    @property
    def has_high_level_transfer(self) -> bool:
        return Capability.BALANCE_AND_PROVE in self.supported or (
            Capability.TRANSFER_RECIPE in self.supported and Capability.PROVE in self.supported
        )

    @property
    def can_submit(self) -> bool:
        return bool({Capability.SUBMIT, Capability.SIGN_AND_SUBMIT} & self.supported)

    @property
    def can_enumerate_coins(self) -> bool:
        """Coins can be listed directly or mined out of wallet state."""
        return bool(
            {Capability.COIN_ENUMERATION, Capability.STATE, Capability.STATE_SERIALIZATION}
            & self.supported
        )

    def to_dict(self) -> dict[str, bool]:
        return {capability.value: capability in self.supported for capability in Capability}


def probe_capabilities(handle: Any) -> CapabilitySet:
    return CapabilitySet(
        frozenset(
            capability
            for capability, names in METHOD_ALIASES.items()
            if any(resolve_method(handle, name) is not None for name in names)
        )
    )


class ProviderAdapter:
    """
    A provider handle with its capabilities resolved.

    Build it with ``connect()`` so the optional ``enable()`` handshake runs.
    """

    def __init__(
        self,
        handle: Any,
        name: str = "provider",
        state_timeout: float = DEFAULT_STATE_STREAM_TIMEOUT,
    ):
        self.handle = handle
        self.name = name
        self.state_timeout = state_timeout
        self.metadata: dict[str, Any] = {}
        self._methods: dict[Capability, list[tuple[str, Callable[..., Any]]]] = {}

        for capability, names in METHOD_ALIASES.items():
            found = []
            for method_name in names:
                method = resolve_method(handle, method_name)
                if method is not None:
                    found.append((method_name, method))
            if found:
                self._methods[capability] = found

        self.capabilities = CapabilitySet(frozenset(self._methods))

    @classmethod
    async def connect(cls, handle: Any, name: str = "provider") -> ProviderAdapter:
        """
        Enable the provider (best effort) and probe its capabilities.

        Some builds return the usable API object from ``enable()``; it is used
        in place of the provider when it exposes any capability of its own.
        """
        api = handle
        enable = resolve_method(handle, "enable")
        if enable is not None:
            try:
                enabled = await maybe_await(enable())
            except Exception as e:
                logger.debug(f"Provider '{name}' enable() failed, continuing without it: {e}")
            else:
                if is_provider_like(enabled) and (
                    probe_capabilities(enabled).supported - {Capability.ENABLE}
                ):
                    api = enabled

        adapter = cls(api, name)
        await adapter.load_metadata(handle)
        logger.info(
            f"Connected to provider '{name}' "
            f"({', '.join(sorted(c.value for c in adapter.capabilities.supported)) or 'no capabilities'})"
        )
        return adapter

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def method_names(self, capability: Capability | None = None) -> list[str]:
        if capability is not None:
            return [name for name, _ in self._methods.get(capability, [])]
        return sorted({name for methods in self._methods.values() for name, _ in methods})

    async def call(self, capability: Capability, *args: Any, **kwargs: Any) -> Any:
        methods = self._methods.get(capability)
        if not methods:
            raise CapabilityUnavailableError(
                f"Provider '{self.name}' does not support {capability.value}"
            )
        method_name, method = methods[0]
        logger.debug(f"Calling {self.name}.{method_name}()")
        return await maybe_await(method(*args, **kwargs))

    async def state_source(self) -> Any:
        """Raw ``state()`` result: a snapshot or a stream of snapshots."""
        return await self.call(Capability.STATE)

    async def state(self) -> Any:
        """Current snapshot. A stream is read for its first emission."""
        source = await self.state_source()
        if is_stream(source):
            return await first_emission(source, self.state_timeout)
        return source

    async def serialize_state(self) -> Any:
        return await self.call(Capability.STATE_SERIALIZATION)

    async def list_coins(self) -> Any:
        return await self.call(Capability.COIN_ENUMERATION)

    async def balance_and_prove(self, transfers: list[dict[str, Any]]) -> Any:
        return await self.call(Capability.BALANCE_AND_PROVE, {"transfers": transfers})

    async def transfer_transaction(self, transfers: list[dict[str, Any]]) -> Any:
        return await self.call(Capability.TRANSFER_RECIPE, transfers)

    async def prove_transaction(self, recipe: Any) -> Any:
        return await self.call(Capability.PROVE, recipe)

    async def submit(self, transaction: Any) -> Any:
        return await self.call(Capability.SUBMIT, transaction)

    async def sign_and_submit(self, data: bytes) -> Any:
        return await self.call(Capability.SIGN_AND_SUBMIT, data)

    async def load_metadata(self, provider: Any) -> None:
        """
        Record the wallet name, API version and service URIs, best effort.

        ``provider`` is the handle as discovered, before ``enable()``; injected
        providers keep these there rather than on the enabled API.
        """
        for key, attribute in (("walletName", "name"), ("apiVersion", "apiVersion")):
            value = data_attribute(provider, attribute)
            if isinstance(value, str) and value:
                self.metadata[key] = value

        methods = list(self._methods.get(Capability.SERVICE_CONFIG, []))
        methods += [
            (name, method)
            for name in METHOD_ALIASES[Capability.SERVICE_CONFIG]
            if (method := resolve_method(provider, name)) is not None
        ]
        if not methods:
            return

        method_name, method = methods[0]
        try:
            uris = await maybe_await(method())
        except Exception as e:
            logger.debug(f"{self.name}.{method_name}() failed: {e}")
            return
        if isinstance(uris, Mapping):
            self.metadata["serviceUris"] = {
                str(k): v for k, v in uris.items() if isinstance(v, str)
            }

    def address_getters(self) -> list[tuple[str, Callable[..., Any]]]:
        return list(self._methods.get(Capability.ADDRESS_GETTER, []))

    async def parse_address(self, text: str) -> Any:
        """Run the provider's address codec, returning None when nothing parses."""
        for method_name, method in self._methods.get(Capability.ADDRESS_CODEC, []):
            try:
                parsed = await maybe_await(method(text))
            except Exception as e:
                logger.debug(f"{self.name}.{method_name}() could not parse address: {e}")
                continue
            if parsed:
                return parsed
        return None

    async def close(self) -> None:
        if self.supports(Capability.CLOSE):
            await self.call(Capability.CLOSE)

    def describe(self) -> dict[str, Any]:
        return {
            "provider": self.name,
            "capabilities": self.capabilities.to_dict(),
            "methods": self.method_names(),
            "wallet": dict(self.metadata),
        }
