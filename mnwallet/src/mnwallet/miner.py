"""
Fact mining over opaque wallet state.

Wallet builds return state in many shapes: plain mappings, SDK objects, JSON
strings, sometimes with reference cycles. The miner runs ordered rule lists
over a state tree and stops at the first rule that yields a fact:

1. direct well-known fields
2. well-known arrays
3. depth-first traversal of the whole graph (cycle-safe)
4. regex over the JSON text

Coins are the exception: every structural match is collected and the result
is deduplicated. Inputs are never mutated.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Callable, Iterator, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from mnwallet.constants import (
    NATIVE_TOKEN_TAGS,
    SHIELD_ADDRESS_PREFIX,
    TDUST_TOKEN_TYPE,
)
from mnwallet.models import Coin

_ADDRESS_FIELDS = (
    "address",
    "shieldAddress",
    "shield_address",
    "receivingAddress",
    "receiving_address",
)
_ADDRESS_CONTAINERS = ("account", "wallet")
_ADDRESS_ARRAYS = ("addresses", "accounts", "wallets")

_BALANCE_ARRAYS = ("balances", "assets", "coins")
_TOKEN_LABEL_FIELDS = ("asset", "ticker", "symbol", "denom", "unit", "type")
_AMOUNT_FIELDS = ("amount", "balance", "value", "quantity")

_COIN_ARRAYS = ("coins", "availableCoins", "available_coins", "utxos")
_COIN_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "type": ("type", "token", "tokenType", "token_type", "color", "asset"),
    "nonce": ("nonce", "randomness", "rand"),
    "value": ("value", "amount", "balance", "quantity"),
    "mt_index": (
        "mt_index",
        "mtIndex",
        "merkleIndex",
        "merkle_index",
        "index",
        "treeIndex",
        "tree_index",
        "idx",
    ),
}

_SYNC_FLAGS = ("synced", "isSynced", "is_synced", "atTip", "at_tip")

_DECIMAL_TEXT_RE = re.compile(r"^\d+(?:\.\d+)?$")
_INT_TEXT_RE = re.compile(r"^\d+$")

_SEQUENCE_TYPES = (list, tuple, set, frozenset)
_LEAF_TYPES = (str, bytes, bytearray, int, float, complex, bool, Decimal)


def fields_of(node: Any) -> Mapping[str, Any] | None:
    """Named fields of a node without evaluating properties."""
    if isinstance(node, Mapping):
        return node
    if node is None or isinstance(node, _LEAF_TYPES + _SEQUENCE_TYPES):
        return None
    try:
        return vars(node)
    except TypeError:
        return None


def _children(node: Any) -> list[Any]:
    if isinstance(node, _SEQUENCE_TYPES):
        return list(node)
    fields = fields_of(node)
    return list(fields.values()) if fields is not None else []


def walk(tree: Any) -> Iterator[Any]:
    """
    Depth-first, pre-order traversal of every container node in the graph.

    Each node is yielded once (visited set keyed on ``id``), so cyclic graphs
    terminate.
    """
    seen: set[int] = set()
    stack = [tree]
    while stack:
        node = stack.pop()
        if node is None or isinstance(node, _LEAF_TYPES) or id(node) in seen:
            continue
        seen.add(id(node))
        yield node
        stack.extend(reversed(_children(node)))


def unwrap_state(st: Any) -> Any:
    """State snapshots are sometimes wrapped as ``{"state": ...}``."""
    fields = fields_of(st)
    if fields is not None and fields.get("state") is not None:
        return fields["state"]
    return st


def parse_serialized_state(text: Any) -> Any:
    """Parse serialized state JSON. Floats are kept exact as Decimal."""
    if isinstance(text, (bytes, bytearray)):
        text = text.decode("utf-8", errors="replace")
    if not isinstance(text, str):
        return None
    try:
        return json.loads(text, parse_float=Decimal)
    except ValueError:
        return None


def to_int(value: Any) -> int | None:
    """Integer value of ints, integral decimals/floats and digit strings."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, Decimal):
        if value.is_finite() and value == value.to_integral_value():
            return int(value)
        return None
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        return None
    if isinstance(value, str) and _INT_TEXT_RE.match(value.strip()):
        return int(value.strip())
    return None


def amount_text(value: Any) -> str | None:
    """Render a non-negative amount as a decimal string, never via float arithmetic."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return str(value) if value >= 0 else None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        value = Decimal(repr(value))
    if isinstance(value, Decimal):
        if not value.is_finite() or value < 0:
            return None
        return format(value, "f")
    if isinstance(value, str) and _DECIMAL_TEXT_RE.match(value.strip()):
        return value.strip()
    return None


def _hexish(value: Any) -> str | None:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    return value if isinstance(value, str) else None


def normalize_coin(raw: Any) -> Coin | None:
    """Build a Coin from any of the field spellings wallets use, or None."""
    if isinstance(raw, Coin):
        return raw
    fields = fields_of(raw)
    if fields is None:
        return None

    found: dict[str, Any] = {}
    for name, aliases in _COIN_FIELD_ALIASES.items():
        found[name] = next(
            (fields[alias] for alias in aliases if fields.get(alias) is not None), None
        )

    token_type = _hexish(found["type"])
    nonce = _hexish(found["nonce"])
    value = to_int(found["value"])
    mt_index = to_int(found["mt_index"])
    if token_type is None or nonce is None or value is None or mt_index is None:
        return None
    if value < 0 or mt_index < 0:
        return None
    return Coin(type=token_type, nonce=nonce, value=value, mt_index=mt_index)


def dedupe_coins(coins: list[Coin]) -> list[Coin]:
    unique: dict[tuple[str, str, int, int], Coin] = {}
    for coin in coins:
        unique.setdefault(coin.key, coin)
    return list(unique.values())


def jsonable(value: Any) -> Any:
    """
    JSON-safe copy of a state tree.

    Bytes become hex, Decimals become strings, objects become their fields and
    back-references become ``"[Circular]"``.
    """
    return _jsonable(value, set())


def _jsonable(value: Any, active: set[int]) -> Any:
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Decimal):
        return format(value, "f") if value.is_finite() else str(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, complex):
        return str(value)
    if id(value) in active:
        return "[Circular]"

    active.add(id(value))
    try:
        if isinstance(value, Mapping):
            return {str(k): _jsonable(v, active) for k, v in value.items()}
        if isinstance(value, _SEQUENCE_TYPES):
            return [_jsonable(v, active) for v in value]
        fields = fields_of(value)
        if fields is not None:
            return {
                str(k): _jsonable(v, active) for k, v in fields.items() if not str(k).startswith("_")
            }
        return str(value)
    finally:
        active.discard(id(value))


def dump_state(tree: Any) -> str:
    return json.dumps(jsonable(tree))


def find_sync_flag(tree: Any) -> bool | None:
    """First explicit sync flag (``synced``, ``atTip``, ...) found in the state."""
    for node in walk(tree):
        fields = fields_of(node)
        if fields is None:
            continue
        for flag in _SYNC_FLAGS:
            if isinstance(fields.get(flag), bool):
                return fields[flag]
    return None


Rule = Callable[[Any], Any]


class StateMiner:
    """
    Extracts address, tDUST balance and spendable coins from wallet state.

    Args:
        address_prefix: Fixed prefix every shield address carries
        token_tags: Spellings of the native token in balance payloads
        token_type: Native token type id (balances may be keyed by it)
    """

    def __init__(
        self,
        address_prefix: str = SHIELD_ADDRESS_PREFIX,
        token_tags: tuple[str, ...] = NATIVE_TOKEN_TAGS,
        token_type: str = TDUST_TOKEN_TYPE,
    ):
        self.address_prefix = address_prefix
        self.token_tags = token_tags
        self.token_type = token_type
        self._token_labels = {tag.lower() for tag in token_tags} | {token_type.lower()}
        self._address_re = re.compile(re.escape(address_prefix) + r"[0-9a-z]+", re.IGNORECASE)
        self._balance_res = [
            re.compile(r'"' + re.escape(tag) + r'"\s*:\s*"?(\d+(?:\.\d+)?)', re.IGNORECASE)
            for tag in dict.fromkeys(t.lower() for t in token_tags)
        ]

        self.address_rules: tuple[Rule, ...] = (
            self._address_from_fields,
            self._address_from_arrays,
            self._address_from_graph,
        )
        self.balance_rules: tuple[Rule, ...] = (
            self._balance_from_fields,
            self._balance_from_arrays,
            self._balance_from_graph,
        )
        self.coin_rules: tuple[Rule, ...] = (
            self._coins_from_arrays,
            self._coins_from_graph,
        )

    # Addresses

    def is_address(self, value: Any) -> bool:
        return isinstance(value, str) and value.strip().lower().startswith(self.address_prefix)

    def _address_from_fields(self, node: Any) -> str | None:
        fields = fields_of(node)
        if fields is None:
            return None
        for name in _ADDRESS_FIELDS:
            if self.is_address(fields.get(name)):
                return fields[name].strip()
        for name in _ADDRESS_CONTAINERS:
            inner = fields_of(fields.get(name))
            if inner is not None and self.is_address(inner.get("address")):
                return inner["address"].strip()
        return None

    def _address_from_arrays(self, node: Any) -> str | None:
        fields = fields_of(node)
        if fields is None:
            return None
        for name in _ADDRESS_ARRAYS:
            entries = fields.get(name)
            if not isinstance(entries, (list, tuple)):
                continue
            for entry in entries:
                if self.is_address(entry):
                    return entry.strip()
                found = self._address_from_fields(entry)
                if found:
                    return found
        return None

    def _address_from_graph(self, node: Any) -> str | None:
        for child in walk(node):
            if isinstance(child, _SEQUENCE_TYPES):
                for item in child:
                    if self.is_address(item):
                        return item.strip()
                continue
            fields = fields_of(child)
            if fields is None:
                continue
            for value in fields.values():
                if self.is_address(value):
                    return value.strip()
        return None

    def _address_from_text(self, text: str) -> str | None:
        match = self._address_re.search(text)
        return match.group(0) if match else None

    def mine_address(self, tree: Any, text: str | None = None) -> str | None:
        """First shield address found in the state, or None."""
        for root in _roots(tree):
            for rule in self.address_rules:
                found = rule(root)
                if found:
                    return found
        return self._address_from_text(text if text is not None else _safe_dump(tree))

    # Balances

    def _is_token_label(self, value: Any) -> bool:
        return isinstance(value, str) and value.strip().lower() in self._token_labels

    def _tagged_amount(self, fields: Mapping[str, Any]) -> str | None:
        for key, value in fields.items():
            if self._is_token_label(key):
                found = amount_text(value)
                if found is not None:
                    return found
        return None

    def _balance_from_fields(self, node: Any) -> str | None:
        fields = fields_of(node)
        if fields is None:
            return None
        balances = fields_of(fields.get("balances"))
        if balances is not None:
            found = self._tagged_amount(balances)
            if found is not None:
                return found
        return self._tagged_amount(fields)

    def _entry_amount(self, entry: Any) -> str | None:
        fields = fields_of(entry)
        if fields is None:
            return None
        if not any(self._is_token_label(fields.get(label)) for label in _TOKEN_LABEL_FIELDS):
            return None
        for name in _AMOUNT_FIELDS:
            found = amount_text(fields.get(name))
            if found is not None:
                return found
        return None

    def _balance_from_arrays(self, node: Any) -> str | None:
        fields = fields_of(node)
        if fields is None:
            return None
        for name in _BALANCE_ARRAYS:
            entries = fields.get(name)
            if not isinstance(entries, (list, tuple)):
                continue
            for entry in entries:
                found = self._entry_amount(entry)
                if found is not None:
                    return found
        return None

    def _balance_from_graph(self, node: Any) -> str | None:
        for child in walk(node):
            found = self._balance_from_fields(child) or self._entry_amount(child)
            if found is not None:
                return found
        return None

    def _balance_from_text(self, text: str) -> str | None:
        for pattern in self._balance_res:
            match = pattern.search(text)
            if match:
                return match.group(1)
        return None

    def mine_balance(self, tree: Any, text: str | None = None) -> str | None:
        """tDUST balance as a decimal string, or None."""
        for root in _roots(tree):
            for rule in self.balance_rules:
                found = rule(root)
                if found is not None:
                    return found
        return self._balance_from_text(text if text is not None else _safe_dump(tree))

    # Coins

    def _coins_from_arrays(self, node: Any) -> list[Coin]:
        coins = []
        if isinstance(node, (list, tuple)):
            coins.extend(c for c in map(normalize_coin, node) if c is not None)
        for child in walk(node):
            fields = fields_of(child)
            if fields is None:
                continue
            for name in _COIN_ARRAYS:
                entries = fields.get(name)
                if isinstance(entries, (list, tuple)):
                    coins.extend(c for c in map(normalize_coin, entries) if c is not None)
        return coins

    def _coins_from_graph(self, node: Any) -> list[Coin]:
        return [c for c in map(normalize_coin, walk(node)) if c is not None]

    def mine_coins(self, tree: Any) -> list[Coin]:
        """Every coin-shaped record in the state, deduplicated, arrays first."""
        coins: list[Coin] = []
        for rule in self.coin_rules:
            coins.extend(rule(tree))
        return dedupe_coins(coins)


def _roots(tree: Any) -> list[Any]:
    inner = unwrap_state(tree)
    return [tree] if inner is tree else [tree, inner]


def _safe_dump(tree: Any) -> str:
    if isinstance(tree, str):
        return tree
    try:
        return dump_state(tree)
    except (TypeError, ValueError, RecursionError):
        return ""
