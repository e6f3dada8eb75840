"""
Tests for state mining.
"""

import copy
import json
from decimal import Decimal
from types import SimpleNamespace

import pytest

from mnwallet.constants import TDUST_TOKEN_TYPE
from mnwallet.miner import (
    StateMiner,
    find_sync_flag,
    jsonable,
    normalize_coin,
    parse_serialized_state,
    to_int,
    unwrap_state,
    walk,
)
from mnwallet.models import Coin

ADDR_A = "mn_shield-addr_test1aaaa"
ADDR_B = "mn_shield-addr_test1bbbb"


@pytest.fixture
def miner() -> StateMiner:
    return StateMiner()


class TestMineAddress:
    def test_direct_field(self, miner: StateMiner) -> None:
        assert miner.mine_address({"address": ADDR_A}) == ADDR_A

    def test_nested_account(self, miner: StateMiner) -> None:
        assert miner.mine_address({"account": {"address": ADDR_A}}) == ADDR_A

    def test_addresses_array(self, miner: StateMiner) -> None:
        assert miner.mine_address({"addresses": ["not-an-address", ADDR_A]}) == ADDR_A

    def test_wrapped_state(self, miner: StateMiner) -> None:
        assert miner.mine_address({"state": {"shieldAddress": ADDR_A}}) == ADDR_A

    def test_deep_traversal(self, miner: StateMiner) -> None:
        tree = {"a": [{"b": {"c": SimpleNamespace(d=ADDR_B)}}]}
        assert miner.mine_address(tree) == ADDR_B

    def test_direct_field_beats_deep_match(self, miner: StateMiner) -> None:
        tree = {"nested": {"deeper": ADDR_B}, "address": ADDR_A}
        assert miner.mine_address(tree) == ADDR_A

    def test_regex_over_text(self, miner: StateMiner) -> None:
        text = '{"opaque": "prefix ' + ADDR_B + ' suffix"}'
        assert miner.mine_address(None, text) == ADDR_B

    def test_plain_string(self, miner: StateMiner) -> None:
        assert miner.mine_address(ADDR_A) == ADDR_A

    def test_not_found(self, miner: StateMiner) -> None:
        assert miner.mine_address({"address": "addr_test1qxyz"}) is None

    def test_cyclic_graph_terminates(self, miner: StateMiner) -> None:
        a: dict = {}
        b: dict = {"back": a}
        a["next"] = b
        a["items"] = [a, b]
        assert miner.mine_address(a) is None

        b["wallet"] = {"address": ADDR_A}
        assert miner.mine_address(a) == ADDR_A

    def test_input_not_mutated(self, miner: StateMiner) -> None:
        tree = {"state": {"accounts": [{"address": ADDR_A}], "balances": {"tDUST": "5"}}}
        before = copy.deepcopy(tree)
        miner.mine_address(tree)
        miner.mine_balance(tree)
        miner.mine_coins(tree)
        assert tree == before


class TestMineBalance:
    def test_balances_tag(self, miner: StateMiner) -> None:
        assert miner.mine_balance({"balances": {"tDUST": "12"}}) == "12"

    def test_balances_by_token_type(self, miner: StateMiner) -> None:
        assert miner.mine_balance({"balances": {TDUST_TOKEN_TYPE: 1000}}) == "1000"

    def test_top_level_tag(self, miner: StateMiner) -> None:
        assert miner.mine_balance({"TDUST": 7}) == "7"

    def test_array_entry(self, miner: StateMiner) -> None:
        tree = {
            "assets": [
                {"symbol": "OTHER", "amount": "1"},
                {"ticker": "tDUST", "quantity": "42"},
            ]
        }
        assert miner.mine_balance(tree) == "42"

    def test_deep_traversal(self, miner: StateMiner) -> None:
        tree = {"wallet": {"summary": {"balances": {"Tdust": "3"}}}}
        assert miner.mine_balance(tree) == "3"

    def test_regex_over_text(self, miner: StateMiner) -> None:
        assert miner.mine_balance(None, '{"x": {"tDUST" : "12.5"}}') == "12.5"

    def test_decimal_preserved_from_json(self, miner: StateMiner) -> None:
        tree = parse_serialized_state('{"balances": {"tDUST": 1.10}}')
        assert miner.mine_balance(tree) == "1.10"

    def test_float_rendered_without_binary_noise(self, miner: StateMiner) -> None:
        assert miner.mine_balance({"tDUST": 0.1}) == "0.1"

    def test_huge_integer(self, miner: StateMiner) -> None:
        value = 2**100 + 1
        assert miner.mine_balance({"balances": {"tDUST": value}}) == str(value)

    def test_negative_ignored(self, miner: StateMiner) -> None:
        assert miner.mine_balance({"balances": {"tDUST": -5}}) is None

    def test_not_found(self, miner: StateMiner) -> None:
        assert miner.mine_balance({"balances": {"ADA": "10"}}) is None


class TestMineCoins:
    def test_aliases_and_dedup(self, miner: StateMiner) -> None:
        tree = {
            "coins": [
                {"type": "aa", "nonce": "01", "value": "10", "mt_index": 0},
                {"token": "aa", "randomness": "01", "amount": 10, "mtIndex": 0},
            ],
            "utxos": [{"tokenType": "aa", "rand": "02", "quantity": 5, "merkleIndex": "3"}],
        }
        coins = miner.mine_coins(tree)
        assert coins == [
            Coin(type="aa", nonce="01", value=10, mt_index=0),
            Coin(type="aa", nonce="02", value=5, mt_index=3),
        ]

    def test_coin_list(self, miner: StateMiner) -> None:
        coins = miner.mine_coins([{"type": "aa", "nonce": "01", "value": 1, "idx": 9}])
        assert coins == [Coin(type="aa", nonce="01", value=1, mt_index=9)]

    def test_coins_anywhere_in_cyclic_graph(self, miner: StateMiner) -> None:
        holder = SimpleNamespace(coin={"color": "bb", "nonce": "07", "balance": 4, "index": 1})
        tree: dict = {"holder": holder}
        holder.parent = tree
        assert miner.mine_coins(tree) == [Coin(type="bb", nonce="07", value=4, mt_index=1)]

    def test_incomplete_records_skipped(self, miner: StateMiner) -> None:
        tree = {"coins": [{"type": "aa", "nonce": "01", "value": 3}, {"nonce": "02"}]}
        assert miner.mine_coins(tree) == []


def test_normalize_coin_bytes_fields() -> None:
    coin = normalize_coin({"type": b"\x01\x02", "nonce": b"\xff", "value": 1, "mt_index": 0})
    assert coin == Coin(type="0102", nonce="ff", value=1, mt_index=0)


def test_normalize_coin_rejects_fractional_value() -> None:
    assert normalize_coin({"type": "a", "nonce": "b", "value": 1.5, "mt_index": 0}) is None


def test_to_int() -> None:
    assert to_int("42") == 42
    assert to_int(Decimal("3")) == 3
    assert to_int(2.0) == 2
    assert to_int(True) is None
    assert to_int("4.5") is None


def test_walk_visits_each_node_once() -> None:
    shared = {"x": 1}
    tree = {"a": shared, "b": shared, "c": [shared]}
    nodes = list(walk(tree))
    assert sum(1 for n in nodes if n is shared) == 1


def test_unwrap_state() -> None:
    inner = {"address": ADDR_A}
    assert unwrap_state({"state": inner}) is inner
    assert unwrap_state(inner) is inner
    assert unwrap_state({"state": None, "x": 1}) == {"state": None, "x": 1}


def test_parse_serialized_state_invalid() -> None:
    assert parse_serialized_state("not json") is None
    assert parse_serialized_state(None) is None
    assert parse_serialized_state(b'{"a": 1}') == {"a": 1}


class TestJsonable:
    def test_cycle_marked(self) -> None:
        a: dict = {"name": "a"}
        a["self"] = a
        assert jsonable(a) == {"name": "a", "self": "[Circular]"}

    def test_shared_reference_is_not_a_cycle(self) -> None:
        shared = [1, 2]
        assert jsonable({"x": shared, "y": shared}) == {"x": [1, 2], "y": [1, 2]}

    def test_special_values(self) -> None:
        value = {
            "bytes": b"\xde\xad",
            "dec": Decimal("1.50"),
            "big": 2**130,
            "obj": SimpleNamespace(a=1, _private=2),
            "tuple": (1, "x"),
        }
        result = jsonable(value)
        assert result == {
            "bytes": "dead",
            "dec": "1.50",
            "big": 2**130,
            "obj": {"a": 1},
            "tuple": [1, "x"],
        }
        json.dumps(result)


def test_find_sync_flag() -> None:
    assert find_sync_flag({"progress": {"synced": True}}) is True
    assert find_sync_flag({"sync": {"atTip": False}}) is False
    assert find_sync_flag({"synced": "yes"}) is None
