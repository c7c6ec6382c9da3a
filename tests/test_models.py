"""Tests for battle records, JSON conversion and config helpers."""

from types import SimpleNamespace

import pytest

from battle_agent import config
from battle_agent.models import (
    MAX_SAFE_JSON_INT,
    Battle,
    PoolState,
    battle_type_name,
    camel_case,
    dex_type_name,
    status_name,
    to_jsonable,
)

from conftest import NOW, ZERO, make_battle


def test_battle_from_tuple():
    battle = Battle.from_tuple(5, make_battle())
    assert battle.id == 5
    assert battle.creator_value_usd == 1_000 * 10**8
    assert battle.end_time == NOW - 3_600 + 86_400
    assert battle.has_opponent
    assert not Battle.from_tuple(6, make_battle(opponent=ZERO)).has_opponent


def test_enum_names_fall_back_to_unknown():
    assert status_name(1) == "ACTIVE"
    assert status_name(9) == "UNKNOWN"
    assert battle_type_name(1) == "FEE"
    assert dex_type_name(1) == "CAMELOT_V3"
    assert dex_type_name(7) == "UNKNOWN"


def test_to_jsonable_stringifies_unsafe_ints():
    state = PoolState(sqrt_price_x96=2**96, tick=-5, protocol_fee=0, lp_fee=3000)
    assert to_jsonable(state) == {"sqrtPriceX96": str(2**96), "tick": -5, "protocolFee": 0, "lpFee": 3000}
    assert to_jsonable([MAX_SAFE_JSON_INT, -(MAX_SAFE_JSON_INT + 1)]) == [MAX_SAFE_JSON_INT, str(-(2**53))]
    assert to_jsonable({1: b"\x01\xff", "ok": True, "snake_key": 1}) == {"1": "0x01ff", "ok": True, "snake_key": 1}


def test_to_jsonable_battle_uses_camel_case_and_uint_strings():
    data = to_jsonable(Battle.from_tuple(5, make_battle()))
    assert data["id"] == "5"
    assert data["creatorValueUsd"] == str(1_000 * 10**8)
    assert data["lastUpdateTime"] == str(NOW - 600)
    assert data["creatorInRangeTime"] == "3000"
    assert data["battleType"] == 0
    assert data["creatorDex"] == 0
    assert data["token0"] == "0x" + "e0" * 20
    assert "creator_value_usd" not in data


def test_camel_case():
    assert camel_case("sqrt_price_x96") == "sqrtPriceX96"
    assert camel_case("token0") == "token0"
    assert camel_case("is_expired") == "isExpired"


def test_validate_config_names_missing_settings():
    with pytest.raises(ValueError, match="PRIVATE_KEY, BATTLE_ARENA_ADDRESS"):
        config.validate_config(SimpleNamespace(PRIVATE_KEY="", BATTLE_ARENA_ADDRESS="", RPC_URL="http://x"))
    config.validate_config(SimpleNamespace(PRIVATE_KEY="0x1", BATTLE_ARENA_ADDRESS="0x2", RPC_URL="http://x"))


def test_explorer_tx_url():
    assert config.explorer_tx_url("0xabc") == f"{config.EXPLORER_URL}/tx/0xabc"
    assert config.explorer_tx_url("0xabc", 84532) == "https://sepolia.basescan.org/tx/0xabc"
    assert config.explorer_tx_url("0xabc", 5) == "https://etherscan.io/tx/0xabc"
