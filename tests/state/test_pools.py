# [TESTER] v1

from __future__ import annotations

import pytest

from shadeswap.errors import StateError, ValidationError
from shadeswap.state.lp import LiquidityPosition, PositionTable
from shadeswap.state.pools import PoolState, canonical_pair, compute_pool_id
from shadeswap.state.proofs import UsedProofTable


def test_canonical_pair_orders_and_validates() -> None:
    assert canonical_pair("TKB", "TKA") == ("TKA", "TKB")
    assert canonical_pair("TKA", "TKB") == ("TKA", "TKB")
    with pytest.raises(ValidationError):
        canonical_pair("TKA", "TKA")
    with pytest.raises(ValidationError):
        canonical_pair("", "TKA")


def test_pool_id_is_order_independent_and_fee_sensitive() -> None:
    assert compute_pool_id("TKA", "TKB", 30) == compute_pool_id("TKB", "TKA", 30)
    assert compute_pool_id("TKA", "TKB", 30) != compute_pool_id("TKA", "TKB", 5)
    assert compute_pool_id("TKA", "TKB", 30) != compute_pool_id("TKA", "TKC", 30)


def test_pool_state_invariants() -> None:
    with pytest.raises(ValidationError):
        PoolState(pool_id="p", token_a="TKB", token_b="TKA", fee_bps=30)
    with pytest.raises(ValidationError):
        PoolState(pool_id="p", token_a="TKA", token_b="TKB", fee_bps=30, reserve_a=10, reserve_b=10)
    with pytest.raises(ValidationError):
        PoolState(pool_id="p", token_a="TKA", token_b="TKB", fee_bps=30, total_shares=5)
    with pytest.raises(ValidationError):
        PoolState(pool_id="p", token_a="TKA", token_b="TKB", fee_bps=30, reserve_a=-1, reserve_b=1, total_shares=1)


def test_pool_state_helpers() -> None:
    pool = PoolState(pool_id="p", token_a="TKA", token_b="TKB", fee_bps=30, reserve_a=10, reserve_b=20, total_shares=14)
    assert pool.reserves_for("TKA") == (10, 20)
    assert pool.reserves_for("TKB") == (20, 10)
    assert pool.other_token("TKA") == "TKB"
    assert pool.get_constant_product() == 200
    with pytest.raises(ValidationError):
        pool.reserves_for("TKC")
    grown = pool.with_reserves(11, 20, 14)
    assert grown.reserve_a == 11 and pool.reserve_a == 10


def test_position_table() -> None:
    table = PositionTable()
    assert table.get("p", "lp").shares == 0
    table.put(LiquidityPosition(pool_id="p", provider="lp", shares=5))
    table.put(LiquidityPosition(pool_id="p", provider="lp2", shares=3))
    assert table.total_for_pool("p") == 8
    assert table.providers("p") == {"lp": 5, "lp2": 3}
    with pytest.raises(StateError):
        table.put(LiquidityPosition(pool_id="p", provider="lp", shares=-1))


def test_used_proof_table_is_append_only() -> None:
    table = UsedProofTable()
    table.mark_used("0x01", 10)
    assert table.is_used("0x01")
    with pytest.raises(ValueError):
        table.mark_used("0x01", 11)
    assert table.get_all() == {"0x01": 10}


def test_used_proof_claim_succeeds_once() -> None:
    table = UsedProofTable()
    assert table.claim("0x02", 1) is True
    assert table.claim("0x02", 2) is False
    assert table.get_all() == {"0x02": 1}
    with pytest.raises(TypeError):
        table.claim("", 3)
