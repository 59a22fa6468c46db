# [TESTER] v1

from __future__ import annotations

from typing import Dict, List

import pytest

from shadeswap.core.access import AccessPolicy
from shadeswap.core.amm import AmmEngine
from shadeswap.core.events import EventBus, ExchangeEvents
from shadeswap.core.registry import PoolRegistry
from shadeswap.core.routing import SwapRouter
from shadeswap.errors import AuthorizationError, DeadlineExceededError, SlippageError, StateError, ValidationError
from shadeswap.state.balances import TokenLedger

NOW = 1_000

TOKENS = ("TKA", "TKB", "TKC", "TKD", "TKE")


def _router(pairs: Dict[tuple, tuple], *, max_hops: int = 3) -> SwapRouter:
    tokens = TokenLedger()
    registry = PoolRegistry(policy=AccessPolicy("owner"), events=EventBus(), clock=lambda: NOW)
    engine = AmmEngine(registry=registry, tokens=tokens)
    router = SwapRouter(registry=registry, engine=engine, tokens=tokens, max_hops=max_hops)
    for token in TOKENS:
        registry.authorize_token("owner", token)
        for user in ("lp", "trader"):
            tokens.mint(token, user, 10**9)
            tokens.approve(token, user, engine.address, 10**9)
            tokens.approve(token, user, router.address, 10**9)
    for (a, b), (ra, rb) in pairs.items():
        pool_id = registry.create_pool("owner", a, b, 30)
        pool = registry.get_pool(pool_id)
        amount_a, amount_b = (ra, rb) if pool.token_a == a else (rb, ra)
        engine.add_liquidity("lp", pool_id, amount_a, amount_b)
    return router


def _deep_chain() -> SwapRouter:
    return _router({
        ("TKA", "TKB"): (100_000, 100_000),
        ("TKB", "TKC"): (100_000, 100_000),
        ("TKC", "TKD"): (100_000, 100_000),
    })


def _reserves(router: SwapRouter) -> List[tuple]:
    reg = router.registry
    return [(reg.get_pool(pid).reserve_a, reg.get_pool(pid).reserve_b) for pid in reg.pool_ids()]


def test_resolve_direct_pool_is_order_independent() -> None:
    router = _deep_chain()
    assert router.resolve_direct_pool("TKA", "TKB") == router.resolve_direct_pool("TKB", "TKA")
    with pytest.raises(StateError):
        router.resolve_direct_pool("TKA", "TKC")


def test_single_hop_matches_engine_quote() -> None:
    router = _deep_chain()
    pool_id = router.resolve_direct_pool("TKA", "TKB")
    quoted = router.engine.quote(pool_id, 1000, a_to_b=True)
    out = router.swap_exact_input("trader", "TKA", "TKB", 1000, quoted, "trader", NOW)
    assert out == quoted
    assert router.tokens.balance_of("trader", "TKB") == 10**9 + out


def test_multi_hop_feeds_each_output_forward() -> None:
    router = _deep_chain()
    path = ["TKA", "TKB", "TKC", "TKD"]
    reserves_before = _reserves(router)
    quoted = router.get_amount_out(path, 5000)
    assert _reserves(router) == reserves_before

    out = router.route_swap("trader", path, 5000, quoted, "receiver", NOW)

    assert out == quoted
    assert router.tokens.balance_of("receiver", "TKD") == out
    assert router.tokens.balance_of("trader", "TKA") == 10**9 - 5000
    # Intermediate tokens never leave AMM custody.
    assert router.tokens.balance_of("trader", "TKB") == 10**9
    assert len(router.registry.events.history(ExchangeEvents.SWAP_EXECUTED)) == 3


def test_only_final_hop_minimum_is_enforced() -> None:
    # TKB is scarce relative to TKC, so the middle amount is far below the final one.
    router = _router({
        ("TKA", "TKB"): (100_000, 100_000),
        ("TKB", "TKC"): (1000, 1_000_000),
    })
    path = ["TKA", "TKB", "TKC"]
    quoted = router.get_amount_out(path, 1000)
    middle = router.get_amount_out(path[:2], 1000)
    assert middle < quoted

    assert router.route_swap("trader", path, 1000, quoted, "trader", NOW) == quoted


def test_final_slippage_failure_changes_nothing() -> None:
    router = _deep_chain()
    path = ["TKA", "TKB", "TKC"]
    quoted = router.get_amount_out(path, 5000)
    reserves_before = _reserves(router)

    with pytest.raises(SlippageError):
        router.route_swap("trader", path, 5000, quoted + 1, "trader", NOW)
    assert _reserves(router) == reserves_before
    assert router.tokens.balance_of("trader", "TKA") == 10**9


def test_failing_later_hop_rolls_back_earlier_hops() -> None:
    router = _deep_chain()
    router.registry.pause_pool("owner", router.resolve_direct_pool("TKC", "TKD"))
    reserves_before = _reserves(router)

    with pytest.raises(StateError):
        router.route_swap("trader", ["TKA", "TKB", "TKC", "TKD"], 5000, 0, "trader", NOW)
    assert _reserves(router) == reserves_before
    assert router.tokens.balance_of("trader", "TKA") == 10**9


def test_deadline_is_checked_first() -> None:
    router = _deep_chain()
    with pytest.raises(DeadlineExceededError) as exc:
        router.route_swap("trader", ["TKA", "TKZ"], 0, 0, "trader", NOW - 1)
    assert exc.value.now == NOW
    # Equal to now is still in time.
    assert router.route_swap("trader", ["TKA", "TKB"], 1000, 0, "trader", NOW) > 0


def test_path_validation() -> None:
    router = _deep_chain()
    with pytest.raises(ValidationError):
        router.route_swap("trader", ["TKA"], 1000, 0, "trader", NOW)
    with pytest.raises(ValidationError):
        router.route_swap("trader", ["TKA", "TKB", "TKC", "TKD", "TKE"], 1000, 0, "trader", NOW)
    with pytest.raises(AuthorizationError):
        router.route_swap("trader", ["TKA", "TKZ"], 1000, 0, "trader", NOW)
    with pytest.raises(StateError):
        router.route_swap("trader", ["TKA", "TKC"], 1000, 0, "trader", NOW)
    with pytest.raises(ValidationError):
        router.route_swap("trader", ["TKA", "TKA"], 1000, 0, "trader", NOW)


def test_max_hops_is_configurable() -> None:
    router = _router({
        ("TKA", "TKB"): (100_000, 100_000),
        ("TKB", "TKC"): (100_000, 100_000),
    }, max_hops=1)
    with pytest.raises(ValidationError):
        router.route_swap("trader", ["TKA", "TKB", "TKC"], 1000, 0, "trader", NOW)


def test_path_revisiting_a_pool_sees_its_own_earlier_hop() -> None:
    router = _deep_chain()
    quoted = router.get_amount_out(["TKA", "TKB", "TKA"], 1000)
    out = router.route_swap("trader", ["TKA", "TKB", "TKA"], 1000, quoted, "trader", NOW)
    assert out == quoted
    assert out < 1000
    pool = router.registry.get_pool(router.resolve_direct_pool("TKA", "TKB"))
    assert pool.reserve_a == 100_000 + 1000 - out


def test_revoked_pool_on_path_is_rejected() -> None:
    router = _deep_chain()
    router.registry.revoke_pool("owner", router.resolve_direct_pool("TKB", "TKC"))
    with pytest.raises(AuthorizationError):
        router.route_swap("trader", ["TKA", "TKB", "TKC"], 1000, 0, "trader", NOW)


def test_find_optimal_path_direct_only() -> None:
    router = _deep_chain()
    quote = router.find_optimal_path("TKA", "TKB", 1000)
    assert quote is not None
    assert quote.path == ("TKA", "TKB")
    assert quote.amount_out == router.get_amount_out(["TKA", "TKB"], 1000)
    assert len(quote.hops) == 1
    assert router.find_optimal_path("TKA", "TKC", 1000) is None
    assert router.find_optimal_path("TKA", "TKB", 0) is None
    assert router.find_optimal_path("TKA", "TKB", 1) is None
