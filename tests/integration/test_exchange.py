# [TESTER] v1

from __future__ import annotations

from typing import List

import pytest

from shadeswap.core.events import Event, ExchangeEvents
from shadeswap.core.exchange import ConfidentialExchange, ExchangeConfig
from shadeswap.errors import AuthorizationError, DexError, ProofAlreadyUsedError

OWNER = "owner"


class _Clock:
    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def _exchange(**config) -> ConfidentialExchange:
    ex = ConfidentialExchange(OWNER, config=ExchangeConfig(**config), clock=_Clock(1_700_000_000))
    for token in ("USD", "ETH", "BTC"):
        ex.authorize_token(OWNER, token)
        for user in ("alice", "bob", "lp"):
            ex.tokens.mint(token, user, 10**12)
            ex.approve_spending(user, token, 10**12)
    return ex


def _assert_solvent(ex: ConfidentialExchange, token: str) -> None:
    report = ex.custody_report(token)
    assert report["ledger_custody"] == report["confidential_total"]
    assert report["amm_custody"] >= report["reserves_total"]


def test_end_to_end_flow_keeps_books_consistent() -> None:
    ex = _exchange()
    seen: List[Event] = []
    ex.events.subscribe(ExchangeEvents.SWAP_EXECUTED, seen.append)

    eth_usd = ex.create_pool(OWNER, "USD", "ETH", 30)
    btc_eth = ex.create_pool(OWNER, "BTC", "ETH", 30)
    ex.add_liquidity("lp", eth_usd, 1_000, 2_000_000)
    ex.add_liquidity("lp", btc_eth, 1_000, 20_000)

    ex.register("USD", "alice", "0xa11ce")
    ex.register("USD", "bob", "0xb0b")
    ex.deposit("USD", "alice", 50_000, nonce=1)
    ex.confidential_transfer("USD", "alice", "bob", 20_000, 2, "0x" + "ab" * 32)
    assert ex.get_confidential_balance("bob", "USD", "bob") == 20_000

    pool = ex.get_pool(eth_usd)
    out = ex.swap("alice", eth_usd, 10_000, 1, a_to_b=pool.token_a == "USD")
    assert out > 0

    quoted = ex.quote_path(["USD", "ETH", "BTC"], 100_000)
    received = ex.route_swap("bob", ["USD", "ETH", "BTC"], 100_000, quoted, "bob", 1_700_000_000)
    assert received == quoted

    ex.withdraw("USD", "bob", 20_000, nonce=3)
    assert ex.tokens.balance_of("bob", "USD") == 10**12 - 100_000 + 20_000

    for token in ("USD", "ETH", "BTC"):
        _assert_solvent(ex, token)
    assert len(seen) == 3


def test_events_never_carry_amounts() -> None:
    ex = _exchange()
    pool_id = ex.create_pool(OWNER, "USD", "ETH", 30)
    ex.add_liquidity("lp", pool_id, 4_000_000, 2_000)
    ex.register("USD", "alice", "0xa11ce")
    ex.register("USD", "bob", "0xb0b")
    ex.deposit("USD", "alice", 777_777, nonce=1)
    ex.confidential_transfer("USD", "alice", "bob", 333_333, 2, "0x01")
    ex.swap("alice", pool_id, 55_555, 0, a_to_b=True)
    ex.remove_liquidity("lp", pool_id, 1_000)

    tagged = {
        ExchangeEvents.DEPOSIT,
        ExchangeEvents.CONFIDENTIAL_TRANSFER,
        ExchangeEvents.SWAP_EXECUTED,
        ExchangeEvents.LIQUIDITY_DEPOSITED,
        ExchangeEvents.LIQUIDITY_WITHDRAWN,
    }
    history = ex.events.history()
    assert tagged <= {e.kind for e in history}
    for event in history:
        for value in event.data.values():
            assert value not in (777_777, 333_333, 55_555, 4_000_000, 2_000, 1_000)
        if event.kind in tagged:
            assert event["privacy_tag"].startswith("0x")


def test_failed_operations_leave_no_trace() -> None:
    ex = _exchange()
    pool_id = ex.create_pool(OWNER, "USD", "ETH", 30)
    ex.add_liquidity("lp", pool_id, 4_000_000, 2_000)
    ex.register("USD", "alice", "0xa11ce")
    ex.register("USD", "bob", "0xb0b")
    ex.deposit("USD", "alice", 1_000, nonce=1)
    ex.confidential_transfer("USD", "alice", "bob", 10, 2, "0xp")
    events_before = len(ex.events.history())
    pool_before = ex.get_pool(pool_id)

    with pytest.raises(ProofAlreadyUsedError):
        ex.confidential_transfer("USD", "alice", "bob", 10, 3, "0xp")
    with pytest.raises(DexError):
        ex.swap("alice", pool_id, 1_000, 10**9, a_to_b=False)
    with pytest.raises(DexError):
        ex.route_swap("alice", ["USD", "ETH"], 1_000, 0, "alice", 0)

    assert ex.get_pool(pool_id) == pool_before
    assert len(ex.events.history()) == events_before
    assert ex.get_confidential_balance("alice", "USD", "alice") == 990


def test_auditor_disclosure_through_exchange() -> None:
    ex = _exchange()
    ex.register("ETH", "alice", "0xa11ce")
    ex.deposit("ETH", "alice", 5, nonce=1)
    with pytest.raises(AuthorizationError):
        ex.disclose_for_auditor("auditor", "ETH", "alice")
    ex.authorize_auditor(OWNER, "auditor")
    assert ex.disclose_for_auditor("auditor", "ETH", "alice") == 5
    ex.revoke_auditor(OWNER, "auditor")
    with pytest.raises(AuthorizationError):
        ex.disclose_for_auditor("auditor", "ETH", "alice")


def test_config_is_applied() -> None:
    ex = _exchange(max_fee_bps=50, max_hops=1, min_liquidity=10)
    with pytest.raises(DexError):
        ex.create_pool(OWNER, "USD", "ETH", 51)
    pool_id = ex.create_pool(OWNER, "USD", "ETH", 50)
    # isqrt(121) == 11 > 10
    assert ex.add_liquidity("lp", pool_id, 121, 1) == 1
    assert ex.router.max_hops == 1
    with pytest.raises(ValueError):
        ExchangeConfig(max_fee_bps=1001)


def test_find_optimal_path_and_position_reads() -> None:
    ex = _exchange()
    pool_id = ex.create_pool(OWNER, "USD", "ETH", 30)
    assert ex.find_optimal_path("USD", "ETH", 1_000) is None
    shares = ex.add_liquidity("lp", pool_id, 4_000_000, 2_000)
    assert ex.get_position(pool_id, "lp").shares == shares
    quote = ex.find_optimal_path("USD", "ETH", 10_000)
    assert quote is not None and quote.amount_out == ex.quote(pool_id, 10_000, a_to_b=False)


def test_ownership_moves_admin_rights() -> None:
    ex = _exchange()
    with pytest.raises(AuthorizationError):
        ex.transfer_ownership("alice", "alice")

    ex.transfer_ownership(OWNER, "treasury")
    assert ex.owner == "treasury"
    with pytest.raises(AuthorizationError):
        ex.create_pool(OWNER, "USD", "ETH", 30)
    pool_id = ex.create_pool("treasury", "USD", "ETH", 30)
    assert ex.get_pool(pool_id).fee_bps == 30


def test_event_history_is_bounded_by_config() -> None:
    ex = _exchange(event_history_limit=2)
    pool_id = ex.create_pool(OWNER, "USD", "ETH", 30)
    ex.add_liquidity("lp", pool_id, 1_000_000, 1_000_000)
    for _ in range(5):
        ex.swap("alice", pool_id, 1_000, 0, a_to_b=True)

    history = ex.events.history()
    assert len(history) == 2
    assert all(e.kind == ExchangeEvents.SWAP_EXECUTED for e in history)
    with pytest.raises(ValueError):
        ExchangeConfig(event_history_limit=-1)
