"""
ConfidentialExchange: wires the ledger, registry, AMM engine and router
around one shared TokenLedger, EventBus, lock table and access policy, and
exposes the exchange's boundary operations.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple

from structlog import get_logger

from ..state.balances import Address, Amount, TokenId, TokenLedger
from ..state.lp import LiquidityPosition, PoolId
from ..state.pools import MAX_FEE_BPS, PoolState
from .access import AccessPolicy
from .amm import AmmEngine
from .cpmm import MIN_LIQUIDITY
from .events import DEFAULT_HISTORY_LIMIT, EventBus
from .ledger import ConfidentialLedger
from .locks import ResourceLocks
from .registry import PoolRegistry
from .routing import DEFAULT_MAX_HOPS, RouteQuote, SwapRouter

logger = get_logger()


@dataclass(frozen=True)
class ExchangeConfig:
    # Upper bound accepted by create_pool; cannot exceed MAX_FEE_BPS (10%).
    max_fee_bps: int = MAX_FEE_BPS
    # Shares locked forever on a pool's first deposit.
    min_liquidity: int = MIN_LIQUIDITY
    # Longest route accepted by route_swap, counted in hops (len(path) - 1).
    max_hops: int = DEFAULT_MAX_HOPS
    # None blocks on a held lock; a positive value fails with StateError instead.
    lock_timeout_s: Optional[float] = None
    # Most recent events kept in memory by the bus; 0 keeps none.
    event_history_limit: int = DEFAULT_HISTORY_LIMIT

    def __post_init__(self) -> None:
        if not (0 <= self.max_fee_bps <= MAX_FEE_BPS):
            raise ValueError(f"max_fee_bps must be in [0, {MAX_FEE_BPS}]")
        if self.min_liquidity < 0:
            raise ValueError("min_liquidity must be non-negative")
        if self.max_hops < 1:
            raise ValueError("max_hops must be at least 1")
        if self.event_history_limit < 0:
            raise ValueError("event_history_limit must be non-negative")


class ConfidentialExchange:
    def __init__(
        self,
        owner: Address,
        *,
        config: Optional[ExchangeConfig] = None,
        clock: Optional[Callable[[], int]] = None,
        tokens: Optional[TokenLedger] = None,
    ) -> None:
        self.log = logger.new(component="exchange")
        self.config = config if config is not None else ExchangeConfig()
        self.clock = clock if clock is not None else (lambda: int(time.time()))
        self.tokens = tokens if tokens is not None else TokenLedger()
        self.events = EventBus(history_limit=self.config.event_history_limit)
        self.policy = AccessPolicy(owner)
        self.locks = ResourceLocks(timeout_s=self.config.lock_timeout_s)

        self.ledger = ConfidentialLedger(
            policy=self.policy,
            tokens=self.tokens,
            events=self.events,
            clock=self.clock,
            locks=self.locks,
        )
        self.registry = PoolRegistry(
            policy=self.policy,
            events=self.events,
            clock=self.clock,
            locks=self.locks,
            max_fee_bps=self.config.max_fee_bps,
        )
        self.engine = AmmEngine(
            registry=self.registry,
            tokens=self.tokens,
            events=self.events,
            min_liquidity=self.config.min_liquidity,
        )
        self.router = SwapRouter(
            registry=self.registry,
            engine=self.engine,
            tokens=self.tokens,
            events=self.events,
            max_hops=self.config.max_hops,
        )
        self.log.info("exchange initialized", owner=owner, max_fee_bps=self.config.max_fee_bps,
                      max_hops=self.config.max_hops)

    @property
    def owner(self) -> Address:
        return self.policy.owner

    def transfer_ownership(self, caller: Address, new_owner: Address) -> None:
        """Hand the OWNER capability (pool admin, allow-lists, mint, auditors) to `new_owner`."""
        self.policy.transfer_ownership(caller, new_owner)
        self.log.info("ownership transferred", new_owner=new_owner)

    # -- plaintext token helpers ---------------------------------------------

    def approve_spending(self, owner: Address, token: TokenId, amount: Amount) -> None:
        """Let both the AMM engine and the router pull up to `amount` of `token` from `owner`."""
        self.tokens.approve(token, owner, self.engine.address, amount)
        self.tokens.approve(token, owner, self.router.address, amount)

    # -- confidential ledger -------------------------------------------------

    def register(self, token: TokenId, account: Address, public_key: str) -> None:
        self.ledger.register(token, account, public_key)

    def deposit(self, token: TokenId, account: Address, amount: Amount, nonce: int) -> None:
        self.ledger.deposit(token, account, amount, nonce)

    def withdraw(self, token: TokenId, account: Address, amount: Amount, nonce: int) -> None:
        self.ledger.withdraw(token, account, amount, nonce)

    def confidential_transfer(
        self,
        token: TokenId,
        sender: Address,
        recipient: Address,
        amount: Amount,
        nonce: int,
        proof: object,
    ) -> bool:
        return self.ledger.confidential_transfer(token, sender, recipient, amount, nonce, proof)

    def legacy_transfer(self, token: TokenId, sender: Address, recipient: Address, amount: Amount, nonce: int) -> bool:
        return self.ledger.legacy_transfer(token, sender, recipient, amount, nonce)

    def confidential_mint(self, caller: Address, token: TokenId, recipient: Address, amount: Amount, nonce: int) -> None:
        self.ledger.confidential_mint(caller, token, recipient, amount, nonce)

    def confidential_burn(self, token: TokenId, account: Address, amount: Amount, nonce: int) -> None:
        self.ledger.confidential_burn(token, account, amount, nonce)

    def get_confidential_balance(self, caller: Address, token: TokenId, account: Address) -> Amount:
        return self.ledger.get_confidential_balance(caller, token, account)

    def disclose_for_auditor(self, caller: Address, token: TokenId, account: Address) -> Amount:
        return self.ledger.disclose(caller, token, account)

    def authorize_auditor(self, caller: Address, auditor: Address) -> None:
        self.ledger.authorize_auditor(caller, auditor)

    def revoke_auditor(self, caller: Address, auditor: Address) -> None:
        self.ledger.revoke_auditor(caller, auditor)

    # -- pools ---------------------------------------------------------------

    def authorize_token(self, caller: Address, token: TokenId) -> None:
        self.registry.authorize_token(caller, token)

    def revoke_token(self, caller: Address, token: TokenId) -> None:
        self.registry.revoke_token(caller, token)

    def authorize_pool(self, caller: Address, pool_id: PoolId) -> None:
        self.registry.authorize_pool(caller, pool_id)

    def revoke_pool(self, caller: Address, pool_id: PoolId) -> None:
        self.registry.revoke_pool(caller, pool_id)

    def create_pool(self, caller: Address, token_a: TokenId, token_b: TokenId, fee_bps: int) -> PoolId:
        return self.registry.create_pool(caller, token_a, token_b, fee_bps)

    def pause_pool(self, caller: Address, pool_id: PoolId) -> None:
        self.registry.pause_pool(caller, pool_id)

    def resume_pool(self, caller: Address, pool_id: PoolId) -> None:
        self.registry.resume_pool(caller, pool_id)

    def get_pool(self, pool_id: PoolId) -> PoolState:
        return self.registry.get_pool(pool_id)

    def get_position(self, pool_id: PoolId, provider: Address) -> LiquidityPosition:
        return self.registry.get_position(pool_id, provider)

    def add_liquidity(
        self,
        caller: Address,
        pool_id: PoolId,
        amount_a: Amount,
        amount_b: Amount,
        min_shares: Amount = 0,
    ) -> Amount:
        return self.engine.add_liquidity(caller, pool_id, amount_a, amount_b, min_shares)

    def remove_liquidity(
        self,
        caller: Address,
        pool_id: PoolId,
        shares: Amount,
        min_amount_a: Amount = 0,
        min_amount_b: Amount = 0,
    ) -> Tuple[Amount, Amount]:
        return self.engine.remove_liquidity(caller, pool_id, shares, min_amount_a, min_amount_b)

    # -- trading -------------------------------------------------------------

    def swap(
        self,
        caller: Address,
        pool_id: PoolId,
        amount_in: Amount,
        min_amount_out: Amount,
        a_to_b: bool,
        recipient: Optional[Address] = None,
    ) -> Amount:
        return self.engine.swap(caller, pool_id, amount_in, min_amount_out, a_to_b, recipient)

    def swap_exact_input(
        self,
        caller: Address,
        token_in: TokenId,
        token_out: TokenId,
        amount_in: Amount,
        min_amount_out: Amount,
        recipient: Address,
        deadline: int,
    ) -> Amount:
        return self.router.swap_exact_input(caller, token_in, token_out, amount_in, min_amount_out, recipient, deadline)

    def route_swap(
        self,
        caller: Address,
        path: Sequence[TokenId],
        amount_in: Amount,
        min_amount_out: Amount,
        recipient: Address,
        deadline: int,
    ) -> Amount:
        return self.router.route_swap(caller, path, amount_in, min_amount_out, recipient, deadline)

    def quote(self, pool_id: PoolId, amount_in: Amount, a_to_b: bool) -> Amount:
        return self.engine.quote(pool_id, amount_in, a_to_b)

    def quote_path(self, path: Sequence[TokenId], amount_in: Amount) -> Amount:
        return self.router.get_amount_out(path, amount_in)

    def find_optimal_path(self, token_in: TokenId, token_out: TokenId, amount_in: Amount) -> Optional[RouteQuote]:
        return self.router.find_optimal_path(token_in, token_out, amount_in)

    # -- invariants ----------------------------------------------------------

    def custody_report(self, token: TokenId) -> Dict[str, int]:
        """
        Plaintext custody vs. what the books say it must cover, for `token`.

        Keys:
            ledger_custody / confidential_total: must be equal
            amm_custody / reserves_total: custody must be at least the reserves
        """
        confidential_total = self.ledger.total_confidential(token)
        reserves_total = 0
        for pool_id in self.registry.pool_ids():
            pool = self.registry.get_pool(pool_id)
            if pool.token_a == token:
                reserves_total += pool.reserve_a
            elif pool.token_b == token:
                reserves_total += pool.reserve_b
        return {
            "ledger_custody": self.tokens.balance_of(self.ledger.address, token),
            "confidential_total": confidential_total,
            "amm_custody": self.tokens.balance_of(self.engine.address, token),
            "reserves_total": reserves_total,
        }
