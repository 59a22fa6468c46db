"""
AMM engine: applies constant-product math to registry-owned pools.

The engine holds no pool state. For each call it locks the pool, reads the
current record, computes the successor record with the pure functions in
`cpmm.py`, moves plaintext tokens in one atomic batch and commits the new
record. The engine's address is the custody account for all pool reserves:

    tokens.balance_of(engine.address, token) >= sum of that token's reserves
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional, Tuple

from structlog import get_logger

from ..errors import SlippageError, StateError
from ..state.balances import Address, Amount, TokenId, TokenLedger, Transfer, require_address, require_amount
from ..state.lp import PoolId
from ..state.pools import PoolState
from .cpmm import (
    MIN_LIQUIDITY,
    calculate_optimal_amounts,
    compute_lp_burn,
    compute_lp_mint,
    get_amount_out,
    swap_exact_in,
)
from .events import EventBus, ExchangeEvents, privacy_tag
from .registry import PoolRegistry

logger = get_logger()

AMM_ADDRESS = "shadeswap:amm"


def simulate_swap(pool: PoolState, token_in: TokenId, amount_in: Amount) -> Tuple[Amount, PoolState]:
    """
    Exact-in swap against `pool` without touching any state.

    Returns:
        Tuple of (amount_out, successor pool record)
    """
    if not pool.active:
        raise StateError(f"pool is not active: {pool.pool_id}")
    reserve_in, reserve_out = pool.reserves_for(token_in)
    amount_out, (new_in, new_out) = swap_exact_in(reserve_in, reserve_out, amount_in, pool.fee_bps)
    if token_in == pool.token_a:
        successor = pool.with_reserves(new_in, new_out, pool.total_shares)
    else:
        successor = pool.with_reserves(new_out, new_in, pool.total_shares)
    return amount_out, successor


class AmmEngine:
    def __init__(
        self,
        *,
        registry: PoolRegistry,
        tokens: TokenLedger,
        events: Optional[EventBus] = None,
        address: Address = AMM_ADDRESS,
        min_liquidity: Amount = MIN_LIQUIDITY,
    ) -> None:
        self.log = logger.new(component="amm")
        self.registry = registry
        self.tokens = tokens
        self.events = events if events is not None else registry.events
        self.address = address
        self.min_liquidity = min_liquidity

    def add_liquidity(
        self,
        caller: Address,
        pool_id: PoolId,
        amount_a: Amount,
        amount_b: Amount,
        min_shares: Amount = 0,
    ) -> Amount:
        """
        Deposit both tokens and mint shares to `caller`.

        The full `amount_a`/`amount_b` is pulled and added to the reserves even
        when the pair is off the pool ratio; only the smaller proportional share
        is credited.

        Raises:
            ValidationError: If an amount is not positive
            AuthorizationError: If the pool or either of its tokens is not allow-listed
            StateError: If the pool is inactive, the first deposit is below the
                locked minimum, or the caller's balance/allowance is insufficient
            SlippageError: If fewer than `min_shares` would be minted
        """
        require_amount("amount_a", amount_a)
        require_amount("amount_b", amount_b)
        require_amount("min_shares", min_shares, allow_zero=True)

        with self.registry.locked(pool_id):
            pool = self.registry.require_active(pool_id)
            self.registry.require_pool_authorized(pool_id)
            self.registry.require_token_authorized(pool.token_a)
            self.registry.require_token_authorized(pool.token_b)
            shares, supply_delta = compute_lp_mint(
                pool.reserve_a,
                pool.reserve_b,
                amount_a,
                amount_b,
                pool.total_shares,
                min_liquidity=self.min_liquidity,
            )
            if shares < min_shares:
                raise SlippageError("shares minted", shares, min_shares)

            now = self.registry.now()
            successor = pool.with_reserves(
                pool.reserve_a + amount_a,
                pool.reserve_b + amount_b,
                pool.total_shares + supply_delta,
            )
            position = self.registry.get_position(pool_id, caller)
            position = replace(position, shares=position.shares + shares, last_update=now)

            self.tokens.execute([
                Transfer(pool.token_a, caller, self.address, amount_a, spender=self.address),
                Transfer(pool.token_b, caller, self.address, amount_b, spender=self.address),
            ])
            self.registry.commit(successor, [position])

        self.log.debug("liquidity added", pool_id=pool_id, provider=caller)
        self.events.publish(
            ExchangeEvents.LIQUIDITY_DEPOSITED,
            now,
            pool_id=pool_id,
            provider=caller,
            privacy_tag=privacy_tag(shares, caller, now),
        )
        return shares

    def remove_liquidity(
        self,
        caller: Address,
        pool_id: PoolId,
        shares: Amount,
        min_amount_a: Amount = 0,
        min_amount_b: Amount = 0,
    ) -> Tuple[Amount, Amount]:
        """
        Burn `shares` from the caller's position and pay out both tokens.

        Both minimums must hold or nothing is withdrawn.
        Allow-lists are not consulted, so providers can always exit.
        """
        require_amount("shares", shares)
        require_amount("min_amount_a", min_amount_a, allow_zero=True)
        require_amount("min_amount_b", min_amount_b, allow_zero=True)

        with self.registry.locked(pool_id):
            pool = self.registry.require_active(pool_id)
            position = self.registry.get_position(pool_id, caller)
            if position.shares < shares:
                raise StateError(f"Insufficient shares: {position.shares} < {shares}")

            amount_a, amount_b = compute_lp_burn(shares, pool.reserve_a, pool.reserve_b, pool.total_shares)
            if amount_a < min_amount_a:
                raise SlippageError("amount_a", amount_a, min_amount_a)
            if amount_b < min_amount_b:
                raise SlippageError("amount_b", amount_b, min_amount_b)
            if amount_a == 0 and amount_b == 0:
                raise StateError("Insufficient liquidity burned")

            now = self.registry.now()
            successor = pool.with_reserves(
                pool.reserve_a - amount_a,
                pool.reserve_b - amount_b,
                pool.total_shares - shares,
            )
            position = replace(position, shares=position.shares - shares, last_update=now)

            self.tokens.execute([
                Transfer(pool.token_a, self.address, caller, amount_a),
                Transfer(pool.token_b, self.address, caller, amount_b),
            ])
            self.registry.commit(successor, [position])

        self.log.debug("liquidity removed", pool_id=pool_id, provider=caller)
        self.events.publish(
            ExchangeEvents.LIQUIDITY_WITHDRAWN,
            now,
            pool_id=pool_id,
            provider=caller,
            privacy_tag=privacy_tag(shares, caller, now),
        )
        return amount_a, amount_b

    def swap(
        self,
        caller: Address,
        pool_id: PoolId,
        amount_in: Amount,
        min_amount_out: Amount,
        a_to_b: bool,
        recipient: Optional[Address] = None,
    ) -> Amount:
        """
        Exact-in swap in a single pool.

        Args:
            caller: Pays `amount_in` (allowance granted to the engine address)
            pool_id: Pool to trade against
            amount_in: Exact input amount
            min_amount_out: Reject if the output is lower
            a_to_b: True sells token_a for token_b
            recipient: Receives the output (defaults to caller)

        Returns:
            Output amount

        Raises:
            AuthorizationError: If the pool or either of its tokens is not allow-listed
            SlippageError: If the output is below `min_amount_out`; reserves are unchanged
        """
        require_amount("amount_in", amount_in)
        require_amount("min_amount_out", min_amount_out, allow_zero=True)
        recipient = caller if recipient is None else recipient
        require_address("recipient", recipient)

        with self.registry.locked(pool_id):
            pool = self.registry.require_active(pool_id)
            self.registry.require_pool_authorized(pool_id)
            self.registry.require_token_authorized(pool.token_a)
            self.registry.require_token_authorized(pool.token_b)
            token_in, token_out = (pool.token_a, pool.token_b) if a_to_b else (pool.token_b, pool.token_a)
            amount_out, successor = simulate_swap(pool, token_in, amount_in)
            if amount_out < min_amount_out:
                raise SlippageError("amount_out", amount_out, min_amount_out)

            self.tokens.execute([
                Transfer(token_in, caller, self.address, amount_in, spender=self.address),
                Transfer(token_out, self.address, recipient, amount_out),
            ])
            self.registry.commit(successor)
            now = self.registry.now()

        self.log.debug("swap", pool_id=pool_id, trader=caller, token_in=token_in, token_out=token_out)
        self.events.publish(
            ExchangeEvents.SWAP_EXECUTED,
            now,
            pool_id=pool_id,
            trader=caller,
            recipient=recipient,
            token_in=token_in,
            token_out=token_out,
            privacy_tag=privacy_tag(amount_in, caller, now),
        )
        return amount_out

    def quote(self, pool_id: PoolId, amount_in: Amount, a_to_b: bool) -> Amount:
        """Output `swap` would produce right now. Pure read."""
        pool = self.registry.get_pool(pool_id)
        token_in = pool.token_a if a_to_b else pool.token_b
        reserve_in, reserve_out = pool.reserves_for(token_in)
        return get_amount_out(reserve_in, reserve_out, amount_in, pool.fee_bps)

    def optimal_amount(self, pool_id: PoolId, amount_a_desired: Amount) -> Amount:
        """token_b amount matching `amount_a_desired` at the current reserve ratio."""
        pool = self.registry.get_pool(pool_id)
        return calculate_optimal_amounts(pool.reserve_a, pool.reserve_b, amount_a_desired)
