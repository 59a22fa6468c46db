"""
Deterministic swap routing over direct pools.

Each adjacent token pair in a path resolves to exactly one pool through the
registry's pair index (O(1), no search). A route executes its hops strictly in
order, feeding each hop's output into the next.

Slippage:
- `min_amount_out` is checked against the final hop only.
- Intermediate hops accept any positive output. Per-hop bounds require
  splitting the route into single-hop swaps.

Atomicity:
- All pools on the path are locked, the whole route is evaluated against the
  current records, and only then are tokens moved and records committed. A
  route that fails at any hop changes nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from structlog import get_logger

from ..errors import DeadlineExceededError, DexError, SlippageError, StateError, ValidationError
from ..state.balances import Address, Amount, TokenId, TokenLedger, Transfer, require_address, require_amount
from ..state.lp import PoolId
from ..state.pools import PoolState, canonical_pair
from .amm import AmmEngine, simulate_swap
from .events import EventBus, ExchangeEvents, privacy_tag
from .registry import PoolRegistry

logger = get_logger()

ROUTER_ADDRESS = "shadeswap:router"
DEFAULT_MAX_HOPS = 3


@dataclass(frozen=True)
class RouteHop:
    pool_id: PoolId
    token_in: TokenId
    token_out: TokenId
    amount_in: Amount
    amount_out: Amount


@dataclass(frozen=True)
class RouteQuote:
    path: Tuple[TokenId, ...]
    amount_in: Amount
    amount_out: Amount
    hops: Tuple[RouteHop, ...]


def _evaluate_route(
    path: Sequence[TokenId],
    pool_ids: Sequence[PoolId],
    pools: Dict[PoolId, PoolState],
    amount_in: Amount,
) -> Tuple[List[RouteHop], Dict[PoolId, PoolState]]:
    """
    Run the hops against scratch copies of `pools`.

    A path that visits the same pool twice sees its own earlier hop.
    """
    scratch = dict(pools)
    hops: List[RouteHop] = []
    amount = amount_in
    for i, pool_id in enumerate(pool_ids):
        token_in, token_out = path[i], path[i + 1]
        amount_out, successor = simulate_swap(scratch[pool_id], token_in, amount)
        scratch[pool_id] = successor
        hops.append(RouteHop(pool_id, token_in, token_out, amount, amount_out))
        amount = amount_out
    return hops, {pid: scratch[pid] for pid in set(pool_ids)}


class SwapRouter:
    def __init__(
        self,
        *,
        registry: PoolRegistry,
        engine: AmmEngine,
        tokens: TokenLedger,
        events: Optional[EventBus] = None,
        address: Address = ROUTER_ADDRESS,
        max_hops: int = DEFAULT_MAX_HOPS,
    ) -> None:
        if not isinstance(max_hops, int) or max_hops < 1:
            raise ValidationError(f"max_hops must be a positive int: {max_hops!r}")
        self.log = logger.new(component="router")
        self.registry = registry
        self.engine = engine
        self.tokens = tokens
        self.events = events if events is not None else registry.events
        self.address = address
        self.max_hops = max_hops

    def resolve_direct_pool(self, token_a: TokenId, token_b: TokenId) -> PoolId:
        """
        Pool id for the unordered pair.

        Raises:
            StateError: If no pool exists for the pair
        """
        pool_id = self.registry.pool_for_pair(token_a, token_b)
        if pool_id is None:
            a, b = canonical_pair(token_a, token_b)
            raise StateError(f"no pool for pair ({a}, {b})")
        return pool_id

    def _validate_path(self, path: Sequence[TokenId]) -> Tuple[TokenId, ...]:
        if not isinstance(path, (list, tuple)) or len(path) < 2:
            raise ValidationError("path must list at least two tokens")
        if len(path) - 1 > self.max_hops:
            raise ValidationError(f"path has {len(path) - 1} hops, max is {self.max_hops}")
        for token in path:
            self.registry.require_token_authorized(token)
        return tuple(path)

    def _resolve_pools(self, path: Sequence[TokenId]) -> List[PoolId]:
        pool_ids = [self.resolve_direct_pool(path[i], path[i + 1]) for i in range(len(path) - 1)]
        for pool_id in pool_ids:
            self.registry.require_pool_authorized(pool_id)
        return pool_ids

    # -- quotes (pure reads) -------------------------------------------------

    def get_amount_out(self, path: Sequence[TokenId], amount_in: Amount) -> Amount:
        """
        Final output of routing `amount_in` along `path` right now.

        Reserves are read, never written.
        """
        require_amount("amount_in", amount_in)
        if not isinstance(path, (list, tuple)) or len(path) < 2:
            raise ValidationError("path must list at least two tokens")
        pool_ids = [self.resolve_direct_pool(path[i], path[i + 1]) for i in range(len(path) - 1)]
        pools = {pid: self.registry.get_pool(pid) for pid in pool_ids}
        hops, _ = _evaluate_route(path, pool_ids, pools, amount_in)
        return hops[-1].amount_out

    def find_optimal_path(self, token_in: TokenId, token_out: TokenId, amount_in: Amount) -> Optional[RouteQuote]:
        """
        Quote for the direct pool between the two tokens.

        Returns None when there is no usable direct pool.
        """
        if amount_in <= 0 or token_in == token_out:
            return None
        pool_id = self.registry.pool_for_pair(token_in, token_out)
        if pool_id is None:
            return None
        path = (token_in, token_out)
        try:
            hops, _ = _evaluate_route(path, [pool_id], {pool_id: self.registry.get_pool(pool_id)}, amount_in)
        except DexError:
            return None
        return RouteQuote(path=path, amount_in=amount_in, amount_out=hops[-1].amount_out, hops=tuple(hops))

    # -- execution -----------------------------------------------------------

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
        """Single-hop swap through the direct pool."""
        return self.route_swap(caller, [token_in, token_out], amount_in, min_amount_out, recipient, deadline)

    def route_swap(
        self,
        caller: Address,
        path: Sequence[TokenId],
        amount_in: Amount,
        min_amount_out: Amount,
        recipient: Address,
        deadline: int,
    ) -> Amount:
        """
        Swap `amount_in` of `path[0]` into `path[-1]` through direct pools.

        Args:
            caller: Pays `amount_in` (allowance granted to the router address)
            path: Token sequence; `len(path) - 1` hops, at most `max_hops`
            amount_in: Exact input amount
            min_amount_out: Lower bound on the final hop's output only
            recipient: Receives the final output
            deadline: Latest acceptable timestamp (inclusive)

        Returns:
            Final output amount

        Raises:
            DeadlineExceededError: If now > deadline (checked before anything else runs)
            ValidationError: If the path or amounts are malformed
            AuthorizationError: If a token or pool on the path is not allow-listed
            StateError: If a pool is inactive/empty or a hop cannot produce output
            SlippageError: If the final output is below `min_amount_out`
        """
        now = self.registry.now()
        if now > deadline:
            raise DeadlineExceededError(deadline, now)
        require_amount("amount_in", amount_in)
        require_amount("min_amount_out", min_amount_out, allow_zero=True)
        require_address("recipient", recipient)
        path = self._validate_path(path)
        pool_ids = self._resolve_pools(path)

        with self.registry.locked(*pool_ids):
            pools = {pid: self.registry.require_active(pid) for pid in pool_ids}
            hops, successors = _evaluate_route(path, pool_ids, pools, amount_in)
            amount_out = hops[-1].amount_out
            if amount_out < min_amount_out:
                raise SlippageError("amount_out", amount_out, min_amount_out)

            self.tokens.execute([
                Transfer(path[0], caller, self.engine.address, amount_in, spender=self.address),
                Transfer(path[-1], self.engine.address, recipient, amount_out),
            ])
            for successor in successors.values():
                self.registry.commit(successor)

        self.log.debug("route executed", trader=caller, hops=len(hops), token_in=path[0], token_out=path[-1])
        for hop in hops:
            self.events.publish(
                ExchangeEvents.SWAP_EXECUTED,
                now,
                pool_id=hop.pool_id,
                trader=caller,
                recipient=recipient,
                token_in=hop.token_in,
                token_out=hop.token_out,
                privacy_tag=privacy_tag(hop.amount_in, caller, now),
            )
        return amount_out
