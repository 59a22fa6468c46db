"""
Pool registry: pool and position records plus the token/pool allow-lists.

The registry is the only owner of `PoolState` and `LiquidityPosition`
records. AmmEngine and SwapRouter mutate them exclusively through
`locked(...)` + `commit(...)`, so a pool is always replaced in one step.
"""

from __future__ import annotations

import time
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from structlog import get_logger

from ..errors import AuthorizationError, StateError, ValidationError
from ..state.balances import Address, TokenId
from ..state.lp import LiquidityPosition, PoolId, PositionTable
from ..state.pools import MAX_FEE_BPS, PoolState, canonical_pair, compute_pool_id
from .access import AccessPolicy, Capability
from .events import EventBus, ExchangeEvents
from .locks import ResourceLocks, pool_key

logger = get_logger()


class PoolRegistry:
    def __init__(
        self,
        *,
        policy: AccessPolicy,
        events: Optional[EventBus] = None,
        clock: Optional[Callable[[], int]] = None,
        locks: Optional[ResourceLocks] = None,
        max_fee_bps: int = MAX_FEE_BPS,
    ) -> None:
        if not (0 <= max_fee_bps <= MAX_FEE_BPS):
            raise ValidationError(f"max_fee_bps must be in [0, {MAX_FEE_BPS}]: {max_fee_bps}")
        self.log = logger.new(component="registry")
        self.policy = policy
        self.events = events if events is not None else EventBus()
        self.locks = locks if locks is not None else ResourceLocks()
        self.max_fee_bps = max_fee_bps
        self._clock = clock if clock is not None else (lambda: int(time.time()))
        self._pools: Dict[PoolId, PoolState] = {}
        self._pair_index: Dict[Tuple[TokenId, TokenId], PoolId] = {}
        self._positions = PositionTable()
        self._authorized_tokens: Set[TokenId] = set()
        self._authorized_pools: Set[PoolId] = set()

    def now(self) -> int:
        return int(self._clock())

    # -- allow-lists ---------------------------------------------------------

    def authorize_token(self, caller: Address, token: TokenId) -> None:
        self.policy.require(caller, Capability.OWNER)
        if not isinstance(token, str) or not token:
            raise ValidationError("token must be a non-empty id")
        self._authorized_tokens.add(token)
        self.log.info("token authorized", token=token)

    def revoke_token(self, caller: Address, token: TokenId) -> None:
        self.policy.require(caller, Capability.OWNER)
        self._authorized_tokens.discard(token)
        self.log.info("token revoked", token=token)

    def authorize_pool(self, caller: Address, pool_id: PoolId) -> None:
        self.policy.require(caller, Capability.OWNER)
        self._require_pool(pool_id)
        self._authorized_pools.add(pool_id)
        self.log.info("pool authorized", pool_id=pool_id)

    def revoke_pool(self, caller: Address, pool_id: PoolId) -> None:
        self.policy.require(caller, Capability.OWNER)
        self._authorized_pools.discard(pool_id)
        self.log.info("pool revoked", pool_id=pool_id)

    def is_token_authorized(self, token: TokenId) -> bool:
        return token in self._authorized_tokens

    def is_pool_authorized(self, pool_id: PoolId) -> bool:
        return pool_id in self._authorized_pools

    def require_token_authorized(self, token: TokenId) -> None:
        if token not in self._authorized_tokens:
            raise AuthorizationError(f"token not authorized: {token}")

    def require_pool_authorized(self, pool_id: PoolId) -> None:
        if pool_id not in self._authorized_pools:
            raise AuthorizationError(f"pool not authorized: {pool_id}")

    # -- pool lifecycle ------------------------------------------------------

    def create_pool(self, caller: Address, token_a: TokenId, token_b: TokenId, fee_bps: int) -> PoolId:
        """
        Create an empty, active pool for an unordered token pair.

        Pool ID is deterministic:
            pool_id = H("pool" || min(token_a, token_b) || max(token_a, token_b) || fee_bps)

        Args:
            caller: Must hold the OWNER capability
            token_a: Either token of the pair
            token_b: The other token
            fee_bps: Swap fee in basis points, at most `max_fee_bps`

        Returns:
            The new pool id

        Raises:
            AuthorizationError: If the caller is not the owner or a token is not allow-listed
            ValidationError: If the tokens are empty/identical or the fee is out of range
            StateError: If a pool already exists for this id or this pair
        """
        self.policy.require(caller, Capability.OWNER)
        a, b = canonical_pair(token_a, token_b)
        if not isinstance(fee_bps, int) or isinstance(fee_bps, bool) or not (0 <= fee_bps <= self.max_fee_bps):
            raise ValidationError(f"fee_bps must be in [0, {self.max_fee_bps}]: {fee_bps!r}")
        self.require_token_authorized(a)
        self.require_token_authorized(b)

        pool_id = compute_pool_id(a, b, fee_bps)
        with self.locks.hold(pool_key(pool_id), ("PAR", a, b)):
            if pool_id in self._pools:
                raise StateError(f"pool already exists: {pool_id}")
            if (a, b) in self._pair_index:
                raise StateError(f"pair already has a pool: {self._pair_index[(a, b)]}")
            now = self.now()
            self._pools[pool_id] = PoolState(
                pool_id=pool_id,
                token_a=a,
                token_b=b,
                fee_bps=fee_bps,
                created_at=now,
            )
            self._pair_index[(a, b)] = pool_id
            self._authorized_pools.add(pool_id)

        self.log.info("pool created", pool_id=pool_id, token_a=a, token_b=b, fee_bps=fee_bps)
        self.events.publish(
            ExchangeEvents.POOL_CREATED, now, pool_id=pool_id, token_a=a, token_b=b, fee_bps=fee_bps
        )
        return pool_id

    def pause_pool(self, caller: Address, pool_id: PoolId) -> None:
        self._set_active(caller, pool_id, False)

    def resume_pool(self, caller: Address, pool_id: PoolId) -> None:
        self._set_active(caller, pool_id, True)

    def _set_active(self, caller: Address, pool_id: PoolId, active: bool) -> None:
        self.policy.require(caller, Capability.OWNER)
        with self.locks.hold(pool_key(pool_id)):
            pool = self._require_pool(pool_id)
            if pool.active == active:
                return
            self._pools[pool_id] = replace(pool, active=active)
        kind = ExchangeEvents.POOL_RESUMED if active else ExchangeEvents.POOL_PAUSED
        self.log.info("pool status changed", pool_id=pool_id, active=active)
        self.events.publish(kind, self.now(), pool_id=pool_id)

    # -- reads ---------------------------------------------------------------

    def _require_pool(self, pool_id: PoolId) -> PoolState:
        pool = self._pools.get(pool_id)
        if pool is None:
            raise StateError(f"unknown pool: {pool_id}")
        return pool

    def get_pool(self, pool_id: PoolId) -> PoolState:
        """Return the current (immutable) pool record."""
        return self._require_pool(pool_id)

    def find_pool(self, pool_id: PoolId) -> Optional[PoolState]:
        return self._pools.get(pool_id)

    def pool_for_pair(self, token_a: TokenId, token_b: TokenId) -> Optional[PoolId]:
        """O(1) direct-pool lookup; argument order does not matter."""
        return self._pair_index.get(canonical_pair(token_a, token_b))

    def pool_ids(self) -> List[PoolId]:
        return sorted(self._pools)

    def get_position(self, pool_id: PoolId, provider: Address) -> LiquidityPosition:
        self._require_pool(pool_id)
        return self._positions.get(pool_id, provider)

    def provider_shares(self, pool_id: PoolId) -> Dict[Address, int]:
        return self._positions.providers(pool_id)

    # -- engine accessors ----------------------------------------------------

    def locked(self, *pool_ids: PoolId):
        """Context manager holding the write locks of `pool_ids`."""
        return self.locks.hold(*(pool_key(pid) for pid in pool_ids))

    def require_active(self, pool_id: PoolId) -> PoolState:
        pool = self._require_pool(pool_id)
        if not pool.active:
            raise StateError(f"pool is not active: {pool_id}")
        return pool

    def commit(self, pool: PoolState, positions: Iterable[LiquidityPosition] = ()) -> None:
        """
        Replace a pool record (and optionally positions). Caller must hold the pool lock.
        """
        if not self.locks.is_held(pool_key(pool.pool_id)):
            raise StateError(f"pool {pool.pool_id} committed without holding its lock")
        current = self._require_pool(pool.pool_id)
        if (current.token_a, current.token_b, current.fee_bps) != (pool.token_a, pool.token_b, pool.fee_bps):
            raise StateError(f"pool identity changed for {pool.pool_id}")
        positions = list(positions)
        for position in positions:
            if position.pool_id != pool.pool_id:
                raise StateError("position does not belong to the committed pool")
            if position.shares < 0:
                raise StateError(f"Position shares cannot be negative: {position.shares}")
        for position in positions:
            self._positions.put(position)
        self._pools[pool.pool_id] = pool
