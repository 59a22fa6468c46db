"""
Liquidity position tracking.

Positions are scoped per pool_id and tracked separately from token balances.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from ..errors import StateError
from .balances import Address, Amount

# Type alias
PoolId = str


@dataclass(frozen=True)
class LiquidityPosition:
    """Shares held by one provider in one pool."""
    pool_id: PoolId
    provider: Address
    shares: Amount = 0
    last_update: int = 0


class PositionTable:
    """
    Position table mapping (pool_id, provider) -> LiquidityPosition.

    Notes:
    - Shares are always non-negative.
    - A fully withdrawn position is kept with zero shares, never deleted.
    """

    def __init__(self) -> None:
        self._positions: Dict[Tuple[PoolId, Address], LiquidityPosition] = {}

    def get(self, pool_id: PoolId, provider: Address) -> LiquidityPosition:
        """Get the position for (pool_id, provider). Returns an empty position if none exists."""
        pos = self._positions.get((pool_id, provider))
        if pos is None:
            return LiquidityPosition(pool_id=pool_id, provider=provider)
        return pos

    def put(self, position: LiquidityPosition) -> None:
        if position.shares < 0:
            raise StateError(f"Position shares cannot be negative: {position.shares}")
        self._positions[(position.pool_id, position.provider)] = position

    def total_for_pool(self, pool_id: PoolId) -> Amount:
        """Sum of provider shares in a pool (excludes the locked minimum)."""
        return sum(p.shares for (pid, _), p in self._positions.items() if pid == pool_id)

    def providers(self, pool_id: PoolId) -> Dict[Address, Amount]:
        return {prov: p.shares for (pid, prov), p in self._positions.items() if pid == pool_id}

    def __repr__(self) -> str:
        return f"PositionTable({len(self._positions)} entries)"
