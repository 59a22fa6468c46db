"""
State tables for the shadeswap exchange
"""

from .accounts import AccountTable, ConfidentialAccount
from .balances import TokenLedger
from .lp import LiquidityPosition, PositionTable
from .pools import PoolState, canonical_pair, compute_pool_id
from .proofs import UsedProofTable

__all__ = [
    "AccountTable",
    "ConfidentialAccount",
    "TokenLedger",
    "LiquidityPosition",
    "PositionTable",
    "PoolState",
    "canonical_pair",
    "compute_pool_id",
    "UsedProofTable",
]
