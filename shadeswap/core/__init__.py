"""
Core exchange components
"""

from .cpmm import (
    get_amount_out,
    swap_exact_in,
    compute_lp_mint,
    compute_lp_burn,
    calculate_optimal_amounts,
)
from .commitment import compute_commitment, verify_commitment
from .access import AccessPolicy, Capability
from .events import Event, EventBus, ExchangeEvents, privacy_tag
from .locks import ResourceLocks
from .ledger import ConfidentialLedger
from .registry import PoolRegistry
from .amm import AmmEngine, simulate_swap
from .routing import RouteHop, RouteQuote, SwapRouter
from .exchange import ConfidentialExchange, ExchangeConfig

__all__ = [
    "get_amount_out",
    "swap_exact_in",
    "compute_lp_mint",
    "compute_lp_burn",
    "calculate_optimal_amounts",
    "compute_commitment",
    "verify_commitment",
    "AccessPolicy",
    "Capability",
    "Event",
    "EventBus",
    "ExchangeEvents",
    "privacy_tag",
    "ResourceLocks",
    "ConfidentialLedger",
    "PoolRegistry",
    "AmmEngine",
    "simulate_swap",
    "RouteHop",
    "RouteQuote",
    "SwapRouter",
    "ConfidentialExchange",
    "ExchangeConfig",
]
