"""
Pool state records for the exchange.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Tuple

from ..errors import ValidationError
from .balances import Amount, TokenId, ZERO_ADDRESS
from .canonical import domain_hash


BPS_DENOMINATOR = 10_000
MAX_FEE_BPS = 1000


def canonical_pair(token_a: TokenId, token_b: TokenId) -> Tuple[TokenId, TokenId]:
    """
    Order a token pair so that every unordered pair maps to one tuple.

    Raises:
        ValidationError: If a token is empty/zero or both tokens are identical
    """
    for name, token in (("token_a", token_a), ("token_b", token_b)):
        if not isinstance(token, str) or not token or token == ZERO_ADDRESS:
            raise ValidationError(f"{name} must be a non-zero token id: {token!r}")
    if token_a == token_b:
        raise ValidationError(f"Identical tokens: {token_a}")
    return (token_a, token_b) if token_a < token_b else (token_b, token_a)


def compute_pool_id(token_a: TokenId, token_b: TokenId, fee_bps: int) -> str:
    """
    Deterministically compute a pool_id for the given pair and fee.

        pool_id = H("pool" || canonical_a || canonical_b || fee_bps)

    Argument order does not matter.
    """
    a, b = canonical_pair(token_a, token_b)
    if not isinstance(fee_bps, int) or isinstance(fee_bps, bool) or not (0 <= fee_bps <= BPS_DENOMINATOR):
        raise ValidationError(f"fee_bps must be in [0, {BPS_DENOMINATOR}]: {fee_bps!r}")
    return domain_hash("pool", a, b, int(fee_bps))


@dataclass(frozen=True)
class PoolState:
    """
    State of a liquidity pool.

    Records are immutable; every mutation produces a new record which the
    registry swaps in whole, so readers never see a half-applied update.

    Attributes:
        pool_id: Deterministic pool identifier (hex string)
        token_a: First token (must be < token_b)
        token_b: Second token
        fee_bps: Swap fee in basis points, taken from the input side
        reserve_a: Reserve amount for token_a
        reserve_b: Reserve amount for token_b
        total_shares: Total issued shares, including the locked minimum
        active: False once the pool is paused
        created_at: Timestamp when the pool was created
    """
    pool_id: str
    token_a: TokenId
    token_b: TokenId
    fee_bps: int
    reserve_a: Amount = 0
    reserve_b: Amount = 0
    total_shares: Amount = 0
    active: bool = True
    created_at: int = 0

    def __post_init__(self) -> None:
        if self.token_a >= self.token_b:
            raise ValidationError(
                f"Tokens must be in canonical order: {self.token_a} < {self.token_b}"
            )
        if not (0 <= self.fee_bps <= BPS_DENOMINATOR):
            raise ValidationError(f"fee_bps must be in [0, {BPS_DENOMINATOR}]: {self.fee_bps}")
        if self.reserve_a < 0 or self.reserve_b < 0:
            raise ValidationError(
                f"Reserves must be non-negative: ({self.reserve_a}, {self.reserve_b})"
            )
        if self.total_shares < 0:
            raise ValidationError(f"Total shares must be non-negative: {self.total_shares}")
        empty_reserves = self.reserve_a == 0 and self.reserve_b == 0
        if (self.total_shares == 0) != empty_reserves:
            raise ValidationError(
                f"Shares/reserves mismatch: shares={self.total_shares}, "
                f"reserves=({self.reserve_a}, {self.reserve_b})"
            )

    @property
    def is_empty(self) -> bool:
        return self.total_shares == 0

    def has_token(self, token: TokenId) -> bool:
        return token in (self.token_a, self.token_b)

    def reserves_for(self, token_in: TokenId) -> Tuple[Amount, Amount]:
        """
        Return (reserve_in, reserve_out) for a swap that sells `token_in`.

        Raises:
            ValidationError: If the token is not in this pool
        """
        if token_in == self.token_a:
            return self.reserve_a, self.reserve_b
        if token_in == self.token_b:
            return self.reserve_b, self.reserve_a
        raise ValidationError(f"Token {token_in} not in pool {self.pool_id}")

    def other_token(self, token: TokenId) -> TokenId:
        if token == self.token_a:
            return self.token_b
        if token == self.token_b:
            return self.token_a
        raise ValidationError(f"Token {token} not in pool {self.pool_id}")

    def get_constant_product(self) -> int:
        """k = reserve_a * reserve_b."""
        return self.reserve_a * self.reserve_b

    def with_reserves(self, reserve_a: Amount, reserve_b: Amount, total_shares: Amount) -> "PoolState":
        return replace(self, reserve_a=reserve_a, reserve_b=reserve_b, total_shares=total_shares)

    def __repr__(self) -> str:
        return (
            f"PoolState(pool_id={self.pool_id[:16]}..., "
            f"tokens=({self.token_a[:8]}..., {self.token_b[:8]}...), "
            f"reserves=({self.reserve_a}, {self.reserve_b}), "
            f"total_shares={self.total_shares}, active={self.active})"
        )
