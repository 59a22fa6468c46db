"""
Constant Product Market Maker (CPMM) arithmetic.

Pure integer functions with the rounding rules the exchange commits to:
floor at every division, never rounding to nearest.

Algorithm Design:
- Type: Fixed-Point Integer Arithmetic / Deterministic Rounding
- Time Complexity: O(1) per operation
- Space Complexity: O(1) auxiliary
- Invariant: after each swap, x' * y' >= x * y (strictly greater when fee_bps > 0
  and the floor division leaves anything behind)
"""

from __future__ import annotations

import math
from typing import Tuple

from ..errors import StateError, ValidationError
from ..state.balances import Amount, require_amount
from ..state.pools import BPS_DENOMINATOR

# Shares withheld from the first mint and never attributed to a provider
MIN_LIQUIDITY = 1000


def _require_fee(fee_bps: int) -> None:
    if not isinstance(fee_bps, int) or isinstance(fee_bps, bool) or not (0 <= fee_bps <= BPS_DENOMINATOR):
        raise ValidationError(f"fee_bps must be in [0, {BPS_DENOMINATOR}]: {fee_bps!r}")


def amount_in_after_fee(amount_in: Amount, fee_bps: int) -> Amount:
    """floor(amount_in * (10_000 - fee_bps) / 10_000)"""
    require_amount("amount_in", amount_in)
    _require_fee(fee_bps)
    return amount_in * (BPS_DENOMINATOR - fee_bps) // BPS_DENOMINATOR


def get_amount_out(reserve_in: Amount, reserve_out: Amount, amount_in: Amount, fee_bps: int) -> Amount:
    """
    Output of an exact-in swap.

        amount_in_with_fee = floor(amount_in * (10_000 - fee_bps) / 10_000)
        amount_out = floor(reserve_out * amount_in_with_fee / (reserve_in + amount_in_with_fee))

    Raises:
        ValidationError: If amount_in or fee_bps is invalid
        StateError: If a reserve is empty, the output rounds to zero, or it would
            drain the output reserve
    """
    require_amount("amount_in", amount_in)
    _require_fee(fee_bps)
    if reserve_in <= 0 or reserve_out <= 0:
        raise StateError(f"Insufficient liquidity: reserves ({reserve_in}, {reserve_out})")

    amount_in_with_fee = amount_in * (BPS_DENOMINATOR - fee_bps) // BPS_DENOMINATOR
    amount_out = reserve_out * amount_in_with_fee // (reserve_in + amount_in_with_fee)

    if amount_out <= 0:
        raise StateError(f"Insufficient output amount: {amount_out}")
    if amount_out >= reserve_out:
        raise StateError(
            f"Cannot drain full reserve: amount_out ({amount_out}) >= reserve_out ({reserve_out})"
        )
    return amount_out


def swap_exact_in(
    reserve_in: Amount,
    reserve_out: Amount,
    amount_in: Amount,
    fee_bps: int,
) -> Tuple[Amount, Tuple[Amount, Amount]]:
    """
    Compute an exact-in swap and the post-swap reserves.

    Post-swap reserves:
        new_reserve_in = reserve_in + amount_in  (fee stays in pool)
        new_reserve_out = reserve_out - amount_out

    There is no separate fee reserve: the fee accrues to liquidity providers
    through the larger input reserve.

    Returns:
        Tuple of (amount_out, (new_reserve_in, new_reserve_out))
    """
    amount_out = get_amount_out(reserve_in, reserve_out, amount_in, fee_bps)
    new_reserve_in = reserve_in + amount_in
    new_reserve_out = reserve_out - amount_out

    if new_reserve_in * new_reserve_out < reserve_in * reserve_out:
        raise StateError(
            f"Invariant violation: new_k ({new_reserve_in * new_reserve_out}) < old_k ({reserve_in * reserve_out})"
        )
    return amount_out, (new_reserve_in, new_reserve_out)


def compute_lp_mint(
    reserve_a: Amount,
    reserve_b: Amount,
    amount_a: Amount,
    amount_b: Amount,
    total_shares: Amount,
    *,
    min_liquidity: Amount = MIN_LIQUIDITY,
) -> Tuple[Amount, Amount]:
    """
    Compute shares to mint for a liquidity deposit.

    For the first deposit (total_shares == 0):
        shares = isqrt(amount_a * amount_b) - min_liquidity
    and `min_liquidity` shares are locked forever.

    For subsequent deposits:
        shares = min(floor(amount_a * total_shares / reserve_a),
                     floor(amount_b * total_shares / reserve_b))

    Reserves grow by the full supplied amounts in both cases. A deposit off the
    pool ratio is credited along its smaller side only and the excess stays in
    the pool with no refund.

    Returns:
        Tuple of (shares credited to the provider, shares added to total supply)
    """
    require_amount("amount_a", amount_a)
    require_amount("amount_b", amount_b)
    if reserve_a < 0 or reserve_b < 0:
        raise ValidationError(f"Reserves must be non-negative: ({reserve_a}, {reserve_b})")
    if total_shares < 0:
        raise ValidationError(f"Total shares must be non-negative: {total_shares}")

    if total_shares == 0:
        root = math.isqrt(amount_a * amount_b)
        if root <= min_liquidity:
            raise StateError(
                f"Insufficient initial liquidity: isqrt(amount_a*amount_b) ({root}) <= {min_liquidity}"
            )
        return root - min_liquidity, root

    if reserve_a == 0 or reserve_b == 0:
        raise StateError("Cannot add liquidity to a pool with an empty reserve")

    shares = min(
        (amount_a * total_shares) // reserve_a,
        (amount_b * total_shares) // reserve_b,
    )
    if shares <= 0:
        raise StateError(f"Insufficient liquidity minted: {shares}")
    return shares, shares


def compute_lp_burn(
    shares: Amount,
    reserve_a: Amount,
    reserve_b: Amount,
    total_shares: Amount,
) -> Tuple[Amount, Amount]:
    """
    Compute token amounts returned for burning `shares`.

        amount_a = floor(shares * reserve_a / total_shares)
        amount_b = floor(shares * reserve_b / total_shares)
    """
    require_amount("shares", shares)
    if total_shares <= 0:
        raise StateError(f"Pool has no liquidity: total_shares={total_shares}")
    if shares > total_shares:
        raise StateError(f"Cannot burn more shares than supply: {shares} > {total_shares}")

    amount_a = (shares * reserve_a) // total_shares
    amount_b = (shares * reserve_b) // total_shares
    return amount_a, amount_b


def calculate_optimal_amounts(reserve_a: Amount, reserve_b: Amount, amount_a_desired: Amount) -> Amount:
    """
    Amount of token_b that keeps the current reserve ratio for `amount_a_desired`.

    An empty pool has no ratio yet, so the desired amount is returned unchanged.
    """
    require_amount("amount_a_desired", amount_a_desired)
    if reserve_a == 0 or reserve_b == 0:
        return amount_a_desired
    return (amount_a_desired * reserve_b) // reserve_a
