"""
Balance commitments.

    commitment = H("commitment" || balance || nonce)

This is a tamper-evidence check, not a hiding scheme: the ledger holds the
plaintext balance, and anyone who learns (balance, nonce) can recompute the
commitment. Integrity only.
"""

from __future__ import annotations

from ..state.accounts import ConfidentialAccount
from ..state.canonical import domain_hash


def compute_commitment(balance: int, nonce: int) -> str:
    if not isinstance(balance, int) or isinstance(balance, bool) or balance < 0:
        raise ValueError(f"balance must be a non-negative int: {balance!r}")
    if not isinstance(nonce, int) or isinstance(nonce, bool) or nonce < 0:
        raise ValueError(f"nonce must be a non-negative int: {nonce!r}")
    return domain_hash("commitment", balance, nonce)


def verify_commitment(account: ConfidentialAccount) -> bool:
    """True iff the stored commitment equals H(balance, nonce)."""
    return account.commitment == compute_commitment(account.balance, account.nonce)
