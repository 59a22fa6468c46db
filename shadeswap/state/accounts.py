"""
Confidential account records, one per (token, owner).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple

from .balances import Address, Amount, TokenId


@dataclass(frozen=True)
class ConfidentialAccount:
    """
    Ledger-side view of a confidential balance.

    Attributes:
        token: Token the balance is denominated in
        owner: Account owner
        balance: Confidential balance (never exposed except to the owner or an auditor)
        nonce: Nonce folded into the current commitment
        commitment: H(balance, nonce)
        last_op_nonce: Nonce supplied with the most recent mutation
        registered: True once the owner registered a public key
        public_key: Registration key placeholder
    """
    token: TokenId
    owner: Address
    balance: Amount
    nonce: int
    commitment: str
    last_op_nonce: int = 0
    registered: bool = False
    public_key: str = ""


class AccountTable:
    """Mapping (token, owner) -> ConfidentialAccount. Records are replaced, never deleted."""

    def __init__(self) -> None:
        self._accounts: Dict[Tuple[TokenId, Address], ConfidentialAccount] = {}

    def get(self, token: TokenId, owner: Address) -> Optional[ConfidentialAccount]:
        return self._accounts.get((token, owner))

    def put(self, account: ConfidentialAccount) -> None:
        if account.balance < 0:
            raise ValueError(f"Confidential balance cannot be negative: {account.balance}")
        self._accounts[(account.token, account.owner)] = account

    def __iter__(self) -> Iterator[ConfidentialAccount]:
        return iter(list(self._accounts.values()))

    def __len__(self) -> int:
        return len(self._accounts)

    def __repr__(self) -> str:
        return f"AccountTable({len(self._accounts)} entries)"
