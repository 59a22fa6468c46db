"""
Plaintext fungible-token ledger.

Implements TokenLedger[Address, TokenId] -> Amount plus ERC-20 style
allowances. This is the non-confidential side of deposit/withdraw and the
custody ledger for pool reserves.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from ..errors import StateError, ValidationError


# Type aliases
Address = str  # account / contract identifier
TokenId = str  # token contract identifier
Amount = int  # Non-negative integer (arbitrary precision)

ZERO_ADDRESS = "0x" + "00" * 20


def require_amount(name: str, value: int, *, allow_zero: bool = False) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{name} must be an int: {value!r}")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{name} must be {'non-negative' if allow_zero else 'positive'}: {value}")


def require_address(name: str, value: str) -> None:
    if not isinstance(value, str) or not value or value == ZERO_ADDRESS:
        raise ValidationError(f"{name} must be a non-zero address: {value!r}")


@dataclass(frozen=True)
class Transfer:
    """One leg of an atomic batch. `spender` set means the move consumes allowance."""
    token: TokenId
    sender: Address
    to: Address
    amount: Amount
    spender: Optional[Address] = None


class TokenLedger:
    """
    Balance table mapping (owner, token) -> amount, with allowances
    (owner, spender, token) -> amount.

    Every public method is atomic: it either applies completely or raises
    without touching the table.

    Note: this class stores balances in a plain dict. Do not rely on dict
    iteration order; callers should sort keys explicitly where order matters.
    """

    def __init__(self) -> None:
        self._balances: Dict[Tuple[Address, TokenId], Amount] = {}
        self._allowances: Dict[Tuple[Address, Address, TokenId], Amount] = {}
        self._supply: Dict[TokenId, Amount] = {}
        self._lock = threading.RLock()

    def balance_of(self, owner: Address, token: TokenId) -> Amount:
        """Get balance for (owner, token). Returns 0 if not found."""
        return self._balances.get((owner, token), 0)

    def total_supply(self, token: TokenId) -> Amount:
        return self._supply.get(token, 0)

    def allowance(self, token: TokenId, owner: Address, spender: Address) -> Amount:
        return self._allowances.get((owner, spender, token), 0)

    def _set(self, owner: Address, token: TokenId, amount: Amount) -> None:
        if amount == 0:
            # Remove zero balances to keep table sparse
            self._balances.pop((owner, token), None)
        else:
            self._balances[(owner, token)] = amount

    def mint(self, token: TokenId, to: Address, amount: Amount) -> None:
        """Create `amount` new units of `token` owned by `to`."""
        require_address("to", to)
        require_amount("amount", amount)
        with self._lock:
            self._set(to, token, self.balance_of(to, token) + amount)
            self._supply[token] = self.total_supply(token) + amount

    def burn(self, token: TokenId, owner: Address, amount: Amount) -> None:
        """
        Destroy `amount` units held by `owner`.

        Raises:
            StateError: If the owner's balance is insufficient
        """
        require_amount("amount", amount)
        with self._lock:
            current = self.balance_of(owner, token)
            if current < amount:
                raise StateError(f"Insufficient balance: {current} < {amount}")
            self._set(owner, token, current - amount)
            self._supply[token] = self.total_supply(token) - amount

    def transfer(self, token: TokenId, sender: Address, to: Address, amount: Amount) -> None:
        """
        Move `amount` from `sender` to `to`.

        Raises:
            ValidationError: If the amount is negative or `to` is the zero address
            StateError: If the sender's balance is insufficient
        """
        require_address("to", to)
        require_amount("amount", amount, allow_zero=True)
        with self._lock:
            current = self.balance_of(sender, token)
            if current < amount:
                raise StateError(f"Insufficient balance: {current} < {amount}")
            self._set(sender, token, current - amount)
            self._set(to, token, self.balance_of(to, token) + amount)

    def approve(self, token: TokenId, owner: Address, spender: Address, amount: Amount) -> None:
        """Set the amount `spender` may move out of `owner`'s balance."""
        require_address("spender", spender)
        require_amount("amount", amount, allow_zero=True)
        with self._lock:
            if amount == 0:
                self._allowances.pop((owner, spender, token), None)
            else:
                self._allowances[(owner, spender, token)] = amount

    def transfer_from(
        self,
        token: TokenId,
        spender: Address,
        owner: Address,
        to: Address,
        amount: Amount,
    ) -> None:
        """
        Move `amount` from `owner` to `to` on behalf of `spender`, consuming allowance.

        Raises:
            StateError: If allowance or balance is insufficient
        """
        require_address("to", to)
        require_amount("amount", amount, allow_zero=True)
        with self._lock:
            allowed = self.allowance(token, owner, spender)
            if allowed < amount:
                raise StateError(f"Insufficient allowance: {allowed} < {amount}")
            current = self.balance_of(owner, token)
            if current < amount:
                raise StateError(f"Insufficient balance: {current} < {amount}")
            self._set(owner, token, current - amount)
            self._set(to, token, self.balance_of(to, token) + amount)
            remaining = allowed - amount
            if remaining == 0:
                self._allowances.pop((owner, spender, token), None)
            else:
                self._allowances[(owner, spender, token)] = remaining

    def execute(self, transfers: Sequence[Transfer]) -> None:
        """
        Apply several transfers as one unit, in order.

        Legs are evaluated against a scratch copy of the touched entries, so a
        later leg may spend what an earlier leg credited. Nothing is written
        unless every leg succeeds.

        Raises:
            ValidationError: If any leg is malformed
            StateError: If any leg lacks balance or allowance
        """
        for t in transfers:
            require_address("to", t.to)
            require_amount("amount", t.amount, allow_zero=True)
        with self._lock:
            balances: Dict[Tuple[Address, TokenId], Amount] = {}
            allowances: Dict[Tuple[Address, Address, TokenId], Amount] = {}
            for t in transfers:
                src = (t.sender, t.token)
                current = balances.get(src, self.balance_of(t.sender, t.token))
                if current < t.amount:
                    raise StateError(f"Insufficient balance: {current} < {t.amount}")
                if t.spender is not None and t.spender != t.sender:
                    akey = (t.sender, t.spender, t.token)
                    allowed = allowances.get(akey, self.allowance(t.token, t.sender, t.spender))
                    if allowed < t.amount:
                        raise StateError(f"Insufficient allowance: {allowed} < {t.amount}")
                    allowances[akey] = allowed - t.amount
                balances[src] = current - t.amount
                dst = (t.to, t.token)
                balances[dst] = balances.get(dst, self.balance_of(t.to, t.token)) + t.amount

            for (owner, token), amount in balances.items():
                self._set(owner, token, amount)
            for akey, amount in allowances.items():
                if amount == 0:
                    self._allowances.pop(akey, None)
                else:
                    self._allowances[akey] = amount

    def get_balances_for_token(self, token: TokenId) -> Dict[Address, Amount]:
        """
        Get all balances for a specific token.

        Returns:
            Dictionary mapping owner -> amount
        """
        return {owner: amount for (owner, t), amount in self._balances.items() if t == token}

    def verify_non_negative(self) -> bool:
        return all(amount >= 0 for amount in self._balances.values())

    def __repr__(self) -> str:
        return f"TokenLedger({len(self._balances)} entries)"
