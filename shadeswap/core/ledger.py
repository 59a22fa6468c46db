"""
Confidential balance ledger.

Per (token, owner) the ledger keeps a confidential balance together with a
commitment H(balance, nonce). Any operation that debits an account first
recomputes the commitment from the stored balance and nonce and requires it
to match; a mismatch rejects the operation.

Plaintext tokens that back confidential balances sit in the ledger's custody
address on the TokenLedger, so for every token:

    tokens.balance_of(ledger.address, token) == sum(confidential balances)

All preconditions are checked before anything is written. A rejected call
leaves accounts, proofs and plaintext balances untouched.
"""

from __future__ import annotations

import time
from dataclasses import replace
from typing import Callable, Optional

from structlog import get_logger

from ..errors import (
    AuthorizationError,
    CommitmentMismatchError,
    NotRegisteredError,
    ProofAlreadyUsedError,
    StateError,
    ValidationError,
)
from ..state.accounts import AccountTable, ConfidentialAccount
from ..state.balances import Address, Amount, TokenId, TokenLedger, require_address, require_amount
from ..state.proofs import UsedProofTable
from .access import AccessPolicy, Capability
from .commitment import compute_commitment, verify_commitment
from .events import EventBus, ExchangeEvents, privacy_tag
from .locks import ResourceLocks, account_key

logger = get_logger()

LEDGER_ADDRESS = "shadeswap:confidential-ledger"


def _require_nonce(nonce: int) -> None:
    if not isinstance(nonce, int) or isinstance(nonce, bool) or nonce < 0:
        raise ValidationError(f"nonce must be a non-negative int: {nonce!r}")


def _normalize_proof(proof: object) -> str:
    if isinstance(proof, (bytes, bytearray)):
        proof = "0x" + bytes(proof).hex()
    if not isinstance(proof, str) or not proof or proof in ("0x", "0x" + "00" * 32):
        raise ValidationError("proof must be a non-empty value")
    return proof


class ConfidentialLedger:
    """
    Commitment-gated confidential balances for any number of tokens.

    `policy` supplies the owner (mint, auditor management) and the auditor set
    (disclosure).
    """

    def __init__(
        self,
        *,
        policy: AccessPolicy,
        tokens: TokenLedger,
        events: Optional[EventBus] = None,
        clock: Optional[Callable[[], int]] = None,
        locks: Optional[ResourceLocks] = None,
        address: Address = LEDGER_ADDRESS,
    ) -> None:
        self.log = logger.new(component="ledger")
        self.policy = policy
        self.tokens = tokens
        self.events = events if events is not None else EventBus()
        self.address = address
        self._clock = clock if clock is not None else (lambda: int(time.time()))
        self._locks = locks if locks is not None else ResourceLocks()
        self._accounts = AccountTable()
        self._used_proofs = UsedProofTable()

    # -- reads ---------------------------------------------------------------

    def is_registered(self, token: TokenId, account: Address) -> bool:
        acct = self._accounts.get(token, account)
        return acct is not None and acct.registered

    def get_public_key(self, token: TokenId, account: Address) -> str:
        acct = self._accounts.get(token, account)
        return acct.public_key if acct is not None else ""

    def get_commitment(self, token: TokenId, account: Address) -> Optional[str]:
        acct = self._accounts.get(token, account)
        return acct.commitment if acct is not None else None

    def get_nonce(self, token: TokenId, account: Address) -> int:
        acct = self._accounts.get(token, account)
        return acct.nonce if acct is not None else 0

    def get_last_op_nonce(self, token: TokenId, account: Address) -> int:
        acct = self._accounts.get(token, account)
        return acct.last_op_nonce if acct is not None else 0

    def is_proof_used(self, proof: object) -> bool:
        return self._used_proofs.is_used(_normalize_proof(proof))

    def verify_account(self, token: TokenId, account: Address) -> bool:
        """True iff the account exists and its commitment matches H(balance, nonce)."""
        acct = self._accounts.get(token, account)
        return acct is not None and verify_commitment(acct)

    def total_confidential(self, token: TokenId) -> Amount:
        """Sum of all confidential balances of `token`; equals the ledger custody balance."""
        return sum(acct.balance for acct in self._accounts if acct.token == token)

    def get_confidential_balance(self, caller: Address, token: TokenId, account: Address) -> Amount:
        """
        Confidential balance, readable by the account itself or the ledger owner.

        Raises:
            AuthorizationError: For any other caller
        """
        if caller != account and not self.policy.has(caller, Capability.OWNER):
            raise AuthorizationError(f"caller {caller} may not read balance of {account}")
        acct = self._accounts.get(token, account)
        return acct.balance if acct is not None else 0

    def disclose(self, caller: Address, token: TokenId, account: Address) -> Amount:
        """
        Reveal a confidential balance to an authorized auditor.

        Raises:
            AuthorizationError: If the caller is not an authorized auditor
        """
        self.policy.require(caller, Capability.AUDITOR)
        acct = self._accounts.get(token, account)
        self.log.info("balance disclosed", auditor=caller, token=token, account=account)
        return acct.balance if acct is not None else 0

    # -- auditor management --------------------------------------------------

    def authorize_auditor(self, caller: Address, auditor: Address) -> None:
        if self.policy.authorize_auditor(caller, auditor):
            self.events.publish(ExchangeEvents.AUDITOR_AUTHORIZED, self._clock(), auditor=auditor)

    def revoke_auditor(self, caller: Address, auditor: Address) -> None:
        if self.policy.revoke_auditor(caller, auditor):
            self.events.publish(ExchangeEvents.AUDITOR_REVOKED, self._clock(), auditor=auditor)

    def is_auditor(self, address: Address) -> bool:
        return self.policy.has(address, Capability.AUDITOR)

    # -- helpers -------------------------------------------------------------

    def _require_registered(self, token: TokenId, account: Address) -> ConfidentialAccount:
        acct = self._accounts.get(token, account)
        if acct is None or not acct.registered:
            raise NotRegisteredError(f"account {account} is not registered for {token}")
        return acct

    def _require_commitment(self, acct: ConfidentialAccount) -> None:
        if not verify_commitment(acct):
            raise CommitmentMismatchError(acct.token, acct.owner)

    def _require_funds(self, acct: ConfidentialAccount, amount: Amount) -> None:
        if acct.balance < amount:
            raise StateError(f"Insufficient confidential balance for {acct.owner}")

    @staticmethod
    def _blank(token: TokenId, owner: Address) -> ConfidentialAccount:
        return ConfidentialAccount(
            token=token,
            owner=owner,
            balance=0,
            nonce=0,
            commitment=compute_commitment(0, 0),
        )

    @staticmethod
    def _rotated(acct: ConfidentialAccount, balance: Amount, nonce: int) -> ConfidentialAccount:
        return replace(
            acct,
            balance=balance,
            nonce=nonce,
            commitment=compute_commitment(balance, nonce),
            last_op_nonce=nonce,
        )

    # -- mutations -----------------------------------------------------------

    def register(self, token: TokenId, account: Address, public_key: str) -> None:
        """
        Register `account` for confidential operations on `token`.

        Raises:
            ValidationError: If the public key is empty
            StateError: If the account is already registered
        """
        require_address("account", account)
        if isinstance(public_key, (bytes, bytearray)):
            public_key = "0x" + bytes(public_key).hex()
        if not isinstance(public_key, str) or not public_key or public_key == "0x" + "00" * 32:
            raise ValidationError("public key must be non-empty")

        with self._locks.hold(account_key(token, account)):
            acct = self._accounts.get(token, account)
            if acct is not None and acct.registered:
                raise StateError(f"account {account} already registered for {token}")
            if acct is None:
                acct = self._blank(token, account)
            self._accounts.put(replace(acct, registered=True, public_key=public_key))

        self.log.info("account registered", token=token, account=account)
        self.events.publish(ExchangeEvents.REGISTRATION, self._clock(), token=token, account=account)

    def deposit(self, token: TokenId, account: Address, amount: Amount, nonce: int) -> None:
        """
        Move `amount` of plaintext balance into the confidential balance.

        The new commitment is computed from the new balance and `nonce`.

        Raises:
            ValidationError: If amount or nonce is invalid
            NotRegisteredError: If the account is not registered
            StateError: If the plaintext balance is insufficient
        """
        require_amount("amount", amount)
        _require_nonce(nonce)

        with self._locks.hold(account_key(token, account)):
            acct = self._require_registered(token, account)
            if self.tokens.balance_of(account, token) < amount:
                raise StateError(f"Insufficient plaintext balance for {account}")
            self.tokens.transfer(token, account, self.address, amount)
            self._accounts.put(self._rotated(acct, acct.balance + amount, nonce))
            now = self._clock()

        self.log.debug("deposit", token=token, account=account)
        self.events.publish(
            ExchangeEvents.DEPOSIT, now, token=token, account=account, privacy_tag=privacy_tag(amount, account, now)
        )

    def withdraw(self, token: TokenId, account: Address, amount: Amount, nonce: int) -> None:
        """
        Move `amount` of confidential balance back to the plaintext balance.

        Raises:
            ValidationError: If amount or nonce is invalid
            NotRegisteredError: If the account is not registered
            StateError: If the confidential balance is insufficient
            CommitmentMismatchError: If the stored commitment does not match
        """
        require_amount("amount", amount)
        _require_nonce(nonce)

        with self._locks.hold(account_key(token, account)):
            acct = self._require_registered(token, account)
            self._require_funds(acct, amount)
            self._require_commitment(acct)
            self.tokens.transfer(token, self.address, account, amount)
            self._accounts.put(self._rotated(acct, acct.balance - amount, nonce))
            now = self._clock()

        self.log.debug("withdraw", token=token, account=account)
        self.events.publish(
            ExchangeEvents.WITHDRAW, now, token=token, account=account, privacy_tag=privacy_tag(amount, account, now)
        )

    def confidential_transfer(
        self,
        token: TokenId,
        sender: Address,
        recipient: Address,
        amount: Amount,
        nonce: int,
        proof: object,
    ) -> bool:
        """
        Transfer between two registered confidential balances.

        `proof` is consumed: a second transfer presenting the same proof is
        rejected. The sender's nonce becomes `nonce` and the recipient's
        `nonce + 1`, so one caller-supplied value never yields the same nonce
        for both parties.

        Raises:
            ValidationError: Bad amount/nonce/proof, or sender == recipient
            NotRegisteredError: If either party is not registered
            StateError: If the sender's balance is insufficient
            ProofAlreadyUsedError: If the proof was consumed before
            CommitmentMismatchError: If the sender's commitment does not match
        """
        require_amount("amount", amount)
        _require_nonce(nonce)
        proof_value = _normalize_proof(proof)
        require_address("recipient", recipient)
        if sender == recipient:
            raise ValidationError("sender and recipient must differ")

        with self._locks.hold(account_key(token, sender), account_key(token, recipient)):
            src = self._require_registered(token, sender)
            dst = self._require_registered(token, recipient)
            self._require_funds(src, amount)
            if self._used_proofs.is_used(proof_value):
                raise ProofAlreadyUsedError(f"proof already used: {proof_value}")
            self._require_commitment(src)

            now = self._clock()
            # Transfers on disjoint accounts may race for one proof; only the claim decides.
            if not self._used_proofs.claim(proof_value, now):
                raise ProofAlreadyUsedError(f"proof already used: {proof_value}")
            self._accounts.put(self._rotated(src, src.balance - amount, nonce))
            self._accounts.put(self._rotated(dst, dst.balance + amount, nonce + 1))

        self.log.debug("confidential transfer", token=token, sender=sender, recipient=recipient)
        self.events.publish(
            ExchangeEvents.CONFIDENTIAL_TRANSFER,
            now,
            token=token,
            sender=sender,
            recipient=recipient,
            privacy_tag=privacy_tag(amount, sender, now),
        )
        return True

    def legacy_transfer(
        self,
        token: TokenId,
        sender: Address,
        recipient: Address,
        amount: Amount,
        nonce: int,
    ) -> bool:
        """
        Backward-compatible transfer without registration or replay checks.

        This path is intentionally weaker than `confidential_transfer`: neither
        party needs to be registered and nothing stops the same call from being
        submitted twice. Missing accounts are created unregistered. The sender's
        commitment is still checked and both commitments are rotated as in
        `confidential_transfer`.
        """
        require_amount("amount", amount)
        _require_nonce(nonce)
        require_address("recipient", recipient)
        if sender == recipient:
            raise ValidationError("sender and recipient must differ")

        with self._locks.hold(account_key(token, sender), account_key(token, recipient)):
            src = self._accounts.get(token, sender)
            if src is None:
                raise StateError(f"Insufficient confidential balance for {sender}")
            dst = self._accounts.get(token, recipient) or self._blank(token, recipient)
            self._require_funds(src, amount)
            self._require_commitment(src)

            self._accounts.put(self._rotated(src, src.balance - amount, nonce))
            self._accounts.put(self._rotated(dst, dst.balance + amount, nonce + 1))
            now = self._clock()

        self.log.warning("legacy transfer used", token=token, sender=sender, recipient=recipient)
        self.events.publish(
            ExchangeEvents.LEGACY_TRANSFER,
            now,
            token=token,
            sender=sender,
            recipient=recipient,
            privacy_tag=privacy_tag(amount, sender, now),
        )
        return True

    def confidential_mint(
        self,
        caller: Address,
        token: TokenId,
        recipient: Address,
        amount: Amount,
        nonce: int,
    ) -> None:
        """
        Owner-only: create `amount` directly in a registered confidential balance.

        No commitment check is made since nothing is debited. The matching
        plaintext backing is minted into ledger custody.
        """
        self.policy.require(caller, Capability.OWNER)
        require_amount("amount", amount)
        _require_nonce(nonce)

        with self._locks.hold(account_key(token, recipient)):
            acct = self._require_registered(token, recipient)
            self.tokens.mint(token, self.address, amount)
            self._accounts.put(self._rotated(acct, acct.balance + amount, nonce))
            now = self._clock()

        self.log.info("confidential mint", token=token, recipient=recipient)
        self.events.publish(
            ExchangeEvents.MINT, now, token=token, account=recipient, privacy_tag=privacy_tag(amount, caller, now)
        )

    def confidential_burn(self, token: TokenId, account: Address, amount: Amount, nonce: int) -> None:
        """
        Destroy `amount` of the caller's confidential balance.

        Same checks as `withdraw`; the plaintext backing is burned from custody.
        """
        require_amount("amount", amount)
        _require_nonce(nonce)

        with self._locks.hold(account_key(token, account)):
            acct = self._require_registered(token, account)
            self._require_funds(acct, amount)
            self._require_commitment(acct)
            self.tokens.burn(token, self.address, amount)
            self._accounts.put(self._rotated(acct, acct.balance - amount, nonce))
            now = self._clock()

        self.log.info("confidential burn", token=token, account=account)
        self.events.publish(
            ExchangeEvents.BURN, now, token=token, account=account, privacy_tag=privacy_tag(amount, account, now)
        )
