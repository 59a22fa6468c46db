"""Exception types shared by the state tables and the exchange core.

Every failure is a rejected operation: the raising call has not mutated any
state. Callers that want to retry must resubmit with corrected arguments.
"""

from __future__ import annotations


class DexError(Exception):
    """Base class for every rejected exchange operation."""


class ValidationError(DexError, ValueError):
    """Malformed input: zero amounts, identical or empty tokens, fee out of range."""


class AuthorizationError(DexError):
    """Caller lacks the required capability, or a token/pool is not allow-listed."""


class StateError(DexError):
    """The operation is well-formed but not allowed in the current state."""


class NotRegisteredError(StateError):
    pass


class CommitmentMismatchError(StateError):
    """Stored commitment does not match H(balance, nonce)."""

    def __init__(self, token: str, account: str) -> None:
        self.token = token
        self.account = account
        super().__init__(f"commitment mismatch for {account} on {token}")


class ProofAlreadyUsedError(StateError):
    pass


class DeadlineExceededError(StateError):
    def __init__(self, deadline: int, now: int) -> None:
        self.deadline = deadline
        self.now = now
        super().__init__(f"deadline exceeded: now={now} > deadline={deadline}")


class ReentrancyError(StateError):
    pass


class SlippageError(DexError):
    """Computed output is below the caller's minimum."""

    def __init__(self, what: str, got: int, minimum: int) -> None:
        self.what = what
        self.got = got
        self.minimum = minimum
        super().__init__(f"{what} ({got}) < minimum ({minimum})")
