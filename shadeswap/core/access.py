"""
Capability checks for administrative and disclosure operations.

Each admin entry point calls `AccessPolicy.require(...)` first; there is no
ownership base class.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import FrozenSet, Set

from ..errors import AuthorizationError, ValidationError
from ..state.balances import Address, require_address


class Capability(Enum):
    OWNER = "OWNER"
    AUDITOR = "AUDITOR"
    NONE = "NONE"


class AccessPolicy:
    """Single owner plus an owner-managed auditor set."""

    def __init__(self, owner: Address) -> None:
        require_address("owner", owner)
        self._owner = owner
        self._auditors: Set[Address] = set()
        self._lock = threading.Lock()

    @property
    def owner(self) -> Address:
        return self._owner

    def capabilities_of(self, address: Address) -> FrozenSet[Capability]:
        caps = set()
        if address == self._owner:
            caps.add(Capability.OWNER)
        if address in self._auditors:
            caps.add(Capability.AUDITOR)
        if not caps:
            caps.add(Capability.NONE)
        return frozenset(caps)

    def has(self, address: Address, capability: Capability) -> bool:
        return capability in self.capabilities_of(address)

    def require(self, caller: Address, capability: Capability) -> None:
        if capability == Capability.NONE:
            return
        if not self.has(caller, capability):
            raise AuthorizationError(f"caller {caller} lacks capability {capability.value}")

    def auditors(self) -> FrozenSet[Address]:
        return frozenset(self._auditors)

    def authorize_auditor(self, caller: Address, auditor: Address) -> bool:
        """Add `auditor`; returns False if it was already authorized."""
        self.require(caller, Capability.OWNER)
        require_address("auditor", auditor)
        with self._lock:
            if auditor in self._auditors:
                return False
            self._auditors.add(auditor)
            return True

    def revoke_auditor(self, caller: Address, auditor: Address) -> bool:
        """Remove `auditor`; returns False if it was not authorized."""
        self.require(caller, Capability.OWNER)
        with self._lock:
            if auditor not in self._auditors:
                return False
            self._auditors.discard(auditor)
            return True

    def transfer_ownership(self, caller: Address, new_owner: Address) -> None:
        self.require(caller, Capability.OWNER)
        require_address("new_owner", new_owner)
        if new_owner == self._owner:
            raise ValidationError("new owner is already the owner")
        self._owner = new_owner
