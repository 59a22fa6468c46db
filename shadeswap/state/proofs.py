"""
Used-proof table for confidential transfer replay protection.

A proof value may be consumed exactly once. The table is append-only.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Mapping


@dataclass
class UsedProofTable:
    """
    Mutable mapping: proof -> timestamp at which it was consumed.

    Similar in spirit to `TokenLedger`: a small, explicit state table.
    """

    _used: Dict[str, int] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def is_used(self, proof: str) -> bool:
        return proof in self._used

    def claim(self, proof: str, used_at: int) -> bool:
        """Record `proof` as consumed. Returns False if it already was."""
        if not isinstance(proof, str) or not proof:
            raise TypeError("proof must be a non-empty str")
        with self._lock:
            if proof in self._used:
                return False
            self._used[proof] = int(used_at)
            return True

    def mark_used(self, proof: str, used_at: int) -> None:
        if not self.claim(proof, used_at):
            raise ValueError(f"proof already recorded: {proof!r}")

    def get_all(self) -> Mapping[str, int]:
        # Return a shallow copy to avoid accidental mutation during iteration.
        with self._lock:
            return dict(self._used)

    def __len__(self) -> int:
        return len(self._used)
