"""
Per-resource mutual exclusion.

Every mutating operation holds the locks for the pools and confidential
accounts it touches for its full duration. Keys are acquired in sorted order so
two multi-resource operations cannot deadlock. A thread that tries to take a
key it already holds gets `ReentrancyError` instead of blocking on itself.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from ..errors import ReentrancyError, StateError


_Key = Tuple[str, str, str]


def pool_key(pool_id: str) -> _Key:
    return ("POL", pool_id, "")


def account_key(token: str, owner: str) -> _Key:
    return ("ACC", token, owner)


class ResourceLocks:
    def __init__(self, *, timeout_s: Optional[float] = None) -> None:
        if timeout_s is not None and timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        self._timeout_s = timeout_s
        self._guard = threading.Lock()
        self._locks: Dict[_Key, threading.Lock] = {}
        self._holders: Dict[_Key, int] = {}

    def _lock_for(self, key: _Key) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def is_held(self, key: _Key) -> bool:
        return key in self._holders

    @contextmanager
    def hold(self, *keys: _Key) -> Iterator[None]:
        me = threading.get_ident()
        ordered = sorted(set(keys))
        for key in ordered:
            if self._holders.get(key) == me:
                raise ReentrancyError(f"re-entrant call on locked resource {key[0]}:{key[1]}")

        acquired: List[Tuple[_Key, threading.Lock]] = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                if self._timeout_s is None:
                    lock.acquire()
                elif not lock.acquire(timeout=self._timeout_s):
                    raise StateError(f"resource busy: {key[0]}:{key[1]}")
                self._holders[key] = me
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                self._holders.pop(key, None)
                lock.release()
