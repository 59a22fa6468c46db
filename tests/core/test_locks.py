# [TESTER] v1

from __future__ import annotations

import threading

import pytest

from shadeswap.core.locks import ResourceLocks, account_key, pool_key
from shadeswap.errors import ReentrancyError, StateError


def test_hold_marks_keys_and_releases_them() -> None:
    locks = ResourceLocks()
    key = pool_key("p1")
    with locks.hold(key, account_key("TKA", "alice")):
        assert locks.is_held(key)
        assert locks.is_held(("ACC", "TKA", "alice"))
    assert not locks.is_held(key)


def test_duplicate_keys_in_one_call_are_fine() -> None:
    locks = ResourceLocks()
    with locks.hold(pool_key("p1"), pool_key("p1")):
        assert locks.is_held(pool_key("p1"))


def test_same_thread_reentry_raises() -> None:
    locks = ResourceLocks()
    with locks.hold(pool_key("p1")):
        with pytest.raises(ReentrancyError):
            with locks.hold(pool_key("p2"), pool_key("p1")):
                pass
        # The failed attempt must not have taken p2.
        assert not locks.is_held(pool_key("p2"))
    with locks.hold(pool_key("p1")):
        pass


def test_release_on_exception() -> None:
    locks = ResourceLocks()
    with pytest.raises(RuntimeError):
        with locks.hold(pool_key("p1")):
            raise RuntimeError("boom")
    assert not locks.is_held(pool_key("p1"))


def test_timeout_reports_busy_resource() -> None:
    locks = ResourceLocks(timeout_s=0.05)
    held = threading.Event()
    release = threading.Event()

    def holder() -> None:
        with locks.hold(pool_key("p1")):
            held.set()
            release.wait(5)

    t = threading.Thread(target=holder)
    t.start()
    try:
        assert held.wait(5)
        with pytest.raises(StateError, match="resource busy"):
            with locks.hold(pool_key("p0"), pool_key("p1")):
                pass
        assert not locks.is_held(pool_key("p0"))
    finally:
        release.set()
        t.join(5)


def test_timeout_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ResourceLocks(timeout_s=0)
