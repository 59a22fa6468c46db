"""
Exchange events and the bus that delivers them.

Events are published after a mutation has committed. Swap, liquidity and
transfer events never carry plaintext amounts; they carry a `privacy_tag`
derived from (amount, caller, time) instead. The tag is not cryptographically
binding; it only keeps amounts out of the event stream.
"""

from __future__ import annotations

import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, DefaultDict, Deque, Dict, List, Optional

from structlog import get_logger

from ..state.canonical import domain_hash

logger = get_logger()

DEFAULT_HISTORY_LIMIT = 10_000


class ExchangeEvents(Enum):
    POOL_CREATED = "pool_created"
    POOL_PAUSED = "pool_paused"
    POOL_RESUMED = "pool_resumed"
    LIQUIDITY_DEPOSITED = "liquidity_deposited"
    LIQUIDITY_WITHDRAWN = "liquidity_withdrawn"
    SWAP_EXECUTED = "swap_executed"
    REGISTRATION = "registration"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    CONFIDENTIAL_TRANSFER = "confidential_transfer"
    LEGACY_TRANSFER = "legacy_transfer"
    MINT = "mint"
    BURN = "burn"
    AUDITOR_AUTHORIZED = "auditor_authorized"
    AUDITOR_REVOKED = "auditor_revoked"


def privacy_tag(amount: int, caller: str, timestamp: int) -> str:
    """Opaque stand-in for an amount in emitted events."""
    return domain_hash("privacy_tag", int(amount), caller, int(timestamp))


@dataclass(frozen=True)
class Event:
    kind: ExchangeEvents
    timestamp: int
    data: Dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __contains__(self, key: str) -> bool:
        return key in self.data


Subscriber = Callable[[Event], None]


class EventBus:
    """
    Pub/sub bus for exchange events.

    The most recent `history_limit` events are kept in memory; older ones are
    dropped. A limit of 0 disables the history.
    """

    def __init__(self, *, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        if not isinstance(history_limit, int) or history_limit < 0:
            raise ValueError(f"history_limit must be a non-negative int: {history_limit!r}")
        self.log = logger.new(component="events")
        self._subscribers: DefaultDict[ExchangeEvents, List[Subscriber]] = defaultdict(list)
        self._history: Deque[Event] = deque(maxlen=history_limit)
        self._history_lock = threading.Lock()

    def subscribe(self, kind: ExchangeEvents, fn: Subscriber) -> None:
        if fn not in self._subscribers[kind]:
            self._subscribers[kind].append(fn)

    def unsubscribe(self, kind: ExchangeEvents, fn: Subscriber) -> None:
        if fn in self._subscribers[kind]:
            self._subscribers[kind].remove(fn)

    def publish(self, kind: ExchangeEvents, timestamp: int, **data: Any) -> Event:
        event = Event(kind=kind, timestamp=int(timestamp), data=data)
        with self._history_lock:
            self._history.append(event)
        self.log.debug("event", kind=kind.value, **data)
        for fn in list(self._subscribers[kind]):
            # Runs after commit: subscriber failures are logged, never raised.
            try:
                fn(event)
            except Exception:
                self.log.error("event subscriber failed", kind=kind.value, exc_info=True)
        return event

    def history(self, kind: Optional[ExchangeEvents] = None) -> List[Event]:
        with self._history_lock:
            events = list(self._history)
        if kind is None:
            return events
        return [e for e in events if e.kind == kind]
