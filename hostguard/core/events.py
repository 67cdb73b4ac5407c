"""
Structured lifecycle events emitted by the transaction manager.

The presentation layer subscribes to these; the core has no knowledge of
how they are rendered.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

OPERATION_STARTED = "operation_started"
OPERATION_RESULT = "operation_result"
TRANSACTION_COMMITTED = "transaction_committed"
TRANSACTION_ROLLED_BACK = "transaction_rolled_back"


@dataclass(frozen=True)
class Event:
    """
    Immutable event record.

    Fields:
        type: One of the event type constants above
        transaction_id: Transaction the event belongs to
        ts: Wall-clock time of emission
        payload: Event-specific data (operation record, restore report, ...)
    """
    type: str
    transaction_id: str
    ts: datetime
    payload: Dict[str, Any] = field(default_factory=dict)


Subscriber = Callable[[Event], None]


class EventBus:
    """
    Synchronous fan-out to subscribers.

    A subscriber that raises is logged and skipped; rendering problems must
    never change the outcome of a transaction.
    """

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def emit(self, event: Event) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception:
                logger.exception("Event subscriber failed for %s", event.type)
