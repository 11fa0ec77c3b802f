"""Domain events emitted by the sync coordinator and the local mutation service.

Events are small frozen dataclasses. Producers publish them to an
:class:`EventSink`; the default :class:`CallbackEventSink` fans each event
out to registered callbacks, optionally filtered by event type. Sinks are an
observability hook only: a failing callback is logged and never breaks the
operation that emitted the event.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, TypeVar

from .logging_setup import get_logger
from .models import utc_now

_logger = get_logger("payment_sync.events")


@dataclass(frozen=True, slots=True, kw_only=True)
class DomainEvent:
    timestamp: datetime = field(default_factory=utc_now)
    event_id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(frozen=True, slots=True, kw_only=True)
class PaymentsSynced(DomainEvent):
    """The upload phase confirmed ``synced_count`` records remotely."""

    synced_count: int


@dataclass(frozen=True, slots=True, kw_only=True)
class PaymentCreated(DomainEvent):
    payment_id: uuid.UUID
    # "local" for user edits, "sync" for changes applied by a sync pass.
    origin: str = "local"


@dataclass(frozen=True, slots=True, kw_only=True)
class PaymentUpdated(DomainEvent):
    payment_id: uuid.UUID
    origin: str = "local"


@dataclass(frozen=True, slots=True, kw_only=True)
class PaymentDeleted(DomainEvent):
    payment_id: uuid.UUID
    origin: str = "local"


@dataclass(frozen=True, slots=True, kw_only=True)
class PaymentStatusToggled(DomainEvent):
    payment_id: uuid.UUID
    is_paid: bool


class EventSink(Protocol):
    def publish(self, event: DomainEvent) -> None: ...


class NullEventSink:
    """Sink that drops every event."""

    def publish(self, event: DomainEvent) -> None:
        return None


E = TypeVar("E", bound=DomainEvent)


class CallbackEventSink:
    """In-process publish/subscribe over plain callbacks."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[tuple[type[DomainEvent], Callable[[DomainEvent], None]]] = []

    def subscribe(
        self,
        callback: Callable[[E], None],
        *,
        event_type: type[E] = DomainEvent,  # type: ignore[assignment]
    ) -> Callable[[], None]:
        """Register ``callback`` for ``event_type`` (and subclasses).

        Returns a function that removes the subscription.
        """

        entry = (event_type, callback)
        with self._lock:
            self._subscribers.append(entry)  # type: ignore[arg-type]

        def _unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)  # type: ignore[arg-type]

        return _unsubscribe

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            targets = [cb for et, cb in self._subscribers if isinstance(event, et)]
        for cb in targets:
            try:
                cb(event)
            except Exception:  # noqa: BLE001
                _logger.exception("events:subscriber_failed event=%s", type(event).__name__)


__all__ = [
    "CallbackEventSink",
    "DomainEvent",
    "EventSink",
    "NullEventSink",
    "PaymentCreated",
    "PaymentDeleted",
    "PaymentStatusToggled",
    "PaymentUpdated",
    "PaymentsSynced",
]
