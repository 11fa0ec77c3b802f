"""Observable sync session state.

The coordinator owns a :class:`SyncStatePublisher`; callers read immutable
:class:`SyncState` snapshots via :meth:`SyncStatePublisher.snapshot` (polling)
or receive each new snapshot via :meth:`SyncStatePublisher.subscribe`. Nothing
here is persisted.
"""

from __future__ import annotations

import dataclasses
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .errors import SyncError
from .logging_setup import get_logger

_logger = get_logger("payment_sync.state")


@dataclass(frozen=True, slots=True)
class SyncState:
    pending_sync_count: int = 0
    last_error: SyncError | None = None
    is_syncing: bool = False
    last_sync_at: datetime | None = None


class SyncStatePublisher:
    def __init__(self, initial: SyncState | None = None) -> None:
        self._lock = threading.Lock()
        self._state = initial or SyncState()
        self._listeners: list[Callable[[SyncState], None]] = []

    def snapshot(self) -> SyncState:
        with self._lock:
            return self._state

    def update(self, **changes: Any) -> SyncState:
        """Replace fields of the current state and notify listeners.

        Listeners run on the caller's thread, outside the lock, and only when
        the state actually changed.
        """

        with self._lock:
            new = dataclasses.replace(self._state, **changes)
            changed = new != self._state
            self._state = new
            listeners = list(self._listeners) if changed else []
        for listener in listeners:
            try:
                listener(new)
            except Exception:  # noqa: BLE001
                _logger.exception("state:listener_failed")
        return new

    def subscribe(self, listener: Callable[[SyncState], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe


__all__ = ["SyncState", "SyncStatePublisher"]
