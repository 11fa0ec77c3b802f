"""Auth collaborator: who is the current user, and is the session usable.

Token issuance and refresh belong to the host application. This module only
models the resulting session and answers the two questions a sync pass asks
at its start: which user owns the remote rows, and which bearer token to send.
"""

from __future__ import annotations

import os
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from .errors import NotAuthenticatedError, SessionExpiredError
from .models import as_utc, parse_timestamp, utc_now


class AuthProvider(Protocol):
    def get_current_user_id(self) -> uuid.UUID:
        """Return the user id, or raise ``NotAuthenticatedError`` /
        ``SessionExpiredError``."""
        ...

    def access_token(self) -> str: ...


@dataclass(frozen=True, slots=True)
class AuthSession:
    user_id: uuid.UUID
    access_token: str
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and as_utc(now) >= as_utc(self.expires_at)


class SessionAuthProvider:
    """Serve the current :class:`AuthSession`, validating expiry on every read."""

    def __init__(
        self,
        session: AuthSession | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._lock = threading.Lock()
        self._session = session
        self._clock = clock

    @classmethod
    def from_env(cls) -> SessionAuthProvider:
        """Build from ``PAYMENT_SYNC_USER_ID`` / ``PAYMENT_SYNC_ACCESS_TOKEN``
        (and optional ``PAYMENT_SYNC_SESSION_EXPIRES_AT``).

        Missing user id or token yields a provider with no session.
        """

        user_raw = (os.getenv("PAYMENT_SYNC_USER_ID") or "").strip()
        token = (os.getenv("PAYMENT_SYNC_ACCESS_TOKEN") or "").strip()
        if not user_raw or not token:
            return cls(None)
        try:
            user_id = uuid.UUID(user_raw)
        except ValueError as e:
            raise ValueError(f"PAYMENT_SYNC_USER_ID is not a UUID: {user_raw!r}") from e
        expires_raw = (os.getenv("PAYMENT_SYNC_SESSION_EXPIRES_AT") or "").strip()
        expires_at = parse_timestamp(expires_raw) if expires_raw else None
        return cls(AuthSession(user_id=user_id, access_token=token, expires_at=expires_at))

    def set_session(self, session: AuthSession | None) -> None:
        with self._lock:
            self._session = session

    def _current(self) -> AuthSession:
        with self._lock:
            session = self._session
        if session is None:
            raise NotAuthenticatedError("no active session")
        if session.is_expired(self._clock()):
            raise SessionExpiredError(f"session expired at {session.expires_at.isoformat()}")
        return session

    def get_current_user_id(self) -> uuid.UUID:
        return self._current().user_id

    def access_token(self) -> str:
        return self._current().access_token


__all__ = ["AuthProvider", "AuthSession", "SessionAuthProvider"]
