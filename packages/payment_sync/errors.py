"""Error taxonomy for payment synchronization.

``SyncError`` is the only exception :meth:`SyncCoordinator.perform_sync`
raises for a failed pass. Its ``kind`` tells the caller how to react:

- ``NOT_AUTHENTICATED`` / ``SESSION_EXPIRED``: prompt for login.
- ``NETWORK_ERROR``: transient; show a banner and retry later.
- ``UPLOAD_FAILED`` / ``DOWNLOAD_FAILED``: the backend rejected the request.
- ``UNKNOWN``: local-store or unexpected failure; log it.
- ``CONFLICT_ERROR``: reserved for field-level merging. The coordinator
  resolves conflicts locally (local wins) and never raises it, but reporting
  code must still handle it.

The collaborator exceptions below (auth, remote transport) are raised by the
adapters and translated by the coordinator.
"""

from __future__ import annotations

import uuid
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .coordinator import SyncReport


class SyncErrorKind(StrEnum):
    NOT_AUTHENTICATED = "not_authenticated"
    SESSION_EXPIRED = "session_expired"
    NETWORK_ERROR = "network_error"
    UPLOAD_FAILED = "upload_failed"
    DOWNLOAD_FAILED = "download_failed"
    CONFLICT_ERROR = "conflict_error"
    UNKNOWN = "unknown"

    @property
    def error_code(self) -> str:
        """Stable code for logs and telemetry (e.g. ``SYNC_UPLOAD_FAILED``)."""

        if self is SyncErrorKind.CONFLICT_ERROR:
            return "SYNC_CONFLICT"
        return f"SYNC_{self.name}"

    @property
    def requires_login(self) -> bool:
        return self in (SyncErrorKind.NOT_AUTHENTICATED, SyncErrorKind.SESSION_EXPIRED)


class SyncError(Exception):
    """A failed synchronization pass.

    Two errors compare equal when their kinds match; ``detail`` is diagnostic
    text only. ``report`` carries whatever the pass committed before failing
    (e.g. an upload that succeeded before the download broke).
    """

    def __init__(
        self,
        kind: SyncErrorKind,
        detail: str | None = None,
        *,
        report: SyncReport | None = None,
    ) -> None:
        self.kind = kind
        self.detail = detail
        self.report = report
        message = kind.error_code if not detail else f"{kind.error_code}: {detail}"
        super().__init__(message)

    @property
    def error_code(self) -> str:
        return self.kind.error_code

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SyncError):
            return NotImplemented
        return self.kind is other.kind

    def __hash__(self) -> int:
        return hash(self.kind)

    def __repr__(self) -> str:
        return f"SyncError(kind={self.kind.value!r}, detail={self.detail!r})"


class SyncAlreadyRunningError(RuntimeError):
    """Raised when ``perform_sync`` is called while another pass is in flight."""


# ---------------------------
# Auth collaborator
# ---------------------------


class AuthError(Exception):
    pass


class NotAuthenticatedError(AuthError):
    """No session is present."""


class SessionExpiredError(AuthError):
    """A session exists but is no longer valid."""


# ---------------------------
# Remote store collaborator
# ---------------------------


class RemoteStoreError(Exception):
    pass


class RemoteNetworkError(RemoteStoreError):
    """The request never produced an HTTP response (DNS, refused, timeout)."""


class RemoteAuthError(RemoteStoreError):
    """The backend rejected the credentials (HTTP 401/403)."""

    def __init__(self, status: int, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(f"remote rejected credentials: HTTP {status}")


class RemoteRequestError(RemoteStoreError):
    """Any other non-2xx response, or an unreadable response body."""

    def __init__(self, status: int | None, body: str = "") -> None:
        self.status = status
        self.body = body
        prefix = f"HTTP {status}" if status is not None else "invalid response"
        super().__init__(f"{prefix}: {body}" if body else prefix)


# ---------------------------
# Local mutations
# ---------------------------


class PaymentValidationError(ValueError):
    pass


class PaymentNotFoundError(LookupError):
    def __init__(self, payment_id: uuid.UUID) -> None:
        self.payment_id = payment_id
        super().__init__(f"no local payment with id {payment_id}")


__all__ = [
    "AuthError",
    "NotAuthenticatedError",
    "PaymentNotFoundError",
    "PaymentValidationError",
    "RemoteAuthError",
    "RemoteNetworkError",
    "RemoteRequestError",
    "RemoteStoreError",
    "SessionExpiredError",
    "SyncAlreadyRunningError",
    "SyncError",
    "SyncErrorKind",
]
