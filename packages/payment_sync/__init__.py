"""Public interface for the ``payment_sync`` package.

This module exposes the coordinator, the store adapters and the public
models/types as the stable import surface. There is no runtime logic here,
only symbol re-exports.
"""

from .auth import AuthProvider, AuthSession, SessionAuthProvider
from .config import SyncSettings
from .coordinator import DeletionFailure, SyncCoordinator, SyncPhase, SyncReport
from .errors import (
    NotAuthenticatedError,
    PaymentNotFoundError,
    PaymentValidationError,
    RemoteAuthError,
    RemoteNetworkError,
    RemoteRequestError,
    RemoteStoreError,
    SessionExpiredError,
    SyncAlreadyRunningError,
    SyncError,
    SyncErrorKind,
)
from .events import (
    CallbackEventSink,
    DomainEvent,
    EventSink,
    NullEventSink,
    PaymentCreated,
    PaymentDeleted,
    PaymentsSynced,
    PaymentStatusToggled,
    PaymentUpdated,
)
from .local_store import LocalPaymentStore
from .models import (
    Currency,
    Payment,
    PaymentCategory,
    PaymentRecord,
    RemotePaymentDTO,
    SyncStatus,
)
from .payments import PaymentService
from .remote_store import OfflinePaymentStore, PostgrestPaymentStore, RemotePaymentStore
from .state import SyncState

__all__ = [
    # Coordinator
    "SyncCoordinator",
    "SyncReport",
    "SyncPhase",
    "DeletionFailure",
    "SyncState",
    "SyncSettings",
    # Stores / collaborators
    "LocalPaymentStore",
    "RemotePaymentStore",
    "OfflinePaymentStore",
    "PostgrestPaymentStore",
    "AuthProvider",
    "AuthSession",
    "SessionAuthProvider",
    "PaymentService",
    # Models / types
    "Payment",
    "PaymentRecord",
    "RemotePaymentDTO",
    "SyncStatus",
    "Currency",
    "PaymentCategory",
    # Errors
    "SyncError",
    "SyncErrorKind",
    "SyncAlreadyRunningError",
    "NotAuthenticatedError",
    "SessionExpiredError",
    "RemoteStoreError",
    "RemoteNetworkError",
    "RemoteAuthError",
    "RemoteRequestError",
    "PaymentValidationError",
    "PaymentNotFoundError",
    # Events
    "DomainEvent",
    "EventSink",
    "NullEventSink",
    "CallbackEventSink",
    "PaymentsSynced",
    "PaymentCreated",
    "PaymentUpdated",
    "PaymentDeleted",
    "PaymentStatusToggled",
]
