"""Sync coordinator: one bidirectional pass between the local and remote stores.

A pass runs three phases in a fixed order, after resolving the current user:

1. **Upload** every ``LOCAL``/``MODIFIED`` record in one bulk upsert. Success
   marks the whole batch ``SYNCED`` with the pass start time; failure leaves
   every status untouched and fails the pass.
2. **Delete** every ``DELETED`` tombstone remotely, one request per record on
   a small thread pool. Confirmed ids are removed locally; failures stay
   tombstoned for the next pass and are reported without failing the pass.
3. **Download** the user's remote rows. Unknown ids are inserted as
   ``SYNCED``; ``SYNCED`` local rows are overwritten; rows with local changes
   (``LOCAL``/``MODIFIED``/``DELETED``) keep the local version.

Each phase commits on its own, so a pass that fails during download keeps the
upload and deletions it already made; rerunning a pass is always safe. The
pending count is recomputed from the local store when a pass ends, however it
ends.

Single flight: a second :meth:`SyncCoordinator.perform_sync` while one is
running is rejected with :class:`~payment_sync.errors.SyncAlreadyRunningError`.
Cancellation is cooperative and checked only between phases.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum

from .auth import AuthProvider
from .errors import (
    NotAuthenticatedError,
    RemoteAuthError,
    RemoteNetworkError,
    SessionExpiredError,
    SyncAlreadyRunningError,
    SyncError,
    SyncErrorKind,
)
from .events import (
    EventSink,
    NullEventSink,
    PaymentCreated,
    PaymentDeleted,
    PaymentsSynced,
    PaymentUpdated,
)
from .local_store import LocalPaymentStore
from .logging_setup import get_logger
from .models import Payment, RemotePaymentDTO, SyncStatus, as_utc, utc_now
from .remote_store import RemotePaymentStore
from .state import SyncState, SyncStatePublisher

_logger = get_logger("payment_sync.coordinator")

_ORIGIN = "sync"


class SyncPhase(StrEnum):
    UPLOAD = "upload"
    DELETE = "delete"
    DOWNLOAD = "download"


@dataclass(frozen=True, slots=True)
class DeletionFailure:
    payment_id: uuid.UUID
    kind: SyncErrorKind
    detail: str


@dataclass(slots=True)
class SyncReport:
    """What a pass did. Attached to ``SyncError.report`` when a pass fails."""

    started_at: datetime
    user_id: uuid.UUID | None = None
    uploaded: int = 0
    deleted: int = 0
    deletion_failures: list[DeletionFailure] = field(default_factory=list)
    inserted: int = 0
    updated: int = 0
    refreshed: int = 0
    kept_local: int = 0
    completed_phases: list[SyncPhase] = field(default_factory=list)
    cancelled: bool = False
    finished_at: datetime | None = None

    @property
    def has_deletion_failures(self) -> bool:
        return bool(self.deletion_failures)


def _classify_remote_failure(exc: Exception, fallback: SyncErrorKind) -> SyncErrorKind:
    if isinstance(exc, (RemoteAuthError, SessionExpiredError)):
        return SyncErrorKind.SESSION_EXPIRED
    if isinstance(exc, NotAuthenticatedError):
        return SyncErrorKind.NOT_AUTHENTICATED
    if isinstance(exc, RemoteNetworkError):
        return SyncErrorKind.NETWORK_ERROR
    return fallback


class SyncCoordinator:
    """Orchestrates sync passes and owns the observable sync state."""

    def __init__(
        self,
        local: LocalPaymentStore,
        remote: RemotePaymentStore,
        auth: AuthProvider,
        *,
        events: EventSink | None = None,
        clock: Callable[[], datetime] = utc_now,
        delete_concurrency: int = 4,
        auto_sync_interval: timedelta = timedelta(hours=1),
    ) -> None:
        if delete_concurrency < 1:
            raise ValueError("delete_concurrency must be a positive integer")
        self._local = local
        self._remote = remote
        self._auth = auth
        self._events: EventSink = events or NullEventSink()
        self._clock = clock
        self._delete_concurrency = delete_concurrency
        self._auto_sync_interval = auto_sync_interval
        self._state = SyncStatePublisher()
        self._pass_lock = threading.Lock()
        self._cancel: threading.Event | None = None

    # ---- Observable state --------------------------------------------------

    @property
    def pending_sync_count(self) -> int:
        return self._state.snapshot().pending_sync_count

    @property
    def sync_error(self) -> SyncError | None:
        return self._state.snapshot().last_error

    @property
    def is_syncing(self) -> bool:
        return self._state.snapshot().is_syncing

    def snapshot(self) -> SyncState:
        return self._state.snapshot()

    def subscribe(self, listener: Callable[[SyncState], None]) -> Callable[[], None]:
        """Call ``listener`` with every new state snapshot. Returns an unsubscriber."""

        return self._state.subscribe(listener)

    def update_pending_sync_count(self) -> int:
        """Recount pending records from the local store and republish the count."""

        count = self._local.count_pending()
        self._state.update(pending_sync_count=count)
        _logger.debug("sync:pending_count count=%d", count)
        return count

    def has_pending_sync_payments(self) -> bool:
        return self.update_pending_sync_count() > 0

    # ---- Passes ------------------------------------------------------------

    def perform_sync(self, *, cancel: threading.Event | None = None) -> SyncReport:
        """Run one full pass (upload, delete, download).

        Raises
        ------
        SyncAlreadyRunningError
            Another pass is in flight; nothing was done.
        SyncError
            The pass failed; ``error.report`` describes what was committed.
        """

        if not self._pass_lock.acquire(blocking=False):
            _logger.warning("sync:rejected reason=already_running")
            raise SyncAlreadyRunningError("a synchronization pass is already running")
        self._cancel = cancel or threading.Event()
        try:
            return self._run_pass(self._cancel)
        finally:
            self._cancel = None
            self._pass_lock.release()

    def cancel(self) -> bool:
        """Ask the in-flight pass to stop at the next phase boundary."""

        token = self._cancel
        if token is None:
            return False
        token.set()
        _logger.info("sync:cancel_requested")
        return True

    def perform_initial_sync_if_needed(self, *, is_authenticated: bool) -> SyncReport | None:
        """Sync once after login when this device holds no payments yet.

        Sync failures are logged rather than raised; the next regular pass
        retries.
        """

        if not is_authenticated:
            return None
        if any(self._local.count_by_status().values()):
            _logger.info("sync:initial_skipped reason=local_not_empty")
            return None
        try:
            return self.perform_sync()
        except (SyncError, SyncAlreadyRunningError) as e:
            _logger.warning("sync:initial_failed error=%s", e)
            return None

    def auto_sync_if_needed(self, *, max_age: timedelta | None = None) -> SyncReport | None:
        """Sync when the last successful pass is older than ``max_age`` (or absent).

        Returns ``None`` when skipped or when another pass is already running.
        Sync failures propagate as :class:`SyncError`.
        """

        max_age = max_age if max_age is not None else self._auto_sync_interval
        last = self._state.snapshot().last_sync_at
        if last is not None and as_utc(self._clock()) - last < max_age:
            _logger.debug("sync:auto_skipped last_sync_at=%s", last.isoformat())
            return None
        _logger.info(
            "sync:auto_triggered last_sync_at=%s", last.isoformat() if last else "never"
        )
        try:
            return self.perform_sync()
        except SyncAlreadyRunningError:
            return None

    def clear_local_database(self, *, force: bool = False) -> bool:
        """Delete every local payment.

        Without ``force`` the call refuses while unsynced records exist. It
        also refuses while a pass is running. Returns ``True`` when the store
        was cleared; never raises.
        """

        if not self._pass_lock.acquire(blocking=False):
            _logger.warning("sync:clear_refused reason=sync_in_progress")
            return False
        try:
            _logger.info("sync:clear_requested force=%s", force)
            with self._local.exclusive():
                if not force:
                    pending = self._local.count_pending()
                    if pending > 0:
                        self._state.update(pending_sync_count=pending)
                        _logger.warning("sync:clear_refused reason=pending count=%d", pending)
                        return False
                removed = self._local.clear_all()
            self._state.update(pending_sync_count=0, last_sync_at=None)
            _logger.info("sync:cleared removed=%d", removed)
            return True
        except Exception:  # noqa: BLE001
            _logger.exception("sync:clear_failed")
            return False
        finally:
            self._pass_lock.release()

    # ---- Pass internals ----------------------------------------------------

    def _run_pass(self, cancel: threading.Event) -> SyncReport:
        report = SyncReport(started_at=as_utc(self._clock()))
        failure: SyncError | None = None
        self._state.update(is_syncing=True, last_error=None)
        _logger.info("sync:start started_at=%s", report.started_at.isoformat())

        phases: tuple[tuple[SyncPhase, Callable[[uuid.UUID, SyncReport], None]], ...] = (
            (SyncPhase.UPLOAD, self._upload_phase),
            (SyncPhase.DELETE, self._delete_phase),
            (SyncPhase.DOWNLOAD, self._download_phase),
        )
        try:
            user_id = self._resolve_user()
            report.user_id = user_id
            for phase, run in phases:
                if cancel.is_set():
                    report.cancelled = True
                    _logger.info("sync:cancelled before_phase=%s", phase.value)
                    break
                run(user_id, report)
                report.completed_phases.append(phase)
        except SyncError as e:
            e.report = report
            failure = e
            _logger.error("sync:failed error_code=%s detail=%s", e.error_code, e.detail)
            raise
        except Exception as e:
            failure = SyncError(SyncErrorKind.UNKNOWN, str(e) or type(e).__name__, report=report)
            _logger.exception("sync:failed error_code=%s", failure.error_code)
            raise failure from e
        finally:
            report.finished_at = as_utc(self._clock())
            changes: dict[str, object] = {"is_syncing": False, "last_error": failure}
            if failure is None and not report.cancelled:
                changes["last_sync_at"] = report.started_at
            pending = self._recount_after_pass()
            if pending is not None:
                changes["pending_sync_count"] = pending
            self._state.update(**changes)

        _logger.info(
            (
                "sync:done uploaded=%d deleted=%d deletion_failures=%d inserted=%d "
                "updated=%d kept_local=%d cancelled=%s"
            ),
            report.uploaded,
            report.deleted,
            len(report.deletion_failures),
            report.inserted,
            report.updated,
            report.kept_local,
            report.cancelled,
        )
        return report

    def _recount_after_pass(self) -> int | None:
        try:
            return self._local.count_pending()
        except Exception:  # noqa: BLE001
            # Keep the previous count; the pass outcome is already decided.
            _logger.exception("sync:pending_recount_failed")
            return None

    def _resolve_user(self) -> uuid.UUID:
        try:
            return self._auth.get_current_user_id()
        except NotAuthenticatedError as e:
            raise SyncError(SyncErrorKind.NOT_AUTHENTICATED, str(e) or None) from e
        except SessionExpiredError as e:
            raise SyncError(SyncErrorKind.SESSION_EXPIRED, str(e) or None) from e

    def _upload_phase(self, user_id: uuid.UUID, report: SyncReport) -> None:
        with self._local.exclusive():
            pending = self._local.fetch_by_status(SyncStatus.LOCAL, SyncStatus.MODIFIED)
            if not pending:
                _logger.info("sync:upload_skipped reason=nothing_pending")
                return
            dtos = [RemotePaymentDTO.from_payment(p, user_id=user_id) for p in pending]
            try:
                self._remote.upsert_many(user_id, dtos)
            except Exception as e:
                kind = _classify_remote_failure(e, SyncErrorKind.UPLOAD_FAILED)
                raise SyncError(kind, str(e) or type(e).__name__) from e
            self._local.upsert_many(p.mark_synced(report.started_at) for p in pending)

        report.uploaded = len(pending)
        _logger.info("sync:upload_done count=%d", len(pending))
        self._events.publish(
            PaymentsSynced(synced_count=len(pending), timestamp=report.started_at)
        )

    def _delete_phase(self, user_id: uuid.UUID, report: SyncReport) -> None:
        with self._local.exclusive():
            tombstones = self._local.fetch_by_status(SyncStatus.DELETED)
            if not tombstones:
                return
            confirmed, failures = self._delete_remote([p.id for p in tombstones])
            if confirmed:
                self._local.delete_many(confirmed)

        report.deleted = len(confirmed)
        report.deletion_failures.extend(failures)
        for payment_id in confirmed:
            self._events.publish(PaymentDeleted(payment_id=payment_id, origin=_ORIGIN))
        if failures:
            _logger.warning(
                "sync:delete_partial confirmed=%d failed=%d", len(confirmed), len(failures)
            )
        else:
            _logger.info("sync:delete_done count=%d", len(confirmed))

    def _delete_remote(
        self, payment_ids: list[uuid.UUID]
    ) -> tuple[list[uuid.UUID], list[DeletionFailure]]:
        workers = max(1, min(self._delete_concurrency, len(payment_ids)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="payment-delete") as ex:
            futures = [(pid, ex.submit(self._remote.delete_by_id, pid)) for pid in payment_ids]
            confirmed: list[uuid.UUID] = []
            failures: list[DeletionFailure] = []
            for pid, fut in futures:
                try:
                    fut.result()
                except Exception as e:  # noqa: BLE001
                    kind = _classify_remote_failure(e, SyncErrorKind.UNKNOWN)
                    failures.append(DeletionFailure(pid, kind, str(e) or type(e).__name__))
                    _logger.warning(
                        "sync:delete_failed id=%s error_code=%s", pid, kind.error_code
                    )
                else:
                    confirmed.append(pid)
        return confirmed, failures

    def _download_phase(self, user_id: uuid.UUID, report: SyncReport) -> None:
        try:
            remote_rows = self._remote.fetch_all_for_user(user_id)
        except Exception as e:
            kind = _classify_remote_failure(e, SyncErrorKind.DOWNLOAD_FAILED)
            raise SyncError(kind, str(e) or type(e).__name__) from e

        created: list[uuid.UUID] = []
        updated: list[uuid.UUID] = []
        with self._local.exclusive():
            local_by_id = {p.id: p for p in self._local.fetch_all()}
            to_write: list[Payment] = []
            for dto in remote_rows:
                if dto.user_id != user_id:
                    _logger.warning("sync:download_foreign_row id=%s", dto.id)
                    continue
                incoming = dto.to_payment(synced_at=report.started_at)
                existing = local_by_id.get(dto.id)
                if existing is None:
                    to_write.append(incoming)
                    created.append(dto.id)
                elif existing.sync_status is SyncStatus.SYNCED:
                    to_write.append(incoming)
                    if existing.same_content(incoming):
                        report.refreshed += 1
                    else:
                        updated.append(dto.id)
                else:
                    # Local edits win until they are uploaded.
                    report.kept_local += 1
                    _logger.debug(
                        "sync:download_kept_local id=%s status=%s",
                        dto.id,
                        existing.sync_status.value,
                    )
            self._local.upsert_many(to_write)

        report.inserted = len(created)
        report.updated = len(updated)
        for payment_id in created:
            self._events.publish(PaymentCreated(payment_id=payment_id, origin=_ORIGIN))
        for payment_id in updated:
            self._events.publish(PaymentUpdated(payment_id=payment_id, origin=_ORIGIN))
        _logger.info(
            "sync:download_done fetched=%d inserted=%d updated=%d kept_local=%d",
            len(remote_rows),
            len(created),
            len(updated),
            report.kept_local,
        )


__all__ = [
    "DeletionFailure",
    "SyncCoordinator",
    "SyncPhase",
    "SyncReport",
]
