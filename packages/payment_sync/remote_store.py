"""Remote payment store: the backend ``payments`` table scoped by user.

:class:`RemotePaymentStore` is the contract the coordinator depends on.
:class:`PostgrestPaymentStore` implements it against a Supabase/PostgREST
endpoint (``<base_url>/rest/v1/<table>``) with plain ``urllib.request`` calls:

- ``GET ?user_id=eq.<uid>`` for fetches (optionally bounded by ``due_date``).
- ``POST`` with ``Prefer: resolution=merge-duplicates`` for bulk upserts; a
  batch is a single request, so it is applied all-or-nothing by the backend.
- ``DELETE ?id=eq.<id>`` / ``?id=in.(...)`` for deletions.

Failures are classified so callers can react differently:
``RemoteAuthError`` (HTTP 401/403), ``RemoteRequestError`` (any other HTTP
error or an unreadable body) and ``RemoteNetworkError`` (no response at all).
"""

from __future__ import annotations

import json
import socket
import urllib.error
import urllib.parse
import urllib.request
import uuid
from collections.abc import Callable, Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from pydantic import ValidationError

from .errors import RemoteAuthError, RemoteNetworkError, RemoteRequestError
from .logging_setup import get_logger
from .models import RemotePaymentDTO, as_utc

_logger = get_logger("payment_sync.remote_store")

DEFAULT_TABLE = "payments"
DEFAULT_TIMEOUT_S = 30.0


class RemotePaymentStore(Protocol):
    def fetch_all_for_user(self, user_id: uuid.UUID) -> list[RemotePaymentDTO]: ...

    def fetch_filtered(
        self,
        user_id: uuid.UUID,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[RemotePaymentDTO]: ...

    def upsert_many(self, user_id: uuid.UUID, payments: Sequence[RemotePaymentDTO]) -> None: ...

    def delete_by_id(self, payment_id: uuid.UUID) -> None: ...

    def delete_many(self, payment_ids: Sequence[uuid.UUID]) -> None: ...


class PostgrestPaymentStore:
    """PostgREST client for the ``payments`` table.

    Parameters
    ----------
    base_url:
        Project URL, e.g. ``https://xyz.supabase.co``.
    api_key:
        Project (anon) key sent as the ``apikey`` header.
    token_provider:
        Callable returning the user's bearer token; called per request so a
        refreshed session is picked up without rebuilding the store.
    table:
        Table name under ``/rest/v1``.
    timeout:
        Socket timeout in seconds for each request.
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        token_provider: Callable[[], str],
        table: str = DEFAULT_TABLE,
        timeout: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required for the remote payment store")
        self._endpoint = f"{base_url.rstrip('/')}/rest/v1/{table}"
        self._api_key = api_key
        self._token_provider = token_provider
        self._timeout = timeout

    # ---- Reads -------------------------------------------------------------

    def fetch_all_for_user(self, user_id: uuid.UUID) -> list[RemotePaymentDTO]:
        return self.fetch_filtered(user_id)

    def fetch_filtered(
        self,
        user_id: uuid.UUID,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[RemotePaymentDTO]:
        params: list[tuple[str, str]] = [("select", "*"), ("user_id", f"eq.{user_id}")]
        if start is not None:
            params.append(("due_date", f"gte.{as_utc(start).isoformat()}"))
        if end is not None:
            params.append(("due_date", f"lte.{as_utc(end).isoformat()}"))
        params.append(("order", "due_date.asc"))

        body = self._request("GET", params=params)
        if not isinstance(body, list):
            raise RemoteRequestError(None, "expected a JSON array of payments")
        try:
            rows = [RemotePaymentDTO.model_validate(item) for item in body]
        except ValidationError as e:
            raise RemoteRequestError(None, f"malformed payment row: {e}") from e
        _logger.info("remote_store:fetched user_id=%s count=%d", user_id, len(rows))
        return rows

    # ---- Writes ------------------------------------------------------------

    def upsert_many(self, user_id: uuid.UUID, payments: Sequence[RemotePaymentDTO]) -> None:
        if not payments:
            return
        foreign = [str(p.id) for p in payments if p.user_id != user_id]
        if foreign:
            raise ValueError(f"payments not owned by {user_id}: {', '.join(foreign)}")
        self._request(
            "POST",
            params=[("on_conflict", "id")],
            payload=[p.to_wire() for p in payments],
            prefer="resolution=merge-duplicates,return=minimal",
        )
        _logger.info("remote_store:upserted user_id=%s count=%d", user_id, len(payments))

    def delete_by_id(self, payment_id: uuid.UUID) -> None:
        self._request("DELETE", params=[("id", f"eq.{payment_id}")], prefer="return=minimal")
        _logger.info("remote_store:deleted id=%s", payment_id)

    def delete_many(self, payment_ids: Sequence[uuid.UUID]) -> None:
        if not payment_ids:
            return
        ids = ",".join(str(i) for i in payment_ids)
        self._request("DELETE", params=[("id", f"in.({ids})")], prefer="return=minimal")
        _logger.info("remote_store:deleted count=%d", len(payment_ids))

    # ---- Transport ---------------------------------------------------------

    def _request(
        self,
        method: str,
        *,
        params: list[tuple[str, str]],
        payload: Any = None,
        prefer: str | None = None,
    ) -> Any:
        url = f"{self._endpoint}?{urllib.parse.urlencode(params, safe='.,()*:')}"
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        req = urllib.request.Request(url, data=data, method=method)
        req.add_header("apikey", self._api_key)
        req.add_header("Authorization", f"Bearer {self._token_provider()}")
        req.add_header("Accept", "application/json")
        if data is not None:
            req.add_header("Content-Type", "application/json")
        if prefer:
            req.add_header("Prefer", prefer)

        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            try:
                err_body = e.read().decode("utf-8", errors="replace")
            except OSError:
                err_body = ""
            _logger.warning(
                "remote_store:http_error method=%s status=%d", method, e.code
            )
            if e.code in (401, 403):
                raise RemoteAuthError(e.code, err_body) from e
            raise RemoteRequestError(e.code, err_body) from e
        except (urllib.error.URLError, socket.timeout, TimeoutError, ConnectionError) as e:
            _logger.warning("remote_store:network_error method=%s error=%s", method, e)
            raise RemoteNetworkError(str(e)) from e

        if not raw:
            return None
        try:
            # Keep numeric columns exact: amounts arrive as JSON numbers.
            return json.loads(raw.decode("utf-8"), parse_float=Decimal)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise RemoteRequestError(None, "response body is not valid JSON") from e


class OfflinePaymentStore:
    """Remote store for devices without a configured backend.

    Local-only operations (clearing the store on logout) still need a
    coordinator; any request that would reach the backend fails as a network
    error instead.
    """

    def _unreachable(self) -> RemoteNetworkError:
        return RemoteNetworkError("no backend configured")

    def fetch_all_for_user(self, user_id: uuid.UUID) -> list[RemotePaymentDTO]:
        raise self._unreachable()

    def fetch_filtered(
        self,
        user_id: uuid.UUID,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[RemotePaymentDTO]:
        raise self._unreachable()

    def upsert_many(self, user_id: uuid.UUID, payments: Sequence[RemotePaymentDTO]) -> None:
        raise self._unreachable()

    def delete_by_id(self, payment_id: uuid.UUID) -> None:
        raise self._unreachable()

    def delete_many(self, payment_ids: Sequence[uuid.UUID]) -> None:
        raise self._unreachable()


__all__ = [
    "DEFAULT_TABLE",
    "DEFAULT_TIMEOUT_S",
    "OfflinePaymentStore",
    "PostgrestPaymentStore",
    "RemotePaymentStore",
]
