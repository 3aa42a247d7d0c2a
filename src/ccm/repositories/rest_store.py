from __future__ import annotations

import logging
import re
import threading
from typing import Any, Callable, Iterable, Optional

import requests

from ccm.domain.errors import INSUFFICIENT_PRIVILEGE, StoreError, StoreUnavailableError
from ccm.domain.models import Session
from ccm.repositories.change_feed import ChangeFeed
from ccm.repositories.contracts import ChangeCallback, Order, Row

log = logging.getLogger("ccm.store")

_CONSTRAINT_RE = re.compile(r'constraint "([^"]+)"')

# Append-only tables: the newest row is enough to notice a change.
WATERMARK_TABLES = {"stock_moves"}


def _literal(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class RestStore:
    """Client for the hosted backend: PostgREST for data, GoTrue for auth."""

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        *,
        timeout: float = 10.0,
        http: Optional[requests.Session] = None,
        poll_seconds: float = 5.0,
    ):
        if not base_url or not anon_key:
            raise ValueError("Backend URL and anon key are required.")
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self.http = http or requests.Session()
        self.poll_seconds = poll_seconds
        self._session: Optional[Session] = None
        self._feed = ChangeFeed()
        self._poller: Optional[_ChangePoller] = None
        # requests.Session is not thread-safe; the poller shares it.
        self._http_lock = threading.Lock()
        self._poller_lock = threading.Lock()

    # ---------- transport ----------
    def _headers(self, extra: Optional[dict[str, str]] = None) -> dict[str, str]:
        token = self._session.access_token if self._session else self.anon_key
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[list[tuple[str, str]]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            with self._http_lock:
                r = self.http.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self._headers({"Prefer": prefer} if prefer else None),
                    timeout=self.timeout,
                )
        except requests.RequestException as e:
            log.warning("store_unreachable method=%s path=%s error=%s", method, path, e)
            raise StoreUnavailableError(f"Backend unreachable: {e}") from e

        if r.status_code >= 400:
            raise self._error_from_response(r)
        if r.status_code == 204 or not r.content:
            return None
        try:
            return r.json()
        except ValueError as e:
            raise StoreUnavailableError(f"Unexpected response from backend ({r.status_code}).") from e

    @staticmethod
    def _error_from_response(r: requests.Response) -> StoreError:
        try:
            body = r.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            if r.status_code >= 500:
                return StoreUnavailableError(f"Backend error {r.status_code}.")
            return StoreError(f"Request failed with status {r.status_code}.", code=str(r.status_code))

        message = str(body.get("message") or body.get("msg") or body.get("error_description") or body.get("error") or "")
        code = body.get("code") if isinstance(body.get("code"), str) else None
        code = code or body.get("error_code")
        if not code and r.status_code in (401, 403):
            code = INSUFFICIENT_PRIVILEGE
        match = _CONSTRAINT_RE.search(message)
        err = StoreError(
            message or f"Request failed with status {r.status_code}.",
            code=code,
            details=body.get("details"),
            hint=body.get("hint"),
            constraint=match.group(1) if match else None,
        )
        log.info("store_rejected status=%s code=%s constraint=%s", r.status_code, err.code, err.constraint)
        return err

    @staticmethod
    def _filters(eq: Optional[Row] = None, gte: Optional[Row] = None) -> list[tuple[str, str]]:
        params = [(col, f"eq.{_literal(v)}" if v is not None else "is.null") for col, v in (eq or {}).items()]
        params += [(col, f"gte.{_literal(v)}") for col, v in (gte or {}).items()]
        return params

    @staticmethod
    def _rows(data: Any) -> list[Row]:
        if data is None:
            return []
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            return [data]
        raise StoreUnavailableError(f"Unexpected response shape: {type(data).__name__}")

    # ---------- data ----------
    def select(
        self,
        table: str,
        columns: str = "*",
        *,
        eq: Optional[Row] = None,
        gte: Optional[Row] = None,
        order: Optional[Order] = None,
        limit: Optional[int] = None,
    ) -> list[Row]:
        params = [("select", columns)] + self._filters(eq, gte)
        if order:
            params.append(("order", ",".join(f"{c}.{'asc' if asc else 'desc'}" for c, asc in order)))
        if limit is not None:
            params.append(("limit", str(int(limit))))
        return self._rows(self._request("GET", f"/rest/v1/{table}", params=params))

    def maybe_single(self, table: str, columns: str = "*", *, eq: Optional[Row] = None) -> Optional[Row]:
        rows = self.select(table, columns, eq=eq)
        if len(rows) > 1:
            raise StoreError("JSON object requested, multiple (or no) rows returned", code="PGRST116")
        return rows[0] if rows else None

    def insert(self, table: str, row: Row) -> Row:
        rows = self._rows(self._request("POST", f"/rest/v1/{table}", json=row, prefer="return=representation"))
        return rows[0] if rows else {}

    def upsert(self, table: str, row: Row, *, on_conflict: str = "id") -> Row:
        rows = self._rows(
            self._request(
                "POST",
                f"/rest/v1/{table}",
                params=[("on_conflict", on_conflict)],
                json=row,
                prefer="resolution=merge-duplicates,return=representation",
            )
        )
        return rows[0] if rows else {}

    def update(self, table: str, values: Row, *, eq: Row) -> list[Row]:
        if not eq:
            raise StoreError("UPDATE requires a WHERE clause", code="21000")
        return self._rows(
            self._request("PATCH", f"/rest/v1/{table}", params=self._filters(eq), json=values, prefer="return=representation")
        )

    def delete(self, table: str, *, eq: Row) -> list[Row]:
        if not eq:
            raise StoreError("DELETE requires a WHERE clause", code="21000")
        return self._rows(self._request("DELETE", f"/rest/v1/{table}", params=self._filters(eq), prefer="return=representation"))

    def rpc(self, fn: str, params: Optional[Row] = None) -> list[Row]:
        return self._rows(self._request("POST", f"/rest/v1/rpc/{fn}", json=params or {}))

    # ---------- auth ----------
    def _session_from(self, data: Any, email: str) -> Optional[Session]:
        if not isinstance(data, dict) or not data.get("access_token"):
            return None
        user = data.get("user") or {}
        return Session(
            user_id=str(user.get("id", "")),
            email=str(user.get("email") or email),
            access_token=str(data["access_token"]),
            refresh_token=data.get("refresh_token"),
        )

    def sign_in(self, email: str, password: str) -> Session:
        data = self._request(
            "POST",
            "/auth/v1/token",
            params=[("grant_type", "password")],
            json={"email": email.strip(), "password": password},
        )
        session = self._session_from(data, email.strip())
        if session is None:
            raise StoreUnavailableError("Sign-in response did not include a session.")
        self._session = session
        log.info("signed_in user=%s", session.user_id)
        return session

    def sign_up(self, email: str, password: str, full_name: Optional[str] = None) -> Optional[Session]:
        data = self._request(
            "POST",
            "/auth/v1/signup",
            json={"email": email.strip(), "password": password, "data": {"full_name": (full_name or "").strip()}},
        )
        # No session when the backend requires e-mail confirmation first.
        session = self._session_from(data, email.strip())
        if session is not None:
            self._session = session
        return session

    def sign_out(self) -> None:
        if self._session is None:
            return
        try:
            self._request("POST", "/auth/v1/logout")
        finally:
            self._session = None

    def get_session(self) -> Optional[Session]:
        return self._session

    # ---------- change feed ----------
    def subscribe(self, tables: Iterable[str], callback: ChangeCallback) -> Callable[[], None]:
        unsubscribe = self._feed.subscribe(tables, callback)
        with self._poller_lock:
            if self._poller is None:
                self._poller = _ChangePoller(self, self.poll_seconds)
                self._poller.start()

        def _unsubscribe() -> None:
            unsubscribe()
            if not self._feed.watched_tables:
                self._stop_poller()

        return _unsubscribe

    def _stop_poller(self) -> None:
        with self._poller_lock:
            if self._poller is not None:
                self._poller.stop()
                self._poller = None

    def close(self) -> None:
        self._stop_poller()
        self.http.close()


class _ChangePoller(threading.Thread):
    """Emits a change signal when the mark of a watched table differs from the previous poll.

    Append-only tables are marked by their newest row; the others by a hash
    of their rows.
    """

    def __init__(self, store: RestStore, interval: float):
        super().__init__(name="ccm-change-poller", daemon=True)
        self.store = store
        self.interval = interval
        self._stop_event = threading.Event()
        self._marks: dict[str, Any] = {}

    def _mark(self, table: str) -> Any:
        if table in WATERMARK_TABLES:
            rows = self.store.select(table, "id,created_at", order=[("created_at", False), ("id", False)], limit=1)
            return (rows[0].get("created_at"), rows[0].get("id")) if rows else None
        rows = self.store.select(table)
        return hash(tuple(sorted(repr(sorted(r.items())) for r in rows)))

    def poll_once(self) -> None:
        for table in sorted(self.store._feed.watched_tables):
            if self._stop_event.is_set():
                return
            try:
                mark = self._mark(table)
            except StoreError as e:
                log.warning("change_poll_failed table=%s error=%s", table, e)
                continue
            seen = table in self._marks
            previous = self._marks.get(table)
            self._marks[table] = mark
            if seen and previous != mark:
                self.store._feed.publish(table)

    def run(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.poll_once()

    def stop(self) -> None:
        self._stop_event.set()
