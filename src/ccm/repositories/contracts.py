from __future__ import annotations

from typing import Any, Callable, Iterable, Optional, Protocol, Sequence

from ccm.domain.models import Session

Row = dict[str, Any]
Order = Sequence[tuple[str, bool]]
ChangeCallback = Callable[[str], None]


class StoreClient(Protocol):
    """Generic access to the hosted backend: tables, views, RPC, auth and change signals.

    Every method raises `StoreError` when the backend refuses the operation and
    `StoreUnavailableError` when it cannot be reached.
    """

    def select(
        self,
        table: str,
        columns: str = "*",
        *,
        eq: Optional[Row] = None,
        gte: Optional[Row] = None,
        order: Optional[Order] = None,
        limit: Optional[int] = None,
    ) -> list[Row]: ...

    def maybe_single(self, table: str, columns: str = "*", *, eq: Optional[Row] = None) -> Optional[Row]: ...

    def insert(self, table: str, row: Row) -> Row: ...

    def update(self, table: str, values: Row, *, eq: Row) -> list[Row]: ...

    def upsert(self, table: str, row: Row, *, on_conflict: str = "id") -> Row: ...

    def delete(self, table: str, *, eq: Row) -> list[Row]: ...

    def rpc(self, fn: str, params: Optional[Row] = None) -> list[Row]: ...

    def sign_in(self, email: str, password: str) -> Session: ...

    def sign_up(self, email: str, password: str, full_name: Optional[str] = None) -> Optional[Session]: ...

    def sign_out(self) -> None: ...

    def get_session(self) -> Optional[Session]: ...

    def subscribe(self, tables: Iterable[str], callback: ChangeCallback) -> Callable[[], None]: ...
