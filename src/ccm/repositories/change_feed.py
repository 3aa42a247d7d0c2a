from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable

from ccm.repositories.contracts import ChangeCallback

log = logging.getLogger("ccm.store")


class ChangeFeed:
    """Fan-out of content-less "table changed" signals to subscribers."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subs: list[tuple[frozenset[str], ChangeCallback]] = []

    def subscribe(self, tables: Iterable[str], callback: ChangeCallback) -> Callable[[], None]:
        entry = (frozenset(tables), callback)
        with self._lock:
            self._subs.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._subs:
                    self._subs.remove(entry)

        return unsubscribe

    @property
    def watched_tables(self) -> frozenset[str]:
        with self._lock:
            return frozenset().union(*(tables for tables, _cb in self._subs)) if self._subs else frozenset()

    def publish(self, table: str) -> None:
        with self._lock:
            targets = [cb for tables, cb in self._subs if table in tables]
        for cb in targets:
            try:
                cb(table)
            except Exception:
                log.exception("change_listener_failed table=%s", table)
