from __future__ import annotations

import threading


class PageState:
    """Generation counter that lets a page drop results of requests it no longer cares about."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        self._generation = 0
        self._open = True

    def begin(self) -> int:
        """Token for a new request; any request started earlier becomes stale."""
        with self._lock:
            self._generation += 1
            return self._generation

    def is_current(self, token: int) -> bool:
        with self._lock:
            return self._open and token == self._generation

    def navigate_away(self) -> None:
        with self._lock:
            self._open = False
            self._generation += 1
