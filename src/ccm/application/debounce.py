from __future__ import annotations

import threading
from typing import Callable


class Debouncer:
    """Collapses bursts of `trigger()` calls into one callback after `delay` seconds of quiet.

    Each trigger cancels the pending timer and schedules a new one, so at most
    one callback is pending at any time.
    """

    def __init__(self, delay: float, callback: Callable[[], None], *, timer_factory=threading.Timer):
        self.delay = delay
        self.callback = callback
        self.timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def trigger(self, *_args) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            timer = self.timer_factory(self.delay, self._fire, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
        timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._generation += 1

    def _fire(self, generation: int) -> None:
        with self._lock:
            # A timer that was superseded after it started running must not fire.
            if generation != self._generation:
                return
            self._timer = None
        self.callback()
