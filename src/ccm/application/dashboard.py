from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from ccm.application.debounce import Debouncer
from ccm.application.page_state import PageState
from ccm.domain.errors import AppError
from ccm.domain.models import AccessContext
from ccm.services.dashboard_service import DashboardService, DashboardSnapshot

log = logging.getLogger(__name__)

REFRESH_DEBOUNCE_SECONDS = 0.45
WATCHED_TABLES = ("stock_moves", "items")


class DashboardController:
    """Keeps a dashboard snapshot current while the page is open.

    Change signals from the store are debounced into a single refresh; results
    that arrive after the page was closed, or after a newer refresh started,
    are dropped.
    """

    def __init__(
        self,
        store,
        dashboard: DashboardService,
        ctx: AccessContext,
        *,
        delay: float = REFRESH_DEBOUNCE_SECONDS,
        timer_factory=threading.Timer,
        on_update: Optional[Callable[[DashboardSnapshot], None]] = None,
        on_error: Optional[Callable[[AppError], None]] = None,
    ):
        self.store = store
        self.dashboard = dashboard
        self.ctx = ctx
        self.on_update = on_update
        self.on_error = on_error
        self.page = PageState("/dashboard")
        self.debouncer = Debouncer(delay, self.refresh, timer_factory=timer_factory)
        self.snapshot: Optional[DashboardSnapshot] = None
        self.last_error: Optional[AppError] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    def open(self) -> Optional[DashboardSnapshot]:
        self._unsubscribe = self.store.subscribe(WATCHED_TABLES, self.debouncer.trigger)
        return self.refresh()

    def refresh(self) -> Optional[DashboardSnapshot]:
        token = self.page.begin()
        try:
            snapshot = self.dashboard.refresh(self.ctx)
        except AppError as e:
            if not self.page.is_current(token):
                return None
            log.warning("dashboard_refresh_failed error=%s", e)
            self.last_error = e
            if self.on_error:
                self.on_error(e)
            return None

        if not self.page.is_current(token):
            log.debug("dashboard_result_discarded token=%s", token)
            return None
        self.snapshot = snapshot
        self.last_error = None
        if self.on_update:
            self.on_update(snapshot)
        return snapshot

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.debouncer.cancel()
        self.page.navigate_away()
