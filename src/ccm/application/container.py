from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ccm.application.dashboard import DashboardController
from ccm.config import StoreSettings
from ccm.domain.models import AccessContext
from ccm.repositories.contracts import StoreClient
from ccm.repositories.rest_store import RestStore
from ccm.repositories.sqlite_store import SqliteStore
from ccm.services.auth_service import AccessGate, AuthService
from ccm.services.collaborator_service import CollaboratorService
from ccm.services.dashboard_service import DashboardService
from ccm.services.inventory_service import InventoryService
from ccm.services.movement_service import MovementService
from ccm.services.reporting_service import ReportingService
from ccm.services.user_admin_service import UserAdminService


@dataclass(frozen=True)
class AppContainer:
    store: StoreClient
    auth: AuthService
    gate: AccessGate
    inventory: InventoryService
    collaborators: CollaboratorService
    movements: MovementService
    dashboard: DashboardService
    reporting: ReportingService
    users: UserAdminService

    def dashboard_controller(self, ctx: AccessContext, **kwargs) -> DashboardController:
        return DashboardController(self.store, self.dashboard, ctx, **kwargs)


def build_store(settings: StoreSettings, db_path: Path | str) -> StoreClient:
    if settings.backend == "rest":
        return RestStore(
            settings.supabase_url,
            settings.supabase_anon_key,
            timeout=settings.http_timeout,
            poll_seconds=settings.poll_seconds,
        )
    store = SqliteStore(db_path)
    store.init_db()
    return store


def build_container(
    db_path: Path | str,
    settings: Optional[StoreSettings] = None,
    store: Optional[StoreClient] = None,
) -> AppContainer:
    if store is None:
        store = build_store(settings or StoreSettings(), db_path)

    movements = MovementService(store)
    return AppContainer(
        store=store,
        auth=AuthService(store),
        gate=AccessGate(store),
        inventory=InventoryService(store),
        collaborators=CollaboratorService(store),
        movements=movements,
        dashboard=DashboardService(store, movements),
        reporting=ReportingService(store),
        users=UserAdminService(store),
    )
