from .auth_service import AccessGate, AuthService
from .movement_service import MovementService
from .inventory_service import InventoryService
from .collaborator_service import CollaboratorService
from .user_admin_service import UserAdminService
from .dashboard_service import DashboardService
from .reporting_service import ReportingService

__all__ = [
    "AccessGate",
    "AuthService",
    "MovementService",
    "InventoryService",
    "CollaboratorService",
    "UserAdminService",
    "DashboardService",
    "ReportingService",
]
