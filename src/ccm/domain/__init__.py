from .models import (
    AccessContext,
    Collaborator,
    DeleteOutcome,
    Direction,
    HistoryEntry,
    Invite,
    Item,
    Movement,
    Profile,
    RankingRow,
    Session,
    StockRow,
)
from .roles import Role
from .errors import (
    AppError,
    AuthorizationError,
    InsufficientStockError,
    NotFoundError,
    StoreError,
    StoreUnavailableError,
    ValidationError,
)

__all__ = [
    "AccessContext",
    "Collaborator",
    "DeleteOutcome",
    "Direction",
    "HistoryEntry",
    "Invite",
    "Item",
    "Movement",
    "Profile",
    "RankingRow",
    "Session",
    "StockRow",
    "Role",
    "AppError",
    "AuthorizationError",
    "InsufficientStockError",
    "NotFoundError",
    "StoreError",
    "StoreUnavailableError",
    "ValidationError",
]
