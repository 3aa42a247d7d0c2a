from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .roles import Role


class Direction(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"


class DeleteOutcome(str, Enum):
    DELETED = "deleted"
    DEACTIVATED = "deactivated"


@dataclass(frozen=True)
class Item:
    id: str
    category: str
    name: str
    sku: Optional[str]
    unit: str
    min_stock: int
    active: bool = True


@dataclass(frozen=True)
class StockRow:
    item_id: str
    category: str
    name: str
    sku: Optional[str]
    unit: str
    min_stock: int
    active: bool
    balance: int

    @property
    def below_min(self) -> bool:
        return self.balance < self.min_stock


@dataclass(frozen=True)
class Collaborator:
    id: str
    name: str
    sector: Optional[str]
    active: bool = True
    created_at: Optional[str] = None


@dataclass(frozen=True)
class Movement:
    id: str
    created_at: str
    item_id: str
    qty: int
    move_type: str
    receiver_id: Optional[str] = None
    created_by: Optional[str] = None
    note: Optional[str] = None


@dataclass(frozen=True)
class HistoryEntry:
    id: str
    created_at: str
    type: str
    category: str
    item_name: str
    qty: int
    unit: str
    receiver: str
    actor: str
    note: str


@dataclass(frozen=True)
class RankingRow:
    receiver: str
    total: int


@dataclass(frozen=True)
class Profile:
    user_id: str
    full_name: Optional[str]
    role: Role
    created_at: Optional[str] = None


@dataclass(frozen=True)
class Invite:
    id: str
    email: str
    role: Role
    created_at: str
    used_at: Optional[str] = None

    @property
    def used(self) -> bool:
        return bool(self.used_at)


@dataclass(frozen=True)
class Session:
    user_id: str
    email: str
    access_token: str
    refresh_token: Optional[str] = None


@dataclass(frozen=True)
class AccessContext:
    """Principal and role resolved at page entry, passed into guarded operations."""

    principal: Session
    role: Role

    @property
    def user_id(self) -> str:
        return self.principal.user_id
