from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Permission tier of a principal. Values are the labels stored in `profiles.role`."""

    ADMIN = "MASTER"
    LEAD = "LIDER"
    VIEWER = "VIEWER"

    @property
    def rank(self) -> int:
        return _RANK[self]

    def meets(self, minimum: "Role") -> bool:
        return self.rank >= minimum.rank

    @classmethod
    def parse(cls, value: object) -> "Role":
        """Map a stored label to a Role; anything unrecognised is VIEWER."""
        if isinstance(value, Role):
            return value
        label = str(value or "").strip().upper()
        for role in cls:
            if label in (role.value, role.name):
                return role
        return cls.VIEWER


_RANK = {Role.VIEWER: 0, Role.LEAD: 1, Role.ADMIN: 2}
