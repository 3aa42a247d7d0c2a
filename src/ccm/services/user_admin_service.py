from __future__ import annotations

import logging

from ccm.domain.errors import NotFoundError, ValidationError
from ccm.domain.models import AccessContext, Invite, Profile
from ccm.domain.roles import Role
from ccm.services.auth_service import require_action

log = logging.getLogger(__name__)


def invite_from_row(row: dict) -> Invite:
    return Invite(
        id=str(row.get("id", "")),
        email=str(row.get("email") or ""),
        role=Role.parse(row.get("role")),
        created_at=str(row.get("created_at") or ""),
        used_at=row.get("used_at"),
    )


def profile_from_row(row: dict) -> Profile:
    return Profile(
        user_id=str(row.get("user_id", "")),
        full_name=row.get("full_name"),
        role=Role.parse(row.get("role")),
        created_at=row.get("created_at"),
    )


class UserAdminService:
    """Invites and role assignment. Every operation requires the administrator role."""

    def __init__(self, store):
        self.store = store

    def list_invites(self, ctx: AccessContext) -> list[Invite]:
        require_action(ctx, "manage_users")
        rows = self.store.select("user_invites", "id,email,role,created_at,used_at", order=[("created_at", False)])
        return [invite_from_row(r) for r in rows]

    def used_invites(self, invites: list[Invite]) -> int:
        return sum(1 for i in invites if i.used)

    def create_invite(self, ctx: AccessContext, email: str, role: Role = Role.VIEWER) -> Invite:
        require_action(ctx, "manage_users")
        email_clean = (email or "").strip().lower()
        if "@" not in email_clean:
            raise ValidationError("Enter a valid e-mail.")
        target = Role.parse(role)

        row = self.store.insert("user_invites", {"email": email_clean, "role": target.value, "created_by": ctx.user_id})
        invite = invite_from_row({"email": email_clean, "role": target.value, **(row or {})})
        log.info("invite_created email=%s role=%s actor=%s", email_clean, target.name, ctx.user_id)
        return invite

    def delete_invite(self, ctx: AccessContext, invite_id: str) -> None:
        require_action(ctx, "manage_users")
        removed = self.store.delete("user_invites", eq={"id": invite_id})
        if not removed:
            raise NotFoundError("Invite not found.")

    def list_profiles(self, ctx: AccessContext) -> list[Profile]:
        require_action(ctx, "manage_users")
        rows = self.store.select("profiles", "user_id,full_name,role,created_at", order=[("created_at", False)])
        return [profile_from_row(r) for r in rows]

    def update_role(self, ctx: AccessContext, user_id: str, role: Role) -> Profile:
        require_action(ctx, "manage_users")
        target = Role.parse(role)
        updated = self.store.update("profiles", {"role": target.value}, eq={"user_id": user_id})
        if not updated:
            raise NotFoundError("Profile not found.")
        log.info("role_updated user=%s role=%s actor=%s", user_id, target.name, ctx.user_id)
        return profile_from_row(updated[0])
