from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ccm.domain.errors import AppError, AuthorizationError, ValidationError
from ccm.domain.models import AccessContext, Session
from ccm.domain.roles import Role

log = logging.getLogger(__name__)

LOGIN_PATH = "/login"
FALLBACK_PATH = "/estoque"
HOME_PATH = "/dashboard"

ALL_ROLES = {Role.ADMIN, Role.LEAD, Role.VIEWER}

PERMISSIONS: dict[str, set[Role]] = {
    "manage_items": {Role.ADMIN},
    "manage_collaborators": {Role.ADMIN},
    "register_entry": {Role.ADMIN},
    "register_exit": {Role.ADMIN, Role.LEAD},
    "manage_users": {Role.ADMIN},
    "view_stock": ALL_ROLES,
    "view_history": ALL_ROLES,
    "export_history": ALL_ROLES,
    "view_dashboard": ALL_ROLES,
}

# Minimum role per page. Pages missing here are open to any signed-in user.
PAGE_MIN_ROLE: dict[str, Role] = {
    "/dashboard": Role.VIEWER,
    "/estoque": Role.VIEWER,
    "/historico": Role.VIEWER,
    "/ranking": Role.VIEWER,
    "/mobile/saida": Role.LEAD,
    "/mobile": Role.ADMIN,
    "/master/usuarios": Role.ADMIN,
    "/master": Role.ADMIN,
    "/collaboradores": Role.ADMIN,
}


def can(ctx: AccessContext, action: str) -> bool:
    allowed_roles = PERMISSIONS.get(action)
    if not allowed_roles:
        return False
    return ctx.role in allowed_roles


def require_action(ctx: AccessContext, action: str) -> None:
    if not can(ctx, action):
        raise AuthorizationError(f"Role '{ctx.role.name}' is not allowed to perform '{action}'.")


def resolve_role(store, principal: Optional[Session]) -> Role:
    """Role of `principal`, read fresh from `profiles`.

    Missing principal, missing profile row and any lookup failure all resolve
    to VIEWER.
    """
    if principal is None:
        return Role.VIEWER
    try:
        profile = store.maybe_single("profiles", "role", eq={"user_id": principal.user_id})
    except AppError as e:
        log.warning("role_lookup_failed user=%s error=%s", principal.user_id, e)
        return Role.VIEWER
    if not profile:
        return Role.VIEWER
    return Role.parse(profile.get("role"))


def min_role_for(path: str) -> Role:
    # Longest prefix wins so /mobile/saida is not read as /mobile.
    for prefix in sorted(PAGE_MIN_ROLE, key=len, reverse=True):
        if path == prefix or path.startswith(prefix + "/"):
            return PAGE_MIN_ROLE[prefix]
    return Role.VIEWER


@dataclass(frozen=True)
class GateDecision:
    context: Optional[AccessContext] = None
    redirect_to: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.context is not None


class AccessGate:
    """Navigation gate evaluated on every guarded page entry.

    Only decides where the user may go. The backend rejects unauthorized
    writes on its own.
    """

    def __init__(self, store):
        self.store = store

    def enter(self, path: str) -> GateDecision:
        session = self.store.get_session()
        if session is None:
            return GateDecision(redirect_to=LOGIN_PATH)
        role = resolve_role(self.store, session)
        required = min_role_for(path)
        if not role.meets(required):
            log.info("page_denied path=%s role=%s required=%s", path, role.name, required.name)
            return GateDecision(redirect_to=FALLBACK_PATH)
        return GateDecision(context=AccessContext(principal=session, role=role))

    def home(self) -> str:
        return HOME_PATH if self.store.get_session() is not None else LOGIN_PATH


class AuthService:
    def __init__(self, store):
        self.store = store

    def sign_in(self, email: str, password: str) -> Session:
        email_clean = (email or "").strip()
        if not email_clean:
            raise ValidationError("E-mail is required.")
        if not password:
            raise ValidationError("Password is required.")
        session = self.store.sign_in(email_clean, password)
        log.info("signed_in user=%s", session.user_id)
        return session

    def sign_up(self, email: str, password: str, full_name: str | None = None) -> Optional[Session]:
        email_clean = (email or "").strip()
        if "@" not in email_clean:
            raise ValidationError("A valid e-mail is required.")
        if not password:
            raise ValidationError("Password is required.")
        return self.store.sign_up(email_clean, password, (full_name or "").strip() or None)

    def sign_out(self) -> None:
        self.store.sign_out()

    def current_session(self) -> Optional[Session]:
        return self.store.get_session()

    def current_context(self) -> Optional[AccessContext]:
        session = self.store.get_session()
        if session is None:
            return None
        return AccessContext(principal=session, role=resolve_role(self.store, session))
