from __future__ import annotations

import logging
from typing import Iterable, Optional

from ccm.domain.errors import ValidationError
from ccm.domain.models import AccessContext, Collaborator, DeleteOutcome
from ccm.services.auth_service import require_action
from ccm.services.deletion import delete_or_deactivate

log = logging.getLogger(__name__)

COLUMNS = "id,name,sector,active,created_at"


def collaborator_from_row(row: dict) -> Collaborator:
    return Collaborator(
        id=str(row.get("id", "")),
        name=str(row.get("name") or ""),
        sector=row.get("sector"),
        active=bool(row.get("active")),
        created_at=row.get("created_at"),
    )


def search_collaborators(rows: Iterable[Collaborator], query: str = "", only_active: bool = False) -> list[Collaborator]:
    s = (query or "").strip().lower()
    out = []
    for c in rows:
        if only_active and not c.active:
            continue
        if s and s not in f"{c.name} {c.sector or ''}".lower():
            continue
        out.append(c)
    return out


class CollaboratorService:
    def __init__(self, store):
        self.store = store

    def list_collaborators(self) -> list[Collaborator]:
        rows = self.store.select("collaborators", COLUMNS, order=[("active", False), ("name", True)])
        return [collaborator_from_row(r) for r in rows]

    def list_active(self) -> list[Collaborator]:
        rows = self.store.select("collaborators", COLUMNS, eq={"active": True}, order=[("name", True)])
        return [collaborator_from_row(r) for r in rows]

    def save(
        self,
        ctx: AccessContext,
        name: str,
        sector: Optional[str] = None,
        active: bool = True,
        collaborator_id: Optional[str] = None,
    ) -> Collaborator:
        require_action(ctx, "manage_collaborators")
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required.")

        payload = {"name": name, "sector": (sector or "").strip() or None, "active": bool(active)}
        if collaborator_id:
            payload["id"] = collaborator_id

        row = self.store.upsert("collaborators", payload, on_conflict="id")
        saved = collaborator_from_row({**payload, **(row or {})})
        log.info("collaborator_saved id=%s actor=%s", saved.id, ctx.user_id)
        return saved

    def delete(self, ctx: AccessContext, collaborator_id: str) -> DeleteOutcome:
        require_action(ctx, "manage_collaborators")
        return delete_or_deactivate(self.store, "collaborators", collaborator_id)
