from __future__ import annotations

import logging

from ccm.domain.errors import NotFoundError, StoreError
from ccm.domain.models import DeleteOutcome

log = logging.getLogger(__name__)


def delete_or_deactivate(store, table: str, entity_id: str) -> DeleteOutcome:
    """Hard-delete a row; when movement history references it, mark it inactive instead.

    Only a foreign-key violation triggers the fallback. Every other failure is
    raised and leaves the row untouched.
    """
    try:
        removed = store.delete(table, eq={"id": entity_id})
    except StoreError as e:
        if not e.is_foreign_key_violation:
            raise
        log.info("delete_blocked_by_history table=%s id=%s", table, entity_id)
    else:
        if not removed:
            raise NotFoundError(f"Record not found in {table}.")
        log.info("record_deleted table=%s id=%s", table, entity_id)
        return DeleteOutcome.DELETED

    updated = store.update(table, {"active": False}, eq={"id": entity_id})
    if not updated:
        raise NotFoundError(f"Record not found in {table}.")
    log.info("record_deactivated table=%s id=%s", table, entity_id)
    return DeleteOutcome.DEACTIVATED
