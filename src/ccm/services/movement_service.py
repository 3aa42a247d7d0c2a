from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ccm.domain.errors import (
    CHECK_VIOLATION,
    INVALID_TEXT_REPRESENTATION,
    AppError,
    InsufficientStockError,
    StoreError,
    ValidationError,
)
from ccm.domain.models import AccessContext, Direction, Movement
from ccm.domain.movement_types import candidates_for
from ccm.services.auth_service import require_action

log = logging.getLogger("ccm.movements")


def is_allowed_value_rejection(err: StoreError, column: str = "move_type") -> bool:
    """True when the store refused the value of `column` itself, so another spelling may pass.

    Permission, connectivity and other constraint failures (a non-negative
    balance check, a missing foreign key) are not retryable.
    """
    if err.code == INVALID_TEXT_REPRESENTATION:
        # Only when the unparseable value is the one in `column` (or its enum type).
        return any(column in (text or "") for text in (err.constraint, err.message, err.details, err.hint))
    if err.code != CHECK_VIOLATION:
        return False
    if err.constraint is None:
        return True
    return column in err.constraint


@dataclass(frozen=True)
class InsertResult:
    movement: Movement
    move_type: str
    attempts: int


def movement_from_row(row: dict) -> Movement:
    return Movement(
        id=str(row.get("id", "")),
        created_at=str(row.get("created_at") or ""),
        item_id=str(row.get("item_id", "")),
        qty=int(row.get("qty") or 0),
        move_type=str(row.get("move_type") or ""),
        receiver_id=row.get("receiver_id"),
        created_by=row.get("created_by"),
        note=row.get("note"),
    )


def insert_with_type_candidates(
    store,
    direction: Direction,
    payload: dict,
    *,
    classifier: Callable[[StoreError], bool] = is_allowed_value_rejection,
) -> InsertResult:
    """Insert a movement trying each candidate `move_type` label for `direction` in order.

    Stops at the first accepted label. A rejection that `classifier` does not
    recognise as an allowed-value mismatch is raised at once; when every label
    is rejected the last error is raised.
    """
    last_err: Optional[StoreError] = None
    for attempt, label in enumerate(candidates_for(direction), start=1):
        try:
            row = store.insert("stock_moves", {**payload, "move_type": label})
        except StoreError as e:
            last_err = e
            if not classifier(e):
                log.warning("movement_insert_failed direction=%s label=%s code=%s", direction.value, label, e.code)
                raise
            log.info("move_type_rejected direction=%s label=%s constraint=%s", direction.value, label, e.constraint)
            continue
        movement = movement_from_row({**payload, "move_type": label, **(row or {})})
        return InsertResult(movement=movement, move_type=label, attempts=attempt)

    if last_err is None:
        raise StoreError(f"No movement type labels configured for {direction.value}.")
    raise last_err


def validate_quantity(qty: object) -> int:
    if isinstance(qty, bool):
        raise ValidationError("Invalid quantity.")
    if isinstance(qty, int):
        value = qty
    elif isinstance(qty, float) and qty.is_integer():
        value = int(qty)
    elif isinstance(qty, str):
        try:
            number = float(qty.strip())
        except ValueError as e:
            raise ValidationError("Quantity must be a whole number.") from e
        if not number.is_integer():
            raise ValidationError("Quantity must be a whole number.")
        value = int(number)
    else:
        raise ValidationError("Quantity must be a whole number.")
    if value <= 0:
        raise ValidationError("Quantity must be greater than zero.")
    return value


class MovementService:
    def __init__(self, store):
        self.store = store

    def current_balance(self, item_id: str) -> Optional[int]:
        """Balance from the aggregate view, or None when it cannot be read."""
        try:
            row = self.store.maybe_single("v_stock", "item_id,balance", eq={"item_id": item_id})
        except AppError as e:
            log.warning("balance_unavailable item=%s error=%s", item_id, e)
            return None
        if not row:
            return None
        return int(row.get("balance") or 0)

    def check_balance(self, item_id: str, qty: int) -> Optional[int]:
        """Advisory pre-flight check for a decrease; the backend stays the authority."""
        balance = self.current_balance(item_id)
        if balance is not None and qty > balance:
            raise InsufficientStockError(balance, qty)
        return balance

    def register_entry(self, ctx: AccessContext, item_id: str, qty: object, note: str | None = None) -> InsertResult:
        require_action(ctx, "register_entry")
        if not item_id:
            raise ValidationError("Select an item.")
        n_qty = validate_quantity(qty)

        payload = {
            "item_id": item_id,
            "qty": n_qty,
            "note": (note or "").strip() or None,
            "created_by": ctx.user_id,
        }
        result = insert_with_type_candidates(self.store, Direction.INCREASE, payload)
        log.info(
            "movement_created direction=increase item=%s qty=%s type=%s attempts=%s actor=%s",
            item_id, n_qty, result.move_type, result.attempts, ctx.user_id,
        )
        return result

    def register_exit(
        self,
        ctx: AccessContext,
        item_id: str,
        receiver_id: str,
        qty: object,
        note: str | None = None,
    ) -> InsertResult:
        require_action(ctx, "register_exit")
        if not item_id:
            raise ValidationError("Select an item.")
        if not receiver_id:
            raise ValidationError("Select the collaborator receiving the items.")
        n_qty = validate_quantity(qty)

        self.check_balance(item_id, n_qty)

        payload = {
            "item_id": item_id,
            "qty": n_qty,
            "note": (note or "").strip() or None,
            "created_by": ctx.user_id,
            "receiver_id": receiver_id,
        }
        result = insert_with_type_candidates(self.store, Direction.DECREASE, payload)
        log.info(
            "movement_created direction=decrease item=%s qty=%s type=%s receiver=%s attempts=%s actor=%s",
            item_id, n_qty, result.move_type, receiver_id, result.attempts, ctx.user_id,
        )
        return result

    def movements_since(self, since_iso: str) -> list[Movement]:
        rows = self.store.select(
            "stock_moves",
            "id,created_at,item_id,qty,move_type,receiver_id,created_by,note",
            gte={"created_at": since_iso},
            order=[("created_at", True)],
        )
        return [movement_from_row(r) for r in rows]
