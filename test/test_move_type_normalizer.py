from pathlib import Path

import pytest
from conftest import count_rows, open_store, context_for

from ccm.domain.errors import CHECK_VIOLATION, INSUFFICIENT_PRIVILEGE, INVALID_TEXT_REPRESENTATION, StoreError
from ccm.domain.models import Direction
from ccm.domain.movement_types import DECREASE_LABELS, INCREASE_LABELS, candidates_for, direction_of, signed_qty
from ccm.services.movement_service import (
    MovementService,
    insert_with_type_candidates,
    is_allowed_value_rejection,
)


def move_type_rejection():
    return StoreError(
        'new row for relation "stock_moves" violates check constraint "stock_moves_move_type_check"',
        code=CHECK_VIOLATION,
        constraint="stock_moves_move_type_check",
    )


class ScriptedStore:
    """Answers each insert with the next scripted error, or accepts it when the script runs out."""

    def __init__(self, errors):
        self.errors = list(errors)
        self.attempts = []

    def insert(self, table, row):
        self.attempts.append(row["move_type"])
        if self.errors:
            raise self.errors.pop(0)
        return {"id": "m-1", "created_at": "2026-10-19T10:00:00+00:00", **row}


def test_candidate_lists_keep_their_order():
    assert candidates_for(Direction.INCREASE) == ("IN", "ENTRADA", "INPUT", "INBOUND", "ENTRY")
    assert candidates_for(Direction.DECREASE) == ("OUT", "SAIDA", "OUTPUT", "OUTBOUND", "EXIT")
    assert not set(INCREASE_LABELS) & set(DECREASE_LABELS)


def test_direction_of_is_case_insensitive_and_unknown_is_none():
    assert direction_of("entrada") is Direction.INCREASE
    assert direction_of(" Exit ") is Direction.DECREASE
    assert direction_of("TRANSFER") is None
    assert signed_qty("SAIDA", 4) == -4
    assert signed_qty("TRANSFER", 4) == 0


def test_classifier_accepts_only_value_rejections():
    assert is_allowed_value_rejection(move_type_rejection())
    assert is_allowed_value_rejection(
        StoreError('invalid input value for enum move_type: "ENTRADA"', code=INVALID_TEXT_REPRESENTATION)
    )
    assert not is_allowed_value_rejection(
        StoreError('invalid input syntax for type uuid: "abc"', code=INVALID_TEXT_REPRESENTATION)
    )
    assert is_allowed_value_rejection(StoreError("check failed", code=CHECK_VIOLATION))
    assert not is_allowed_value_rejection(
        StoreError("check failed", code=CHECK_VIOLATION, constraint="stock_moves_balance_nonnegative")
    )
    assert not is_allowed_value_rejection(StoreError("denied", code=INSUFFICIENT_PRIVILEGE))
    assert not is_allowed_value_rejection(StoreError("fk", code="23503"))


def test_unparseable_value_in_other_column_stops_after_first_label():
    bad_uuid = StoreError('invalid input syntax for type uuid: "abc"', code=INVALID_TEXT_REPRESENTATION)
    store = ScriptedStore([bad_uuid] * 5)

    with pytest.raises(StoreError) as exc:
        insert_with_type_candidates(store, Direction.INCREASE, {"item_id": "abc", "qty": 3})

    assert exc.value is bad_uuid
    assert store.attempts == ["IN"]


def test_third_label_accepted_after_two_rejections():
    store = ScriptedStore([move_type_rejection(), move_type_rejection()])

    result = insert_with_type_candidates(store, Direction.INCREASE, {"item_id": "i-1", "qty": 3})

    assert store.attempts == ["IN", "ENTRADA", "INPUT"]
    assert result.attempts == 3
    assert result.move_type == "INPUT"
    assert result.movement.move_type == "INPUT"
    assert result.movement.qty == 3


def test_permission_error_stops_after_one_attempt():
    store = ScriptedStore([StoreError("permission denied for table stock_moves", code=INSUFFICIENT_PRIVILEGE)])

    with pytest.raises(StoreError) as exc:
        insert_with_type_candidates(store, Direction.DECREASE, {"item_id": "i-1", "qty": 1})

    assert exc.value.is_permission_denied
    assert store.attempts == ["OUT"]


def test_exhausted_candidates_raise_the_last_rejection():
    errors = [move_type_rejection() for _ in DECREASE_LABELS]
    last = errors[-1]
    store = ScriptedStore(errors)

    with pytest.raises(StoreError) as exc:
        insert_with_type_candidates(store, Direction.DECREASE, {"item_id": "i-1", "qty": 1})

    assert exc.value is last
    assert store.attempts == list(DECREASE_LABELS)


def test_local_store_with_long_labels_accepts_third_candidate(tmp_path: Path):
    store = open_store(tmp_path / "labels.db", move_types=("INPUT", "OUTPUT"))
    ctx = context_for(store)
    item = store.insert("items", {"category": "EPI", "name": "Luva", "unit": "PAR"})

    result = MovementService(store).register_entry(ctx, item["id"], 10)

    assert result.attempts == 3
    assert result.move_type == "INPUT"
    assert count_rows(store, "stock_moves") == 1
    balance = store.maybe_single("v_stock", "balance", eq={"item_id": item["id"]})
    assert balance["balance"] == 10


def test_balance_constraint_from_store_is_not_retried(tmp_path: Path):
    store = open_store(tmp_path / "trigger.db")
    item = store.insert("items", {"category": "EPI", "name": "Máscara", "unit": "UNIDADE"})
    attempts = []

    def classify(err):
        attempts.append(err.constraint)
        return is_allowed_value_rejection(err)

    with pytest.raises(StoreError, match="stock_moves_balance_nonnegative"):
        insert_with_type_candidates(store, Direction.DECREASE, {"item_id": item["id"], "qty": 1}, classifier=classify)

    assert attempts == ["stock_moves_balance_nonnegative"]
    assert count_rows(store, "stock_moves") == 0
