from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional

from ccm.domain.errors import AppError, NotFoundError, ValidationError
from ccm.domain.models import AccessContext, DeleteOutcome, Item, StockRow
from ccm.services.auth_service import require_action
from ccm.services.deletion import delete_or_deactivate

log = logging.getLogger(__name__)

ALL_CATEGORIES = "TODAS"
DEFAULT_UNIT = "UNIDADE"
ITEM_COLUMNS = "id,category,name,sku,unit,min_stock,active"
STOCK_COLUMNS = "item_id,category,name,sku,unit,min_stock,active,balance"
CATALOG_ORDER = [("category", True), ("name", True)]


@dataclass(frozen=True)
class StockTotals:
    items: int
    below_min: int
    total_balance: int


def item_from_row(row: dict) -> Item:
    return Item(
        id=str(row.get("id", "")),
        category=str(row.get("category") or ""),
        name=str(row.get("name") or ""),
        sku=row.get("sku"),
        unit=str(row.get("unit") or DEFAULT_UNIT),
        min_stock=int(row.get("min_stock") or 0),
        active=bool(row.get("active")),
    )


def stock_from_row(row: dict) -> StockRow:
    return StockRow(
        item_id=str(row["item_id"]),
        category=str(row.get("category") or ""),
        name=str(row.get("name") or ""),
        sku=row.get("sku"),
        unit=str(row.get("unit") or DEFAULT_UNIT),
        min_stock=int(row.get("min_stock") or 0),
        active=bool(row.get("active")),
        balance=int(row.get("balance") or 0),
    )


def filter_stock(
    rows: Iterable[StockRow],
    query: str = "",
    category: str = ALL_CATEGORIES,
    only_below_min: bool = False,
    only_active: bool = False,
) -> list[StockRow]:
    s = (query or "").strip().lower()
    out = []
    for r in rows:
        if only_active and not r.active:
            continue
        if category and category != ALL_CATEGORIES and r.category != category:
            continue
        if only_below_min and not r.below_min:
            continue
        if s and s not in f"{r.category} {r.name} {r.sku or ''} {r.unit} {r.balance}".lower():
            continue
        out.append(r)
    return out


def stock_totals(rows: Iterable[StockRow]) -> StockTotals:
    rows = list(rows)
    return StockTotals(
        items=len(rows),
        below_min=sum(1 for r in rows if r.below_min),
        total_balance=sum(r.balance for r in rows),
    )


def categories(rows: Iterable[StockRow]) -> list[str]:
    return [ALL_CATEGORIES] + sorted({r.category for r in rows})


def _min_stock(value: object) -> int:
    try:
        number = float(value or 0)
    except (TypeError, ValueError) as e:
        raise ValidationError("Minimum stock must be a number.") from e
    if math.isnan(number) or math.isinf(number):
        raise ValidationError("Minimum stock must be a number.")
    return max(0, math.trunc(number))


class InventoryService:
    def __init__(self, store):
        self.store = store

    def list_stock(self) -> list[StockRow]:
        """Rows from the balance view; falls back to the catalogue with zero balance."""
        try:
            rows = self.store.select("v_stock", STOCK_COLUMNS, order=CATALOG_ORDER)
        except AppError as e:
            log.warning("stock_view_unavailable error=%s", e)
            items = self.store.select("items", ITEM_COLUMNS, order=CATALOG_ORDER)
            return [stock_from_row({**r, "item_id": r["id"], "balance": 0}) for r in items]
        return [stock_from_row(r) for r in rows]

    def list_items(self) -> list[Item]:
        return [item_from_row(r) for r in self.store.select("items", ITEM_COLUMNS, order=CATALOG_ORDER)]

    def list_active_items(self) -> list[Item]:
        rows = self.store.select("items", ITEM_COLUMNS, eq={"active": True}, order=CATALOG_ORDER)
        return [item_from_row(r) for r in rows]

    def get_item(self, item_id: str) -> Item:
        row = self.store.maybe_single("items", ITEM_COLUMNS, eq={"id": item_id})
        if not row:
            raise NotFoundError("Item not found.")
        return item_from_row(row)

    def save_item(
        self,
        ctx: AccessContext,
        category: str,
        name: str,
        unit: str = DEFAULT_UNIT,
        sku: Optional[str] = None,
        min_stock: object = 0,
        active: bool = True,
        item_id: Optional[str] = None,
    ) -> Item:
        require_action(ctx, "manage_items")

        category = (category or "").strip()
        name = (name or "").strip()
        unit = (unit or "").strip()
        if not category:
            raise ValidationError("Category is required.")
        if not name:
            raise ValidationError("Item name is required.")
        if not unit:
            raise ValidationError("Unit is required.")

        payload = {
            "category": category,
            "name": name,
            "sku": (sku or "").strip() or None,
            "unit": unit,
            "min_stock": _min_stock(min_stock),
            "active": bool(active),
        }
        if item_id:
            payload["id"] = item_id

        row = self.store.upsert("items", payload, on_conflict="id")
        saved = item_from_row({**payload, **(row or {})})
        log.info("item_saved id=%s actor=%s", saved.id, ctx.user_id)
        return saved

    def delete_item(self, ctx: AccessContext, item_id: str) -> DeleteOutcome:
        require_action(ctx, "manage_items")
        return delete_or_deactivate(self.store, "items", item_id)
