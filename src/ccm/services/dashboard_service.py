from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from ccm.domain.models import AccessContext, Direction, Movement, StockRow
from ccm.domain.movement_types import direction_of
from ccm.services.auth_service import require_action
from ccm.services.inventory_service import CATALOG_ORDER, STOCK_COLUMNS, stock_from_row
from ccm.services.movement_service import MovementService

log = logging.getLogger(__name__)

WINDOW_DAYS = 14
TOP_N = 8


@dataclass(frozen=True)
class DayTotals:
    day: str
    label: str
    increase: int
    decrease: int


@dataclass(frozen=True)
class ItemVolume:
    item_id: str
    name: str
    qty: int


@dataclass(frozen=True)
class Kpis:
    total_items: int
    active_items: int
    below_min: int
    total_balance: int
    moves_today: int


@dataclass(frozen=True)
class DashboardSnapshot:
    kpis: Kpis
    series: list[DayTotals]
    ranking: list[ItemVolume]
    window_start: str
    generated_at: str


def window_start(now: datetime, days: int = WINDOW_DAYS) -> datetime:
    """Start of the first calendar day of a trailing window that ends today."""
    first = now - timedelta(days=days - 1)
    return first.replace(hour=0, minute=0, second=0, microsecond=0)


def day_label(day_iso: str) -> str:
    _y, m, d = day_iso[:10].split("-")
    return f"{d}/{m}"


def daily_series(moves: Iterable[Movement]) -> list[DayTotals]:
    totals: dict[str, list[int]] = {}
    for m in moves:
        day = (m.created_at or "")[:10]
        if not day:
            continue
        row = totals.setdefault(day, [0, 0])
        qty = abs(int(m.qty))
        direction = direction_of(m.move_type)
        if direction is Direction.INCREASE:
            row[0] += qty
        elif direction is Direction.DECREASE:
            row[1] += qty

    return [
        DayTotals(day=day, label=day_label(day), increase=inc, decrease=dec)
        for day, (inc, dec) in sorted(totals.items())
    ]


def item_volume_ranking(moves: Iterable[Movement], stock: Iterable[StockRow], top_n: int = TOP_N) -> list[ItemVolume]:
    volume: dict[str, int] = defaultdict(int)
    for m in moves:
        volume[m.item_id] += abs(int(m.qty))

    names = {s.item_id: f"{s.category} - {s.name}" for s in stock}
    ranked = sorted(volume.items(), key=lambda kv: kv[1], reverse=True)
    return [ItemVolume(item_id=item_id, name=names.get(item_id, item_id), qty=qty) for item_id, qty in ranked[:top_n]]


def count_below_min(stock: Iterable[StockRow]) -> int:
    return sum(1 for s in stock if s.below_min)


def compute_kpis(stock: list[StockRow], moves: list[Movement], today: date) -> Kpis:
    today_iso = today.isoformat()
    return Kpis(
        total_items=len(stock),
        active_items=sum(1 for s in stock if s.active),
        below_min=count_below_min(stock),
        total_balance=sum(s.balance for s in stock),
        moves_today=sum(1 for m in moves if (m.created_at or "")[:10] == today_iso),
    )


def build_snapshot(stock: list[StockRow], moves: list[Movement], now: datetime) -> DashboardSnapshot:
    return DashboardSnapshot(
        kpis=compute_kpis(stock, moves, now.date()),
        series=daily_series(moves),
        ranking=item_volume_ranking(moves, stock),
        window_start=window_start(now).isoformat(timespec="seconds"),
        generated_at=now.isoformat(timespec="seconds"),
    )


class DashboardService:
    def __init__(self, store, movements: MovementService, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.movements = movements
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def refresh(self, ctx: AccessContext) -> DashboardSnapshot:
        require_action(ctx, "view_dashboard")
        now = self.clock()
        stock = [stock_from_row(r) for r in self.store.select("v_stock", STOCK_COLUMNS, order=CATALOG_ORDER)]
        moves = self.movements.movements_since(window_start(now).isoformat(timespec="seconds"))
        snapshot = build_snapshot(stock, moves, now)
        log.info("dashboard_refreshed items=%s moves=%s", len(stock), len(moves))
        return snapshot
