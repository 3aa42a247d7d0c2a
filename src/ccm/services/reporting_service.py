from __future__ import annotations

import csv
import logging
from datetime import date
from pathlib import Path
from typing import Iterable, Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from ccm.domain.models import AccessContext, HistoryEntry, RankingRow
from ccm.services.auth_service import require_action

log = logging.getLogger(__name__)

HISTORY_HEADER = [
    "Data",
    "Tipo",
    "Categoria",
    "Item",
    "Quantidade",
    "Unidade",
    "Entregue para",
    "Lançado por",
    "Observação",
]


def history_from_row(row: dict) -> HistoryEntry:
    return HistoryEntry(
        id=str(row.get("id", "")),
        created_at=str(row.get("created_at") or ""),
        type=str(row.get("type") or ""),
        category=str(row.get("category") or ""),
        item_name=str(row.get("item_name") or ""),
        qty=int(row.get("qty") or 0),
        unit=str(row.get("unit") or ""),
        receiver=str(row.get("receiver") or ""),
        actor=str(row.get("actor") or ""),
        note=str(row.get("note") or ""),
    )


def history_line(entry: HistoryEntry) -> list:
    """Export columns: date, type, category, item, quantity, unit, receiver, actor, note."""
    return [
        entry.created_at,
        entry.type,
        entry.category,
        entry.item_name,
        entry.qty,
        entry.unit,
        entry.receiver,
        entry.actor,
        entry.note or "",
    ]


def default_export_name(today: Optional[date] = None, suffix: str = "csv") -> str:
    return f"historico_{(today or date.today()).isoformat()}.{suffix}"


class ReportingService:
    def __init__(self, store):
        self.store = store

    def history(self, ctx: AccessContext) -> list[HistoryEntry]:
        require_action(ctx, "view_history")
        return [history_from_row(r) for r in self.store.rpc("v_historico_completo")]

    def ranking(self, ctx: AccessContext) -> list[RankingRow]:
        require_action(ctx, "view_history")
        rows = self.store.rpc("ranking_colaboradores")
        return [RankingRow(receiver=str(r.get("receiver") or ""), total=int(r.get("total") or 0)) for r in rows]

    def export_history_csv(self, ctx: AccessContext, rows: Iterable[HistoryEntry], path: str | Path) -> Optional[Path]:
        """Semicolon-delimited export. Nothing is written when there are no rows."""
        require_action(ctx, "export_history")
        rows = list(rows)
        if not rows:
            return None

        target = Path(path)
        with target.open("w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f, delimiter=";", lineterminator="\n")
            writer.writerow(HISTORY_HEADER)
            for entry in rows:
                writer.writerow(history_line(entry))
        log.info("history_exported format=csv rows=%s path=%s", len(rows), target)
        return target

    def export_history_excel(
        self,
        ctx: AccessContext,
        rows: Iterable[HistoryEntry],
        path: str | Path,
        ranking: Optional[Iterable[RankingRow]] = None,
    ) -> Optional[Path]:
        require_action(ctx, "export_history")
        rows = list(rows)
        if not rows:
            return None

        wb = Workbook()

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        def add_table(ws, name: str, end_row: int, end_col: int):
            ref = f"A1:{get_column_letter(end_col)}{end_row}"
            tab = Table(displayName=name, ref=ref)
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        ws = wb.active
        ws.title = "Historico"
        ws.append(HISTORY_HEADER)
        bold_row(ws, 1)
        for entry in rows:
            ws.append(history_line(entry))
        ws.freeze_panes = "A2"
        set_widths(ws, {"A": 26, "B": 10, "C": 18, "D": 32, "E": 12, "F": 12, "G": 24, "H": 24, "I": 40})
        add_table(ws, "Historico", ws.max_row, len(HISTORY_HEADER))

        ranking = list(ranking or [])
        if ranking:
            ws2 = wb.create_sheet("Ranking")
            ws2.append(["Colaborador", "Total recebido"])
            bold_row(ws2, 1)
            for r in ranking:
                ws2.append([r.receiver, int(r.total)])
            set_widths(ws2, {"A": 32, "B": 16})
            add_table(ws2, "Ranking", ws2.max_row, 2)

        target = Path(path)
        wb.save(target)
        log.info("history_exported format=xlsx rows=%s path=%s", len(rows), target)
        return target
