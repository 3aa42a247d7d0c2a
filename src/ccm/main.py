from __future__ import annotations

import argparse
import logging
import sys

from ccm.application.container import build_container
from ccm.config import StoreSettings, get_app_paths
from ccm.domain.errors import AppError
from ccm.logging_config import setup_logging
from ccm.services.reporting_service import default_export_name

log = logging.getLogger(__name__)


def _print_stock(container, ctx) -> None:
    rows = container.inventory.list_stock()
    print(f"{'Categoria':<18} {'Item':<32} {'Saldo':>8} {'Mín.':>6}  Unidade")
    for r in rows:
        flag = " !" if r.below_min else ""
        print(f"{r.category:<18} {r.name:<32} {r.balance:>8} {r.min_stock:>6}  {r.unit}{flag}")


def _print_dashboard(container, ctx) -> None:
    snap = container.dashboard.refresh(ctx)
    k = snap.kpis
    print(f"Itens: {k.total_items}  Ativos: {k.active_items}  Abaixo do mínimo: {k.below_min}")
    print(f"Saldo total: {k.total_balance}  Movimentações hoje: {k.moves_today}")
    for day in snap.series:
        print(f"{day.label}  +{day.increase}  -{day.decrease}")


def _export_history(container, ctx, path: str | None) -> None:
    rows = container.reporting.history(ctx)
    target = path or str(get_app_paths().exports_dir / default_export_name())
    if target.lower().endswith(".xlsx"):
        written = container.reporting.export_history_excel(ctx, rows, target, container.reporting.ranking(ctx))
    else:
        written = container.reporting.export_history_csv(ctx, rows, target)
    print(f"Exportado: {written}" if written else "Nenhuma movimentação para exportar.")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="ccm", description="Controle de Materiais")
    parser.add_argument("command", choices=["stock", "dashboard", "export"], nargs="?", default="stock")
    parser.add_argument("--output", help="export target (.csv or .xlsx)")
    args = parser.parse_args(argv)

    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO)

    try:
        settings = StoreSettings.from_env()
        container = build_container(paths.db_path, settings)
        if settings.email:
            container.auth.sign_in(settings.email, settings.password)
        decision = container.gate.enter("/dashboard" if args.command == "dashboard" else "/estoque")
        if not decision.allowed:
            print(f"Acesso negado, redirecionado para {decision.redirect_to}.", file=sys.stderr)
            return 2

        if args.command == "dashboard":
            _print_dashboard(container, decision.context)
        elif args.command == "export":
            _export_history(container, decision.context, args.output)
        else:
            _print_stock(container, decision.context)
    except (AppError, ValueError) as e:
        log.error("command_failed command=%s error=%s", args.command, e)
        print(f"Erro: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
