from pathlib import Path

import pytest
from conftest import add_user, context_for, open_store

from ccm.domain.errors import AuthorizationError, NotFoundError, StoreError, ValidationError
from ccm.domain.models import DeleteOutcome
from ccm.domain.roles import Role
from ccm.services.collaborator_service import CollaboratorService, search_collaborators
from ccm.services.deletion import delete_or_deactivate
from ccm.services.inventory_service import InventoryService, categories, filter_stock, stock_totals
from ccm.services.movement_service import MovementService


def test_unreferenced_item_is_deleted(tmp_path: Path):
    store = open_store(tmp_path / "del.db")
    ctx = context_for(store)
    inventory = InventoryService(store)
    item = inventory.save_item(ctx, "EPI", "Protetor auricular", "UNIDADE")

    assert inventory.delete_item(ctx, item.id) is DeleteOutcome.DELETED
    with pytest.raises(NotFoundError):
        inventory.get_item(item.id)


def test_item_with_history_is_deactivated(tmp_path: Path):
    store = open_store(tmp_path / "deact.db")
    ctx = context_for(store)
    inventory = InventoryService(store)
    item = inventory.save_item(ctx, "EPI", "Capacete", "UNIDADE")
    MovementService(store).register_entry(ctx, item.id, 2)

    assert inventory.delete_item(ctx, item.id) is DeleteOutcome.DEACTIVATED

    kept = inventory.get_item(item.id)
    assert kept.active is False
    assert item.id not in {i.id for i in inventory.list_active_items()}
    assert MovementService(store).current_balance(item.id) == 2


def test_collaborator_with_history_is_deactivated(tmp_path: Path):
    store = open_store(tmp_path / "collab.db")
    ctx = context_for(store)
    item = InventoryService(store).save_item(ctx, "EPI", "Bota", "PAR")
    collaborators = CollaboratorService(store)
    carla = collaborators.save(ctx, "Carla", "Obras")
    idle = collaborators.save(ctx, "Diego")
    movements = MovementService(store)
    movements.register_entry(ctx, item.id, 3)
    movements.register_exit(ctx, item.id, carla.id, 1)

    assert collaborators.delete(ctx, carla.id) is DeleteOutcome.DEACTIVATED
    assert collaborators.delete(ctx, idle.id) is DeleteOutcome.DELETED
    assert [c.name for c in collaborators.list_collaborators()] == ["Carla"]
    assert collaborators.list_active() == []


def test_other_delete_failures_propagate_and_leave_row_untouched(tmp_path: Path):
    store = open_store(tmp_path / "deny.db")
    admin = context_for(store)
    item = InventoryService(store).save_item(admin, "EPI", "Avental", "UNIDADE")
    add_user(store, "lead@example.com", Role.LEAD)
    store.sign_in("lead@example.com", "User#1234")

    with pytest.raises(StoreError) as exc:
        delete_or_deactivate(store, "items", item.id)

    assert exc.value.is_permission_denied
    assert InventoryService(store).get_item(item.id).active is True


def test_missing_record_raises_not_found(tmp_path: Path):
    store = open_store(tmp_path / "missing.db")

    with pytest.raises(NotFoundError):
        delete_or_deactivate(store, "collaborators", "does-not-exist")


def test_save_item_normalizes_fields(tmp_path: Path):
    store = open_store(tmp_path / "items.db")
    ctx = context_for(store)
    inventory = InventoryService(store)

    item = inventory.save_item(ctx, " EPI ", " Luva nitrílica ", " CAIXA ", sku="   ", min_stock="3.7")
    assert (item.category, item.name, item.unit, item.sku, item.min_stock) == ("EPI", "Luva nitrílica", "CAIXA", None, 3)

    updated = inventory.save_item(ctx, "EPI", "Luva nitrílica M", "CAIXA", sku="LN-M", min_stock=-4, item_id=item.id)
    assert updated.id == item.id
    assert updated.min_stock == 0
    assert inventory.get_item(item.id).name == "Luva nitrílica M"
    assert len(inventory.list_items()) == 1


@pytest.mark.parametrize(
    "category,name,unit,message",
    [
        ("", "Luva", "PAR", "Category"),
        ("EPI", "  ", "PAR", "name"),
        ("EPI", "Luva", "", "Unit"),
    ],
)
def test_save_item_requires_category_name_and_unit(tmp_path: Path, category, name, unit, message):
    store = open_store(tmp_path / "req.db")

    with pytest.raises(ValidationError, match=message):
        InventoryService(store).save_item(context_for(store), category, name, unit)


def test_catalog_changes_require_admin(tmp_path: Path):
    store = open_store(tmp_path / "perm.db")
    add_user(store, "viewer@example.com", Role.VIEWER)
    store.sign_in("viewer@example.com", "User#1234")
    viewer = context_for(store)

    with pytest.raises(AuthorizationError):
        InventoryService(store).save_item(viewer, "EPI", "Luva", "PAR")
    with pytest.raises(AuthorizationError):
        CollaboratorService(store).save(viewer, "Eva")


def test_collaborator_name_required(tmp_path: Path):
    store = open_store(tmp_path / "cname.db")

    with pytest.raises(ValidationError, match="Name is required"):
        CollaboratorService(store).save(context_for(store), "   ", "Obras")


def test_stock_filters_and_totals(tmp_path: Path):
    store = open_store(tmp_path / "filters.db")
    ctx = context_for(store)
    inventory = InventoryService(store)
    movements = MovementService(store)
    luva = inventory.save_item(ctx, "EPI", "Luva", "PAR", min_stock=10)
    fita = inventory.save_item(ctx, "ESCRITORIO", "Fita", "ROLO", min_stock=1)
    movements.register_entry(ctx, luva.id, 4)
    movements.register_entry(ctx, fita.id, 6)

    rows = inventory.list_stock()
    assert categories(rows) == ["TODAS", "EPI", "ESCRITORIO"]
    assert [r.name for r in filter_stock(rows, category="EPI")] == ["Luva"]
    assert [r.name for r in filter_stock(rows, only_below_min=True)] == ["Luva"]
    assert [r.name for r in filter_stock(rows, query="rolo")] == ["Fita"]

    totals = stock_totals(rows)
    assert (totals.items, totals.below_min, totals.total_balance) == (2, 1, 10)


def test_stock_falls_back_to_catalog_when_view_fails():
    class NoViewStore:
        def select(self, table, columns="*", *, eq=None, gte=None, order=None):
            if table == "v_stock":
                raise StoreError('relation "v_stock" does not exist', code="42P01")
            return [{"id": "i-1", "category": "EPI", "name": "Luva", "unit": "PAR", "min_stock": 2, "active": True}]

    rows = InventoryService(NoViewStore()).list_stock()

    assert [(r.item_id, r.balance, r.below_min) for r in rows] == [("i-1", 0, True)]


def test_search_collaborators_by_name_or_sector(tmp_path: Path):
    store = open_store(tmp_path / "search.db")
    ctx = context_for(store)
    collaborators = CollaboratorService(store)
    collaborators.save(ctx, "Fernanda", "Almoxarifado")
    collaborators.save(ctx, "Gustavo", "Obras", active=False)

    everyone = collaborators.list_collaborators()
    assert [c.name for c in everyone] == ["Fernanda", "Gustavo"]
    assert [c.name for c in search_collaborators(everyone, "obras")] == ["Gustavo"]
    assert search_collaborators(everyone, "obras", only_active=True) == []
