from pathlib import Path

import pytest
from conftest import ADMIN_EMAIL, USER_PASSWORD, add_user, context_for, open_store

from ccm.domain.errors import AuthorizationError, StoreError, StoreUnavailableError, ValidationError
from ccm.domain.models import Session
from ccm.domain.roles import Role
from ccm.services.auth_service import (
    FALLBACK_PATH,
    LOGIN_PATH,
    AccessGate,
    AuthService,
    min_role_for,
    resolve_role,
)
from ccm.services.user_admin_service import UserAdminService


def test_role_parse_and_ordering():
    assert Role.parse("MASTER") is Role.ADMIN
    assert Role.parse(" lider ") is Role.LEAD
    assert Role.parse("something-else") is Role.VIEWER
    assert Role.parse(None) is Role.VIEWER
    assert Role.ADMIN.meets(Role.LEAD)
    assert not Role.VIEWER.meets(Role.LEAD)


def test_missing_principal_resolves_to_viewer(tmp_path: Path):
    store = open_store(tmp_path / "anon.db")

    assert resolve_role(store, None) is Role.VIEWER


def test_missing_profile_resolves_to_viewer(tmp_path: Path):
    store = open_store(tmp_path / "noprofile.db")
    user_id = add_user(store, "lead@example.com", Role.LEAD)

    conn = store._conn()
    conn.execute("DELETE FROM profiles WHERE user_id=?", (user_id,))
    conn.commit()
    conn.close()

    session = store.sign_in("lead@example.com", USER_PASSWORD)
    assert resolve_role(store, session) is Role.VIEWER


def test_lookup_failure_resolves_to_viewer():
    class BrokenStore:
        def maybe_single(self, table, columns="*", *, eq=None):
            raise StoreUnavailableError("Backend unreachable")

    session = Session(user_id="u-1", email="x@example.com", access_token="t")
    assert resolve_role(BrokenStore(), session) is Role.VIEWER


def test_role_change_is_seen_on_next_resolution(tmp_path: Path):
    store = open_store(tmp_path / "fresh.db")
    user_id = add_user(store, "viewer@example.com", Role.VIEWER)
    admin = context_for(store)
    session = Session(user_id=user_id, email="viewer@example.com", access_token="t")

    assert resolve_role(store, session) is Role.VIEWER
    UserAdminService(store).update_role(admin, user_id, Role.LEAD)
    assert resolve_role(store, session) is Role.LEAD


def test_min_role_uses_longest_matching_prefix():
    assert min_role_for("/mobile/saida") is Role.LEAD
    assert min_role_for("/mobile/saida/scan") is Role.LEAD
    assert min_role_for("/mobile") is Role.ADMIN
    assert min_role_for("/mobile/entrada") is Role.ADMIN
    assert min_role_for("/master/usuarios") is Role.ADMIN
    assert min_role_for("/estoque") is Role.VIEWER
    assert min_role_for("/mobilex") is Role.VIEWER


def test_gate_without_session_redirects_to_login(tmp_path: Path):
    store = open_store(tmp_path / "gate.db")
    store.sign_out()
    gate = AccessGate(store)

    decision = gate.enter("/estoque")
    assert not decision.allowed
    assert decision.redirect_to == LOGIN_PATH
    assert gate.home() == LOGIN_PATH


def test_gate_redirects_insufficient_role_to_fallback(tmp_path: Path):
    store = open_store(tmp_path / "gate2.db")
    add_user(store, "lead@example.com", Role.LEAD)
    store.sign_in("lead@example.com", USER_PASSWORD)
    gate = AccessGate(store)

    exit_page = gate.enter("/mobile/saida")
    assert exit_page.allowed
    assert exit_page.context.role is Role.LEAD

    entry_page = gate.enter("/mobile")
    assert entry_page.redirect_to == FALLBACK_PATH
    assert gate.enter("/master/usuarios").redirect_to == FALLBACK_PATH
    assert gate.enter("/dashboard").allowed


def test_admin_passes_every_page(tmp_path: Path):
    store = open_store(tmp_path / "gate3.db")
    gate = AccessGate(store)

    for path in ("/dashboard", "/estoque", "/historico", "/ranking", "/mobile", "/mobile/saida", "/master", "/collaboradores"):
        assert gate.enter(path).allowed, path
    assert gate.home() == "/dashboard"


def test_sign_in_validates_and_rejects_bad_credentials(tmp_path: Path):
    store = open_store(tmp_path / "auth.db")
    auth = AuthService(store)
    auth.sign_out()

    with pytest.raises(ValidationError):
        auth.sign_in("  ", "x")
    with pytest.raises(StoreError, match="Invalid login credentials"):
        auth.sign_in(ADMIN_EMAIL, "wrong")
    assert auth.current_session() is None


def test_invite_decides_role_on_sign_up(tmp_path: Path):
    store = open_store(tmp_path / "invite.db")
    admin = context_for(store)
    users = UserAdminService(store)

    invite = users.create_invite(admin, "  Joao@Example.COM ", Role.LEAD)
    assert invite.email == "joao@example.com"
    assert not invite.used

    AuthService(store).sign_up("joao@example.com", "Joao#1234", "João")
    assert context_for(store).role is Role.LEAD

    store.sign_in(ADMIN_EMAIL, "Admin#1234")
    invites = users.list_invites(admin)
    assert users.used_invites(invites) == 1
    profiles = {p.full_name: p.role for p in users.list_profiles(admin)}
    assert profiles["João"] is Role.LEAD


def test_sign_up_without_invite_gets_viewer(tmp_path: Path):
    store = open_store(tmp_path / "noinvite.db")

    AuthService(store).sign_up("walkin@example.com", "Walk#1234")

    assert context_for(store).role is Role.VIEWER


def test_invite_rules(tmp_path: Path):
    store = open_store(tmp_path / "rules.db")
    admin = context_for(store)
    users = UserAdminService(store)

    with pytest.raises(ValidationError, match="valid e-mail"):
        users.create_invite(admin, "not-an-email", Role.VIEWER)

    invite = users.create_invite(admin, "x@example.com", Role.VIEWER)
    users.delete_invite(admin, invite.id)
    assert users.list_invites(admin) == []

    add_user(store, "lead@example.com", Role.LEAD)
    store.sign_in("lead@example.com", USER_PASSWORD)
    with pytest.raises(AuthorizationError):
        users.create_invite(context_for(store), "y@example.com", Role.ADMIN)
