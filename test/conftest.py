import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

ADMIN_EMAIL = "admin@local"
ADMIN_PASSWORD = "Admin#1234"
USER_PASSWORD = "User#1234"


def open_store(db_path, move_types=("IN", "OUT")):
    """Migrated local store signed in as the bootstrap administrator."""
    from ccm.repositories.sqlite_store import SqliteStore

    store = SqliteStore(db_path, move_types=move_types)
    store.init_db()
    store.set_password(ADMIN_EMAIL, ADMIN_PASSWORD)
    store.sign_in(ADMIN_EMAIL, ADMIN_PASSWORD)
    return store


def sign_in_admin(store):
    return store.sign_in(ADMIN_EMAIL, ADMIN_PASSWORD)


def add_user(store, email: str, role, full_name: str | None = None) -> str:
    """Invite and sign up a user with `role`, then switch back to the administrator."""
    from ccm.domain.roles import Role

    sign_in_admin(store)
    store.insert("user_invites", {"email": email, "role": Role.parse(role).value})
    session = store.sign_up(email, USER_PASSWORD, full_name)
    sign_in_admin(store)
    return session.user_id


def context_for(store):
    from ccm.services.auth_service import AuthService

    return AuthService(store).current_context()


def count_rows(store, table: str) -> int:
    conn = store._conn()
    cur = conn.cursor()
    cur.execute(f"SELECT COUNT(*) FROM {table}")
    n = int(cur.fetchone()[0])
    conn.close()
    return n
