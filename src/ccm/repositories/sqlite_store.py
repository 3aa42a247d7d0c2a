from __future__ import annotations

import hashlib
import hmac
import logging
import os
import re
import secrets
import shutil
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from ccm.domain.errors import (
    CHECK_VIOLATION,
    FOREIGN_KEY_VIOLATION,
    INSUFFICIENT_PRIVILEGE,
    NOT_NULL_VIOLATION,
    UNIQUE_VIOLATION,
    StoreError,
    StoreUnavailableError,
)
from ccm.domain.models import Direction, Session
from ccm.domain.movement_types import DECREASE_LABELS, direction_of
from ccm.domain.roles import Role
from ccm.repositories.change_feed import ChangeFeed
from ccm.repositories.contracts import ChangeCallback, Order, Row

log = logging.getLogger("ccm.store")

_IDENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

TABLES = ("items", "collaborators", "stock_moves", "profiles", "user_invites")
VIEWS = ("v_stock",)
BOOL_COLUMNS = {"active"}

# Row-level write policy of the hosted backend: table -> operation -> roles allowed.
WRITE_POLICIES: dict[str, dict[str, set[Role]]] = {
    "items": {"insert": {Role.ADMIN}, "update": {Role.ADMIN}, "delete": {Role.ADMIN}},
    "collaborators": {"insert": {Role.ADMIN}, "update": {Role.ADMIN}, "delete": {Role.ADMIN}},
    "stock_moves": {"insert": {Role.ADMIN, Role.LEAD}, "update": set(), "delete": set()},
    "profiles": {"insert": set(), "update": {Role.ADMIN}, "delete": set()},
    "user_invites": {"insert": {Role.ADMIN}, "update": {Role.ADMIN}, "delete": {Role.ADMIN}},
}

BOOTSTRAP_ADMIN_EMAIL = "admin@local"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class SqliteStore:
    """Local stand-in for the hosted backend.

    Carries the same tables, the `v_stock` balance view, both report RPCs, the
    allowed-value constraint on `stock_moves.move_type`, foreign keys, write
    policies per role and invite consumption on sign-up.
    """

    def __init__(self, db_path: Path | str, move_types: Iterable[str] = ("IN", "OUT")):
        self.db_path = str(db_path)
        self.move_types = tuple(str(m).upper() for m in move_types)
        for label in self.move_types:
            if direction_of(label) is None:
                raise ValueError(f"Unknown movement type label: {label}")
        self._session: Optional[Session] = None
        self._feed = ChangeFeed()

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def init_db(self) -> None:
        self.run_migrations()
        self._ensure_bootstrap_admin()

    # ---------- migrations ----------
    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_auth),
                (2, self._migration_v2_catalog_and_ledger),
                (3, self._migration_v3_balance_guard),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_auth(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS auth_users (
                id TEXT PRIMARY KEY,
                email TEXT NOT NULL UNIQUE,
                password_hash TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS profiles (
                user_id TEXT PRIMARY KEY REFERENCES auth_users(id) ON DELETE CASCADE,
                full_name TEXT,
                role TEXT NOT NULL DEFAULT 'VIEWER' CHECK(role IN ('MASTER','LIDER','VIEWER')),
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS user_invites (
                id TEXT PRIMARY KEY,
                email TEXT NOT NULL,
                role TEXT NOT NULL CHECK(role IN ('MASTER','LIDER','VIEWER')),
                created_by TEXT REFERENCES auth_users(id),
                created_at TEXT NOT NULL,
                used_at TEXT
            )
            """
        )

    def _migration_v2_catalog_and_ledger(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS items (
                id TEXT PRIMARY KEY,
                category TEXT NOT NULL,
                name TEXT NOT NULL,
                sku TEXT,
                unit TEXT NOT NULL DEFAULT 'UNIDADE',
                min_stock INTEGER NOT NULL DEFAULT 0 CHECK(min_stock >= 0),
                active INTEGER NOT NULL DEFAULT 1 CHECK(active IN (0,1)),
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS collaborators (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                sector TEXT,
                active INTEGER NOT NULL DEFAULT 1 CHECK(active IN (0,1)),
                created_at TEXT NOT NULL
            )
            """
        )

        allowed = ", ".join(f"'{label}'" for label in self.move_types)
        cur.execute(
            f"""
            CREATE TABLE IF NOT EXISTS stock_moves (
                id TEXT PRIMARY KEY,
                created_at TEXT NOT NULL,
                item_id TEXT NOT NULL REFERENCES items(id),
                qty INTEGER NOT NULL CHECK(qty > 0),
                move_type TEXT NOT NULL,
                receiver_id TEXT REFERENCES collaborators(id),
                created_by TEXT REFERENCES auth_users(id),
                note TEXT,
                CONSTRAINT stock_moves_move_type_check CHECK (move_type IN ({allowed}))
            )
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_stock_moves_item ON stock_moves(item_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_stock_moves_created ON stock_moves(created_at)")

        # Sign of each accepted label, used by the aggregate view.
        cur.execute("CREATE TABLE IF NOT EXISTS move_type_directions (label TEXT PRIMARY KEY, sign INTEGER NOT NULL)")
        for label in self.move_types:
            sign = 1 if direction_of(label) is Direction.INCREASE else -1
            cur.execute("INSERT OR REPLACE INTO move_type_directions (label, sign) VALUES (?, ?)", (label, sign))

        cur.execute(
            """
            CREATE VIEW IF NOT EXISTS v_stock AS
            SELECT i.id AS item_id, i.category, i.name, i.sku, i.unit, i.min_stock, i.active,
                   COALESCE(SUM(m.qty * d.sign), 0) AS balance
            FROM items i
            LEFT JOIN stock_moves m ON m.item_id = i.id
            LEFT JOIN move_type_directions d ON d.label = m.move_type
            GROUP BY i.id
            """
        )

    def _migration_v3_balance_guard(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TRIGGER IF NOT EXISTS stock_moves_balance_nonnegative
            BEFORE INSERT ON stock_moves
            WHEN (SELECT sign FROM move_type_directions WHERE label = NEW.move_type) = -1
             AND NEW.qty > COALESCE((SELECT balance FROM v_stock WHERE item_id = NEW.item_id), 0)
            BEGIN
                SELECT RAISE(ABORT, 'CHECK constraint failed: stock_moves_balance_nonnegative');
            END
            """
        )

    def _ensure_bootstrap_admin(self) -> None:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) FROM profiles WHERE role='MASTER'")
        admins = int(cur.fetchone()[0])
        if admins > 0:
            conn.close()
            return

        email = os.environ.get("CCM_BOOTSTRAP_ADMIN_EMAIL", "").strip().lower() or BOOTSTRAP_ADMIN_EMAIL
        password = os.environ.get("CCM_BOOTSTRAP_ADMIN_PASSWORD", "").strip() or secrets.token_urlsafe(12)
        try:
            cur.execute("SELECT id FROM auth_users WHERE email=?", (email,))
            row = cur.fetchone()
            if row:
                user_id = str(row["id"])
                cur.execute("UPDATE auth_users SET password_hash=? WHERE id=?", (self._hash_password(password), user_id))
            else:
                user_id = str(uuid.uuid4())
                cur.execute(
                    "INSERT INTO auth_users (id, email, password_hash, created_at) VALUES (?, ?, ?, ?)",
                    (user_id, email, self._hash_password(password), _now_iso()),
                )
            cur.execute(
                """
                INSERT INTO profiles (user_id, full_name, role, created_at) VALUES (?, 'Administrador', 'MASTER', ?)
                ON CONFLICT(user_id) DO UPDATE SET role='MASTER'
                """,
                (user_id, _now_iso()),
            )
            conn.commit()
        finally:
            conn.close()

        # One-time onboarding channel for the local admin password.
        pw_file = Path(self.db_path).parent / ".admin_bootstrap_password"
        pw_file.write_text(f"{email}\n{password}\n", encoding="utf-8")
        try:
            pw_file.chmod(0o600)
        except OSError:
            pass
        log.warning("bootstrap_admin_created email=%s", email)

    # ---------- error mapping ----------
    @staticmethod
    def _to_store_error(exc: sqlite3.Error) -> StoreError:
        msg = str(exc)
        if isinstance(exc, sqlite3.IntegrityError):
            if msg.startswith("CHECK constraint failed"):
                constraint = msg.split(":", 1)[1].strip() if ":" in msg else None
                return StoreError(msg, code=CHECK_VIOLATION, constraint=constraint)
            if msg.startswith("FOREIGN KEY constraint failed"):
                return StoreError(msg, code=FOREIGN_KEY_VIOLATION)
            if msg.startswith("UNIQUE constraint failed"):
                return StoreError(msg, code=UNIQUE_VIOLATION, constraint=msg.split(":", 1)[1].strip())
            if msg.startswith("NOT NULL constraint failed"):
                return StoreError(msg, code=NOT_NULL_VIOLATION, constraint=msg.split(":", 1)[1].strip())
            return StoreError(msg, code="23000")
        if isinstance(exc, sqlite3.OperationalError) and "no such" in msg:
            return StoreError(msg, code="42P01")
        return StoreUnavailableError(msg)

    def _run(self, fn: Callable[[sqlite3.Cursor], Any]) -> Any:
        conn = self._conn()
        try:
            cur = conn.cursor()
            result = fn(cur)
            conn.commit()
            return result
        except sqlite3.Error as exc:
            conn.rollback()
            raise self._to_store_error(exc) from exc
        finally:
            conn.close()

    # ---------- helpers ----------
    def _check_relation(self, table: str, *, writable: bool = False) -> None:
        allowed = TABLES if writable else TABLES + VIEWS
        if table not in allowed:
            raise StoreError(f'relation "{table}" does not exist', code="42P01")

    @staticmethod
    def _check_ident(name: str) -> str:
        if not _IDENT.match(name):
            raise StoreError(f"invalid column name: {name}", code="42703")
        return name

    def _columns_sql(self, columns: str) -> str:
        cols = [c.strip() for c in columns.split(",") if c.strip()]
        if not cols or cols == ["*"]:
            return "*"
        return ", ".join(self._check_ident(c) for c in cols)

    @staticmethod
    def _param(value: Any) -> Any:
        if isinstance(value, bool):
            return int(value)
        return value

    def _where(self, eq: Optional[Row], gte: Optional[Row] = None) -> tuple[str, list[Any]]:
        parts: list[str] = []
        params: list[Any] = []
        for col, value in (eq or {}).items():
            if value is None:
                parts.append(f"{self._check_ident(col)} IS NULL")
            else:
                parts.append(f"{self._check_ident(col)} = ?")
                params.append(self._param(value))
        for col, value in (gte or {}).items():
            parts.append(f"{self._check_ident(col)} >= ?")
            params.append(self._param(value))
        return (" WHERE " + " AND ".join(parts)) if parts else "", params

    @staticmethod
    def _row(r: sqlite3.Row) -> Row:
        out = dict(r)
        for col in BOOL_COLUMNS & out.keys():
            if out[col] is not None:
                out[col] = bool(out[col])
        return out

    def _current_role(self, cur: sqlite3.Cursor) -> Optional[Role]:
        if self._session is None:
            return None
        cur.execute("SELECT role FROM profiles WHERE user_id=?", (self._session.user_id,))
        row = cur.fetchone()
        return Role.parse(row["role"]) if row else Role.VIEWER

    def _authorize_write(self, cur: sqlite3.Cursor, table: str, op: str) -> None:
        role = self._current_role(cur)
        allowed = WRITE_POLICIES.get(table, {}).get(op, set())
        if role is None or role not in allowed:
            raise StoreError(
                f'new row violates row-level security policy for table "{table}"',
                code=INSUFFICIENT_PRIVILEGE,
            )

    def _with_defaults(self, table: str, row: Row) -> Row:
        data = {k: self._param(v) for k, v in row.items()}
        if table != "profiles" and not data.get("id"):
            data["id"] = str(uuid.uuid4())
        if not data.get("created_at"):
            data["created_at"] = _now_iso()
        if table in ("stock_moves", "user_invites") and not data.get("created_by") and self._session:
            data["created_by"] = self._session.user_id
        return data

    def _fetch_by_key(self, cur: sqlite3.Cursor, table: str, key: str, value: Any) -> Optional[Row]:
        cur.execute(f"SELECT * FROM {table} WHERE {key} = ?", (value,))
        r = cur.fetchone()
        return self._row(r) if r else None

    def _primary_key(self, table: str) -> str:
        return "user_id" if table == "profiles" else "id"

    # ---------- reads ----------
    def select(
        self,
        table: str,
        columns: str = "*",
        *,
        eq: Optional[Row] = None,
        gte: Optional[Row] = None,
        order: Optional[Order] = None,
        limit: Optional[int] = None,
    ) -> list[Row]:
        self._check_relation(table)
        if self._session is None:
            return []
        where, params = self._where(eq, gte)
        sql = f"SELECT {self._columns_sql(columns)} FROM {table}{where}"
        if order:
            sql += " ORDER BY " + ", ".join(f"{self._check_ident(c)} {'ASC' if asc else 'DESC'}" for c, asc in order)
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        def op(cur: sqlite3.Cursor) -> list[Row]:
            cur.execute(sql, params)
            return [self._row(r) for r in cur.fetchall()]

        return self._run(op)

    def maybe_single(self, table: str, columns: str = "*", *, eq: Optional[Row] = None) -> Optional[Row]:
        rows = self.select(table, columns, eq=eq)
        if len(rows) > 1:
            raise StoreError("JSON object requested, multiple (or no) rows returned", code="PGRST116")
        return rows[0] if rows else None

    # ---------- writes ----------
    def insert(self, table: str, row: Row) -> Row:
        self._check_relation(table, writable=True)
        data = self._with_defaults(table, row)
        cols = [self._check_ident(c) for c in data]

        def op(cur: sqlite3.Cursor) -> Row:
            self._authorize_write(cur, table, "insert")
            cur.execute(
                f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({', '.join('?' for _ in cols)})",
                list(data.values()),
            )
            key = self._primary_key(table)
            return self._fetch_by_key(cur, table, key, data[key]) or {}

        created = self._run(op)
        self._feed.publish(table)
        return created

    def upsert(self, table: str, row: Row, *, on_conflict: str = "id") -> Row:
        self._check_relation(table, writable=True)
        key = self._check_ident(on_conflict)
        if not row.get(key):
            return self.insert(table, row)

        def op(cur: sqlite3.Cursor) -> Row:
            existing = self._fetch_by_key(cur, table, key, row[key])
            if existing is None:
                self._authorize_write(cur, table, "insert")
                data = self._with_defaults(table, row)
                cols = [self._check_ident(c) for c in data]
                cur.execute(
                    f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({', '.join('?' for _ in cols)})",
                    list(data.values()),
                )
            else:
                self._authorize_write(cur, table, "update")
                values = {c: self._param(v) for c, v in row.items() if c != key}
                if values:
                    sets = ", ".join(f"{self._check_ident(c)} = ?" for c in values)
                    cur.execute(f"UPDATE {table} SET {sets} WHERE {key} = ?", [*values.values(), row[key]])
            return self._fetch_by_key(cur, table, key, row[key]) or {}

        saved = self._run(op)
        self._feed.publish(table)
        return saved

    def update(self, table: str, values: Row, *, eq: Row) -> list[Row]:
        self._check_relation(table, writable=True)
        if not eq:
            raise StoreError("UPDATE requires a WHERE clause", code="21000")
        where, params = self._where(eq)
        sets = ", ".join(f"{self._check_ident(c)} = ?" for c in values)
        key = self._primary_key(table)

        def op(cur: sqlite3.Cursor) -> list[Row]:
            self._authorize_write(cur, table, "update")
            cur.execute(f"SELECT {key} FROM {table}{where}", params)
            keys = [r[key] for r in cur.fetchall()]
            if not keys:
                return []
            cur.execute(f"UPDATE {table} SET {sets}{where}", [*(self._param(v) for v in values.values()), *params])
            return [r for r in (self._fetch_by_key(cur, table, key, k) for k in keys) if r]

        updated = self._run(op)
        if updated:
            self._feed.publish(table)
        return updated

    def delete(self, table: str, *, eq: Row) -> list[Row]:
        self._check_relation(table, writable=True)
        if not eq:
            raise StoreError("DELETE requires a WHERE clause", code="21000")
        where, params = self._where(eq)

        def op(cur: sqlite3.Cursor) -> list[Row]:
            self._authorize_write(cur, table, "delete")
            cur.execute(f"SELECT * FROM {table}{where}", params)
            rows = [self._row(r) for r in cur.fetchall()]
            if rows:
                cur.execute(f"DELETE FROM {table}{where}", params)
            return rows

        removed = self._run(op)
        if removed:
            self._feed.publish(table)
        return removed

    # ---------- rpc ----------
    def rpc(self, fn: str, params: Optional[Row] = None) -> list[Row]:
        procedures = {
            "v_historico_completo": self._rpc_history,
            "ranking_colaboradores": self._rpc_ranking,
        }
        proc = procedures.get(fn)
        if proc is None:
            raise StoreError(f"Could not find the function public.{fn} in the schema cache", code="PGRST202")
        if self._session is None:
            return []
        return self._run(proc)

    def _rpc_history(self, cur: sqlite3.Cursor) -> list[Row]:
        cur.execute(
            """
            SELECT m.id, m.created_at, i.name AS item_name, i.category, i.unit, m.qty,
                   m.move_type AS type,
                   COALESCE(c.name, '') AS receiver,
                   COALESCE(p.full_name, u.email, '') AS actor,
                   COALESCE(m.note, '') AS note
            FROM stock_moves m
            JOIN items i ON i.id = m.item_id
            LEFT JOIN collaborators c ON c.id = m.receiver_id
            LEFT JOIN profiles p ON p.user_id = m.created_by
            LEFT JOIN auth_users u ON u.id = m.created_by
            ORDER BY m.created_at DESC
            """
        )
        return [dict(r) for r in cur.fetchall()]

    def _rpc_ranking(self, cur: sqlite3.Cursor) -> list[Row]:
        labels = tuple(DECREASE_LABELS)
        cur.execute(
            f"""
            SELECT c.name AS receiver, SUM(m.qty) AS total
            FROM stock_moves m
            JOIN collaborators c ON c.id = m.receiver_id
            WHERE m.move_type IN ({', '.join('?' for _ in labels)})
            GROUP BY c.id, c.name
            ORDER BY total DESC, c.name ASC
            """,
            labels,
        )
        return [dict(r) for r in cur.fetchall()]

    # ---------- auth ----------
    def sign_up(self, email: str, password: str, full_name: Optional[str] = None) -> Optional[Session]:
        email_clean = (email or "").strip().lower()
        if not email_clean or not password:
            raise StoreError("Signup requires a valid email and password", code="validation_failed")
        user_id = str(uuid.uuid4())

        def op(cur: sqlite3.Cursor) -> None:
            cur.execute("SELECT 1 FROM auth_users WHERE email=?", (email_clean,))
            if cur.fetchone():
                raise StoreError("User already registered", code="user_already_exists")
            now = _now_iso()
            cur.execute(
                "INSERT INTO auth_users (id, email, password_hash, created_at) VALUES (?, ?, ?, ?)",
                (user_id, email_clean, self._hash_password(password), now),
            )
            # Invite consumption: first unused invite for this email decides the role.
            cur.execute(
                "SELECT id, role FROM user_invites WHERE email=? AND used_at IS NULL ORDER BY created_at ASC LIMIT 1",
                (email_clean,),
            )
            invite = cur.fetchone()
            role = Role.VIEWER.value
            if invite:
                role = str(invite["role"])
                cur.execute("UPDATE user_invites SET used_at=? WHERE id=?", (now, invite["id"]))
            cur.execute(
                "INSERT INTO profiles (user_id, full_name, role, created_at) VALUES (?, ?, ?, ?)",
                (user_id, (full_name or "").strip() or None, role, now),
            )

        self._run(op)
        log.info("user_signed_up user=%s", user_id)
        self._session = Session(user_id=user_id, email=email_clean, access_token=secrets.token_urlsafe(24))
        return self._session

    def sign_in(self, email: str, password: str) -> Session:
        email_clean = (email or "").strip().lower()

        def op(cur: sqlite3.Cursor):
            cur.execute("SELECT id, password_hash FROM auth_users WHERE email=?", (email_clean,))
            return cur.fetchone()

        row = self._run(op)
        if not row or not self._verify_password(str(row["password_hash"]), password or ""):
            raise StoreError("Invalid login credentials", code="invalid_credentials")
        self._session = Session(
            user_id=str(row["id"]),
            email=email_clean,
            access_token=secrets.token_urlsafe(24),
            refresh_token=secrets.token_urlsafe(24),
        )
        return self._session

    def sign_out(self) -> None:
        self._session = None

    def get_session(self) -> Optional[Session]:
        return self._session

    def set_password(self, email: str, password: str) -> None:
        email_clean = (email or "").strip().lower()

        def op(cur: sqlite3.Cursor) -> int:
            cur.execute("UPDATE auth_users SET password_hash=? WHERE email=?", (self._hash_password(password), email_clean))
            return cur.rowcount

        if not self._run(op):
            raise StoreError("User not found", code="user_not_found")

    # ---------- change feed ----------
    def subscribe(self, tables: Iterable[str], callback: ChangeCallback) -> Callable[[], None]:
        return self._feed.subscribe(tables, callback)

    # ---------- passwords ----------
    @staticmethod
    def _hash_password(password: str, *, rounds: int = 200_000, salt: str | None = None) -> str:
        salt = salt or secrets.token_hex(16)
        digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), bytes.fromhex(salt), rounds).hex()
        return f"pbkdf2_sha256${rounds}${salt}${digest}"

    @staticmethod
    def _verify_password(stored: str, provided: str) -> bool:
        if not stored.startswith("pbkdf2_sha256$"):
            return False
        try:
            _algo, rounds_s, salt, digest = stored.split("$", 3)
            candidate = hashlib.pbkdf2_hmac(
                "sha256",
                provided.encode("utf-8"),
                bytes.fromhex(salt),
                int(rounds_s),
            ).hex()
        except ValueError:
            return False
        return hmac.compare_digest(candidate, digest)
