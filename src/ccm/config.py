from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import sys

from dotenv import load_dotenv


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path
    exports_dir: Path


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "ControleMateriais") -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    exports = base / "exports"
    db = base / "ccm.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)
    exports.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs, exports_dir=exports)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}.") from e
    if value <= 0:
        raise ValueError(f"{name} must be greater than zero.")
    return value


@dataclass(frozen=True)
class StoreSettings:
    backend: str = "sqlite"
    supabase_url: str = ""
    supabase_anon_key: str = ""
    http_timeout: float = 10.0
    poll_seconds: float = 5.0
    email: str = ""
    password: str = ""

    @classmethod
    def from_env(cls) -> "StoreSettings":
        load_dotenv()
        backend = os.getenv("CCM_BACKEND", "sqlite").strip().lower() or "sqlite"
        if backend not in ("sqlite", "rest"):
            raise ValueError(f"CCM_BACKEND must be 'sqlite' or 'rest', got {backend!r}.")
        return cls(
            backend=backend,
            supabase_url=os.getenv("CCM_SUPABASE_URL", "").strip(),
            supabase_anon_key=os.getenv("CCM_SUPABASE_ANON_KEY", "").strip(),
            http_timeout=_float_env("CCM_HTTP_TIMEOUT", 10.0),
            poll_seconds=_float_env("CCM_POLL_SECONDS", 5.0),
            email=os.getenv("CCM_EMAIL", "").strip(),
            password=os.getenv("CCM_PASSWORD", ""),
        )
