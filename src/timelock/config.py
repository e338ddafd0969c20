# src/timelock/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- Everything has a sane default; a bad value falls back to it.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TIMELOCK"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int_list(name: str, default: list[int]) -> list[int]:
    raw = os.getenv(name)
    if raw is None:
        return list(default)
    parts = [p.strip() for p in raw.replace(",", " ").split() if p.strip()]
    try:
        values = [int(p) for p in parts]
    except ValueError:
        return list(default)
    if any(v <= 0 for v in values):
        return list(default)
    return values


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths ----
    data_dir: Path
    tasks_db_path: Path
    notifications_db_path: Path

    # ---- Reminders ----
    default_reminder_offsets: list[int]
    notifications_enabled: bool
    sound_enabled: bool
    dispatch_interval_seconds: float
    resync_on_start: bool

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "timelock")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/timelock"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")
        notifications_db_path = _env_path(_k("NOTIFICATIONS_DB_PATH"), data_dir / "notifications.sqlite3")

        # An empty value is allowed and means "no reminders by default".
        default_reminder_offsets = _env_int_list(_k("DEFAULT_REMINDERS"), [1440])

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            notifications_db_path=notifications_db_path,
            default_reminder_offsets=default_reminder_offsets,
            notifications_enabled=_env_bool(_k("NOTIFICATIONS_ENABLED"), True),
            sound_enabled=_env_bool(_k("SOUND_ENABLED"), True),
            dispatch_interval_seconds=max(0.5, _env_float(_k("DISPATCH_INTERVAL_SECONDS"), 15.0)),
            resync_on_start=_env_bool(_k("RESYNC_ON_START"), True),
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
