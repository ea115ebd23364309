# src/pet_scheduler/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole process.
- Every knob has a safe default, so the scheduler runs with an empty environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "PETSCHED"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


# Local .env never overrides variables already set in the environment.
load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


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

    # ---- Connector flags ----
    console_enabled: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path

    # ---- Scheduler tuning ----
    tick_interval_ms: int
    due_batch_limit: int
    stale_execution_ms: int

    @property
    def tick_interval_seconds(self) -> float:
        return self.tick_interval_ms / 1000.0

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "pet-scheduler") or "pet-scheduler"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/pet-scheduler"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "pet.db")

        tick_interval_ms = max(10, _env_int(_k("TICK_INTERVAL_MS"), 1000))
        due_batch_limit = max(1, min(20, _env_int(_k("DUE_BATCH_LIMIT"), 20)))
        stale_execution_ms = max(0, _env_int(_k("STALE_EXECUTION_MS"), 5 * 60 * 1000))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            tick_interval_ms=tick_interval_ms,
            due_batch_limit=due_batch_limit,
            stale_execution_ms=stale_execution_ms,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
