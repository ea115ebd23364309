# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from pet_scheduler.cli.bootstrap import create_initial_state
from pet_scheduler.core.state import AppState
from pet_scheduler.tasks.task_api import SchedulerApi
from pet_scheduler.tasks.task_executor import TaskExecutor
from pet_scheduler.tasks.task_store import TaskStore

from .fakes import FakeClock, RecordingEventSink


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(tmp_path: Path, clock: FakeClock) -> TaskStore:
    """
    Real SQLite store in a per-test tmp dir, driven by the fake clock.

    NOTE: We keep real SQLite here because the store's SQL (ordering, cascade,
    limits) is part of what we want to test.
    """
    return TaskStore(tmp_path / "pet.db", clock=clock)


@pytest.fixture()
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture()
def executor(store: TaskStore, events: RecordingEventSink) -> TaskExecutor:
    return TaskExecutor(store, events)


@pytest.fixture()
def api(store: TaskStore, executor: TaskExecutor) -> SchedulerApi:
    return SchedulerApi(store, executor)


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with cli.bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="pet-scheduler-test",
        log_level="DEBUG",
        console_enabled=False,
        data_dir=tmp_path / "data",
        tasks_db_path=tmp_path / "data" / "pet.db",
        tick_interval_ms=20,
        due_batch_limit=20,
        stale_execution_ms=60_000,
    )


@pytest.fixture()
def state(settings: SimpleNamespace) -> AppState:
    return create_initial_state(settings=settings)
