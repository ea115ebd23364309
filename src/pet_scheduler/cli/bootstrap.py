# src/pet_scheduler/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the task store, event hub, executor, runner and command surface into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.events import EventHub
from ..core.ports import SchedulerSettings
from ..core.state import AppState
from ..tasks.task_api import SchedulerApi
from ..tasks.task_executor import TaskExecutor
from ..tasks.task_scheduler import SchedulerRunner
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: SchedulerSettings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(
    *,
    settings: SchedulerSettings | None = None,
    events: EventHub | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings(). The runner is created but not started.
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    hub = events if events is not None else EventHub()
    task_store = TaskStore(settings.tasks_db_path)
    executor = TaskExecutor(task_store, hub)
    runner = SchedulerRunner(
        task_store,
        executor,
        interval_seconds=settings.tick_interval_ms / 1000.0,
        batch_limit=settings.due_batch_limit,
        stale_execution_ms=settings.stale_execution_ms,
    )

    state = AppState(
        settings=settings,
        task_store=task_store,
        events=hub,
        executor=executor,
        runner=runner,
        api=SchedulerApi(task_store, executor),
    )
    logger.debug("AppState created db=%s", settings.tasks_db_path)
    return state
