# src/pet_scheduler/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..tasks.task_api import SchedulerApi
from ..tasks.task_executor import TaskExecutor
from ..tasks.task_scheduler import SchedulerRunner
from ..tasks.task_store import TaskStore
from .events import EventHub
from .ports import SchedulerSettings


@dataclass
class AppState:
    """Everything the host (and the console) needs, wired once in cli.bootstrap."""

    settings: SchedulerSettings

    task_store: TaskStore
    events: EventHub
    executor: TaskExecutor
    runner: SchedulerRunner
    api: SchedulerApi
