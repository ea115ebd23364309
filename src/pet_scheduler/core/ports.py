# src/pet_scheduler/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the scheduler core.

The executor and the polling loop depend on Protocols instead of concrete
implementations. This keeps the host event channel and storage swappable and
makes testing easier.
"""

from pathlib import Path
from typing import Any, Protocol

from ..tasks.task_models import ExecutionStatus, Task, TaskExecution


class EventSink(Protocol):
    """
    Host-side port: where execution events go.

    Delivery is fire-and-forget. The host decides what to do with
    each event (toast, agent run, workflow start, ...).
    """

    def emit(self, event: str, payload: Any) -> None: ...


class TaskRepo(Protocol):
    # Scheduler API
    def now(self) -> int: ...
    def list_due_tasks(self, now_ms: int, *, limit: int = 20) -> list[Task]: ...

    # Execution protocol
    def insert_execution(self, task_id: str, *, started_at: int) -> str: ...
    def finish_execution(
            self,
            exec_id: str,
            *,
            status: ExecutionStatus,
            completed_at: int,
            result: str | None = None,
            error: str | None = None,
    ) -> None: ...
    def record_run(self, task_id: str, *, last_run: int, next_run: int | None) -> None: ...

    # Recovery
    def fail_stale_executions(self, *, older_than_ms: int, now_ms: int | None = None) -> int: ...

    # Lookups used by the command surface
    def get_task(self, task_id: str) -> Task: ...
    def list_executions(self, task_id: str, *, limit: int = 50) -> list[TaskExecution]: ...


class SchedulerSettings(Protocol):
    """Settings fields read when wiring the store and the runner (config.Settings satisfies it)."""

    @property
    def data_dir(self) -> Path: ...
    @property
    def tasks_db_path(self) -> Path: ...
    @property
    def tick_interval_ms(self) -> int: ...
    @property
    def due_batch_limit(self) -> int: ...
    @property
    def stale_execution_ms(self) -> int: ...
