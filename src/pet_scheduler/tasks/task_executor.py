# src/pet_scheduler/tasks/task_executor.py

from __future__ import annotations

"""
Task executor.

Runs exactly one execution attempt for a task:
- writes a `running` execution row,
- decodes the action config and pushes the action payload to the host,
- finalizes the execution row (status, result/error, duration),
- advances the task's last_run/next_run,
- emits task_completed / task_failed.

Action handlers only decode configuration and emit events; the actual work
(showing a toast, running an agent, starting a workflow) is done by the host.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

from ..core.events import TaskEvents
from ..core.ports import EventSink, TaskRepo
from .actions import ACTION_EVENTS, action_payload, decode_action_config
from .errors import SchedulerError
from .task_models import ExecutionStatus, Task, TaskExecution
from .triggers import next_run_for

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ActionOutcome:
    status: ExecutionStatus
    result: Any | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS


class TaskExecutor:
    def __init__(self, store: TaskRepo, events: EventSink) -> None:
        self._store = store
        self._events = events

    def _emit(self, event: str, payload: Any) -> None:
        # Best-effort: host delivery problems never change the execution outcome.
        try:
            self._events.emit(event, payload)
        except Exception:
            logger.exception("emit %s failed", event)

    def dispatch(self, task: Task) -> ActionOutcome:
        """Decode the task's action and push its payload to the host."""
        action_type = task.action.type
        try:
            cfg = decode_action_config(action_type, task.action.config)
        except SchedulerError as e:
            return ActionOutcome(status=ExecutionStatus.FAILED, error=str(e))

        payload = action_payload(cfg)
        self._emit(ACTION_EVENTS[action_type], payload)
        return ActionOutcome(status=ExecutionStatus.SUCCESS, result=payload)

    def execute(self, task: Task) -> TaskExecution:
        """
        Perform one execution attempt and return the finished record.

        Store errors propagate to the caller (tick or command); anything the
        action itself does wrong is recorded on the execution row instead.
        """
        started_at = self._store.now()
        exec_id = self._store.insert_execution(task.id, started_at=started_at)
        logger.info("Executing task id=%s name=%r action=%s", task.id, task.name, task.action.type)

        self._emit(TaskEvents.STARTED, task.id)

        try:
            outcome = self.dispatch(task)
        except Exception as e:
            logger.exception("action dispatch crashed task_id=%s", task.id)
            outcome = ActionOutcome(status=ExecutionStatus.FAILED, error=f"action dispatch failed: {e}")

        completed_at = max(started_at, self._store.now())
        result_json = json.dumps(outcome.result, ensure_ascii=False) if outcome.result is not None else None

        self._store.finish_execution(
            exec_id,
            status=outcome.status,
            completed_at=completed_at,
            result=result_json,
            error=outcome.error,
        )

        next_run = next_run_for(task.trigger, enabled=task.enabled, from_ms=completed_at)
        self._store.record_run(task.id, last_run=completed_at, next_run=next_run)

        if outcome.ok:
            logger.info("Task %s -> success (next_run=%s)", task.id, next_run)
            self._emit(TaskEvents.COMPLETED, task.id)
        else:
            logger.warning("Task %s -> failed: %s", task.id, outcome.error)
            self._emit(TaskEvents.FAILED, {"id": task.id, "error": outcome.error or "unknown error"})

        return TaskExecution(
            id=exec_id,
            task_id=task.id,
            status=outcome.status,
            started_at=started_at,
            completed_at=completed_at,
            result=result_json,
            error=outcome.error,
            duration=completed_at - started_at,
        )
