# src/pet_scheduler/tasks/errors.py

from __future__ import annotations


class SchedulerError(Exception):
    """Base class for everything the scheduler raises on purpose."""


class TaskNotFoundError(SchedulerError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"task not found: {task_id}")
        self.task_id = task_id


class StoreError(SchedulerError):
    """The backing SQLite store could not be opened or a query failed."""


class ConfigDecodeError(SchedulerError):
    """A stored trigger/action config does not match the shape of its declared type."""


class UnsupportedActionError(SchedulerError):
    def __init__(self, action_type: str) -> None:
        super().__init__(f"unsupported action type: {action_type}")
        self.action_type = action_type


class UnknownActionTypeError(SchedulerError):
    def __init__(self, action_type: str) -> None:
        super().__init__(f"unknown action type: {action_type}")
        self.action_type = action_type
