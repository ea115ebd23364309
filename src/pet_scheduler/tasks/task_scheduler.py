# src/pet_scheduler/tasks/task_scheduler.py

from __future__ import annotations

"""
Task scheduler.

A small polling loop that, on every tick:
- reads the current time once,
- fetches due tasks (enabled, next_run <= now, earliest first, at most 20),
- runs each one through the TaskExecutor, sequentially,
- sleeps a fixed interval measured from the end of the tick.

SchedulerRunner owns the loop: one background thread with its own asyncio
event loop, started once and stopped cooperatively between ticks.
"""

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass

from ..core.ports import TaskRepo
from .errors import StoreError
from .task_executor import TaskExecutor
from .task_models import ExecutionStatus
from .task_store import DUE_TASKS_LIMIT

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL_SECONDS = 1.0


@dataclass(slots=True, frozen=True)
class TickReport:
    due: int
    succeeded: int
    failed: int
    errors: int


def run_tick(task_store: TaskRepo, executor: TaskExecutor, *, batch_limit: int = DUE_TASKS_LIMIT) -> TickReport:
    """
    One poll-and-execute pass.

    Raises StoreError if the due-task query fails (the caller decides whether
    to retry). Errors while executing a single task are logged and do not stop
    the remaining tasks of the tick.
    """
    now_ms = task_store.now()
    tasks = task_store.list_due_tasks(now_ms, limit=batch_limit)

    succeeded = failed = errors = 0
    for task in tasks:
        try:
            execution = executor.execute(task)
        except Exception:
            logger.exception("execute_task failed task_id=%s", task.id)
            errors += 1
            continue
        if execution.status == ExecutionStatus.SUCCESS:
            succeeded += 1
        else:
            failed += 1

    if tasks:
        logger.debug(
            "tick done due=%d ok=%d failed=%d errors=%d", len(tasks), succeeded, failed, errors
        )
    return TickReport(due=len(tasks), succeeded=succeeded, failed=failed, errors=errors)


async def run_task_scheduler(
        task_store: TaskRepo,
        executor: TaskExecutor,
        *,
        interval_seconds: float = DEFAULT_TICK_INTERVAL_SECONDS,
        batch_limit: int = DUE_TASKS_LIMIT,
        stop_event: asyncio.Event | None = None,
) -> None:
    """
    Simple polling scheduler.

    Runs until stop_event is set (checked at the top of every iteration; the
    inter-tick sleep wakes early on stop) or the coroutine is cancelled.
    A tick that fails on the store is logged and retried on the next cycle.
    """
    sleep_s = max(0.01, float(interval_seconds))
    stop = stop_event or asyncio.Event()

    while not stop.is_set():
        try:
            run_tick(task_store, executor, batch_limit=batch_limit)
        except StoreError:
            logger.exception("tick aborted: task store unavailable")
        except Exception:
            logger.exception("tick aborted")

        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop.wait(), timeout=sleep_s)


class SchedulerRunner:
    """
    Owns the background scheduler thread.

    - start() is idempotent: a second call while running is a no-op; a call
      made while a stop is pending waits for the old thread and starts a new one
    - stop() is cooperative: the in-flight tick completes, no action is interrupted
    - before the first tick, executions stuck in `running` for longer than
      stale_execution_ms are marked failed (left behind by a crash)
    """

    def __init__(
        self,
        task_store: TaskRepo,
        executor: TaskExecutor,
        *,
        interval_seconds: float = DEFAULT_TICK_INTERVAL_SECONDS,
        batch_limit: int = DUE_TASKS_LIMIT,
        stale_execution_ms: int | None = None,
    ) -> None:
        self._store = task_store
        self._executor = executor
        self._interval_seconds = interval_seconds
        self._batch_limit = batch_limit
        self._stale_execution_ms = stale_execution_ms

        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_event: asyncio.Event | None = None
        self._stopping = False

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def _recover_stale(self) -> None:
        if self._stale_execution_ms is None:
            return
        try:
            self._store.fail_stale_executions(older_than_ms=self._stale_execution_ms)
        except StoreError:
            logger.exception("stale execution recovery failed")

    def start(self) -> None:
        with self._lock:
            if self.is_running:
                if not self._stopping:
                    return
                old = self._thread
                logger.info("Scheduler is stopping; waiting for the old thread before restart.")
                if old is not None:
                    old.join()
            self._stopping = False

            ready = threading.Event()

            def runner() -> None:
                loop = asyncio.new_event_loop()
                asyncio.set_event_loop(loop)
                stop_event = asyncio.Event()

                self._loop = loop
                self._stop_event = stop_event
                ready.set()

                try:
                    self._recover_stale()
                    loop.run_until_complete(
                        run_task_scheduler(
                            self._store,
                            self._executor,
                            interval_seconds=self._interval_seconds,
                            batch_limit=self._batch_limit,
                            stop_event=stop_event,
                        )
                    )
                finally:
                    with contextlib.suppress(Exception):
                        loop.close()
                    logger.info("Scheduler thread exited.")

            t = threading.Thread(target=runner, name="task-scheduler", daemon=True)
            self._thread = t
            t.start()
            ready.wait(timeout=5.0)

        logger.info("Scheduler started (tick every %.2fs)", self._interval_seconds)

    def stop(self) -> None:
        with self._lock:
            loop, stop_event = self._loop, self._stop_event
            if loop is None or stop_event is None:
                return
            self._stopping = True
            try:
                loop.call_soon_threadsafe(stop_event.set)
            except RuntimeError:
                # Loop already closed: the thread has finished.
                logger.debug("Scheduler loop already closed.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        thread = self._thread
        if thread is not None:
            thread.join(timeout=timeout)
