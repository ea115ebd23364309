# src/pet_scheduler/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

from .errors import StoreError, TaskNotFoundError
from .task_models import Action, ExecutionStatus, Task, TaskExecution, TaskStats, Trigger
from .triggers import next_run_for

logger = logging.getLogger(__name__)

DUE_TASKS_LIMIT = 20
EXECUTIONS_DEFAULT_LIMIT = 50
EXECUTIONS_MAX_LIMIT = 200

Clock = Callable[[], int]

_TASK_COLUMNS = (
    "id, name, description, trigger_type, trigger_config, action_type, action_config, "
    "enabled, last_run, next_run, metadata, created_at, updated_at"
)
_EXECUTION_COLUMNS = "id, task_id, status, started_at, completed_at, result, error, duration"


def now_ms() -> int:
    return int(time.time() * 1000)


class TaskStore:
    """
    SQLite store for tasks and their execution history.

    The schema is created idempotently on construction (CREATE ... IF NOT EXISTS).
    All timestamps are integer milliseconds since the epoch.

    Thread-safety:
    - each method opens its own SQLite connection and closes it on every exit path
    - no in-process lock; SQLite serializes conflicting writes
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3", *, clock: Clock | None = None) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock: Clock = clock or now_ms
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except StoreError:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def now(self) -> int:
        return int(self._clock())

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            self._configure_conn(conn)
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        # Required for ON DELETE CASCADE; off by default per connection.
        conn.execute("PRAGMA foreign_keys=ON")

    @contextlib.contextmanager
    def _connection(self, op: str) -> Iterator[sqlite3.Connection]:
        """Short-lived connection; sqlite errors surface as StoreError."""
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StoreError(f"failed to open task db {self._db_path}: {e}") from e
        try:
            yield conn
        except sqlite3.Error as e:
            raise StoreError(f"failed to {op}: {e}") from e
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connection("ensure tables") as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT,
                    trigger_type TEXT NOT NULL,
                    trigger_config TEXT NOT NULL,
                    action_type TEXT NOT NULL,
                    action_config TEXT NOT NULL,
                    enabled INTEGER DEFAULT 1,
                    last_run INTEGER,
                    next_run INTEGER,
                    metadata TEXT,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER
                );

                CREATE TABLE IF NOT EXISTS task_executions (
                    id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    started_at INTEGER NOT NULL,
                    completed_at INTEGER,
                    result TEXT,
                    error TEXT,
                    duration INTEGER,
                    FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_tasks_next_run ON tasks(next_run, enabled);
                CREATE INDEX IF NOT EXISTS idx_tasks_enabled ON tasks(enabled);
                CREATE INDEX IF NOT EXISTS idx_executions_task ON task_executions(task_id);
                CREATE INDEX IF NOT EXISTS idx_executions_status ON task_executions(status);
                """
            )
            conn.commit()

    @staticmethod
    def _metadata_to_str(metadata: Any | None) -> str | None:
        if metadata is None:
            return None
        try:
            return json.dumps(metadata, ensure_ascii=False)
        except (TypeError, ValueError):
            logger.exception("Failed to JSON-encode metadata; storing NULL.")
            return None

    @staticmethod
    def _str_to_metadata(s: str | None) -> Any | None:
        if not s:
            return None
        try:
            return json.loads(s)
        except ValueError:
            return None

    @staticmethod
    def _config_to_str(config: Any) -> str:
        # Configs are opaque here: keep host-provided JSON text verbatim.
        if isinstance(config, str):
            return config
        if hasattr(config, "model_dump_json"):
            return config.model_dump_json(by_alias=True, exclude_none=True)
        return json.dumps(config, ensure_ascii=False)

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task(
            id=str(row["id"]),
            name=str(row["name"] or ""),
            description=row["description"],
            trigger=Trigger(type=str(row["trigger_type"]), config=str(row["trigger_config"])),
            action=Action(type=str(row["action_type"]), config=str(row["action_config"])),
            enabled=int(row["enabled"] or 0) == 1,
            last_run=row["last_run"],
            next_run=row["next_run"],
            metadata=self._str_to_metadata(row["metadata"]),
            created_at=int(row["created_at"] or 0),
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_execution(row: sqlite3.Row) -> TaskExecution:
        return TaskExecution(
            id=str(row["id"]),
            task_id=str(row["task_id"]),
            status=ExecutionStatus.from_db(row["status"]),
            started_at=int(row["started_at"]),
            completed_at=row["completed_at"],
            result=row["result"],
            error=row["error"],
            duration=row["duration"],
        )

    @staticmethod
    def _fetch_task_row(conn: sqlite3.Connection, task_id: str) -> sqlite3.Row | None:
        cur = conn.execute(f"SELECT {_TASK_COLUMNS} FROM tasks WHERE id = ?", (task_id,))
        return cur.fetchone()

    # ---- tasks ----

    def count_tasks(self) -> int:
        with self._connection("count tasks") as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)

    def create_task(
        self,
        *,
        name: str,
        trigger: Trigger,
        action: Action,
        enabled: bool = True,
        description: str | None = None,
        metadata: Any | None = None,
    ) -> str:
        if not name or not name.strip():
            raise ValueError("name is required")

        now = self.now()
        task_id = str(uuid.uuid4())
        trigger = Trigger(type=str(trigger.type), config=self._config_to_str(trigger.config))
        action = Action(type=str(action.type), config=self._config_to_str(action.config))
        next_run = next_run_for(trigger, enabled=enabled, from_ms=now)

        with self._connection("insert task") as conn:
            conn.execute(
                """
                INSERT INTO tasks (
                    id, name, description,
                    trigger_type, trigger_config,
                    action_type, action_config,
                    enabled, last_run, next_run, metadata,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, NULL, ?, ?, ?, NULL)
                """,
                (
                    task_id,
                    name,
                    description,
                    trigger.type,
                    trigger.config,
                    action.type,
                    action.config,
                    1 if enabled else 0,
                    next_run,
                    self._metadata_to_str(metadata),
                    now,
                ),
            )
            conn.commit()

        logger.debug(
            "Task created id=%s trigger=%s action=%s enabled=%s next_run=%s",
            task_id,
            trigger.type,
            action.type,
            enabled,
            next_run,
        )
        return task_id

    def get_task(self, task_id: str) -> Task:
        with self._connection("get task") as conn:
            row = self._fetch_task_row(conn, task_id)
        if row is None:
            raise TaskNotFoundError(task_id)
        return self._row_to_task(row)

    def list_tasks(self) -> list[Task]:
        """All tasks, newest-created first."""
        with self._connection("list tasks") as conn:
            cur = conn.execute(f"SELECT {_TASK_COLUMNS} FROM tasks ORDER BY created_at DESC, rowid DESC")
            return [self._row_to_task(r) for r in cur.fetchall()]

    def update_task(
        self,
        task_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        trigger: Trigger | None = None,
        action: Action | None = None,
        enabled: bool | None = None,
        metadata: Any | None = None,
    ) -> None:
        """
        Partial update: only supplied (non-None) fields change.

        next_run is always recomputed from the resulting trigger/enabled pair,
        using the update time as the reference.
        """
        fields: list[str] = []
        params: list[Any] = []

        if name is not None:
            fields.append("name = ?")
            params.append(name)

        if description is not None:
            fields.append("description = ?")
            params.append(description)

        if trigger is not None:
            trigger = Trigger(type=str(trigger.type), config=self._config_to_str(trigger.config))
            fields.extend(["trigger_type = ?", "trigger_config = ?"])
            params.extend([trigger.type, trigger.config])

        if action is not None:
            action = Action(type=str(action.type), config=self._config_to_str(action.config))
            fields.extend(["action_type = ?", "action_config = ?"])
            params.extend([action.type, action.config])

        if enabled is not None:
            fields.append("enabled = ?")
            params.append(1 if enabled else 0)

        if metadata is not None:
            fields.append("metadata = ?")
            params.append(self._metadata_to_str(metadata))

        now = self.now()
        with self._connection("update task") as conn:
            row = self._fetch_task_row(conn, task_id)
            if row is None:
                raise TaskNotFoundError(task_id)
            existing = self._row_to_task(row)

            effective_trigger = trigger or existing.trigger
            effective_enabled = existing.enabled if enabled is None else enabled
            next_run = next_run_for(effective_trigger, enabled=effective_enabled, from_ms=now)

            fields.extend(["next_run = ?", "updated_at = ?"])
            params.extend([next_run, now, task_id])
            conn.execute(f"UPDATE tasks SET {', '.join(fields)} WHERE id = ?", params)
            conn.commit()

        logger.debug("Task updated id=%s next_run=%s", task_id, next_run)

    def delete_task(self, task_id: str) -> None:
        with self._connection("delete task") as conn:
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            conn.commit()
            logger.debug("Task delete id=%s removed=%s", task_id, cur.rowcount)

    def set_enabled(self, task_id: str, enabled: bool) -> None:
        now = self.now()
        with self._connection("enable task") as conn:
            row = self._fetch_task_row(conn, task_id)
            if row is None:
                raise TaskNotFoundError(task_id)
            existing = self._row_to_task(row)
            next_run = next_run_for(existing.trigger, enabled=enabled, from_ms=now)
            conn.execute(
                "UPDATE tasks SET enabled = ?, next_run = ?, updated_at = ? WHERE id = ?",
                (1 if enabled else 0, next_run, now, task_id),
            )
            conn.commit()
        logger.debug("Task id=%s enabled=%s next_run=%s", task_id, enabled, next_run)

    def list_due_tasks(self, now_ms: int, *, limit: int = DUE_TASKS_LIMIT) -> list[Task]:
        """
        Enabled tasks whose next_run is at or before now_ms.

        Earliest-due first; never more than DUE_TASKS_LIMIT rows per call so
        a backlog cannot make a single tick unbounded.
        """
        limit = max(1, min(DUE_TASKS_LIMIT, int(limit)))
        with self._connection("query due tasks") as conn:
            cur = conn.execute(
                f"""
                SELECT {_TASK_COLUMNS}
                FROM tasks
                WHERE enabled = 1 AND next_run IS NOT NULL AND next_run <= ?
                ORDER BY next_run ASC
                LIMIT ?
                """,
                (int(now_ms), limit),
            )
            return [self._row_to_task(r) for r in cur.fetchall()]

    def record_run(self, task_id: str, *, last_run: int, next_run: int | None) -> None:
        """Advance run-state after an execution (updated_at = last_run)."""
        with self._connection("update task run info") as conn:
            conn.execute(
                "UPDATE tasks SET last_run = ?, next_run = ?, updated_at = ? WHERE id = ?",
                (last_run, next_run, last_run, task_id),
            )
            conn.commit()

    # ---- executions ----

    def insert_execution(self, task_id: str, *, started_at: int) -> str:
        exec_id = str(uuid.uuid4())
        with self._connection("insert execution") as conn:
            conn.execute(
                """
                INSERT INTO task_executions (id, task_id, status, started_at)
                VALUES (?, ?, ?, ?)
                """,
                (exec_id, task_id, ExecutionStatus.RUNNING.value, started_at),
            )
            conn.commit()
        return exec_id

    def finish_execution(
        self,
        exec_id: str,
        *,
        status: ExecutionStatus,
        completed_at: int,
        result: str | None = None,
        error: str | None = None,
    ) -> None:
        if not status.is_terminal:
            raise ValueError(f"cannot finish execution with non-terminal status {status}")
        with self._connection("update execution") as conn:
            conn.execute(
                """
                UPDATE task_executions
                SET status = ?,
                    completed_at = ?,
                    result = ?,
                    error = ?,
                    duration = MAX(0, ? - started_at)
                WHERE id = ?
                """,
                (status.value, completed_at, result, error, completed_at, exec_id),
            )
            conn.commit()

    def get_execution(self, exec_id: str) -> TaskExecution | None:
        with self._connection("get execution") as conn:
            row = conn.execute(
                f"SELECT {_EXECUTION_COLUMNS} FROM task_executions WHERE id = ?", (exec_id,)
            ).fetchone()
        return self._row_to_execution(row) if row else None

    def list_executions(self, task_id: str, *, limit: int = EXECUTIONS_DEFAULT_LIMIT) -> list[TaskExecution]:
        """Most recent first; limit is clamped to [1, EXECUTIONS_MAX_LIMIT]."""
        limit = max(1, min(EXECUTIONS_MAX_LIMIT, int(limit)))
        with self._connection("list executions") as conn:
            cur = conn.execute(
                f"""
                SELECT {_EXECUTION_COLUMNS}
                FROM task_executions
                WHERE task_id = ?
                ORDER BY started_at DESC, rowid DESC
                LIMIT ?
                """,
                (task_id, limit),
            )
            return [self._row_to_execution(r) for r in cur.fetchall()]

    def get_task_stats(self, task_id: str) -> TaskStats:
        with self._connection("compute task stats") as conn:
            if self._fetch_task_row(conn, task_id) is None:
                raise TaskNotFoundError(task_id)
            totals = conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    COALESCE(SUM(status = 'success'), 0) AS ok,
                    COALESCE(SUM(status = 'failed'), 0) AS failed,
                    COALESCE(SUM(status = 'running'), 0) AS running,
                    AVG(CASE WHEN status != 'running' THEN duration END) AS avg_duration
                FROM task_executions
                WHERE task_id = ?
                """,
                (task_id,),
            ).fetchone()
            last = conn.execute(
                """
                SELECT status FROM task_executions
                WHERE task_id = ?
                ORDER BY started_at DESC, rowid DESC
                LIMIT 1
                """,
                (task_id,),
            ).fetchone()

        avg = totals["avg_duration"]
        return TaskStats(
            task_id=task_id,
            total_executions=int(totals["total"]),
            success_count=int(totals["ok"]),
            failure_count=int(totals["failed"]),
            running_count=int(totals["running"]),
            last_execution_status=ExecutionStatus.from_db(last["status"]) if last else None,
            average_duration=float(avg) if avg is not None else None,
        )

    def fail_stale_executions(self, *, older_than_ms: int, now_ms: int | None = None) -> int:
        """
        Mark `running` executions started more than older_than_ms ago as failed.

        A crash between the execution writes leaves rows stuck in `running`;
        this moves them to a terminal state. Returns the number of rows changed.
        """
        if now_ms is None:
            now_ms = self.now()
        cutoff = int(now_ms) - max(0, int(older_than_ms))
        with self._connection("recover stale executions") as conn:
            cur = conn.execute(
                """
                UPDATE task_executions
                SET status = ?,
                    completed_at = ?,
                    error = COALESCE(error, 'execution interrupted'),
                    duration = MAX(0, ? - started_at)
                WHERE status = ? AND started_at < ?
                """,
                (
                    ExecutionStatus.FAILED.value,
                    int(now_ms),
                    int(now_ms),
                    ExecutionStatus.RUNNING.value,
                    cutoff,
                ),
            )
            conn.commit()
            changed = int(cur.rowcount)
        if changed:
            logger.warning("Recovered %d stale running execution(s) as failed", changed)
        return changed
