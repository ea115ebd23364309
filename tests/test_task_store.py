# tests/test_task_store.py

from __future__ import annotations

import sqlite3

import pytest

from pet_scheduler.tasks.errors import StoreError, TaskNotFoundError
from pet_scheduler.tasks.task_models import Action, ActionType, ExecutionStatus, Trigger, TriggerType
from pet_scheduler.tasks.task_store import TaskStore

from .fakes import FakeClock, cron_trigger, interval_trigger, manual_trigger, notification_action


def test_create_and_get_roundtrip_keeps_configs_verbatim(store: TaskStore, clock: FakeClock) -> None:
    trigger = Trigger(type="interval", config='{"type": "interval",  "seconds": 60}')
    action = notification_action("Stretch", "Time to stand up")

    task_id = store.create_task(
        name="stretch",
        description="hourly-ish",
        trigger=trigger,
        action=action,
        metadata={"source": "test", "tags": ["a", "b"]},
    )
    task = store.get_task(task_id)

    assert task.id == task_id
    assert task.name == "stretch"
    assert task.description == "hourly-ish"
    assert task.trigger == trigger
    assert task.action == action
    assert task.enabled is True
    assert task.last_run is None
    assert task.next_run == clock.now_ms + 60_000
    assert task.metadata == {"source": "test", "tags": ["a", "b"]}
    assert task.created_at == clock.now_ms
    assert task.updated_at is None


def test_create_accepts_dict_configs(store: TaskStore) -> None:
    task_id = store.create_task(
        name="dict",
        trigger=Trigger(type="interval", config={"seconds": 5}),  # type: ignore[arg-type]
        action=notification_action(),
    )
    assert store.get_task(task_id).trigger.config == '{"seconds": 5}'


def test_create_rejects_empty_name(store: TaskStore) -> None:
    with pytest.raises(ValueError):
        store.create_task(name="  ", trigger=manual_trigger(), action=notification_action())


def test_disabled_or_manual_task_has_no_next_run(store: TaskStore) -> None:
    disabled = store.create_task(
        name="off", trigger=interval_trigger(60), action=notification_action(), enabled=False
    )
    manual = store.create_task(name="manual", trigger=manual_trigger(), action=notification_action())

    assert store.get_task(disabled).next_run is None
    assert store.get_task(manual).next_run is None


def test_get_missing_task_raises(store: TaskStore) -> None:
    with pytest.raises(TaskNotFoundError) as exc:
        store.get_task("nope")
    assert exc.value.task_id == "nope"


def test_list_tasks_newest_first(store: TaskStore, clock: FakeClock) -> None:
    first = store.create_task(name="first", trigger=manual_trigger(), action=notification_action())
    clock.advance(1_000)
    second = store.create_task(name="second", trigger=manual_trigger(), action=notification_action())
    # Same millisecond: insertion order still decides.
    third = store.create_task(name="third", trigger=manual_trigger(), action=notification_action())

    assert [t.id for t in store.list_tasks()] == [third, second, first]


def test_partial_update_keeps_other_fields(store: TaskStore, clock: FakeClock) -> None:
    task_id = store.create_task(
        name="water",
        description="keep",
        trigger=interval_trigger(60),
        action=notification_action(),
        metadata={"k": 1},
    )
    before = store.get_task(task_id)

    clock.advance(5_000)
    store.update_task(task_id, name="water!")
    after = store.get_task(task_id)

    assert after.name == "water!"
    assert after.description == "keep"
    assert after.trigger == before.trigger
    assert after.action == before.action
    assert after.metadata == {"k": 1}
    assert after.updated_at == clock.now_ms
    # next_run is recomputed from the update time.
    assert after.next_run == clock.now_ms + 60_000


def test_update_trigger_and_enabled_recompute_next_run(store: TaskStore, clock: FakeClock) -> None:
    task_id = store.create_task(name="t", trigger=interval_trigger(60), action=notification_action())

    store.update_task(task_id, trigger=manual_trigger())
    assert store.get_task(task_id).next_run is None

    store.update_task(task_id, trigger=interval_trigger(10), enabled=False)
    assert store.get_task(task_id).next_run is None

    store.update_task(task_id, enabled=True)
    assert store.get_task(task_id).next_run == clock.now_ms + 10_000


def test_update_missing_task_raises(store: TaskStore) -> None:
    with pytest.raises(TaskNotFoundError):
        store.update_task("missing", name="x")


def test_set_enabled_is_idempotent(store: TaskStore, clock: FakeClock) -> None:
    task_id = store.create_task(name="t", trigger=interval_trigger(30), action=notification_action())

    store.set_enabled(task_id, False)
    store.set_enabled(task_id, False)
    task = store.get_task(task_id)
    assert task.enabled is False
    assert task.next_run is None

    clock.advance(1_000)
    store.set_enabled(task_id, True)
    store.set_enabled(task_id, True)
    task = store.get_task(task_id)
    assert task.enabled is True
    assert task.next_run == clock.now_ms + 30_000


def test_set_enabled_missing_task_raises(store: TaskStore) -> None:
    with pytest.raises(TaskNotFoundError):
        store.set_enabled("missing", True)


def test_delete_cascades_to_executions(store: TaskStore) -> None:
    task_id = store.create_task(name="t", trigger=manual_trigger(), action=notification_action())
    exec_id = store.insert_execution(task_id, started_at=store.now())

    store.delete_task(task_id)

    with pytest.raises(TaskNotFoundError):
        store.get_task(task_id)
    assert store.get_execution(exec_id) is None
    assert store.list_executions(task_id) == []

    # Deleting again is a no-op.
    store.delete_task(task_id)


def test_due_tasks_filters_and_orders(store: TaskStore, clock: FakeClock) -> None:
    late = store.create_task(name="late", trigger=interval_trigger(30), action=notification_action())
    early = store.create_task(name="early", trigger=interval_trigger(10), action=notification_action())
    store.create_task(name="future", trigger=interval_trigger(3600), action=notification_action())
    store.create_task(name="manual", trigger=manual_trigger(), action=notification_action())
    off = store.create_task(name="off", trigger=interval_trigger(1), action=notification_action())
    store.set_enabled(off, False)

    now = clock.now_ms + 60_000
    assert [t.id for t in store.list_due_tasks(now)] == [early, late]

    # Boundary: next_run == now is due.
    assert [t.id for t in store.list_due_tasks(clock.now_ms + 10_000)] == [early]
    assert store.list_due_tasks(clock.now_ms) == []


def test_due_tasks_capped_at_twenty(store: TaskStore, clock: FakeClock) -> None:
    for i in range(25):
        store.create_task(name=f"t{i}", trigger=interval_trigger(1), action=notification_action())

    later = clock.now_ms + 10_000
    assert len(store.list_due_tasks(later)) == 20
    assert len(store.list_due_tasks(later, limit=500)) == 20
    assert len(store.list_due_tasks(later, limit=3)) == 3


def test_cron_task_due_at_next_match(store: TaskStore, clock: FakeClock) -> None:
    # clock starts at 08:30 UTC
    task_id = store.create_task(name="morning", trigger=cron_trigger("0 9 * * *"), action=notification_action())
    assert store.get_task(task_id).next_run == clock.now_ms + 30 * 60_000


def test_record_run_sets_run_state(store: TaskStore) -> None:
    task_id = store.create_task(name="t", trigger=interval_trigger(60), action=notification_action())

    store.record_run(task_id, last_run=1_000, next_run=61_000)
    task = store.get_task(task_id)
    assert task.last_run == 1_000
    assert task.next_run == 61_000
    assert task.updated_at == 1_000


def test_execution_lifecycle(store: TaskStore, clock: FakeClock) -> None:
    task_id = store.create_task(name="t", trigger=manual_trigger(), action=notification_action())
    started = clock.now_ms
    exec_id = store.insert_execution(task_id, started_at=started)

    running = store.get_execution(exec_id)
    assert running is not None
    assert running.status == ExecutionStatus.RUNNING
    assert running.completed_at is None
    assert running.duration is None

    store.finish_execution(exec_id, status=ExecutionStatus.SUCCESS, completed_at=started + 42, result='{"ok":true}')
    done = store.get_execution(exec_id)
    assert done is not None
    assert done.status == ExecutionStatus.SUCCESS
    assert done.completed_at == started + 42
    assert done.duration == 42
    assert done.result == '{"ok":true}'
    assert done.error is None


def test_finish_execution_rejects_running_status(store: TaskStore) -> None:
    task_id = store.create_task(name="t", trigger=manual_trigger(), action=notification_action())
    exec_id = store.insert_execution(task_id, started_at=store.now())
    with pytest.raises(ValueError):
        store.finish_execution(exec_id, status=ExecutionStatus.RUNNING, completed_at=store.now())


def test_insert_execution_for_missing_task_is_store_error(store: TaskStore) -> None:
    with pytest.raises(StoreError):
        store.insert_execution("ghost", started_at=store.now())


def test_list_executions_recent_first_and_clamped(store: TaskStore, clock: FakeClock) -> None:
    task_id = store.create_task(name="t", trigger=manual_trigger(), action=notification_action())
    ids = []
    for _ in range(5):
        ids.append(store.insert_execution(task_id, started_at=clock.now_ms))
        clock.advance(10)

    listed = store.list_executions(task_id)
    assert [e.id for e in listed] == list(reversed(ids))

    assert len(store.list_executions(task_id, limit=2)) == 2
    assert len(store.list_executions(task_id, limit=0)) == 1
    assert len(store.list_executions(task_id, limit=10_000)) == 5


def test_list_executions_default_limit_is_fifty(store: TaskStore, clock: FakeClock) -> None:
    task_id = store.create_task(name="t", trigger=manual_trigger(), action=notification_action())
    for _ in range(60):
        store.insert_execution(task_id, started_at=clock.advance(1))
    assert len(store.list_executions(task_id)) == 50
    assert len(store.list_executions(task_id, limit=500)) == 60


def test_task_stats(store: TaskStore, clock: FakeClock) -> None:
    task_id = store.create_task(name="t", trigger=manual_trigger(), action=notification_action())

    empty = store.get_task_stats(task_id)
    assert empty.total_executions == 0
    assert empty.last_execution_status is None
    assert empty.average_duration is None

    ok = store.insert_execution(task_id, started_at=clock.now_ms)
    store.finish_execution(ok, status=ExecutionStatus.SUCCESS, completed_at=clock.now_ms + 10)
    clock.advance(100)
    bad = store.insert_execution(task_id, started_at=clock.now_ms)
    store.finish_execution(bad, status=ExecutionStatus.FAILED, completed_at=clock.now_ms + 30, error="boom")
    clock.advance(100)
    store.insert_execution(task_id, started_at=clock.now_ms)

    stats = store.get_task_stats(task_id)
    assert stats.total_executions == 3
    assert stats.success_count == 1
    assert stats.failure_count == 1
    assert stats.running_count == 1
    assert stats.last_execution_status == ExecutionStatus.RUNNING
    assert stats.average_duration == pytest.approx(20.0)


def test_task_stats_missing_task_raises(store: TaskStore) -> None:
    with pytest.raises(TaskNotFoundError):
        store.get_task_stats("missing")


def test_fail_stale_executions(store: TaskStore, clock: FakeClock) -> None:
    task_id = store.create_task(name="t", trigger=manual_trigger(), action=notification_action())
    stale = store.insert_execution(task_id, started_at=clock.now_ms)
    clock.advance(10 * 60_000)
    fresh = store.insert_execution(task_id, started_at=clock.now_ms)

    changed = store.fail_stale_executions(older_than_ms=5 * 60_000)
    assert changed == 1

    recovered = store.get_execution(stale)
    assert recovered is not None
    assert recovered.status == ExecutionStatus.FAILED
    assert recovered.error == "execution interrupted"
    assert recovered.completed_at == clock.now_ms
    assert recovered.duration == 10 * 60_000

    untouched = store.get_execution(fresh)
    assert untouched is not None
    assert untouched.status == ExecutionStatus.RUNNING

    assert store.fail_stale_executions(older_than_ms=5 * 60_000) == 0


def test_unknown_status_in_db_reads_as_failed(store: TaskStore) -> None:
    task_id = store.create_task(name="t", trigger=manual_trigger(), action=notification_action())
    exec_id = store.insert_execution(task_id, started_at=store.now())
    with sqlite3.connect(store.db_path) as conn:
        conn.execute("UPDATE task_executions SET status = 'weird' WHERE id = ?", (exec_id,))
    execution = store.get_execution(exec_id)
    assert execution is not None
    assert execution.status == ExecutionStatus.FAILED


def test_schema_creation_is_idempotent(tmp_path, clock: FakeClock) -> None:
    path = tmp_path / "pet.db"
    first = TaskStore(path, clock=clock)
    task_id = first.create_task(name="t", trigger=manual_trigger(), action=notification_action())

    second = TaskStore(path, clock=clock)
    assert second.get_task(task_id).name == "t"
    assert second.count_tasks() == 1


def test_unopenable_database_is_store_error(tmp_path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises((StoreError, OSError)):
        TaskStore(blocker / "pet.db")


def test_action_type_enum_is_stored_as_plain_text(store: TaskStore) -> None:
    task_id = store.create_task(
        name="enum",
        trigger=Trigger(type=TriggerType.MANUAL, config="{}"),
        action=Action(type=ActionType.NOTIFICATION, config='{"title":"a","body":"b"}'),
    )
    task = store.get_task(task_id)
    assert task.trigger.type == "manual"
    assert task.action.type == "notification"


def test_huge_interval_is_stored_without_next_run(store: TaskStore) -> None:
    huge = Trigger(type="interval", config='{"seconds": 10000000000000000}')

    task_id = store.create_task(name="someday", trigger=huge, action=notification_action())
    assert store.get_task(task_id).next_run is None

    other = store.create_task(name="t", trigger=interval_trigger(60), action=notification_action())
    store.update_task(other, trigger=huge)
    assert store.get_task(other).next_run is None
