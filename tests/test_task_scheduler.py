# tests/test_task_scheduler.py

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from taskflow.tasks.task_models import Category, Priority, Recurrence, Task, TaskStatus
from taskflow.tasks.task_scheduler import SweepScheduler, start_scheduler_in_background

from .fakes import DeletingTaskRepo, FakeNotifier, FlakyTaskRepo


def _add(task_store, owner, clock, **kw) -> Task:
    kw.setdefault("title", "Ship release")
    kw.setdefault("category", Category.WORK)
    kw.setdefault("due_at", clock.now() + timedelta(minutes=30))
    return task_store.save(Task(owner_id=owner.id, **kw))


@pytest.mark.asyncio
async def test_high_priority_pass_sends_push_and_email_once(scheduler, task_store, owner, clock, notifier) -> None:
    task = _add(task_store, owner, clock, priority=Priority.HIGH)

    report = await scheduler.run_high_priority_pass()

    assert report.processed == 1
    assert [s.target for s in notifier.by_channel("push")] == ["!room:alice"]
    assert [s.target for s in notifier.by_channel("email")] == ["alice@example.com"]
    assert notifier.by_channel("push")[0].body == 'Task "Ship release" is due soon.'
    assert task_store.find_one(task.id).notified is True

    # Repeated ticks before the due date changes do not notify again.
    clock.advance(timedelta(minutes=5))
    await scheduler.run_high_priority_pass()
    clock.advance(timedelta(minutes=5))
    await scheduler.run_high_priority_pass()
    assert len(notifier.sent) == 2


@pytest.mark.asyncio
async def test_high_priority_pass_ignores_tasks_outside_window(scheduler, task_store, owner, clock, notifier) -> None:
    _add(task_store, owner, clock, priority=Priority.HIGH, due_at=clock.now() + timedelta(hours=2))
    _add(task_store, owner, clock, priority=Priority.MEDIUM)
    _add(task_store, owner, clock, priority=Priority.HIGH, status=TaskStatus.COMPLETED)

    report = await scheduler.run_high_priority_pass()

    assert report.candidates == 0
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_push_skipped_without_token(scheduler, task_store, user_store, clock, notifier) -> None:
    user = user_store.add_user(name="NoPush", email="nopush@example.com", password="pw")
    task = _add(task_store, user, clock, priority=Priority.HIGH)

    await scheduler.run_high_priority_pass()

    assert notifier.by_channel("push") == []
    assert [s.target for s in notifier.by_channel("email")] == ["nopush@example.com"]
    assert task_store.find_one(task.id).notified is True


@pytest.mark.asyncio
async def test_overdue_pass_sends_email_only(scheduler, task_store, owner, clock, notifier) -> None:
    task = _add(task_store, owner, clock, priority=Priority.HIGH, due_at=clock.now() - timedelta(days=2))

    report = await scheduler.run_overdue_pass()

    assert report.processed == 1
    assert notifier.by_channel("push") == []
    [email] = notifier.by_channel("email")
    assert email.title == "Overdue Task Reminder"
    assert task_store.find_one(task.id).notified is True

    await scheduler.run_overdue_pass()
    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_high_priority_reminder_prevents_later_overdue_email(scheduler, task_store, owner, clock, notifier) -> None:
    task = _add(task_store, owner, clock, priority=Priority.HIGH)
    await scheduler.run_high_priority_pass()

    clock.advance(timedelta(days=1))
    report = await scheduler.run_overdue_pass()

    assert report.candidates == 0
    assert len(notifier.by_channel("email")) == 1
    assert task_store.find_one(task.id).notified is True


@pytest.mark.asyncio
async def test_failures_are_isolated_and_retried(task_store, user_store, owner, clock) -> None:
    notifier = FakeNotifier(fail_targets={"broken@example.com"})
    scheduler = SweepScheduler(task_store, user_store, notifier, clock, notify_timeout_seconds=0.2)

    broken_user = user_store.add_user(name="Broken", email="broken@example.com", password="pw")
    overdue = clock.now() - timedelta(hours=3)
    ok = _add(task_store, owner, clock, title="ok", due_at=overdue)
    failing = _add(task_store, broken_user, clock, title="failing", due_at=overdue)
    orphan = task_store.save(Task(owner_id=9999, title="orphan", category=Category.WORK, due_at=overdue))

    report = await scheduler.run_overdue_pass()

    assert report.candidates == 3
    assert report.processed == 1
    assert report.failed == 2
    assert not report.aborted
    assert task_store.find_one(ok.id).notified is True
    assert task_store.find_one(failing.id).notified is False
    assert task_store.find_one(orphan.id).notified is False

    # Next tick retries the failed one once delivery works again.
    notifier.fail_targets.clear()
    report = await scheduler.run_overdue_pass()
    assert report.processed == 1
    assert task_store.find_one(failing.id).notified is True


@pytest.mark.asyncio
async def test_slow_delivery_times_out_and_is_retried(task_store, user_store, owner, clock) -> None:
    notifier = FakeNotifier(hang_targets={"!room:alice"})
    scheduler = SweepScheduler(task_store, user_store, notifier, clock, notify_timeout_seconds=0.05)
    task = _add(task_store, owner, clock, priority=Priority.HIGH)

    report = await scheduler.run_high_priority_pass()

    assert report.failed == 1
    assert task_store.find_one(task.id).notified is False


@pytest.mark.asyncio
async def test_store_failure_aborts_the_pass(task_store, user_store, owner, clock, notifier) -> None:
    _add(task_store, owner, clock, due_at=clock.now() - timedelta(hours=1))

    flaky = FlakyTaskRepo(task_store, fail_find=True)
    scheduler = SweepScheduler(flaky, user_store, notifier, clock)
    report = await scheduler.run_overdue_pass()
    assert report.aborted
    assert notifier.sent == []

    flaky = FlakyTaskRepo(task_store, fail_save=True)
    scheduler = SweepScheduler(flaky, user_store, notifier, clock)
    report = await scheduler.run_overdue_pass()
    assert report.aborted
    assert report.processed == 0


@pytest.mark.asyncio
async def test_recurrence_pass_resets_one_period_per_tick(scheduler, task_store, owner, clock) -> None:
    due = clock.now() - timedelta(days=2)
    daily = _add(
        task_store,
        owner,
        clock,
        due_at=due,
        recurrence=Recurrence.DAILY,
        status=TaskStatus.COMPLETED,
        notified=True,
    )
    weekly = _add(
        task_store,
        owner,
        clock,
        due_at=due,
        recurrence=Recurrence.WEEKLY,
        status=TaskStatus.COMPLETED,
    )
    plain = _add(task_store, owner, clock, due_at=due, status=TaskStatus.COMPLETED)

    report = await scheduler.run_recurrence_pass()

    assert report.candidates == 2
    assert report.processed == 1
    assert report.skipped == 1

    reset = task_store.find_one(daily.id)
    assert reset.status == TaskStatus.PENDING
    assert reset.due_at == due + timedelta(days=1)
    assert reset.notified is False

    # Next due date of the weekly task is still in the future: untouched.
    assert task_store.find_one(weekly.id).status == TaskStatus.COMPLETED
    assert task_store.find_one(plain.id).status == TaskStatus.COMPLETED


@pytest.mark.asyncio
async def test_start_stop_runs_passes_in_background(task_store, user_store, owner, clock, notifier) -> None:
    scheduler = SweepScheduler(
        task_store,
        user_store,
        notifier,
        clock,
        recurrence_interval_seconds=1,
        high_priority_interval_seconds=1,
    )
    task = _add(task_store, owner, clock, priority=Priority.HIGH)

    scheduler.start()
    assert scheduler.running
    for _ in range(100):
        if task_store.find_one(task.id).notified:
            break
        await asyncio.sleep(0.02)
    await scheduler.stop()

    assert not scheduler.running
    assert task_store.find_one(task.id).notified is True
    assert len(notifier.by_channel("push")) == 1


def test_seconds_until_overdue_run(task_store, user_store, notifier, clock) -> None:
    scheduler = SweepScheduler(task_store, user_store, notifier, clock, overdue_hour=9, overdue_tz=UTC)

    assert scheduler.seconds_until_overdue_run(datetime(2026, 3, 2, 8, 0, tzinfo=UTC)) == 3600
    assert scheduler.seconds_until_overdue_run(datetime(2026, 3, 2, 9, 0, tzinfo=UTC)) == 24 * 3600
    assert scheduler.seconds_until_overdue_run(datetime(2026, 3, 2, 23, 30, tzinfo=UTC)) == 9.5 * 3600

    with pytest.raises(ValueError):
        SweepScheduler(task_store, user_store, notifier, clock, overdue_hour=24)


@pytest.mark.asyncio
async def test_recurrence_pass_does_not_bring_back_a_deleted_task(task_store, user_store, owner, clock, notifier) -> None:
    task = _add(
        task_store,
        owner,
        clock,
        title="daily",
        due_at=clock.now() - timedelta(days=2),
        recurrence=Recurrence.DAILY,
        status=TaskStatus.COMPLETED,
    )
    scheduler = SweepScheduler(DeletingTaskRepo(task_store), user_store, notifier, clock)

    report = await scheduler.run_recurrence_pass()

    assert report.candidates == 1
    assert report.skipped == 1
    assert report.processed == 0
    assert not report.aborted
    assert task_store.find_one(task.id) is None


@pytest.mark.asyncio
async def test_task_deleted_before_marking_stays_deleted(task_store, user_store, owner, clock, notifier) -> None:
    task = _add(task_store, owner, clock, priority=Priority.HIGH)
    scheduler = SweepScheduler(DeletingTaskRepo(task_store, on="find_one"), user_store, notifier, clock)

    report = await scheduler.run_high_priority_pass()

    assert report.skipped == 1
    assert report.processed == 0
    assert task_store.find_one(task.id) is None


@pytest.mark.asyncio
async def test_unreadable_database_aborts_the_pass(scheduler, task_store, owner, clock, notifier, db_path) -> None:
    _add(task_store, owner, clock, due_at=clock.now() - timedelta(hours=1))
    for suffix in ("-wal", "-shm"):
        Path(f"{db_path}{suffix}").unlink(missing_ok=True)
    db_path.write_bytes(b"garbage" * 512)

    report = await scheduler.run_overdue_pass()

    assert report.aborted
    assert report.failed == 0
    assert notifier.sent == []


def test_overdue_run_keeps_wall_clock_hour_across_dst(task_store, user_store, notifier, clock) -> None:
    berlin = ZoneInfo("Europe/Berlin")
    scheduler = SweepScheduler(task_store, user_store, notifier, clock, overdue_hour=9, overdue_tz=berlin)

    # Clocks go forward on 2026-03-29: 09:00 CET on the 28th to 09:00 CEST on the 29th is 23h.
    now = datetime(2026, 3, 28, 9, 0, tzinfo=berlin).astimezone(UTC)
    assert scheduler.seconds_until_overdue_run(now) == 23 * 3600

    # And back on 2026-10-25: 25h.
    now = datetime(2026, 10, 24, 9, 0, tzinfo=berlin).astimezone(UTC)
    assert scheduler.seconds_until_overdue_run(now) == 25 * 3600


def test_background_runner_starts_and_stops(task_store, user_store, owner, clock, notifier) -> None:
    scheduler = SweepScheduler(
        task_store,
        user_store,
        notifier,
        clock,
        recurrence_interval_seconds=1,
        high_priority_interval_seconds=1,
    )
    task = _add(task_store, owner, clock, priority=Priority.HIGH)
    shutdown_calls: list[str] = []

    async def on_shutdown() -> None:
        shutdown_calls.append("closed")

    runner = start_scheduler_in_background(scheduler, on_shutdown=on_shutdown)
    assert runner is not None
    assert runner.thread.is_alive()

    deadline = time.monotonic() + 5.0
    while time.monotonic() < deadline and not task_store.find_one(task.id).notified:
        time.sleep(0.02)

    runner.stop()
    runner.join(timeout=5.0)

    assert not runner.thread.is_alive()
    assert runner.loop.is_closed()
    assert shutdown_calls == ["closed"]
    assert task_store.find_one(task.id).notified is True
    assert len(notifier.by_channel("push")) == 1


@pytest.mark.asyncio
async def test_task_due_exactly_now_is_reminded_once_across_passes(scheduler, task_store, owner, clock, notifier) -> None:
    task = _add(task_store, owner, clock, priority=Priority.HIGH, due_at=clock.now())

    high = await scheduler.run_high_priority_pass()
    overdue = await scheduler.run_overdue_pass()

    assert high.processed == 1
    assert overdue.candidates == 0
    assert len(notifier.by_channel("email")) == 1
    assert len(notifier.by_channel("push")) == 1
    assert task_store.find_one(task.id).notified is True
