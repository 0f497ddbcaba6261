# src/taskflow/tasks/task_scheduler.py

from __future__ import annotations

"""
Sweep scheduler.

Three independent polling loops over the task store:
- recurrence pass (every 5 minutes): reset completed recurring tasks whose
  next due date has already arrived,
- high-priority pass (every 5 minutes): push + email reminders for High tasks
  due within the hour,
- overdue pass (daily at a fixed hour): email reminders for overdue tasks.

Per-task work is isolated: a failed owner lookup or delivery is logged and
the task keeps notified=False so the next tick retries it. A store failure
aborts the rest of the pass for this tick.

Store calls go through asyncio.to_thread so a pass never blocks the loop.
"""

import asyncio
import contextlib
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from enum import Enum

from ..core.ports import Clock, Notifier, TaskRepo, UserRepo
from ..errors import InvalidState, NotFound, StoreUnavailable, TransientDeliveryFailure
from ..notify.messages import build_reminder
from .notification_policy import (
    DEFAULT_POLICY,
    Channel,
    NotificationDecision,
    NotificationPolicy,
    channels_for,
)
from .recurrence import reset_if_due
from .task_models import Priority, Task, TaskQuery, TaskStatus

logger = logging.getLogger(__name__)


class TaskOutcome(str, Enum):
    PROCESSED = "processed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class SweepReport:
    name: str
    candidates: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    aborted: bool = False

    def count(self, outcome: TaskOutcome) -> None:
        if outcome == TaskOutcome.PROCESSED:
            self.processed += 1
        elif outcome == TaskOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1

    def __str__(self) -> str:
        state = "aborted" if self.aborted else "ok"
        return (
            f"{self.name}: {state} candidates={self.candidates} processed={self.processed} "
            f"skipped={self.skipped} failed={self.failed}"
        )


class SweepScheduler:
    """
    Owns the three sweep loops.

    start()/stop() manage the loops on the running event loop; each pass can
    also be awaited directly (run_*_pass) for one-off sweeps and tests.
    """

    def __init__(
        self,
        task_repo: TaskRepo,
        user_repo: UserRepo,
        notifier: Notifier,
        clock: Clock,
        *,
        policy: NotificationPolicy = DEFAULT_POLICY,
        recurrence_interval_seconds: float = 300.0,
        high_priority_interval_seconds: float = 300.0,
        overdue_hour: int = 9,
        overdue_tz: tzinfo | None = None,
        notify_timeout_seconds: float = 10.0,
    ) -> None:
        if not 0 <= int(overdue_hour) <= 23:
            raise ValueError(f"overdue_hour must be 0..23, got {overdue_hour}")

        self._tasks = task_repo
        self._users = user_repo
        self._notifier = notifier
        self._clock = clock
        self._policy = policy

        self._recurrence_interval = max(1.0, float(recurrence_interval_seconds))
        self._high_priority_interval = max(1.0, float(high_priority_interval_seconds))
        self._overdue_hour = int(overdue_hour)
        self._overdue_tz = overdue_tz
        self._notify_timeout = max(0.1, float(notify_timeout_seconds))

        self._runners: list[asyncio.Task[None]] = []

    # ---- lifecycle ----

    @property
    def running(self) -> bool:
        return any(not r.done() for r in self._runners)

    def start(self) -> None:
        """Launch the three loops on the running event loop."""
        if self.running:
            logger.warning("SweepScheduler already running")
            return

        self._runners = [
            asyncio.create_task(
                self._every(self._recurrence_interval, self.run_recurrence_pass),
                name="sweep-recurrence",
            ),
            asyncio.create_task(
                self._every(self._high_priority_interval, self.run_high_priority_pass),
                name="sweep-high-priority",
            ),
            asyncio.create_task(self._daily_overdue(), name="sweep-overdue"),
        ]
        logger.info(
            "SweepScheduler started recurrence=%ss high_priority=%ss overdue_hour=%02d:00",
            self._recurrence_interval,
            self._high_priority_interval,
            self._overdue_hour,
        )

    async def stop(self) -> None:
        runners, self._runners = self._runners, []
        for r in runners:
            r.cancel()
        for r in runners:
            with contextlib.suppress(asyncio.CancelledError):
                await r
        if runners:
            logger.info("SweepScheduler stopped")

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        self.start()
        try:
            await stop_event.wait()
        finally:
            await self.stop()

    async def run_all_passes(self) -> list[SweepReport]:
        return [
            await self.run_recurrence_pass(),
            await self.run_high_priority_pass(),
            await self.run_overdue_pass(),
        ]

    async def _every(self, interval: float, job: Callable[[], Awaitable[SweepReport]]) -> None:
        while True:
            try:
                await job()
            except Exception:
                logger.exception("Sweep pass crashed")
            await asyncio.sleep(interval)

    def _overdue_run_on(self, day: date) -> datetime:
        wall = datetime.combine(day, time(self._overdue_hour))
        if self._overdue_tz is not None:
            return wall.replace(tzinfo=self._overdue_tz)
        # naive astimezone() resolves the system zone for that date, DST included
        return wall.astimezone()

    def seconds_until_overdue_run(self, now: datetime) -> float:
        """Seconds from now to the next overdue run, on the wall clock of the configured zone."""
        local = now.astimezone(self._overdue_tz) if self._overdue_tz else now.astimezone()
        target = self._overdue_run_on(local.date())
        if target.timestamp() <= now.timestamp():
            target = self._overdue_run_on(local.date() + timedelta(days=1))
        return target.timestamp() - now.timestamp()

    async def _daily_overdue(self) -> None:
        while True:
            delay = self.seconds_until_overdue_run(self._clock.now())
            logger.debug("Next overdue pass in %.0fs", delay)
            await asyncio.sleep(delay)
            try:
                await self.run_overdue_pass()
            except Exception:
                logger.exception("Overdue pass crashed")

    # ---- recurrence ----

    async def run_recurrence_pass(self) -> SweepReport:
        report = SweepReport(name="recurrence")
        now = self._clock.now()

        try:
            candidates = await asyncio.to_thread(
                self._tasks.find, TaskQuery(recurring=True, status=TaskStatus.COMPLETED)
            )
        except StoreUnavailable:
            logger.exception("Recurrence pass: candidate query failed; skipping this tick")
            report.aborted = True
            return report

        report.candidates = len(candidates)
        for task in candidates:
            try:
                reset = reset_if_due(task, now)
            except InvalidState:
                logger.exception("Recurrence pass: unexpected task state task_id=%s", task.id)
                report.count(TaskOutcome.FAILED)
                continue

            if reset is None:
                report.count(TaskOutcome.SKIPPED)
                continue

            try:
                await asyncio.to_thread(self._tasks.save, reset)
            except NotFound:
                logger.info("Task %s deleted during sweep; not resetting", task.id)
                report.count(TaskOutcome.SKIPPED)
                continue
            except StoreUnavailable:
                logger.exception("Recurrence pass: write-back failed task_id=%s; aborting pass", task.id)
                report.aborted = True
                break

            logger.info(
                'Recurring task "%s" (id=%s) reset to pending, due %s',
                task.title,
                task.id,
                reset.due_at.isoformat(),
            )
            report.count(TaskOutcome.PROCESSED)

        self._log_report(report)
        return report

    # ---- reminders ----

    async def run_high_priority_pass(self) -> SweepReport:
        now = self._clock.now()
        query = TaskQuery(
            status=TaskStatus.PENDING,
            notified=False,
            priority=Priority.HIGH,
            due_from=now,
            due_to=now + self._policy.high_priority_window,
        )
        return await self._run_reminder_pass(
            "high_priority",
            query,
            NotificationDecision.HIGH_PRIORITY,
            lambda t: self._policy.is_high_priority_due(t, now),
        )

    async def run_overdue_pass(self) -> SweepReport:
        now = self._clock.now()
        query = TaskQuery(status=TaskStatus.PENDING, notified=False, due_to=now)
        return await self._run_reminder_pass(
            "overdue",
            query,
            NotificationDecision.OVERDUE,
            lambda t: self._policy.is_overdue(t, now),
        )

    async def _run_reminder_pass(
        self,
        name: str,
        query: TaskQuery,
        decision: NotificationDecision,
        in_window: Callable[[Task], bool],
    ) -> SweepReport:
        report = SweepReport(name=name)

        try:
            candidates = await asyncio.to_thread(self._tasks.find, query)
        except StoreUnavailable:
            logger.exception("%s pass: candidate query failed; skipping this tick", name)
            report.aborted = True
            return report

        report.candidates = len(candidates)

        # One independent job per task; the pass does not wait on one task's
        # deliveries before launching the next.
        jobs: list[asyncio.Task[TaskOutcome]] = []
        for task in candidates:
            if not (self._policy.is_eligible(task) and in_window(task)):
                report.count(TaskOutcome.SKIPPED)
                continue
            jobs.append(asyncio.create_task(self._remind(task, decision), name=f"remind-{task.id}"))

        for fut in asyncio.as_completed(jobs):
            try:
                report.count(await fut)
            except StoreUnavailable:
                logger.exception("%s pass: store failure; aborting remaining work", name)
                report.aborted = True
                break

        if report.aborted:
            for job in jobs:
                job.cancel()
            await asyncio.gather(*jobs, return_exceptions=True)

        self._log_report(report)
        return report

    async def _remind(self, task: Task, decision: NotificationDecision) -> TaskOutcome:
        """
        Deliver one reminder and mark the task notified.

        StoreUnavailable propagates (aborts the pass); every other failure is
        logged and leaves notified=False.
        """
        try:
            owner = await asyncio.to_thread(self._users.find_user, task.owner_id)
            if owner is None:
                raise NotFound("user", task.owner_id)

            reminder = build_reminder(decision, task)
            deliveries: list[Awaitable[None]] = []
            if reminder is not None:
                for channel in channels_for(decision):
                    if channel == Channel.PUSH and owner.push_token:
                        deliveries.append(
                            self._deliver(
                                channel,
                                owner.push_token,
                                self._notifier.notify_push(owner.push_token, reminder.push_title, reminder.push_body),
                            )
                        )
                    elif channel == Channel.EMAIL and owner.email:
                        deliveries.append(
                            self._deliver(
                                channel,
                                owner.email,
                                self._notifier.notify_email(owner.email, reminder.email_subject, reminder.email_body),
                            )
                        )

            results = await asyncio.gather(*deliveries, return_exceptions=True)
            failures = [r for r in results if isinstance(r, BaseException)]
            if failures:
                raise failures[0]

        except StoreUnavailable:
            raise
        except (NotFound, TransientDeliveryFailure) as e:
            logger.warning("Reminder not delivered task_id=%s kind=%s: %s", task.id, decision.value, e)
            return TaskOutcome.FAILED
        except Exception:
            logger.exception("Reminder failed task_id=%s kind=%s", task.id, decision.value)
            return TaskOutcome.FAILED

        return await self._mark_notified(task)

    async def _deliver(self, channel: Channel, target: str, send: Awaitable[None]) -> None:
        try:
            await asyncio.wait_for(send, timeout=self._notify_timeout)
        except TransientDeliveryFailure:
            raise
        except TimeoutError as e:
            raise TransientDeliveryFailure(channel.value, target, f"timed out after {self._notify_timeout}s") from e
        except Exception as e:
            raise TransientDeliveryFailure(channel.value, target, repr(e)) from e
        logger.debug("Delivered %s reminder to %s", channel.value, target)

    async def _mark_notified(self, task: Task) -> TaskOutcome:
        # Re-read so the write-back only touches the flag of the current record.
        fresh = await asyncio.to_thread(self._tasks.find_one, task.id)
        if fresh is None:
            logger.info("Task %s deleted during sweep; nothing to mark", task.id)
            return TaskOutcome.SKIPPED
        if fresh.due_at != task.due_at:
            logger.info("Task %s due date changed during sweep; leaving notified flag", task.id)
            return TaskOutcome.SKIPPED

        fresh.notified = True
        try:
            await asyncio.to_thread(self._tasks.save, fresh)
        except NotFound:
            logger.info("Task %s deleted during sweep; nothing to mark", task.id)
            return TaskOutcome.SKIPPED
        logger.info('Reminder sent for task "%s" (id=%s)', task.title, task.id)
        return TaskOutcome.PROCESSED

    @staticmethod
    def _log_report(report: SweepReport) -> None:
        if report.candidates or report.aborted:
            logger.info("Sweep %s", report)
        else:
            logger.debug("Sweep %s", report)


@dataclass(slots=True)
class SchedulerRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Scheduler loop already closed.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_scheduler_in_background(
    scheduler: SweepScheduler,
    *,
    on_shutdown: Callable[[], Awaitable[None]] | None = None,
) -> SchedulerRunner | None:
    """
    Run the scheduler on its own event loop in a daemon thread, so the
    blocking console REPL can run in the main thread.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        async def _main() -> None:
            try:
                await scheduler.run_forever(stop_event)
            finally:
                if on_shutdown is not None:
                    try:
                        await on_shutdown()
                    except Exception:
                        logger.exception("Scheduler shutdown hook failed")

        try:
            loop.run_until_complete(_main())
        finally:
            loop.close()

    t = threading.Thread(target=runner, name="sweep-scheduler", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Scheduler thread did not initialize properly.")
        return None

    logger.info("Scheduler background thread started.")
    return SchedulerRunner(thread=t, loop=loop, stop_event=stop_event)
