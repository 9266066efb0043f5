"""Cron service: persisted jobs driven by a single re-armed timer."""

import asyncio
import json
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter
from loguru import logger

from relaybot.cron.types import (
    AGENT_TURN,
    PAYLOAD_KINDS,
    CronJob,
    CronJobState,
    CronPayload,
    CronSchedule,
    ScheduleType,
)

JobCallback = Callable[[CronJob], Awaitable[str | None]]
CronNextFn = Callable[[str, str | None, int], int | None]

STORE_VERSION = 1


def now_ms() -> int:
    return int(time.time() * 1000)


def croniter_next(expr: str, tz: str | None, after_ms: int) -> int | None:
    """Next fire time of a cron expression after ``after_ms``, or None if it can't be computed."""
    try:
        zone = ZoneInfo(tz) if tz else None
        base = datetime.fromtimestamp(after_ms / 1000, tz=zone)
        if zone is None:
            base = base.astimezone()
        return int(croniter(expr, base).get_next(datetime).timestamp() * 1000)
    except Exception as e:
        logger.warning(f"Cannot compute next run for cron expression {expr!r}: {e}")
        return None


def compute_next_run(
    schedule: CronSchedule,
    current_ms: int,
    cron_next: CronNextFn = croniter_next,
) -> int | None:
    """
    Compute the next run timestamp of a schedule.

    Returns None for an ``at`` time already in the past, a non-positive
    interval, or a cron expression that can't be evaluated.
    """
    if schedule.kind == ScheduleType.AT:
        if schedule.at_ms and schedule.at_ms > current_ms:
            return schedule.at_ms
        return None

    if schedule.kind == ScheduleType.EVERY:
        if not schedule.every_ms or schedule.every_ms <= 0:
            return None
        return current_ms + schedule.every_ms

    if schedule.kind == ScheduleType.CRON and schedule.expr:
        return cron_next(schedule.expr, schedule.tz, current_ms)

    return None


def validate_schedule(schedule: CronSchedule) -> None:
    """Raise ValueError if the schedule can never produce a run time."""
    if schedule.kind == ScheduleType.AT and schedule.at_ms is None:
        raise ValueError("'at' schedule requires at_ms")
    if schedule.kind == ScheduleType.EVERY and schedule.every_ms is None:
        raise ValueError("'every' schedule requires every_ms")
    if schedule.kind == ScheduleType.CRON:
        if not schedule.expr or not croniter.is_valid(schedule.expr):
            raise ValueError(f"Invalid cron expression: {schedule.expr!r}")
        if schedule.tz:
            try:
                ZoneInfo(schedule.tz)
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise ValueError(f"Unknown timezone: {schedule.tz!r}") from e


class CronService:
    """
    Service for managing and executing scheduled jobs.

    Holds at most one live timer, set for the earliest ``next_run_at_ms``
    among enabled jobs. Every mutation re-arms it. When it fires, all due
    jobs run one after another through the job callback, then the store is
    saved once and the timer is armed again.
    """

    def __init__(
        self,
        store_path: Path,
        on_job: JobCallback | None = None,
        cron_next: CronNextFn = croniter_next,
    ) -> None:
        self.store_path = store_path
        self.on_job = on_job
        self._cron_next = cron_next
        self._jobs: list[CronJob] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._tick_task: asyncio.Task[None] | None = None
        self._running = False

    def _next_run(self, schedule: CronSchedule, current_ms: int) -> int | None:
        return compute_next_run(schedule, current_ms, self._cron_next)

    def _load_store(self) -> list[CronJob]:
        """Load jobs from persistent storage once; later calls return the cached list."""
        if self._jobs is not None:
            return self._jobs

        self._jobs = []
        if self.store_path.exists():
            try:
                data = json.loads(self.store_path.read_text(encoding="utf-8"))
                self._jobs = [CronJob.from_dict(item) for item in data.get("jobs", [])]
                logger.debug(f"Loaded {len(self._jobs)} cron jobs")
            except Exception as e:
                logger.warning(f"Failed to load cron store {self.store_path}: {e}")
                self._jobs = []
        return self._jobs

    def _save_store(self) -> None:
        """Save jobs to persistent storage."""
        jobs = self._load_store()
        self.store_path.parent.mkdir(parents=True, exist_ok=True)
        data = {"version": STORE_VERSION, "jobs": [job.to_dict() for job in jobs]}
        self.store_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")

    async def start(self) -> None:
        """Load the store, recompute next runs and arm the timer."""
        self._running = True
        jobs = self._load_store()
        current = now_ms()
        for job in jobs:
            if job.enabled:
                job.state.next_run_at_ms = self._next_run(job.schedule, current)
        self._save_store()
        self._arm_timer()
        logger.info(f"Cron service started with {len(jobs)} jobs")

    def stop(self) -> None:
        """Stop the service and cancel the pending timer."""
        self._running = False
        if self._timer:
            self._timer.cancel()
            self._timer = None
        logger.info("Cron service stopped")

    def _next_wake_ms(self) -> int | None:
        times = [
            job.state.next_run_at_ms
            for job in self._load_store()
            if job.enabled and job.state.next_run_at_ms is not None
        ]
        return min(times) if times else None

    def _arm_timer(self) -> None:
        if self._timer:
            self._timer.cancel()
            self._timer = None

        if not self._running:
            return
        # A tick in progress re-arms when it finishes
        if self._tick_task and not self._tick_task.done():
            return

        next_wake = self._next_wake_ms()
        if next_wake is None:
            return

        delay = max(0, next_wake - now_ms()) / 1000
        self._timer = asyncio.get_running_loop().call_later(delay, self._on_timer_fired)

    def _on_timer_fired(self) -> None:
        self._timer = None
        if self._running:
            self._tick_task = asyncio.create_task(self._on_timer())

    async def _on_timer(self) -> None:
        """Run every due job, persist once, then re-arm."""
        current = now_ms()
        due = [
            job
            for job in self._load_store()
            if job.enabled and job.state.next_run_at_ms is not None and current >= job.state.next_run_at_ms
        ]

        try:
            for job in due:
                # An earlier job's turn may have removed or disabled this one
                if not job.enabled or self.get_job(job.id) is not job:
                    logger.debug(f"Cron: skipping job '{job.name}' ({job.id}), no longer scheduled")
                    continue
                await self._execute_job(job)

            try:
                self._save_store()
            except OSError as e:
                logger.error(f"Cron: failed to save store {self.store_path}: {e}")
        finally:
            self._tick_task = None
            self._arm_timer()

    async def _execute_job(self, job: CronJob) -> None:
        start_ms = now_ms()
        logger.info(f"Cron: executing job '{job.name}' ({job.id})")

        try:
            if self.on_job:
                await self.on_job(job)
            job.state.last_status = "ok"
            job.state.last_error = None
            logger.info(f"Cron: job '{job.name}' completed")
        except Exception as e:
            job.state.last_status = "error"
            job.state.last_error = str(e)
            logger.error(f"Cron: job '{job.name}' failed: {e}")

        job.state.last_run_at_ms = start_ms
        job.updated_at_ms = now_ms()

        if job.schedule.kind == ScheduleType.AT:
            if job.delete_after_run:
                self._jobs = [j for j in self._load_store() if j.id != job.id]
            else:
                job.enabled = False
                job.state.next_run_at_ms = None
        else:
            job.state.next_run_at_ms = self._next_run(job.schedule, now_ms()) if job.enabled else None

    def list_jobs(self, include_disabled: bool = False) -> list[CronJob]:
        """List jobs ordered by next run; jobs without a next run come last."""
        jobs = [job for job in self._load_store() if include_disabled or job.enabled]
        return sorted(
            jobs,
            key=lambda j: (j.state.next_run_at_ms is None, j.state.next_run_at_ms or 0),
        )

    def get_job(self, job_id: str) -> CronJob | None:
        return next((job for job in self._load_store() if job.id == job_id), None)

    def add_job(
        self,
        name: str,
        schedule: CronSchedule,
        message: str,
        deliver: bool = False,
        channel: str | None = None,
        to: str | None = None,
        delete_after_run: bool = False,
        kind: str = AGENT_TURN,
    ) -> CronJob:
        """
        Add a new scheduled job.

        Args:
            name: Human-readable job name.
            schedule: When the job runs.
            message: Message handed to the agent when the job fires.
            deliver: Whether the agent's response is sent to ``channel``/``to``.
            channel: Target channel for delivery.
            to: Target chat ID for delivery.
            delete_after_run: Remove a one-shot job after it fires.
            kind: ``agent_turn`` runs the message through the agent,
                ``system_event`` delivers it verbatim.

        Returns:
            The created CronJob.

        Raises:
            ValueError: If the schedule is malformed, e.g. an invalid cron
                expression, or the payload kind is unknown.
        """
        validate_schedule(schedule)
        if kind not in PAYLOAD_KINDS:
            raise ValueError(f"Unknown payload kind: {kind!r}")
        jobs = self._load_store()
        current = now_ms()

        job = CronJob(
            id=uuid.uuid4().hex[:8],
            name=name,
            schedule=schedule,
            payload=CronPayload(message=message, kind=kind, deliver=deliver, channel=channel, to=to),
            state=CronJobState(next_run_at_ms=self._next_run(schedule, current)),
            created_at_ms=current,
            updated_at_ms=current,
            delete_after_run=delete_after_run,
        )
        jobs.append(job)
        self._save_store()
        self._arm_timer()

        logger.info(f"Cron job added: {job.name} ({job.id})")
        return job

    def remove_job(self, job_id: str) -> bool:
        """Remove a job by ID."""
        jobs = self._load_store()
        remaining = [job for job in jobs if job.id != job_id]
        if len(remaining) == len(jobs):
            return False

        self._jobs = remaining
        self._save_store()
        self._arm_timer()
        logger.info(f"Cron job removed: {job_id}")
        return True

    def enable_job(self, job_id: str, enabled: bool = True) -> CronJob | None:
        """Enable or disable a job. Disabling clears its next run."""
        job = self.get_job(job_id)
        if job is None:
            return None

        job.enabled = enabled
        job.updated_at_ms = now_ms()
        job.state.next_run_at_ms = self._next_run(job.schedule, now_ms()) if enabled else None
        self._save_store()
        self._arm_timer()
        return job

    def status(self) -> dict[str, Any]:
        return {
            "enabled": self._running,
            "jobs": len(self._load_store()),
            "next_wake_at_ms": self._next_wake_ms(),
        }
