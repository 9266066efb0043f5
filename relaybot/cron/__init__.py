"""Cron scheduling module."""

from relaybot.cron.service import CronService, compute_next_run
from relaybot.cron.types import CronJob, CronJobState, CronPayload, CronSchedule, ScheduleType

__all__ = [
    "CronJob",
    "CronJobState",
    "CronPayload",
    "CronSchedule",
    "ScheduleType",
    "CronService",
    "compute_next_run",
]
