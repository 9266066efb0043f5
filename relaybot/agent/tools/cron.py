"""Tool for scheduling reminders and recurring agent tasks."""

from datetime import datetime
from typing import Any

from relaybot.agent.tools.base import Tool
from relaybot.cron.service import CronService
from relaybot.cron.types import CronSchedule


class CronTool(Tool):
    """Add, list and remove scheduled jobs that report to the chat of the current turn."""

    def __init__(self, cron_service: CronService) -> None:
        self._cron = cron_service
        self._channel = ""
        self._chat_id = ""

    @property
    def name(self) -> str:
        return "cron"

    @property
    def description(self) -> str:
        return "Schedule reminders and recurring tasks. Actions: add, list, remove."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "enum": ["add", "list", "remove"],
                    "description": "Action to perform",
                },
                "message": {"type": "string", "description": "Reminder message (for add)"},
                "every_seconds": {
                    "type": "integer",
                    "description": "Interval in seconds (for recurring tasks)",
                    "minimum": 1,
                },
                "cron_expr": {
                    "type": "string",
                    "description": "Cron expression like '0 9 * * *' (for scheduled tasks)",
                },
                "tz": {"type": "string", "description": "IANA timezone for cron_expr, e.g. 'Europe/Berlin'"},
                "at": {"type": "string", "description": "ISO datetime for a one-time reminder"},
                "job_id": {"type": "string", "description": "Job ID (for remove)"},
            },
            "required": ["action"],
        }

    def set_context(self, channel: str, chat_id: str) -> None:
        self._channel = channel
        self._chat_id = chat_id

    async def execute(self, *, action: str, **kwargs: Any) -> str:
        if action == "add":
            return self._add_job(**kwargs)
        if action == "list":
            return self._list_jobs()
        if action == "remove":
            return self._remove_job(kwargs.get("job_id"))
        return f"Unknown action: {action}"

    def _add_job(
        self,
        message: str = "",
        every_seconds: int | None = None,
        cron_expr: str | None = None,
        tz: str | None = None,
        at: str | None = None,
        **_: Any,
    ) -> str:
        if not message:
            return "Error: message is required for add"
        if not self._channel or not self._chat_id:
            return "Error: no session context (channel/chat_id)"

        delete_after_run = False
        if every_seconds:
            schedule = CronSchedule.every(every_seconds * 1000)
        elif cron_expr:
            schedule = CronSchedule.cron(cron_expr, tz)
        elif at:
            try:
                when = datetime.fromisoformat(at)
            except ValueError:
                return f"Error: invalid ISO datetime: {at}"
            schedule = CronSchedule.at(int(when.timestamp() * 1000))
            delete_after_run = True
        else:
            return "Error: one of every_seconds, cron_expr or at is required"

        try:
            job = self._cron.add_job(
                name=message[:30],
                schedule=schedule,
                message=message,
                deliver=True,
                channel=self._channel,
                to=self._chat_id,
                delete_after_run=delete_after_run,
            )
        except ValueError as e:
            return f"Error: {e}"
        return f"Created job '{job.name}' (id: {job.id})"

    def _list_jobs(self) -> str:
        jobs = self._cron.list_jobs()
        if not jobs:
            return "No scheduled jobs."
        lines = [f"- {job.name} (id: {job.id}, {job.schedule.describe()})" for job in jobs]
        return "Scheduled jobs:\n" + "\n".join(lines)

    def _remove_job(self, job_id: str | None) -> str:
        if not job_id:
            return "Error: job_id is required for remove"
        if self._cron.remove_job(job_id):
            return f"Removed job {job_id}"
        return f"Job {job_id} not found"
