"""Cron job type definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ScheduleType(Enum):
    """Type of schedule for a cron job."""

    AT = "at"           # One-shot at an epoch-ms timestamp
    EVERY = "every"     # Fixed interval in milliseconds
    CRON = "cron"       # Standard cron expression


# Payload kinds: run the message through the agent, or send it verbatim
AGENT_TURN = "agent_turn"
SYSTEM_EVENT = "system_event"
PAYLOAD_KINDS = (AGENT_TURN, SYSTEM_EVENT)


@dataclass
class CronSchedule:
    """When a job runs. Only the fields of its ``kind`` are meaningful."""

    kind: ScheduleType
    at_ms: int | None = None
    every_ms: int | None = None
    expr: str | None = None
    tz: str | None = None

    @classmethod
    def at(cls, at_ms: int) -> CronSchedule:
        return cls(kind=ScheduleType.AT, at_ms=at_ms)

    @classmethod
    def every(cls, every_ms: int) -> CronSchedule:
        return cls(kind=ScheduleType.EVERY, every_ms=every_ms)

    @classmethod
    def cron(cls, expr: str, tz: str | None = None) -> CronSchedule:
        return cls(kind=ScheduleType.CRON, expr=expr, tz=tz)

    def describe(self) -> str:
        if self.kind == ScheduleType.EVERY:
            return f"every {(self.every_ms or 0) / 1000:g}s"
        if self.kind == ScheduleType.CRON:
            return f"{self.expr} ({self.tz})" if self.tz else str(self.expr)
        return "one-time"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "at_ms": self.at_ms,
            "every_ms": self.every_ms,
            "expr": self.expr,
            "tz": self.tz,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CronSchedule:
        return cls(
            kind=ScheduleType(data["kind"]),
            at_ms=data.get("at_ms"),
            every_ms=data.get("every_ms"),
            expr=data.get("expr"),
            tz=data.get("tz"),
        )


@dataclass
class CronPayload:
    """What to do when a job fires."""

    message: str
    kind: str = AGENT_TURN
    deliver: bool = False
    channel: str | None = None
    to: str | None = None


@dataclass
class CronJobState:
    """Runtime state of a job, maintained by the scheduler."""

    next_run_at_ms: int | None = None
    last_run_at_ms: int | None = None
    last_status: str | None = None   # ok | error | skipped
    last_error: str | None = None


@dataclass
class CronJob:
    """A scheduled job definition."""

    id: str
    name: str
    schedule: CronSchedule
    payload: CronPayload
    enabled: bool = True
    state: CronJobState = field(default_factory=CronJobState)
    created_at_ms: int = 0
    updated_at_ms: int = 0
    delete_after_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "enabled": self.enabled,
            "schedule": self.schedule.to_dict(),
            "payload": {
                "kind": self.payload.kind,
                "message": self.payload.message,
                "deliver": self.payload.deliver,
                "channel": self.payload.channel,
                "to": self.payload.to,
            },
            "state": {
                "next_run_at_ms": self.state.next_run_at_ms,
                "last_run_at_ms": self.state.last_run_at_ms,
                "last_status": self.state.last_status,
                "last_error": self.state.last_error,
            },
            "created_at_ms": self.created_at_ms,
            "updated_at_ms": self.updated_at_ms,
            "delete_after_run": self.delete_after_run,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CronJob:
        payload = data.get("payload") or {}
        state = data.get("state") or {}
        return cls(
            id=data["id"],
            name=data["name"],
            enabled=data.get("enabled", True),
            schedule=CronSchedule.from_dict(data["schedule"]),
            payload=CronPayload(
                message=payload.get("message", ""),
                kind=payload.get("kind", AGENT_TURN),
                deliver=payload.get("deliver", False),
                channel=payload.get("channel"),
                to=payload.get("to"),
            ),
            state=CronJobState(
                next_run_at_ms=state.get("next_run_at_ms"),
                last_run_at_ms=state.get("last_run_at_ms"),
                last_status=state.get("last_status"),
                last_error=state.get("last_error"),
            ),
            created_at_ms=data.get("created_at_ms", 0),
            updated_at_ms=data.get("updated_at_ms", 0),
            delete_after_run=data.get("delete_after_run", False),
        )
