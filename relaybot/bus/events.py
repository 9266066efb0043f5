"""Message bus event types."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

SYSTEM_CHANNEL = "system"


@dataclass(frozen=True)
class Announcement:
    """Outcome of a background subagent, addressed to the session that spawned it."""

    task_id: str
    label: str
    task: str
    result: str
    status: str
    origin_channel: str
    origin_chat_id: str

    @property
    def session_key(self) -> str:
        return f"{self.origin_channel}:{self.origin_chat_id}"

    def render(self) -> str:
        """Render the instruction the main agent narrates to the user."""
        status_text = "completed successfully" if self.status == "ok" else "failed"
        return (
            f"[Subagent '{self.label}' {status_text}]\n\n"
            f"Task: {self.task}\n\n"
            f"Result:\n{self.result}\n\n"
            "Summarize this naturally for the user. Keep it brief (1-2 sentences). "
            'Do not mention technical details like "subagent" or task IDs.'
        )


@dataclass(frozen=True)
class InboundMessage:
    """A message from a channel to the agent."""

    channel: str
    chat_id: str
    content: str
    sender_id: str = ""
    timestamp: datetime = field(default_factory=datetime.now)
    media: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    announcement: Announcement | None = None

    @property
    def origin(self) -> tuple[str, str]:
        """The (channel, chat_id) pair whose session this message belongs to."""
        if self.announcement is not None:
            return self.announcement.origin_channel, self.announcement.origin_chat_id
        if self.channel == SYSTEM_CHANNEL:
            if ":" in self.chat_id:
                channel, chat_id = self.chat_id.split(":", 1)
                return channel, chat_id
            return "cli", self.chat_id
        return self.channel, self.chat_id

    @property
    def session_key(self) -> str:
        channel, chat_id = self.origin
        return f"{channel}:{chat_id}"


@dataclass
class OutboundMessage:
    """A message from the agent to a channel."""

    channel: str
    chat_id: str
    content: str
    reply_to: str | None = None
    media: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
