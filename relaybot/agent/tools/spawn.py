"""Tool for delegating work to a background subagent."""

from typing import TYPE_CHECKING, Any

from relaybot.agent.tools.base import Tool

if TYPE_CHECKING:
    from relaybot.agent.subagent import SubagentManager


class SpawnTool(Tool):
    """Spawn a subagent that reports back to the chat of the current turn."""

    def __init__(self, manager: "SubagentManager") -> None:
        self._manager = manager
        self._origin_channel = "cli"
        self._origin_chat_id = "direct"

    @property
    def name(self) -> str:
        return "spawn"

    @property
    def description(self) -> str:
        return (
            "Spawn a subagent to handle a task in the background. "
            "Use this for complex or time-consuming tasks that can run independently. "
            "The subagent will complete the task and report back when done."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "task": {"type": "string", "description": "The task for the subagent to complete"},
                "label": {"type": "string", "description": "Optional short label for the task (for display)"},
            },
            "required": ["task"],
        }

    def set_context(self, channel: str, chat_id: str) -> None:
        self._origin_channel = channel
        self._origin_chat_id = chat_id

    async def execute(self, *, task: str, label: str | None = None) -> str:
        return await self._manager.spawn(
            task=task,
            label=label,
            origin_channel=self._origin_channel,
            origin_chat_id=self._origin_chat_id,
        )
