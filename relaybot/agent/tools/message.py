"""Tool for sending chat messages from inside a turn."""

from typing import Any, Awaitable, Callable

from relaybot.agent.tools.base import Tool
from relaybot.bus.events import OutboundMessage

SendCallback = Callable[[OutboundMessage], Awaitable[None]]


class MessageTool(Tool):
    """Send a message to a chat channel, defaulting to the chat of the current turn."""

    def __init__(
        self,
        send_callback: SendCallback | None = None,
        default_channel: str = "",
        default_chat_id: str = "",
    ) -> None:
        self._send_callback = send_callback
        self._default_channel = default_channel
        self._default_chat_id = default_chat_id

    @property
    def name(self) -> str:
        return "message"

    @property
    def description(self) -> str:
        return "Send a message to the user. Use this when you want to communicate something."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "content": {"type": "string", "description": "The message content to send"},
                "channel": {"type": "string", "description": "Optional: target channel (telegram, etc.)"},
                "chat_id": {"type": "string", "description": "Optional: target chat/user ID"},
            },
            "required": ["content"],
        }

    def set_context(self, channel: str, chat_id: str) -> None:
        self._default_channel = channel
        self._default_chat_id = chat_id

    async def execute(self, *, content: str, channel: str = "", chat_id: str = "") -> str:
        channel = channel or self._default_channel
        chat_id = chat_id or self._default_chat_id

        if not channel or not chat_id:
            return "Error: No target channel/chat specified"
        if not self._send_callback:
            return "Error: Message sending not configured"

        await self._send_callback(OutboundMessage(channel=channel, chat_id=chat_id, content=content))
        return f"Message sent to {channel}:{chat_id}"
