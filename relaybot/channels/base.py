"""Base class for chat channels."""

from abc import ABC, abstractmethod
from typing import Any

from loguru import logger

from relaybot.bus.events import InboundMessage, OutboundMessage
from relaybot.bus.queue import MessageBus


class BaseChannel(ABC):
    """
    Abstract base class for chat channels.

    Channels are responsible for:
    - Connecting to external platforms
    - Authorizing senders against the channel's allow list
    - Converting messages between platform and internal formats
    - Publishing inbound messages to the bus
    """

    def __init__(self, config: Any, bus: MessageBus) -> None:
        self.config = config
        self.bus = bus
        self._running = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Channel identifier."""
        pass

    @abstractmethod
    async def start(self) -> None:
        """Start the channel and begin receiving messages."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop the channel and clean up resources."""
        pass

    @abstractmethod
    async def send(self, msg: OutboundMessage) -> None:
        """
        Deliver an outbound message to its chat.

        Args:
            msg: The message to deliver.
        """
        pass

    def is_allowed(self, sender_id: str) -> bool:
        """
        Check whether a sender may talk to the bot.

        An empty allow list admits everyone. Sender ids of the form
        ``"123456|username"`` match on either part.
        """
        allow_list = [str(a) for a in getattr(self.config, "allow_from", None) or []]
        if not allow_list:
            return True

        sender = str(sender_id)
        if sender in allow_list:
            return True
        if "|" in sender:
            return any(part and part in allow_list for part in sender.split("|"))
        return False

    async def _handle_message(
        self,
        sender_id: str,
        chat_id: str,
        content: str,
        media: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Publish an incoming platform message to the bus if the sender is allowed."""
        if not self.is_allowed(sender_id):
            logger.warning(f"Unauthorized {self.name} sender ignored: {sender_id}")
            return

        await self.bus.publish_inbound(
            InboundMessage(
                channel=self.name,
                sender_id=str(sender_id),
                chat_id=str(chat_id),
                content=content,
                media=media or [],
                metadata=metadata or {},
            )
        )

    @property
    def is_running(self) -> bool:
        return self._running
