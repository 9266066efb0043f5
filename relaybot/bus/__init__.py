"""Message bus module."""

from relaybot.bus.events import Announcement, InboundMessage, OutboundMessage
from relaybot.bus.queue import MessageBus

__all__ = ["Announcement", "InboundMessage", "OutboundMessage", "MessageBus"]
