"""Chat channels module."""

from relaybot.channels.base import BaseChannel
from relaybot.channels.manager import ChannelManager

__all__ = ["BaseChannel", "ChannelManager"]
