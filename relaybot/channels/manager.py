"""Channel manager for multi-channel orchestration."""

from loguru import logger

from relaybot.bus.queue import MessageBus
from relaybot.channels.base import BaseChannel
from relaybot.config.schema import Config


class ChannelManager:
    """
    Manages multiple chat channels.

    Handles channel lifecycle and subscribes each channel to outbound
    dispatch on the bus.
    """

    def __init__(self, bus: MessageBus) -> None:
        self.bus = bus
        self._channels: dict[str, BaseChannel] = {}

    @classmethod
    def from_config(cls, config: Config, bus: MessageBus) -> "ChannelManager":
        """Create a manager with every channel enabled in the configuration."""
        manager = cls(bus)
        if config.channels.telegram.enabled:
            from relaybot.channels.telegram import TelegramChannel
            from relaybot.providers.transcription import GroqTranscriptionProvider

            groq_key = config.providers.groq.api_key
            manager.register(
                TelegramChannel(
                    config.channels.telegram,
                    bus,
                    transcriber=GroqTranscriptionProvider(groq_key) if groq_key else None,
                )
            )
        return manager

    def register(self, channel: BaseChannel) -> None:
        """Register a channel."""
        self._channels[channel.name] = channel
        self.bus.subscribe_outbound(channel.name, channel.send)
        logger.info(f"Channel registered: {channel.name}")

    def get(self, name: str) -> BaseChannel | None:
        return self._channels.get(name)

    async def start_all(self) -> None:
        """Start all registered channels."""
        for name, channel in self._channels.items():
            try:
                await channel.start()
                logger.info(f"Channel started: {name}")
            except Exception as e:
                logger.error(f"Failed to start channel {name}: {e}")

    async def stop_all(self) -> None:
        """Stop all registered channels."""
        for name, channel in self._channels.items():
            try:
                await channel.stop()
                logger.info(f"Channel stopped: {name}")
            except Exception as e:
                logger.error(f"Failed to stop channel {name}: {e}")

    @property
    def channel_names(self) -> list[str]:
        """Get list of registered channel names."""
        return list(self._channels.keys())
