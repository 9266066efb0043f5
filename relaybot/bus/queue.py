"""Async message bus decoupling chat channels from the agent core."""

import asyncio
from typing import Awaitable, Callable

from loguru import logger

from relaybot.bus.events import InboundMessage, OutboundMessage

OutboundCallback = Callable[[OutboundMessage], Awaitable[None]]


class MessageBus:
    """
    Two unbounded FIFO queues: channels publish inbound, the agent publishes outbound.

    Consumers may wait with a timeout. A timed-out waiter is removed from the
    queue's waiter list before the timeout surfaces, so an item published right
    afterwards stays queued for the next consumer instead of being dropped.
    """

    def __init__(self) -> None:
        self._inbound: asyncio.Queue[InboundMessage] = asyncio.Queue()
        self._outbound: asyncio.Queue[OutboundMessage] = asyncio.Queue()
        self._subscribers: dict[str, list[OutboundCallback]] = {}
        self._dispatching = False

    async def publish_inbound(self, msg: InboundMessage) -> None:
        """Enqueue a message for the agent."""
        self._inbound.put_nowait(msg)

    async def consume_inbound(self, timeout: float | None = None) -> InboundMessage:
        """
        Wait for the next inbound message.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely.

        Raises:
            asyncio.TimeoutError: If no message arrived within ``timeout``.
        """
        return await self._consume(self._inbound, timeout)

    async def publish_outbound(self, msg: OutboundMessage) -> None:
        """Enqueue a message for delivery to a channel."""
        self._outbound.put_nowait(msg)

    async def consume_outbound(self, timeout: float | None = None) -> OutboundMessage:
        """Wait for the next outbound message. Same timeout semantics as consume_inbound."""
        return await self._consume(self._outbound, timeout)

    @staticmethod
    async def _consume(queue: asyncio.Queue, timeout: float | None):
        if timeout is None:
            return await queue.get()
        # Queue.get() deregisters its getter on cancellation and hands any
        # already-woken slot to the next waiter, so nothing is consumed here.
        return await asyncio.wait_for(queue.get(), timeout=timeout)

    def subscribe_outbound(self, channel: str, callback: OutboundCallback) -> None:
        """Register a delivery callback for messages addressed to ``channel``."""
        self._subscribers.setdefault(channel, []).append(callback)

    async def dispatch_outbound(self, poll_interval: float = 1.0) -> None:
        """Deliver outbound messages to subscribed channels until stop() is called."""
        self._dispatching = True
        logger.info("Outbound dispatcher started")

        while self._dispatching:
            try:
                msg = await self.consume_outbound(timeout=poll_interval)
            except asyncio.TimeoutError:
                continue

            callbacks = self._subscribers.get(msg.channel)
            if not callbacks:
                logger.warning(f"No subscriber for outbound channel: {msg.channel}")
                continue

            for callback in callbacks:
                try:
                    await callback(msg)
                except Exception as e:
                    logger.error(f"Error sending to {msg.channel}: {e}")

        logger.info("Outbound dispatcher stopped")

    def stop(self) -> None:
        """Stop the outbound dispatcher."""
        self._dispatching = False

    @property
    def inbound_size(self) -> int:
        return self._inbound.qsize()

    @property
    def outbound_size(self) -> int:
        return self._outbound.qsize()
