"""Tests for MessageBus."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from relaybot.bus.events import InboundMessage, OutboundMessage
from relaybot.bus.queue import MessageBus


@pytest.fixture
def bus():
    return MessageBus()


def _inbound(content: str) -> InboundMessage:
    return InboundMessage(channel="telegram", chat_id="42", content=content, sender_id="u1")


@pytest.mark.asyncio
async def test_inbound_is_fifo(bus):
    for i in range(3):
        await bus.publish_inbound(_inbound(f"m{i}"))

    assert bus.inbound_size == 3
    received = [(await bus.consume_inbound()).content for _ in range(3)]
    assert received == ["m0", "m1", "m2"]
    assert bus.inbound_size == 0


@pytest.mark.asyncio
async def test_consume_timeout_raises(bus):
    with pytest.raises(asyncio.TimeoutError):
        await bus.consume_inbound(timeout=0.01)


@pytest.mark.asyncio
async def test_message_after_timeout_is_not_lost(bus):
    """A message published right after a consumer times out is kept for the next consumer."""
    with pytest.raises(asyncio.TimeoutError):
        await bus.consume_inbound(timeout=0.01)

    await bus.publish_inbound(_inbound("late"))

    msg = await bus.consume_inbound(timeout=1.0)
    assert msg.content == "late"


@pytest.mark.asyncio
async def test_waiting_consumer_receives_published_message(bus):
    waiter = asyncio.create_task(bus.consume_inbound(timeout=1.0))
    await asyncio.sleep(0)
    await bus.publish_inbound(_inbound("hello"))

    msg = await waiter
    assert msg.content == "hello"


@pytest.mark.asyncio
async def test_outbound_queue_is_separate(bus):
    await bus.publish_outbound(OutboundMessage(channel="telegram", chat_id="42", content="out"))

    assert bus.outbound_size == 1
    assert bus.inbound_size == 0
    msg = await bus.consume_outbound(timeout=0.1)
    assert msg.content == "out"


@pytest.mark.asyncio
async def test_dispatch_outbound_routes_to_subscriber(bus):
    telegram_cb = AsyncMock()
    bus.subscribe_outbound("telegram", telegram_cb)

    await bus.publish_outbound(OutboundMessage(channel="telegram", chat_id="1", content="a"))
    await bus.publish_outbound(OutboundMessage(channel="unknown", chat_id="2", content="b"))

    task = asyncio.create_task(bus.dispatch_outbound(poll_interval=0.01))
    for _ in range(50):
        if bus.outbound_size == 0 and telegram_cb.await_count:
            break
        await asyncio.sleep(0.01)
    bus.stop()
    await asyncio.wait_for(task, timeout=1.0)

    telegram_cb.assert_awaited_once()
    assert telegram_cb.await_args.args[0].content == "a"


@pytest.mark.asyncio
async def test_dispatch_outbound_survives_send_failure(bus):
    failing = AsyncMock(side_effect=RuntimeError("network down"))
    bus.subscribe_outbound("telegram", failing)

    await bus.publish_outbound(OutboundMessage(channel="telegram", chat_id="1", content="a"))
    await bus.publish_outbound(OutboundMessage(channel="telegram", chat_id="1", content="b"))

    task = asyncio.create_task(bus.dispatch_outbound(poll_interval=0.01))
    for _ in range(50):
        if failing.await_count == 2:
            break
        await asyncio.sleep(0.01)
    bus.stop()
    await asyncio.wait_for(task, timeout=1.0)

    assert failing.await_count == 2
