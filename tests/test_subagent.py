"""Tests for SubagentManager."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from relaybot.agent.subagent import NO_FINAL_RESPONSE, SubagentManager
from relaybot.bus.events import SYSTEM_CHANNEL
from relaybot.bus.queue import MessageBus
from relaybot.providers.base import LLMResponse, ToolCallRequest


@pytest.fixture
def bus():
    return MessageBus()


@pytest.fixture
def manager(tmp_path: Path, bus):
    return SubagentManager(
        provider=AsyncMock(),
        workspace=tmp_path,
        bus=bus,
        model="test-model",
        max_iterations=2,
    )


async def _announcement(bus):
    msg = await bus.consume_inbound(timeout=2.0)
    assert msg.channel == SYSTEM_CHANNEL
    assert msg.sender_id == "subagent"
    return msg


@pytest.mark.asyncio
async def test_spawn_acknowledges_and_announces_success(manager, bus):
    manager.provider.chat.return_value = LLMResponse(content="All done.")

    ack = await manager.spawn("summarize the logs", label="logs", origin_channel="telegram", origin_chat_id="42")

    assert ack.startswith("Subagent [logs] started (id: ")
    assert ack.endswith("I'll notify you when it completes.")

    msg = await _announcement(bus)
    assert msg.chat_id == "telegram:42"
    assert msg.session_key == "telegram:42"
    assert msg.announcement.status == "ok"
    assert msg.announcement.result == "All done."
    assert msg.content == msg.announcement.render()

    await asyncio.sleep(0)
    assert manager.running_count == 0
    assert bus.inbound_size == 0


@pytest.mark.asyncio
async def test_failure_is_announced_as_error(manager, bus):
    manager.provider.chat.side_effect = RuntimeError("model unavailable")

    await manager.spawn("do something")

    msg = await _announcement(bus)
    assert msg.announcement.status == "error"
    assert msg.announcement.result == "Error: model unavailable"
    assert msg.session_key == "cli:direct"
    assert "failed" in msg.content


@pytest.mark.asyncio
async def test_iteration_cap_still_announces(manager, bus):
    manager.provider.chat.return_value = LLMResponse(
        content=None,
        tool_calls=[ToolCallRequest(id="c1", name="list_dir", arguments={"path": "."})],
    )

    await manager.spawn("loop forever")

    msg = await _announcement(bus)
    assert msg.announcement.status == "ok"
    assert msg.announcement.result == NO_FINAL_RESPONSE
    assert manager.provider.chat.await_count == 2


@pytest.mark.asyncio
async def test_long_task_label_is_truncated(manager, bus):
    manager.provider.chat.return_value = LLMResponse(content="ok")
    task = "x" * 40

    ack = await manager.spawn(task)

    assert ack.startswith(f"Subagent [{'x' * 30}...] started")
    msg = await _announcement(bus)
    assert msg.announcement.label == "x" * 30 + "..."


def test_subagent_tools_exclude_messaging_and_spawning(manager):
    names = manager._build_tools().tool_names
    assert names == ["read_file", "write_file", "list_dir", "exec", "web_search", "web_fetch"]


@pytest.mark.asyncio
async def test_running_count_tracks_live_tasks(manager, bus):
    release = asyncio.Event()

    async def slow_chat(**kwargs):
        await release.wait()
        return LLMResponse(content="finished")

    manager.provider.chat.side_effect = slow_chat

    await manager.spawn("slow")
    await asyncio.sleep(0)
    assert manager.running_count == 1

    release.set()
    await _announcement(bus)
    await asyncio.sleep(0)
    assert manager.running_count == 0
