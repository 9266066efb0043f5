"""Tests for AgentLoop."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from relaybot.agent.loop import NO_RESPONSE_FALLBACK, AgentLoop
from relaybot.bus.events import SYSTEM_CHANNEL, Announcement, InboundMessage
from relaybot.bus.queue import MessageBus
from relaybot.cron.service import CronService
from relaybot.providers.base import LLMResponse, ToolCallRequest
from relaybot.session.manager import SessionManager


@pytest.fixture
def workspace(tmp_path: Path):
    """Temporary workspace."""
    ws = tmp_path / "workspace"
    ws.mkdir()
    return ws


@pytest.fixture
def bus():
    return MessageBus()


@pytest.fixture
def agent_loop(workspace, bus, tmp_path):
    """Create an AgentLoop with a mocked provider and on-disk sessions."""
    provider = AsyncMock()
    return AgentLoop(
        bus=bus,
        provider=provider,
        workspace=workspace,
        model="test-model",
        max_iterations=3,
        sessions=SessionManager(tmp_path / "sessions"),
    )


def _tool_response(*calls: ToolCallRequest) -> LLMResponse:
    return LLMResponse(content=None, tool_calls=list(calls), finish_reason="tool_calls")


def test_default_tools_registered(agent_loop, workspace, bus):
    assert agent_loop.tools.tool_names == [
        "read_file",
        "write_file",
        "edit_file",
        "list_dir",
        "exec",
        "web_search",
        "web_fetch",
        "message",
        "spawn",
    ]

    with_cron = AgentLoop(
        bus=bus,
        provider=AsyncMock(),
        workspace=workspace,
        model="m",
        cron_service=CronService(workspace / "jobs.json"),
    )
    assert "cron" in with_cron.tools


@pytest.mark.asyncio
async def test_process_direct_no_tools(agent_loop):
    agent_loop.provider.chat.return_value = LLMResponse(content="Hi!")

    result = await agent_loop.process_direct("hello")

    assert result == "Hi!"
    agent_loop.provider.chat.assert_awaited_once()
    session = agent_loop.sessions.get_or_create("cli:direct")
    assert session.messages == [
        {"role": "user", "content": "hello"},
        {"role": "assistant", "content": "Hi!"},
    ]


@pytest.mark.asyncio
async def test_tool_calls_run_in_order_and_are_persisted(agent_loop, workspace):
    (workspace / "a.txt").write_text("A")
    (workspace / "b.txt").write_text("B")
    agent_loop.provider.chat.side_effect = [
        _tool_response(
            ToolCallRequest(id="c1", name="read_file", arguments={"path": "a.txt"}),
            ToolCallRequest(id="c2", name="read_file", arguments={"path": "b.txt"}),
        ),
        LLMResponse(content="Both read."),
    ]

    result = await agent_loop.process_direct("read both", session_key="telegram:7", channel="telegram", chat_id="7")

    assert result == "Both read."
    messages = agent_loop.sessions.get_or_create("telegram:7").messages
    assert [m["role"] for m in messages] == ["user", "assistant", "tool", "tool", "assistant"]
    assert [c["id"] for c in messages[1]["tool_calls"]] == ["c1", "c2"]
    assert messages[1]["tool_calls"][0]["function"] == {"name": "read_file", "arguments": '{"path": "a.txt"}'}
    assert (messages[2]["tool_call_id"], messages[2]["content"]) == ("c1", "A")
    assert (messages[3]["tool_call_id"], messages[3]["content"]) == ("c2", "B")

    # Second LLM call sees the tool results
    second_call_messages = agent_loop.provider.chat.await_args_list[1].kwargs["messages"]
    assert [m["role"] for m in second_call_messages[3:5]] == ["tool", "tool"]


@pytest.mark.asyncio
async def test_tool_errors_become_results(agent_loop):
    agent_loop.provider.chat.side_effect = [
        _tool_response(ToolCallRequest(id="c1", name="no_such_tool", arguments={})),
        LLMResponse(content="Recovered."),
    ]

    assert await agent_loop.process_direct("go") == "Recovered."
    tool_msg = agent_loop.sessions.get_or_create("cli:direct").messages[2]
    assert tool_msg["content"] == "Error: Tool 'no_such_tool' not found"


@pytest.mark.asyncio
async def test_iteration_cap_fallback_is_persisted(agent_loop):
    agent_loop.provider.chat.return_value = _tool_response(
        ToolCallRequest(id="loop", name="list_dir", arguments={"path": "."})
    )

    result = await agent_loop.process_direct("never ends")

    assert result == NO_RESPONSE_FALLBACK
    assert agent_loop.provider.chat.await_count == 3
    messages = agent_loop.sessions.get_or_create("cli:direct").messages
    assert messages[-1] == {"role": "assistant", "content": NO_RESPONSE_FALLBACK}


@pytest.mark.asyncio
async def test_history_is_replayed_on_next_turn(agent_loop):
    agent_loop.provider.chat.return_value = LLMResponse(content="first")
    await agent_loop.process_direct("one")

    agent_loop.provider.chat.return_value = LLMResponse(content="second")
    await agent_loop.process_direct("two")

    sent = agent_loop.provider.chat.await_args.kwargs["messages"]
    assert [m["content"] for m in sent[1:4]] == ["one", "first", "two"]
    assert len(agent_loop.sessions.get_or_create("cli:direct").messages) == 4


@pytest.mark.asyncio
async def test_process_direct_reraises_provider_errors(agent_loop):
    agent_loop.provider.chat.side_effect = RuntimeError("rate limited")
    with pytest.raises(RuntimeError, match="rate limited"):
        await agent_loop.process_direct("hi")


@pytest.mark.asyncio
async def test_message_tool_targets_current_session(agent_loop, bus):
    agent_loop.provider.chat.side_effect = [
        _tool_response(ToolCallRequest(id="m1", name="message", arguments={"content": "progress"})),
        LLMResponse(content="done"),
    ]

    await agent_loop.process_direct("work", session_key="telegram:9", channel="telegram", chat_id="9")

    out = await bus.consume_outbound(timeout=0.1)
    assert (out.channel, out.chat_id, out.content) == ("telegram", "9", "progress")


async def _run_until_outbound(agent_loop, bus):
    task = asyncio.create_task(agent_loop.run())
    try:
        return await bus.consume_outbound(timeout=2.0)
    finally:
        agent_loop.stop()
        await asyncio.wait_for(task, timeout=3.0)


@pytest.mark.asyncio
async def test_run_replies_to_inbound_message(agent_loop, bus):
    agent_loop.provider.chat.return_value = LLMResponse(content="pong")
    await bus.publish_inbound(InboundMessage(channel="telegram", chat_id="5", content="ping", sender_id="u"))

    out = await _run_until_outbound(agent_loop, bus)

    assert (out.channel, out.chat_id, out.content) == ("telegram", "5", "pong")


@pytest.mark.asyncio
async def test_run_apologizes_on_failure(agent_loop, bus):
    agent_loop.provider.chat.side_effect = RuntimeError("boom")
    await bus.publish_inbound(InboundMessage(channel="telegram", chat_id="5", content="ping"))

    out = await _run_until_outbound(agent_loop, bus)

    assert out.channel == "telegram"
    assert out.chat_id == "5"
    assert out.content == "Sorry, I encountered an error: boom"


@pytest.mark.asyncio
async def test_system_message_answers_origin_session(agent_loop, bus):
    agent_loop.provider.chat.return_value = LLMResponse(content="Your report is ready.")
    announcement = Announcement(
        task_id="t1",
        label="report",
        task="write report",
        result="report.md written",
        status="ok",
        origin_channel="telegram",
        origin_chat_id="77",
    )
    await bus.publish_inbound(
        InboundMessage(
            channel=SYSTEM_CHANNEL,
            sender_id="subagent",
            chat_id=announcement.session_key,
            content=announcement.render(),
            announcement=announcement,
        )
    )

    out = await _run_until_outbound(agent_loop, bus)

    assert (out.channel, out.chat_id) == ("telegram", "77")
    session = agent_loop.sessions.get_or_create("telegram:77")
    assert session.messages[0]["content"].startswith("[Subagent 'report' completed successfully]")
    assert agent_loop.sessions.list_sessions()[0]["key"] == "telegram:77"


@pytest.mark.asyncio
async def test_same_session_turns_are_serialized(agent_loop):
    first_started = asyncio.Event()
    release_first = asyncio.Event()
    order: list[str] = []

    async def chat(messages, **kwargs):
        text = messages[-1]["content"]
        order.append(f"start {text}")
        if text == "one":
            first_started.set()
            await release_first.wait()
        order.append(f"end {text}")
        return LLMResponse(content=f"re {text}")

    agent_loop.provider.chat.side_effect = chat

    t1 = asyncio.create_task(agent_loop.process_direct("one"))
    await first_started.wait()
    t2 = asyncio.create_task(agent_loop.process_direct("two"))
    await asyncio.sleep(0.05)
    assert agent_loop._session_locks["cli:direct"][1] == 2
    release_first.set()
    await asyncio.gather(t1, t2)

    assert order == ["start one", "end one", "start two", "end two"]
    contents = [m["content"] for m in agent_loop.sessions.get_or_create("cli:direct").messages]
    assert contents == ["one", "re one", "two", "re two"]
    assert agent_loop._session_locks == {}


@pytest.mark.asyncio
async def test_session_locks_are_released_after_turns(agent_loop):
    agent_loop.provider.chat.return_value = LLMResponse(content="ok")
    await agent_loop.process_direct("hi", session_key="telegram:1")
    await agent_loop.process_direct("hi", session_key="telegram:2")
    assert agent_loop._session_locks == {}

    agent_loop.provider.chat.side_effect = RuntimeError("rate limited")
    with pytest.raises(RuntimeError):
        await agent_loop.process_direct("hi", session_key="telegram:3")
    assert agent_loop._session_locks == {}
