"""Tests for ToolRegistry."""

from typing import Any

import pytest

from relaybot.agent.tools.base import Tool
from relaybot.agent.tools.registry import ToolRegistry


class EchoTool(Tool):
    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echo text back."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        }

    async def execute(self, *, text: str) -> str:
        return text


class BoomTool(EchoTool):
    @property
    def name(self) -> str:
        return "boom"

    async def execute(self, *, text: str) -> str:
        raise RuntimeError("kaboom")


class ContextTool(EchoTool):
    def __init__(self) -> None:
        self.context: tuple[str, str] | None = None

    @property
    def name(self) -> str:
        return "ctx"

    def set_context(self, channel: str, chat_id: str) -> None:
        self.context = (channel, chat_id)


@pytest.fixture
def registry():
    reg = ToolRegistry()
    reg.register(EchoTool())
    reg.register(BoomTool())
    return reg


def test_register_and_lookup(registry):
    assert len(registry) == 2
    assert "echo" in registry
    assert registry.has("boom")
    assert registry.get("missing") is None
    assert registry.tool_names == ["echo", "boom"]
    assert [d["function"]["name"] for d in registry.get_definitions()] == ["echo", "boom"]


def test_unregister(registry):
    assert registry.unregister("echo") is True
    assert registry.unregister("echo") is False
    assert "echo" not in registry


@pytest.mark.asyncio
async def test_execute_success(registry):
    assert await registry.execute("echo", {"text": "hi"}) == "hi"


@pytest.mark.asyncio
async def test_execute_unknown_tool(registry):
    assert await registry.execute("nope", {}) == "Error: Tool 'nope' not found"


@pytest.mark.asyncio
async def test_execute_invalid_params(registry):
    result = await registry.execute("echo", {})
    assert result.startswith("Error: Invalid parameters for tool 'echo'")
    assert "missing required text" in result


@pytest.mark.asyncio
async def test_execute_converts_exceptions(registry):
    assert await registry.execute("boom", {"text": "x"}) == "Error executing boom: kaboom"


def test_set_context_reaches_only_aware_tools(registry):
    ctx_tool = ContextTool()
    registry.register(ctx_tool)

    registry.set_context("telegram", "42")

    assert ctx_tool.context == ("telegram", "42")
