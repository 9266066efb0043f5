"""Agent tools module."""

from relaybot.agent.tools.base import SessionContextAware, Tool
from relaybot.agent.tools.registry import ToolRegistry

__all__ = ["SessionContextAware", "Tool", "ToolRegistry"]
