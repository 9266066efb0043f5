"""Agent core module."""

from relaybot.agent.context import ContextBuilder
from relaybot.agent.loop import AgentLoop
from relaybot.agent.subagent import SubagentManager

__all__ = ["AgentLoop", "ContextBuilder", "SubagentManager"]
