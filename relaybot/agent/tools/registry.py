"""Tool registry for name-based lookup and execution."""

from typing import Any

from loguru import logger

from relaybot.agent.tools.base import SessionContextAware, Tool


class ToolRegistry:
    """
    Registry of tools available to one agent loop.

    Execution never raises: unknown tools, invalid arguments and exceptions
    from the tool itself all come back as error strings for the LLM.
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def get_definitions(self) -> list[dict[str, Any]]:
        """Get all tool schemas for the LLM."""
        return [tool.to_schema() for tool in self._tools.values()]

    def set_context(self, channel: str, chat_id: str) -> None:
        """Tell every session-aware tool which chat the current turn serves."""
        for tool in self._tools.values():
            if isinstance(tool, SessionContextAware):
                tool.set_context(channel, chat_id)

    async def execute(self, name: str, params: dict[str, Any]) -> str:
        """
        Execute a tool by name.

        Args:
            name: Tool name.
            params: Parsed tool arguments.

        Returns:
            The tool result, or an error string.
        """
        tool = self._tools.get(name)
        if not tool:
            return f"Error: Tool '{name}' not found"
        try:
            errors = tool.validate_params(params)
            if errors:
                return f"Error: Invalid parameters for tool '{name}': " + "; ".join(errors)
            return await tool.execute(**params)
        except Exception as e:
            logger.warning(f"Tool {name} raised: {e}")
            return f"Error executing {name}: {e}"

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
