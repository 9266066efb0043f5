"""Context builder for assembling agent prompts."""

from __future__ import annotations

import base64
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from relaybot.agent.memory import MemoryStore
from relaybot.agent.skills import SkillsLoader

IMAGE_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


class ContextBuilder:
    """
    Builds the context (system prompt + messages) for the agent.

    Assembles bootstrap files, memory, skills, the current session and
    conversation history into a coherent prompt for the LLM.
    """

    BOOTSTRAP_FILES = ["AGENTS.md", "SOUL.md", "USER.md", "TOOLS.md", "IDENTITY.md"]

    def __init__(self, workspace: Path) -> None:
        self.workspace = workspace
        self.memory = MemoryStore(workspace)
        self.skills = SkillsLoader(workspace)
        self._file_cache: dict[Path, tuple[float, str]] = {}

    def build_system_prompt(self, channel: str | None = None, chat_id: str | None = None) -> str:
        """
        Build the system prompt from identity, bootstrap files, memory and skills.

        Args:
            channel: Channel of the current session, if any.
            chat_id: Chat of the current session, if any.

        Returns:
            Complete system prompt.
        """
        parts: list[str] = [self._get_identity()]

        bootstrap = self._load_bootstrap_files()
        if bootstrap:
            parts.append(bootstrap)

        memory = self.memory.get_memory_context()
        if memory:
            parts.append(f"# Memory\n\n{memory}")

        always_skills = self.skills.load_skills_for_context(self.skills.get_always_skills())
        if always_skills:
            parts.append(f"# Active Skills\n\n{always_skills}")

        skills_summary = self.skills.build_skills_summary()
        if skills_summary:
            parts.append(
                "# Skills\n\n"
                "The following skills extend your capabilities. "
                "To use a skill, read its SKILL.md file with the read_file tool. "
                "Unavailable skills need their required programs installed first.\n\n"
                f"{skills_summary}"
            )

        prompt = "\n\n---\n\n".join(parts)
        if channel and chat_id:
            prompt += f"\n\n## Current Session\nChannel: {channel}\nChat ID: {chat_id}"
        return prompt

    def _get_identity(self) -> str:
        """Get the core identity section."""
        now = datetime.now().strftime("%Y-%m-%d %H:%M (%A)")
        workspace_path = str(self.workspace.expanduser().resolve())

        return (
            "# relaybot\n\n"
            "You are relaybot, a helpful AI assistant. "
            "You have access to tools that allow you to:\n"
            "- Read, write, and edit files\n"
            "- Execute shell commands\n"
            "- Search the web and fetch web pages\n"
            "- Send messages to users on chat channels\n"
            "- Spawn subagents for complex background tasks\n"
            "- Schedule reminders and recurring tasks\n\n"
            f"## Current Time\n{now}\n\n"
            f"## Workspace\nYour workspace is at: {workspace_path}\n"
            f"- Memory files: {workspace_path}/memory/MEMORY.md\n"
            f"- Daily notes: {workspace_path}/memory/YYYY-MM-DD.md\n"
            f"- Custom skills: {workspace_path}/skills/{{skill-name}}/SKILL.md\n"
            f"- Heartbeat tasks: {workspace_path}/HEARTBEAT.md\n\n"
            "When responding to direct questions or conversations, reply directly with your text response. "
            "Only use the 'message' tool when you need to send a message to a specific chat channel.\n\n"
            "Always be helpful, accurate, and concise. When using tools, explain what you're doing.\n"
            f"When remembering something, write to {workspace_path}/memory/MEMORY.md"
        )

    def _read_cached(self, path: Path) -> str:
        """Read a workspace file, re-reading only when its mtime changes."""
        try:
            mtime = path.stat().st_mtime
        except OSError:
            return ""
        cached_mtime, cached_content = self._file_cache.get(path, (0.0, ""))
        if mtime > cached_mtime:
            try:
                cached_content = path.read_text(encoding="utf-8")
            except OSError as e:
                logger.debug(f"Failed to read {path}: {e}")
                return ""
            self._file_cache[path] = (mtime, cached_content)
        return cached_content

    def _load_bootstrap_files(self) -> str:
        """Load all bootstrap files from the workspace."""
        parts: list[str] = []
        for filename in self.BOOTSTRAP_FILES:
            content = self._read_cached(self.workspace / filename)
            if content:
                parts.append(f"## {filename}\n\n{content}")
        return "\n\n".join(parts)

    def build_messages(
        self,
        history: list[dict[str, Any]],
        current_message: str,
        media: list[str] | None = None,
        channel: str | None = None,
        chat_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Build the complete message list for an LLM call.

        Args:
            history: Previous conversation messages.
            current_message: The new user message.
            media: Optional local file paths attached to the message.
            channel: Channel of the current session.
            chat_id: Chat of the current session.

        Returns:
            List of messages starting with the system prompt.
        """
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": self.build_system_prompt(channel, chat_id)}
        ]
        messages.extend(history)
        messages.append({"role": "user", "content": self._build_user_content(current_message, media)})
        return messages

    def _build_user_content(self, text: str, media: list[str] | None) -> str | list[dict[str, Any]]:
        """Attach image files as base64 data URLs ahead of the text part."""
        if not media:
            return text

        images: list[dict[str, Any]] = []
        for item in media:
            path = Path(item)
            mime = IMAGE_MIME_TYPES.get(path.suffix.lower())
            if not mime or not path.is_file():
                continue
            try:
                data = base64.b64encode(path.read_bytes()).decode("ascii")
            except OSError as e:
                logger.warning(f"Skipping unreadable media {path}: {e}")
                continue
            images.append({"type": "image_url", "image_url": {"url": f"data:{mime};base64,{data}"}})

        if not images:
            return text
        return [*images, {"type": "text", "text": text}]

    def add_tool_result(
        self,
        messages: list[dict[str, Any]],
        tool_call_id: str,
        tool_name: str,
        result: str,
    ) -> list[dict[str, Any]]:
        """
        Add a tool result to the message list.

        Args:
            messages: Current message list.
            tool_call_id: ID of the tool call.
            tool_name: Name of the tool.
            result: Tool execution result.

        Returns:
            Updated message list.
        """
        messages.append(
            {
                "role": "tool",
                "tool_call_id": tool_call_id,
                "name": tool_name,
                "content": result,
            }
        )
        return messages

    def add_assistant_message(
        self,
        messages: list[dict[str, Any]],
        content: str | None,
        tool_calls: list[dict[str, Any]] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Add an assistant message to the message list.

        Args:
            messages: Current message list.
            content: Message content.
            tool_calls: Optional tool calls.

        Returns:
            Updated message list.
        """
        msg: dict[str, Any] = {"role": "assistant", "content": content or ""}
        if tool_calls:
            msg["tool_calls"] = tool_calls
        messages.append(msg)
        return messages
