"""Subagent manager for background task execution."""

from __future__ import annotations

import asyncio
import uuid
from pathlib import Path
from typing import Any

from loguru import logger

from relaybot.agent.tools.filesystem import ListDirTool, ReadFileTool, WriteFileTool
from relaybot.agent.tools.registry import ToolRegistry
from relaybot.agent.tools.shell import ExecTool
from relaybot.agent.tools.web import WebFetchTool, WebSearchTool
from relaybot.bus.events import SYSTEM_CHANNEL, Announcement, InboundMessage
from relaybot.bus.queue import MessageBus
from relaybot.providers.base import LLMProvider

NO_FINAL_RESPONSE = "Task completed but no final response was generated."


class SubagentManager:
    """
    Manages background subagent tasks.

    Each spawned subagent runs its own bounded tool loop with an isolated
    registry (no message, spawn or cron tools) and reports its outcome back
    to the spawning session as a system-channel announcement.
    """

    def __init__(
        self,
        provider: LLMProvider,
        workspace: Path,
        bus: MessageBus,
        model: str | None = None,
        brave_api_key: str | None = None,
        exec_timeout: int = 60,
        restrict_to_workspace: bool = False,
        max_iterations: int = 15,
    ) -> None:
        self.provider = provider
        self.workspace = workspace
        self.bus = bus
        self.model = model or provider.get_default_model()
        self.brave_api_key = brave_api_key
        self.exec_timeout = exec_timeout
        self.restrict_to_workspace = restrict_to_workspace
        self.max_iterations = max_iterations
        self._running_tasks: dict[str, asyncio.Task] = {}

    async def spawn(
        self,
        task: str,
        label: str | None = None,
        origin_channel: str = "cli",
        origin_chat_id: str = "direct",
    ) -> str:
        """
        Spawn a subagent to execute a task in the background.

        Args:
            task: Task description for the subagent.
            label: Optional short display label.
            origin_channel: Channel the result should be announced to.
            origin_chat_id: Chat the result should be announced to.

        Returns:
            Acknowledgement text for the main agent.
        """
        task_id = uuid.uuid4().hex[:8]
        display_label = label or (task[:30] + "..." if len(task) > 30 else task)

        bg_task = asyncio.create_task(
            self._run_subagent(task_id, task, display_label, origin_channel, origin_chat_id),
            name=f"subagent-{task_id}",
        )
        self._running_tasks[task_id] = bg_task
        bg_task.add_done_callback(lambda _: self._running_tasks.pop(task_id, None))

        logger.info(f"Spawned subagent [{task_id}]: {display_label}")
        return f"Subagent [{display_label}] started (id: {task_id}). I'll notify you when it completes."

    def _build_tools(self) -> ToolRegistry:
        tools = ToolRegistry()
        tools.register(ReadFileTool(self.workspace, self.restrict_to_workspace))
        tools.register(WriteFileTool(self.workspace, self.restrict_to_workspace))
        tools.register(ListDirTool(self.workspace, self.restrict_to_workspace))
        tools.register(
            ExecTool(
                working_dir=self.workspace,
                timeout=self.exec_timeout,
                restrict_to_workspace=self.restrict_to_workspace,
            )
        )
        tools.register(WebSearchTool(api_key=self.brave_api_key))
        tools.register(WebFetchTool())
        return tools

    async def _run_subagent(
        self,
        task_id: str,
        task: str,
        label: str,
        origin_channel: str,
        origin_chat_id: str,
    ) -> None:
        logger.info(f"Subagent [{task_id}] starting task: {label}")
        try:
            result = await self._run_loop(task_id, task)
            status = "ok"
            logger.info(f"Subagent [{task_id}] completed successfully")
        except Exception as e:
            result = f"Error: {e}"
            status = "error"
            logger.error(f"Subagent [{task_id}] failed: {e}")

        await self._announce(
            Announcement(
                task_id=task_id,
                label=label,
                task=task,
                result=result,
                status=status,
                origin_channel=origin_channel,
                origin_chat_id=origin_chat_id,
            )
        )

    async def _run_loop(self, task_id: str, task: str) -> str:
        tools = self._build_tools()
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": self._build_prompt(task)},
            {"role": "user", "content": task},
        ]

        for _ in range(self.max_iterations):
            response = await self.provider.chat(
                messages=messages,
                tools=tools.get_definitions(),
                model=self.model,
            )
            if not response.has_tool_calls:
                return response.content or NO_FINAL_RESPONSE

            messages.append(
                {
                    "role": "assistant",
                    "content": response.content or "",
                    "tool_calls": response.tool_call_dicts(),
                }
            )
            for tc in response.tool_calls:
                logger.debug(f"Subagent [{task_id}] executing: {tc.name}")
                result = await tools.execute(tc.name, tc.arguments)
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": tc.id,
                        "name": tc.name,
                        "content": result,
                    }
                )

        return NO_FINAL_RESPONSE

    async def _announce(self, announcement: Announcement) -> None:
        msg = InboundMessage(
            channel=SYSTEM_CHANNEL,
            sender_id="subagent",
            chat_id=announcement.session_key,
            content=announcement.render(),
            announcement=announcement,
        )
        await self.bus.publish_inbound(msg)

    def _build_prompt(self, task: str) -> str:
        workspace_path = str(self.workspace.expanduser().resolve())
        return (
            "# Subagent\n\n"
            "You are a subagent spawned by the main agent to complete a specific task.\n\n"
            f"## Your Task\n{task}\n\n"
            "## Rules\n"
            "1. Stay focused - complete only the assigned task, nothing else\n"
            "2. Your final response will be reported back to the main agent\n"
            "3. Do not initiate conversations or take on side tasks\n"
            "4. Be concise but informative in your findings\n\n"
            "## What You Can Do\n"
            "- Read and write files in the workspace\n"
            "- Execute shell commands\n"
            "- Search the web and fetch web pages\n"
            "- Complete the task thoroughly\n\n"
            "## What You Cannot Do\n"
            "- Send messages directly to users (no message tool available)\n"
            "- Spawn other subagents\n"
            "- Access the main agent's conversation history\n\n"
            f"## Workspace\nYour workspace is at: {workspace_path}\n\n"
            "When you have completed the task, provide a clear summary of your findings or actions."
        )

    @property
    def running_count(self) -> int:
        """Number of subagents still running."""
        return len(self._running_tasks)

    def is_running(self, task_id: str) -> bool:
        task = self._running_tasks.get(task_id)
        return task is not None and not task.done()

    async def cleanup(self) -> None:
        """Cancel all running subagents."""
        for task_id, task in list(self._running_tasks.items()):
            if not task.done():
                task.cancel()
                logger.debug(f"Cancelled subagent [{task_id}]")
        self._running_tasks.clear()
