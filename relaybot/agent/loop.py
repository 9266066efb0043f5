"""Agent loop: the core processing engine."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

from loguru import logger

from relaybot.agent.context import ContextBuilder
from relaybot.agent.subagent import SubagentManager
from relaybot.agent.tools.cron import CronTool
from relaybot.agent.tools.filesystem import EditFileTool, ListDirTool, ReadFileTool, WriteFileTool
from relaybot.agent.tools.message import MessageTool
from relaybot.agent.tools.registry import ToolRegistry
from relaybot.agent.tools.shell import ExecTool
from relaybot.agent.tools.spawn import SpawnTool
from relaybot.agent.tools.web import WebFetchTool, WebSearchTool
from relaybot.bus.events import SYSTEM_CHANNEL, InboundMessage, OutboundMessage
from relaybot.bus.queue import MessageBus
from relaybot.cron.service import CronService
from relaybot.providers.base import LLMProvider
from relaybot.session.manager import DEFAULT_MAX_HISTORY, SessionManager

NO_RESPONSE_FALLBACK = "I've completed processing but have no response to give."


class AgentLoop:
    """
    The agent loop is the core processing engine.

    It:
    1. Receives messages from the bus
    2. Builds context with history and memory
    3. Calls the LLM
    4. Executes tool calls
    5. Sends responses back

    Turns for the same session key never overlap; turns for different
    sessions may interleave at await points.
    """

    def __init__(
        self,
        bus: MessageBus,
        provider: LLMProvider,
        workspace: Path,
        model: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.7,
        max_iterations: int = 20,
        max_history_messages: int = DEFAULT_MAX_HISTORY,
        brave_api_key: str | None = None,
        exec_timeout: int = 60,
        restrict_to_workspace: bool = False,
        cron_service: CronService | None = None,
        sessions: SessionManager | None = None,
    ) -> None:
        self.bus = bus
        self.provider = provider
        self.workspace = workspace
        self.model = model or provider.get_default_model()
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.max_iterations = max_iterations
        self.max_history_messages = max_history_messages

        self.context = ContextBuilder(workspace)
        self.sessions = sessions or SessionManager(workspace / "sessions")
        self.tools = ToolRegistry()
        self.subagents = SubagentManager(
            provider=provider,
            workspace=workspace,
            bus=bus,
            model=self.model,
            brave_api_key=brave_api_key,
            exec_timeout=exec_timeout,
            restrict_to_workspace=restrict_to_workspace,
        )

        self._running = False
        # session key -> (lock, turns holding or waiting on it)
        self._session_locks: dict[str, tuple[asyncio.Lock, int]] = {}
        self._register_default_tools(brave_api_key, exec_timeout, restrict_to_workspace, cron_service)

    def _register_default_tools(
        self,
        brave_api_key: str | None,
        exec_timeout: int,
        restrict_to_workspace: bool,
        cron_service: CronService | None,
    ) -> None:
        for tool_cls in (ReadFileTool, WriteFileTool, EditFileTool, ListDirTool):
            self.tools.register(tool_cls(self.workspace, restrict_to_workspace))

        self.tools.register(
            ExecTool(
                working_dir=self.workspace,
                timeout=exec_timeout,
                restrict_to_workspace=restrict_to_workspace,
            )
        )
        self.tools.register(WebSearchTool(api_key=brave_api_key))
        self.tools.register(WebFetchTool())
        self.tools.register(MessageTool(send_callback=self.bus.publish_outbound))
        self.tools.register(SpawnTool(self.subagents))
        if cron_service is not None:
            self.tools.register(CronTool(cron_service))

    async def run(self) -> None:
        """Run the agent loop, processing messages from the bus."""
        self._running = True
        logger.info("Agent loop started")

        while self._running:
            try:
                msg = await self.bus.consume_inbound(timeout=1.0)
            except asyncio.TimeoutError:
                continue

            try:
                response = await self._process_message(msg)
                if response:
                    await self.bus.publish_outbound(response)
            except Exception as e:
                logger.error(f"Error processing message from {msg.session_key}: {e}")
                channel, chat_id = msg.origin
                await self.bus.publish_outbound(
                    OutboundMessage(
                        channel=channel,
                        chat_id=chat_id,
                        content=f"Sorry, I encountered an error: {e}",
                    )
                )

    def stop(self) -> None:
        """Stop the agent loop."""
        self._running = False
        logger.info("Agent loop stopping")

    async def _process_message(self, msg: InboundMessage) -> OutboundMessage | None:
        """
        Process a single inbound message.

        System messages (subagent announcements) are answered in the session
        that spawned the subagent.

        Args:
            msg: The inbound message to process.

        Returns:
            The response message, or None if no response needed.
        """
        channel, chat_id = msg.origin
        if msg.channel == SYSTEM_CHANNEL:
            logger.info(f"Processing system message from {msg.sender_id or 'system'} for {msg.session_key}")
        else:
            logger.info(f"Processing message from {msg.channel}:{msg.sender_id}")

        content = await self._run_turn(
            session_key=msg.session_key,
            content=msg.content,
            channel=channel,
            chat_id=chat_id,
            media=msg.media or None,
        )
        return OutboundMessage(channel=channel, chat_id=chat_id, content=content)

    async def process_direct(
        self,
        content: str,
        session_key: str = "cli:direct",
        channel: str = "cli",
        chat_id: str = "direct",
    ) -> str:
        """
        Process a message directly (for CLI or cron usage).

        Errors propagate to the caller.

        Args:
            content: The message content.
            session_key: Session identifier.
            channel: Channel used for tool context and the session prompt.
            chat_id: Chat used for tool context and the session prompt.

        Returns:
            The agent's response.
        """
        return await self._run_turn(session_key, content, channel, chat_id)

    @asynccontextmanager
    async def _session_lock(self, session_key: str) -> AsyncIterator[None]:
        """Serialize turns of one session; the lock is dropped once no turn uses it."""
        lock, users = self._session_locks.get(session_key, (asyncio.Lock(), 0))
        self._session_locks[session_key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._session_locks[session_key]
            if users <= 1:
                del self._session_locks[session_key]
            else:
                self._session_locks[session_key] = (lock, users - 1)

    async def _run_turn(
        self,
        session_key: str,
        content: str,
        channel: str,
        chat_id: str,
        media: list[str] | None = None,
    ) -> str:
        async with self._session_lock(session_key):
            session = self.sessions.get_or_create(session_key)
            history = session.get_history(self.max_history_messages)

            messages = self.context.build_messages(
                history=history,
                current_message=content,
                media=media,
                channel=channel,
                chat_id=chat_id,
            )
            # Everything after the system prompt and the replayed history is new
            new_start = 1 + len(history)

            final_content = await self._run_agent_loop(messages, channel, chat_id)

            session.add_turn_messages(messages[new_start:])
            self.sessions.save(session)
            return final_content

    async def _run_agent_loop(self, messages: list[dict[str, Any]], channel: str, chat_id: str) -> str:
        """Run the tool-calling loop, appending to ``messages``, and return the final text."""
        final_content: str | None = None

        for _ in range(self.max_iterations):
            response = await self.provider.chat(
                messages=messages,
                tools=self.tools.get_definitions(),
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )

            if not response.has_tool_calls:
                final_content = response.content
                break

            self.context.add_assistant_message(messages, response.content, response.tool_call_dicts())
            for tc in response.tool_calls:
                logger.debug(f"Executing tool: {tc.name}")
                # Re-applied per call: another session's turn may have run since the last await
                self.tools.set_context(channel, chat_id)
                result = await self.tools.execute(tc.name, tc.arguments)
                self.context.add_tool_result(messages, tc.id, tc.name, result)

        if final_content is None:
            final_content = NO_RESPONSE_FALLBACK
        self.context.add_assistant_message(messages, final_content)
        return final_content
