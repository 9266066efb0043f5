"""Heartbeat service for proactive agent wake-up."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Awaitable, Callable

from loguru import logger

DEFAULT_HEARTBEAT_INTERVAL_S = 30 * 60

HEARTBEAT_OK_TOKEN = "HEARTBEAT_OK"

HEARTBEAT_PROMPT = (
    "Read HEARTBEAT.md in your workspace (if it exists).\n"
    "Follow any instructions or tasks listed there.\n"
    f"If nothing needs attention, reply with just: {HEARTBEAT_OK_TOKEN}"
)

_SKIP_LINES = {"- [ ]", "* [ ]", "- [x]", "* [x]"}

HeartbeatCallback = Callable[[str], Awaitable[str]]


def is_heartbeat_empty(content: str | None) -> bool:
    """Return True when HEARTBEAT.md has nothing but headings, comments or blank checkboxes."""
    if not content:
        return True
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or line.startswith("<!--") or line in _SKIP_LINES:
            continue
        return False
    return True


class HeartbeatService:
    """
    Periodically checks for tasks and wakes the agent proactively.

    Reads a HEARTBEAT.md file from the workspace. If it contains actionable
    lines, sends the heartbeat prompt to the agent through ``on_heartbeat``.
    """

    def __init__(
        self,
        workspace: Path,
        on_heartbeat: HeartbeatCallback | None = None,
        interval_s: int = DEFAULT_HEARTBEAT_INTERVAL_S,
        enabled: bool = True,
    ) -> None:
        self.workspace = workspace
        self.on_heartbeat = on_heartbeat
        self.interval_s = interval_s
        self.enabled = enabled
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def heartbeat_file(self) -> Path:
        return self.workspace / "HEARTBEAT.md"

    async def start(self) -> None:
        """Start the periodic check in the background."""
        if not self.enabled:
            logger.info("Heartbeat disabled")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Heartbeat started (every {self.interval_s}s)")

    def stop(self) -> None:
        """Stop the heartbeat service."""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None
        logger.info("Heartbeat service stopped")

    async def _run_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval_s)
            if not self._running:
                break
            await self._tick()

    def _read_heartbeat(self) -> str | None:
        try:
            return self.heartbeat_file.read_text(encoding="utf-8")
        except OSError:
            return None

    async def _tick(self) -> None:
        if is_heartbeat_empty(self._read_heartbeat()):
            return
        if self.on_heartbeat is None:
            return

        logger.info("Heartbeat: checking for tasks...")
        try:
            response = await self.on_heartbeat(HEARTBEAT_PROMPT)
        except Exception as e:
            logger.error(f"Heartbeat execution failed: {e}")
            return

        normalized = (response or "").upper().replace("_", "")
        if HEARTBEAT_OK_TOKEN.replace("_", "") in normalized:
            logger.info("Heartbeat: OK (no action needed)")
        else:
            logger.info("Heartbeat: completed task")

    async def trigger_now(self) -> str | None:
        """Run the heartbeat prompt immediately, regardless of HEARTBEAT.md contents."""
        if self.on_heartbeat is None:
            return None
        return await self.on_heartbeat(HEARTBEAT_PROMPT)
