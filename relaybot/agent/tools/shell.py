"""Shell command execution tool with safety constraints."""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Any

from relaybot.agent.tools.base import Tool

# Patterns that are always blocked
_BLOCKED_PATTERNS = [
    r"\brm\s+-[rf]{1,2}\s+/(\s|$)",
    r"\bsudo\b",
    r"\bmkfs\b",
    r"\bdd\b\s+if=",
    r"\bshutdown\b",
    r"\breboot\b",
    r">\s*/dev/sd",
    r":\(\)\s*\{.*\};\s*:",
]

MAX_OUTPUT_LENGTH = 50000
MAX_TIMEOUT = 600


class ExecTool(Tool):
    """Execute shell commands in the workspace."""

    def __init__(
        self,
        working_dir: Path,
        timeout: int = 60,
        restrict_to_workspace: bool = False,
    ) -> None:
        self.working_dir = working_dir.expanduser().resolve()
        self.default_timeout = timeout
        self.restrict_to_workspace = restrict_to_workspace

    @property
    def name(self) -> str:
        return "exec"

    @property
    def description(self) -> str:
        return (
            "Execute a shell command and return its output. "
            "Use for running programs, scripts, git, etc."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {
                    "type": "string",
                    "description": "The shell command to execute.",
                },
                "timeout": {
                    "type": "integer",
                    "description": "Timeout in seconds (default 60).",
                    "minimum": 1,
                },
            },
            "required": ["command"],
        }

    async def execute(self, *, command: str, timeout: int | None = None) -> str:
        timeout = min(timeout or self.default_timeout, MAX_TIMEOUT)

        safety_error = self._check_safety(command)
        if safety_error:
            return safety_error

        proc = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(self.working_dir),
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return f"Error: command timed out after {timeout}s"

        result_parts: list[str] = []

        stdout_text = stdout.decode("utf-8", errors="replace").strip()
        stderr_text = stderr.decode("utf-8", errors="replace").strip()

        if stdout_text:
            result_parts.append(stdout_text)
        if stderr_text:
            result_parts.append(f"[stderr]\n{stderr_text}")
        if proc.returncode:
            result_parts.append(f"[exit_code: {proc.returncode}]")

        result = "\n".join(result_parts) or "(no output)"
        if len(result) > MAX_OUTPUT_LENGTH:
            result = result[:MAX_OUTPUT_LENGTH] + f"\n... (truncated, total {len(result)} chars)"
        return result

    def _check_safety(self, command: str) -> str | None:
        """Check command against safety rules. Returns error string or None if safe."""
        if not command.strip():
            return "Error: empty command"

        for pattern in _BLOCKED_PATTERNS:
            if re.search(pattern, command, re.IGNORECASE):
                return f"Error: command blocked by safety policy (matched: {pattern})"

        if self.restrict_to_workspace:
            if re.search(r"(^|[\s/])\.\.(/|\s|$)", command):
                return "Error: command blocked, path traversal outside workspace"
            for raw in re.findall(r"(?:^|\s)(/[^\s'\";|&]*)", command):
                candidate = Path(raw)
                if candidate != self.working_dir and self.working_dir not in candidate.parents:
                    return f"Error: command blocked, path outside workspace: {raw}"

        return None
