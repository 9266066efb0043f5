"""Filesystem tools: read, write, edit and list files."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from loguru import logger

from relaybot.agent.tools.base import Tool

# Files that should never be read or written
_SENSITIVE_PATTERNS = {
    ".env",
    ".env.local",
    ".env.production",
    "id_rsa",
    "id_ed25519",
    ".pem",
    ".key",
    "credentials",
}

MAX_READ_LENGTH = 50000


class _WorkspaceTool(Tool):
    """Shared path handling for filesystem tools."""

    def __init__(self, workspace: Path, restrict_to_workspace: bool = False) -> None:
        self._workspace = workspace.expanduser().resolve()
        self._restrict = restrict_to_workspace

    def _resolve_path(self, path: str) -> Path | str:
        """Resolve a path relative to the workspace. Returns an error string if denied."""
        try:
            p = Path(path).expanduser()
            if not p.is_absolute():
                p = self._workspace / p
            p = p.resolve()
        except Exception as e:
            return f"Error: invalid path: {e}"

        if self._restrict and p != self._workspace and self._workspace not in p.parents:
            return f"Error: path is outside workspace: {path}"

        for pattern in _SENSITIVE_PATTERNS:
            if p.name == pattern or p.name.endswith(pattern):
                return f"Error: access denied to sensitive file: {p.name}"

        return p


class ReadFileTool(_WorkspaceTool):
    """Read a file's contents."""

    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return "Read the contents of a text file. Relative paths resolve against the workspace."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path to the file to read."},
            },
            "required": ["path"],
        }

    async def execute(self, *, path: str) -> str:
        resolved = self._resolve_path(path)
        if isinstance(resolved, str):
            return resolved

        if not resolved.exists():
            return f"Error: file not found: {path}"
        if not resolved.is_file():
            return f"Error: not a file: {path}"

        try:
            content = resolved.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return f"Error: cannot read binary file: {path}"

        if len(content) > MAX_READ_LENGTH:
            return content[:MAX_READ_LENGTH] + f"\n\n... (truncated, total {len(content)} characters)"
        return content


class WriteFileTool(_WorkspaceTool):
    """Write content to a file, creating parent directories."""

    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return (
            "Write content to a file. Creates the file if it doesn't exist, "
            "overwrites if it does. Parent directories are created automatically."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path to the file to write."},
                "content": {"type": "string", "description": "Content to write to the file."},
            },
            "required": ["path", "content"],
        }

    async def execute(self, *, path: str, content: str) -> str:
        resolved = self._resolve_path(path)
        if isinstance(resolved, str):
            return resolved

        resolved.parent.mkdir(parents=True, exist_ok=True)
        resolved.write_text(content, encoding="utf-8")
        logger.debug(f"WriteFileTool: wrote {len(content)} chars to {resolved}")
        return f"Successfully wrote {len(content)} characters to {path}"


class EditFileTool(_WorkspaceTool):
    """Replace one exact text fragment in a file."""

    @property
    def name(self) -> str:
        return "edit_file"

    @property
    def description(self) -> str:
        return "Edit a file by replacing old_text with new_text. old_text must match exactly."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path to the file to edit."},
                "old_text": {"type": "string", "description": "Exact text to find."},
                "new_text": {"type": "string", "description": "Replacement text."},
            },
            "required": ["path", "old_text", "new_text"],
        }

    async def execute(self, *, path: str, old_text: str, new_text: str) -> str:
        resolved = self._resolve_path(path)
        if isinstance(resolved, str):
            return resolved
        if not resolved.is_file():
            return f"Error: file not found: {path}"

        content = resolved.read_text(encoding="utf-8")
        if old_text not in content:
            return f"Error: old_text not found in {path}"

        resolved.write_text(content.replace(old_text, new_text, 1), encoding="utf-8")
        return f"Successfully edited {path}"


class ListDirTool(_WorkspaceTool):
    """List the entries of a directory."""

    @property
    def name(self) -> str:
        return "list_dir"

    @property
    def description(self) -> str:
        return "List the contents of a directory."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Directory path."},
            },
            "required": ["path"],
        }

    async def execute(self, *, path: str) -> str:
        resolved = self._resolve_path(path)
        if isinstance(resolved, str):
            return resolved
        if not resolved.is_dir():
            return f"Error: directory not found: {path}"

        lines = []
        for entry in sorted(resolved.iterdir(), key=lambda p: p.name):
            prefix = "[dir] " if entry.is_dir() else "[file] "
            lines.append(prefix + entry.name)
        return "\n".join(lines) if lines else f"Directory {path} is empty"
