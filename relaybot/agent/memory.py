"""Persistent memory store for the agent."""

import re
from datetime import date, datetime, timedelta
from pathlib import Path

from loguru import logger

_DAILY_NOTE = re.compile(r"^\d{4}-\d{2}-\d{2}\.md$")


class MemoryStore:
    """
    File-based persistent memory.

    Manages long-term memory (``memory/MEMORY.md``) and daily notes
    (``memory/YYYY-MM-DD.md``). The agent edits both with its file tools;
    the store only reads them back into the prompt.
    """

    def __init__(self, workspace: Path) -> None:
        self.workspace = workspace
        self.memory_dir = workspace / "memory"

    @property
    def memory_file(self) -> Path:
        """Path to long-term memory file."""
        return self.memory_dir / "MEMORY.md"

    def daily_file(self, day: date) -> Path:
        return self.memory_dir / f"{day.isoformat()}.md"

    @property
    def today_file(self) -> Path:
        """Path to today's daily note."""
        return self.daily_file(datetime.now().date())

    @staticmethod
    def _read(path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""
        except OSError as e:
            logger.warning(f"Failed to read memory file {path}: {e}")
            return ""

    def read_long_term(self) -> str:
        return self._read(self.memory_file)

    def write_long_term(self, content: str) -> None:
        """Replace the long-term memory."""
        self.memory_dir.mkdir(parents=True, exist_ok=True)
        self.memory_file.write_text(content, encoding="utf-8")
        logger.debug("Long-term memory updated")

    def read_today(self) -> str:
        return self._read(self.today_file)

    def append_today(self, content: str) -> None:
        """
        Append content to today's daily note.

        A new note starts with a ``# YYYY-MM-DD`` heading.
        """
        self.memory_dir.mkdir(parents=True, exist_ok=True)
        path = self.today_file
        if path.exists():
            with open(path, "a", encoding="utf-8") as fp:
                fp.write(f"\n{content}")
        else:
            path.write_text(f"# {datetime.now().date().isoformat()}\n\n{content}", encoding="utf-8")
        logger.debug("Daily note updated")

    def get_recent_memories(self, days: int = 7) -> str:
        """Daily notes of the last ``days`` days, newest first."""
        today = datetime.now().date()
        notes = [self._read(self.daily_file(today - timedelta(days=offset))) for offset in range(days)]
        return "\n\n---\n\n".join(note for note in notes if note)

    def list_memory_files(self) -> list[Path]:
        """Daily note files, newest first."""
        if not self.memory_dir.is_dir():
            return []
        files = [path for path in self.memory_dir.iterdir() if _DAILY_NOTE.match(path.name)]
        return sorted(files, key=lambda path: path.name, reverse=True)

    def get_memory_context(self) -> str:
        """
        Get combined memory context for the system prompt.

        Returns:
            Long-term memory and today's notes, or an empty string.
        """
        parts: list[str] = []

        long_term = self.read_long_term().strip()
        if long_term:
            parts.append(f"## Long-term Memory\n\n{long_term}")

        today = self.read_today().strip()
        if today:
            parts.append(f"## Today's Notes\n\n{today}")

        return "\n\n".join(parts)
