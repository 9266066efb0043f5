"""JSONL-backed conversation sessions."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from relaybot.utils.helpers import safe_filename

DEFAULT_MAX_HISTORY = 200


@dataclass
class Session:
    """
    Conversation history for one session key.

    ``messages`` holds full chat messages (user, assistant with tool calls,
    tool results) in the order they were produced. The system prompt is
    never stored; it is rebuilt on every turn.
    """

    key: str
    messages: list[dict[str, Any]] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    def add_message(self, role: str, content: str, **kwargs: Any) -> None:
        self.messages.append({"role": role, "content": content, **kwargs})
        self.updated_at = datetime.now()

    def add_turn_messages(self, messages: list[dict[str, Any]]) -> None:
        """Append the messages produced by one turn, skipping system messages."""
        self.messages.extend(m for m in messages if m.get("role") != "system")
        self.updated_at = datetime.now()

    def get_history(self, max_messages: int = DEFAULT_MAX_HISTORY) -> list[dict[str, Any]]:
        """
        Get the most recent messages, at most ``max_messages``.

        The slice always starts on a user message so an assistant tool call
        is never separated from its tool results.
        """
        if len(self.messages) <= max_messages:
            return list(self.messages)
        start = len(self.messages) - max_messages
        while start < len(self.messages) and self.messages[start].get("role") != "user":
            start += 1
        return self.messages[start:]

    def clear(self) -> None:
        self.messages = []
        self.updated_at = datetime.now()


class SessionManager:
    """
    Persistent session manager.

    Each session is stored as a JSONL file keyed by ``channel:chat_id``: a
    metadata line followed by one line per message. Sessions are cached in
    memory for the lifetime of the manager.
    """

    def __init__(self, sessions_dir: Path) -> None:
        self.sessions_dir = sessions_dir.expanduser()
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self._cache: dict[str, Session] = {}

    def _session_path(self, key: str) -> Path:
        return self.sessions_dir / f"{safe_filename(key.replace(':', '_'))}.jsonl"

    def get_or_create(self, key: str) -> Session:
        """Get a cached or stored session, creating an empty one if none exists."""
        if key in self._cache:
            return self._cache[key]
        session = self._load(key) or Session(key=key)
        self._cache[key] = session
        return session

    def save(self, session: Session) -> None:
        """Write the whole session to disk."""
        path = self._session_path(session.key)
        with open(path, "w", encoding="utf-8") as fp:
            metadata = {
                "_type": "metadata",
                "_format": "rich",
                "key": session.key,
                "created_at": session.created_at.isoformat(),
                "updated_at": session.updated_at.isoformat(),
                "metadata": session.metadata,
            }
            fp.write(json.dumps(metadata, ensure_ascii=False) + "\n")
            for msg in session.messages:
                fp.write(json.dumps(msg, ensure_ascii=False) + "\n")
        self._cache[session.key] = session

    def delete(self, key: str) -> bool:
        """Delete a session from the cache and disk."""
        self._cache.pop(key, None)
        path = self._session_path(key)
        if path.exists():
            path.unlink()
            logger.debug(f"Session deleted: {key}")
            return True
        return False

    def list_sessions(self) -> list[dict[str, Any]]:
        """List stored sessions, most recently updated first."""
        results: list[dict[str, Any]] = []
        for path in self.sessions_dir.glob("*.jsonl"):
            try:
                with open(path, encoding="utf-8") as fp:
                    first = json.loads(fp.readline() or "{}")
            except (OSError, json.JSONDecodeError):
                continue
            if first.get("_type") != "metadata":
                continue
            results.append(
                {
                    "key": first.get("key") or path.stem.replace("_", ":", 1),
                    "created_at": first.get("created_at"),
                    "updated_at": first.get("updated_at"),
                    "path": str(path),
                }
            )
        return sorted(results, key=lambda item: item.get("updated_at") or "", reverse=True)

    def _load(self, key: str) -> Session | None:
        path = self._session_path(key)
        if not path.exists():
            return None

        messages: list[dict[str, Any]] = []
        created_at = datetime.now()
        updated_at = created_at
        metadata: dict[str, Any] = {}
        rich = False
        try:
            with open(path, encoding="utf-8") as fp:
                for line in fp:
                    line = line.strip()
                    if not line:
                        continue
                    entry = json.loads(line)
                    if entry.get("_type") == "metadata":
                        rich = entry.get("_format") == "rich"
                        metadata = entry.get("metadata") or {}
                        if entry.get("created_at"):
                            created_at = datetime.fromisoformat(entry["created_at"])
                        if entry.get("updated_at"):
                            updated_at = datetime.fromisoformat(entry["updated_at"])
                    elif rich:
                        messages.append(entry)
                    else:
                        # Older files hold plain {role, content, timestamp} lines
                        messages.append({"role": entry.get("role"), "content": entry.get("content") or ""})
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load session {key}: {e}")
            return None

        return Session(
            key=key,
            messages=messages,
            created_at=created_at,
            updated_at=updated_at,
            metadata=metadata,
        )
