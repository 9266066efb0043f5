"""Tests for session persistence."""

import json
from pathlib import Path

import pytest

from relaybot.session.manager import Session, SessionManager


@pytest.fixture
def manager(tmp_path: Path):
    return SessionManager(tmp_path / "sessions")


def _tool_turn(i: int) -> list[dict]:
    return [
        {"role": "user", "content": f"question {i}"},
        {
            "role": "assistant",
            "content": "",
            "tool_calls": [{"id": f"c{i}", "type": "function", "function": {"name": "exec", "arguments": "{}"}}],
        },
        {"role": "tool", "tool_call_id": f"c{i}", "name": "exec", "content": "ok"},
        {"role": "assistant", "content": f"answer {i}"},
    ]


def test_get_history_returns_everything_under_limit():
    session = Session(key="cli:direct")
    session.add_turn_messages(_tool_turn(0))
    assert session.get_history(10) == _tool_turn(0)


def test_get_history_trims_at_user_boundary():
    session = Session(key="cli:direct")
    for i in range(3):
        session.add_turn_messages(_tool_turn(i))

    # 6 messages from the end lands on the tool result of turn 1
    history = session.get_history(6)
    assert history[0] == {"role": "user", "content": "question 2"}
    assert len(history) == 4


def test_add_turn_messages_skips_system():
    session = Session(key="k")
    session.add_turn_messages([{"role": "system", "content": "prompt"}, {"role": "user", "content": "hi"}])
    assert session.messages == [{"role": "user", "content": "hi"}]


def test_clear():
    session = Session(key="k")
    session.add_message("user", "hi")
    session.clear()
    assert session.messages == []


def test_save_and_reload(manager: SessionManager, tmp_path: Path):
    session = manager.get_or_create("telegram:42")
    session.add_turn_messages(_tool_turn(0))
    session.metadata["lang"] = "en"
    manager.save(session)

    path = tmp_path / "sessions" / "telegram_42.jsonl"
    lines = path.read_text().splitlines()
    header = json.loads(lines[0])
    assert header["_type"] == "metadata"
    assert header["_format"] == "rich"
    assert len(lines) == 5

    reloaded = SessionManager(tmp_path / "sessions").get_or_create("telegram:42")
    assert reloaded.messages == _tool_turn(0)
    assert reloaded.metadata == {"lang": "en"}


def test_get_or_create_is_cached(manager: SessionManager):
    assert manager.get_or_create("a:1") is manager.get_or_create("a:1")


def test_legacy_lines_load_as_role_content(tmp_path: Path):
    sessions_dir = tmp_path / "sessions"
    sessions_dir.mkdir()
    (sessions_dir / "cli_direct.jsonl").write_text(
        json.dumps({"_type": "metadata", "created_at": "2024-01-01T00:00:00"})
        + "\n"
        + json.dumps({"role": "user", "content": "hi", "timestamp": "2024-01-01T00:00:01"})
        + "\n"
    )

    session = SessionManager(sessions_dir).get_or_create("cli:direct")
    assert session.messages == [{"role": "user", "content": "hi"}]


def test_delete_and_list(manager: SessionManager):
    manager.save(manager.get_or_create("cli:one"))
    manager.save(manager.get_or_create("telegram:2"))

    keys = {item["key"] for item in manager.list_sessions()}
    assert keys == {"cli:one", "telegram:2"}

    assert manager.delete("cli:one") is True
    assert manager.delete("cli:one") is False
    assert [item["key"] for item in manager.list_sessions()] == ["telegram:2"]
