"""Tests for ContextBuilder."""

import base64
import os
from pathlib import Path

import pytest
from freezegun import freeze_time

from relaybot.agent.context import ContextBuilder


@pytest.fixture
def workspace(tmp_path: Path):
    """Temporary workspace with bootstrap files."""
    for f in ContextBuilder.BOOTSTRAP_FILES:
        (tmp_path / f).write_text(f"Dummy content for {f}", encoding="utf-8")
    return tmp_path


def test_build_system_prompt(workspace):
    prompt = ContextBuilder(workspace).build_system_prompt()

    assert prompt.startswith("# relaybot")
    for f in ContextBuilder.BOOTSTRAP_FILES:
        assert f"## {f}\n\nDummy content for {f}" in prompt
    assert "## Current Session" not in prompt


def test_system_prompt_includes_memory_and_session(workspace):
    (workspace / "memory").mkdir()
    (workspace / "memory" / "MEMORY.md").write_text("User likes tea.", encoding="utf-8")

    prompt = ContextBuilder(workspace).build_system_prompt("telegram", "42")

    assert "# Memory\n\n## Long-term Memory\n\nUser likes tea." in prompt
    assert prompt.endswith("## Current Session\nChannel: telegram\nChat ID: 42")


@freeze_time("2024-03-05 10:00:00")
def test_system_prompt_includes_daily_notes_and_skills(workspace):
    (workspace / "memory").mkdir()
    (workspace / "memory" / "2024-03-05.md").write_text("# 2024-03-05\n\nCall the plumber.", encoding="utf-8")
    (workspace / "memory" / "2024-03-04.md").write_text("Old note.", encoding="utf-8")
    for name, frontmatter, body in [
        ("style", "description: House style\nalways: true", "Write in short sentences."),
        ("weather", "description: Look up forecasts", "Use wttr.in."),
    ]:
        skill_dir = workspace / "skills" / name
        skill_dir.mkdir(parents=True)
        (skill_dir / "SKILL.md").write_text(f"---\n{frontmatter}\n---\n{body}\n", encoding="utf-8")

    prompt = ContextBuilder(workspace).build_system_prompt()

    assert "## Today's Notes\n\n# 2024-03-05\n\nCall the plumber." in prompt
    assert "Old note." not in prompt
    assert "# Active Skills\n\n### Skill: style\n\nWrite in short sentences." in prompt
    assert "- **weather**: Look up forecasts" in prompt
    assert "- **style**" not in prompt


def test_bootstrap_files_reload_when_modified(workspace):
    ctx = ContextBuilder(workspace)
    assert "Dummy content for SOUL.md" in ctx.build_system_prompt()

    soul = workspace / "SOUL.md"
    soul.write_text("Changed soul", encoding="utf-8")
    stat = soul.stat()
    os.utime(soul, (stat.st_atime, stat.st_mtime + 10))

    prompt = ctx.build_system_prompt()
    assert "Changed soul" in prompt
    assert "Dummy content for SOUL.md" not in prompt


def test_build_messages(workspace):
    history = [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}]
    messages = ContextBuilder(workspace).build_messages(history, "next question", channel="cli", chat_id="direct")

    assert len(messages) == 4
    assert messages[0]["role"] == "system"
    assert messages[1:3] == history
    assert messages[3] == {"role": "user", "content": "next question"}


def test_build_messages_with_image_media(workspace):
    image = workspace / "photo.png"
    image.write_bytes(b"\x89PNG fake")
    ignored = workspace / "notes.txt"
    ignored.write_text("not an image")

    messages = ContextBuilder(workspace).build_messages(
        [], "what is this?", media=[str(image), str(ignored), str(workspace / "gone.jpg")]
    )

    content = messages[-1]["content"]
    assert isinstance(content, list)
    assert content[0] == {
        "type": "image_url",
        "image_url": {"url": "data:image/png;base64," + base64.b64encode(b"\x89PNG fake").decode()},
    }
    assert content[-1] == {"type": "text", "text": "what is this?"}
    assert len(content) == 2


def test_media_without_images_stays_text(workspace):
    messages = ContextBuilder(workspace).build_messages([], "hi", media=[str(workspace / "missing.png")])
    assert messages[-1]["content"] == "hi"


def test_add_assistant_and_tool_messages(workspace):
    ctx = ContextBuilder(workspace)
    messages: list = []
    calls = [{"id": "c1", "type": "function", "function": {"name": "exec", "arguments": "{}"}}]

    ctx.add_assistant_message(messages, None, calls)
    ctx.add_tool_result(messages, "c1", "exec", "ok")
    ctx.add_assistant_message(messages, "done")

    assert messages == [
        {"role": "assistant", "content": "", "tool_calls": calls},
        {"role": "tool", "tool_call_id": "c1", "name": "exec", "content": "ok"},
        {"role": "assistant", "content": "done"},
    ]
