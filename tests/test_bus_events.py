"""Tests for bus event types."""

from relaybot.bus.events import SYSTEM_CHANNEL, Announcement, InboundMessage


def _announcement(status: str = "ok") -> Announcement:
    return Announcement(
        task_id="abc12345",
        label="research",
        task="Find the release notes",
        result="Found them.",
        status=status,
        origin_channel="telegram",
        origin_chat_id="99",
    )


def test_session_key_for_channel_message():
    msg = InboundMessage(channel="telegram", chat_id="42", content="hi")
    assert msg.session_key == "telegram:42"
    assert msg.origin == ("telegram", "42")


def test_system_message_routes_by_announcement():
    announcement = _announcement()
    msg = InboundMessage(
        channel=SYSTEM_CHANNEL,
        chat_id="ignored",
        content=announcement.render(),
        announcement=announcement,
    )
    assert msg.origin == ("telegram", "99")
    assert msg.session_key == "telegram:99"


def test_system_message_without_announcement_splits_chat_id():
    msg = InboundMessage(channel=SYSTEM_CHANNEL, chat_id="telegram:12:34", content="x")
    assert msg.origin == ("telegram", "12:34")


def test_system_message_without_colon_defaults_to_cli():
    msg = InboundMessage(channel=SYSTEM_CHANNEL, chat_id="direct", content="x")
    assert msg.session_key == "cli:direct"


def test_announcement_render():
    ok = _announcement("ok").render()
    assert ok.startswith("[Subagent 'research' completed successfully]")
    assert "Task: Find the release notes" in ok
    assert "Result:\nFound them." in ok

    failed = _announcement("error").render()
    assert failed.startswith("[Subagent 'research' failed]")


def test_inbound_defaults_are_independent():
    a = InboundMessage(channel="cli", chat_id="1", content="a")
    b = InboundMessage(channel="cli", chat_id="2", content="b")
    assert a.media == [] and a.metadata == {}
    assert a.media is not b.media
