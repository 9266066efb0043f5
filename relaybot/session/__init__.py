"""Conversation session module."""

from relaybot.session.manager import Session, SessionManager

__all__ = ["Session", "SessionManager"]
