"""Heartbeat service module."""

from relaybot.heartbeat.service import HEARTBEAT_PROMPT, HeartbeatService, is_heartbeat_empty

__all__ = ["HeartbeatService", "HEARTBEAT_PROMPT", "is_heartbeat_empty"]
