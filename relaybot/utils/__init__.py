"""Utility functions module."""

from relaybot.utils.helpers import ensure_dir, safe_filename

__all__ = ["safe_filename", "ensure_dir"]
