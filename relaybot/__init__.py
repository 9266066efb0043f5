"""relaybot: chat agent orchestrator driven by an async message bus."""

__version__ = "0.1.0"
