"""Configuration loader for relaybot."""

import json
from pathlib import Path

from loguru import logger

from relaybot.config.schema import Config
from relaybot.utils.helpers import ensure_dir

DEFAULT_DATA_DIR = Path.home() / ".relaybot"


def get_data_dir() -> Path:
    """Directory holding config, sessions and the cron store."""
    return DEFAULT_DATA_DIR


def get_config_path() -> Path:
    return get_data_dir() / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file and environment variables.

    Priority: environment variables > config file > defaults.

    Args:
        config_path: Optional path to config file. Defaults to ~/.relaybot/config.json.

    Returns:
        Loaded configuration.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            config = Config(**data)
            logger.debug(f"Config loaded from {path}")
            return config
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}, using defaults")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> Path:
    """Write a configuration to disk as JSON."""
    path = config_path or get_config_path()
    ensure_dir(path.parent)
    data = config.model_dump(mode="json")
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    return path


def save_default_config(config_path: Path | None = None) -> Path:
    """
    Save default configuration to file.

    Args:
        config_path: Optional path to save config. Defaults to ~/.relaybot/config.json.

    Returns:
        Path where config was saved.
    """
    path = save_config(Config(), config_path)
    logger.info(f"Default config saved to {path}")
    return path


def ensure_workspace(config: Config) -> Path:
    """
    Ensure workspace directory exists and return its path.

    Args:
        config: Application configuration.

    Returns:
        Resolved workspace path.
    """
    workspace = ensure_dir(config.workspace_path)
    ensure_dir(workspace / "memory")
    return workspace
