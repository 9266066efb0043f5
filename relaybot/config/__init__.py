"""Configuration module."""

from relaybot.config.loader import (
    ensure_workspace,
    get_config_path,
    get_data_dir,
    load_config,
    save_config,
    save_default_config,
)
from relaybot.config.schema import Config

__all__ = [
    "Config",
    "load_config",
    "save_config",
    "save_default_config",
    "ensure_workspace",
    "get_config_path",
    "get_data_dir",
]
