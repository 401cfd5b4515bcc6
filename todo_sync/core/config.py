"""
Configuration management for todo-sync.
"""

import logging
from pathlib import Path
from typing import Optional

from .exceptions import ConfigurationError
from .models import SyncSettings
from .paths import get_path_manager
from ..utils.io import safe_write_json


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    return get_path_manager().config_path


def load_config(config_path: Optional[str] = None) -> SyncSettings:
    """
    Load settings from file or return defaults.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        SyncSettings object
    """
    if config_path is None:
        config_path = str(get_default_config_path())
    return SyncSettings.load_from_file(config_path)


def save_config(settings: SyncSettings, config_path: Optional[str] = None) -> None:
    """
    Save settings to file.

    Args:
        settings: SyncSettings object to save
        config_path: Optional path to save to. Uses default if not provided.

    Raises:
        ConfigurationError: if the file could not be written
    """
    if config_path is None:
        manager = get_path_manager()
        manager.ensure_directories()
        config_path = str(manager.config_path)

    if not safe_write_json(config_path, settings.to_dict()):
        raise ConfigurationError(f"Could not save settings to {config_path}")


class SettingsStore:
    """Owns the live settings object and knows how to persist it.

    Passed explicitly to the identity registry and the reconciler. A store
    without a path keeps everything in memory.
    """

    def __init__(self, settings: Optional[SyncSettings] = None, path: Optional[str] = None,
                 logger: Optional[logging.Logger] = None):
        self.settings = settings if settings is not None else SyncSettings()
        self.path = path
        self.logger = logger or logging.getLogger(__name__)
        self.save_count = 0

    @classmethod
    def open(cls, path: Optional[str] = None) -> "SettingsStore":
        resolved = path or str(get_default_config_path())
        return cls(load_config(resolved), resolved)

    def save(self) -> None:
        self.save_count += 1
        if self.path is None:
            return
        save_config(self.settings, self.path)
        self.logger.debug("Saved settings to %s", self.path)
