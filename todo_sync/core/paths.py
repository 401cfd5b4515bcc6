"""
Centralized path management for todo-sync.

Resolves the working directory that holds the settings blob and the
delta cache file.
"""

import os
from pathlib import Path
from typing import Optional
import logging


class PathManager:
    """Manages todo-sync file locations."""

    WORKING_DIR_NAME = ".todo-sync"
    HOME_ENV_VAR = "TODO_SYNC_HOME"

    CONFIG_FILE = "config.json"
    DELTA_CACHE_FILE = "tasks-delta.json"

    def __init__(self, working_dir: Optional[str] = None, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._working_dir: Optional[Path] = Path(working_dir).expanduser() if working_dir else None

    @property
    def working_dir(self) -> Path:
        """Directory holding all todo-sync state."""
        if self._working_dir is None:
            override = os.environ.get(self.HOME_ENV_VAR)
            if override:
                self._working_dir = Path(override).expanduser()
                self.logger.debug("Using working directory from %s: %s", self.HOME_ENV_VAR, self._working_dir)
            else:
                self._working_dir = Path.home() / self.WORKING_DIR_NAME
        return self._working_dir

    @property
    def config_path(self) -> Path:
        return self.working_dir / self.CONFIG_FILE

    @property
    def delta_cache_path(self) -> Path:
        return self.working_dir / self.DELTA_CACHE_FILE

    def ensure_directories(self) -> None:
        self.working_dir.mkdir(parents=True, exist_ok=True)


_path_manager: Optional[PathManager] = None


def get_path_manager() -> PathManager:
    """Return the process-wide path manager."""
    global _path_manager
    if _path_manager is None:
        _path_manager = PathManager()
    return _path_manager


def reset_path_manager() -> None:
    """Forget the cached path manager so environment changes take effect."""
    global _path_manager
    _path_manager = None
