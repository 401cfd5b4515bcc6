"""
Safe I/O operations with atomic writes and cooperative file locking.

The settings blob, the delta cache and vault documents all go through
these helpers so a crash mid-write leaves the previous file intact.
"""

import contextlib
import errno
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

try:  # fcntl is only available on POSIX platforms
    import fcntl  # type: ignore
except ImportError:  # pragma: no cover - Windows has no advisory locks
    fcntl = None  # type: ignore


DEFAULT_LOCK_TIMEOUT = 8.0  # seconds
LOCK_SLEEP_INTERVAL = 0.05  # seconds

logger = logging.getLogger(__name__)


def _lock_file_path(path: Path) -> Path:
    """Return the companion lock file path for the target file."""
    return path.parent / f".{path.name}.lock"


@contextlib.contextmanager
def _file_lock(target_path: Path, exclusive: bool, timeout: float = DEFAULT_LOCK_TIMEOUT) -> Iterator[None]:
    """Acquire a cooperative file lock around the target path.

    Uses POSIX advisory locking via fcntl when available; otherwise acts as a no-op.
    """
    if fcntl is None:
        yield
        return

    lock_path = _lock_file_path(target_path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)

    lock_type = fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH
    deadline = time.monotonic() + timeout

    with open(lock_path, "a") as lock_file:
        while True:
            try:
                fcntl.flock(lock_file.fileno(), lock_type | fcntl.LOCK_NB)
                break
            except OSError as exc:  # pragma: no cover - depends on timing
                if exc.errno not in (errno.EACCES, errno.EAGAIN):
                    raise
                if time.monotonic() >= deadline:
                    raise TimeoutError(f"Timed out waiting for lock on {target_path}") from exc
                time.sleep(LOCK_SLEEP_INTERVAL)

        try:
            yield
        finally:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)


def safe_read_json(file_path: str, default: Optional[Dict] = None, *, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> Dict[str, Any]:
    """
    Safely read JSON from file with error handling.

    Args:
        file_path: Path to JSON file
        default: Default value to return if file doesn't exist or is invalid

    Returns:
        Parsed JSON data or default value
    """
    if default is None:
        default = {}

    path_obj = Path(os.path.expanduser(file_path))
    if not path_obj.exists():
        return default

    try:
        with _file_lock(path_obj, exclusive=False, timeout=lock_timeout):
            with path_obj.open('r', encoding='utf-8') as handle:
                data = json.load(handle)
    except TimeoutError as exc:
        logger.warning("Timed out waiting to read %s: %s", file_path, exc)
        return default
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as exc:
        logger.warning("Failed to read %s: %s", file_path, exc)
        return default

    if not isinstance(data, dict):
        logger.warning("Ignoring %s: top-level JSON value is not an object", file_path)
        return default
    return data


def _atomic_replace(path_obj: Path, write, suffix: str, lock_timeout: float) -> bool:
    tmp_path = None
    try:
        path_obj.parent.mkdir(parents=True, exist_ok=True)
        with _file_lock(path_obj, exclusive=True, timeout=lock_timeout):
            with tempfile.NamedTemporaryFile(
                mode='w',
                dir=str(path_obj.parent),
                prefix='.tmp_',
                suffix=suffix,
                delete=False,
                encoding='utf-8'
            ) as tmp_file:
                tmp_path = Path(tmp_file.name)
                write(tmp_file)

            os.replace(str(tmp_path), str(path_obj))
        return True

    except (TimeoutError, OSError, TypeError, ValueError) as exc:
        logger.error("Error writing to %s: %s", path_obj, exc)
    finally:
        if tmp_path and tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass

    return False


def safe_write_json(file_path: str, data: Dict[str, Any], indent: int = 2, *, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> bool:
    """
    Safely write JSON to file with atomic write.

    Args:
        file_path: Path to write to
        data: Data to write
        indent: JSON indentation level

    Returns:
        True if successful, False otherwise
    """
    path_obj = Path(os.path.expanduser(file_path))
    return _atomic_replace(
        path_obj,
        lambda handle: json.dump(data, handle, indent=indent, ensure_ascii=False, sort_keys=True),
        '.json',
        lock_timeout,
    )


def atomic_write(file_path: str, content: str, *, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> bool:
    """
    Atomically write content to file.

    Args:
        file_path: Path to write to
        content: Content to write

    Returns:
        True if successful, False otherwise
    """
    path_obj = Path(os.path.expanduser(file_path))
    return _atomic_replace(path_obj, lambda handle: handle.write(content), '', lock_timeout)


def remove_file(file_path: str) -> bool:
    """Delete a file and its lock companion; a missing file is not an error."""
    path_obj = Path(os.path.expanduser(file_path))
    try:
        path_obj.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.error("Error removing %s: %s", file_path, exc)
        return False

    try:
        _lock_file_path(path_obj).unlink()
    except OSError:
        pass
    return True
