"""
Logging setup for the modelscout CLI.

Every command writes to a size-rotated file in the log directory; ``--verbose``
also echoes records to stderr. The HTTP client loggers are held at WARNING
unless the CLI runs at DEBUG.
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

LOG_DIR_ENV = "MODELSCOUT_LOG_DIR"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
MAX_LOG_BYTES = 5_000_000
BACKUP_COUNT = 3
NOISY_LOGGERS = ("httpx", "httpcore")

_installed: List[logging.Handler] = []


def log_directory() -> Path:
    override = os.environ.get(LOG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    state_home = os.environ.get("XDG_STATE_HOME")
    base = Path(state_home).expanduser() if state_home else Path.home() / ".local" / "state"
    return base / "modelscout"


def _detach_installed(root: logging.Logger) -> None:
    while _installed:
        handler = _installed.pop()
        root.removeHandler(handler)
        handler.close()


def configure_logging(
    log_name: str,
    *,
    level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    include_console: bool = False,
    max_bytes: int = MAX_LOG_BYTES,
) -> Path:
    """Route root logging to ``<log_dir>/<log_name>.log`` and return that path.

    Calling it again swaps the handlers it installed earlier; handlers added
    by anyone else are left alone.
    """
    directory = Path(log_dir).expanduser() if log_dir else log_directory()
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / f"{log_name}.log"

    root = logging.getLogger()
    _detach_installed(root)
    root.setLevel(level)

    _installed.append(
        RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=BACKUP_COUNT, encoding="utf-8"
        )
    )
    if include_console:
        _installed.append(logging.StreamHandler())

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in _installed:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    library_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    return log_path


__all__ = ["configure_logging", "log_directory", "LOG_FORMAT", "NOISY_LOGGERS"]
