"""Logging setup shared by the CLI and host integrations.

Everything logs through ``logging.getLogger(__name__)``; this module only
installs the root handlers. Watcher callbacks run on background threads, so
the thread name is part of every record.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

__all__ = ["setup_logging", "get_logger", "get_log_path", "resolve_level", "reset_logging"]

LOG_FILE_NAME = "quickselect.log"
_DEFAULT_LOG_DIR = Path.home() / ".quickselect" / "logs"
_RECORD_FORMAT = "%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"
_DATE_FORMAT = "%H:%M:%S"
_DEBUG_VALUES = {"1", "true", "yes", "on", "debug"}

_log_path: Path | None = None


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 500_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Route the root logger to ``<log_dir>/quickselect.log`` (rotated) and stderr.

    Calling again is a no-op returning the existing path unless ``force``.
    """

    global _log_path
    if _log_path is not None and not force:
        return _log_path

    directory = Path(log_dir or os.environ.get("QUICKSELECT_LOG_DIR") or _DEFAULT_LOG_DIR).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / LOG_FILE_NAME

    formatter = logging.Formatter(_RECORD_FORMAT, datefmt=_DATE_FORMAT)
    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    # asyncio reports every slow callback at DEBUG
    logging.getLogger("asyncio").setLevel(max(level, logging.WARNING))

    _log_path = path
    return path


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_log_path() -> Path | None:
    """The file installed by the last :func:`setup_logging`, if any."""

    return _log_path


def resolve_level(debug: bool | None = None) -> int:
    """DEBUG when asked for explicitly or through ``QUICKSELECT_DEBUG``."""

    if debug is None:
        debug = os.environ.get("QUICKSELECT_DEBUG", "").strip().lower() in _DEBUG_VALUES
    return logging.DEBUG if debug else logging.INFO


def reset_logging() -> None:
    global _log_path
    _log_path = None
