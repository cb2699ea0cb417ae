"""Logging setup for the notepilot command line.

Suggestions are printed on stdout, so the console handler writes to stderr and
stays at WARNING unless debugging is on. The rotating log file keeps INFO (or
DEBUG) records for the whole run.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from ..services.settings import Settings

__all__ = ["setup_logging", "debug_requested", "current_log_path", "LOG_FORMAT"]

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DEFAULT_LOG_DIR = Path.home() / ".notepilot" / "logs"
_LOG_FILE_NAME = "notepilot.log"
_LOG_DIR_ENV = "NOTEPILOT_LOG_DIR"
_MAX_BYTES = 1_000_000
_BACKUP_COUNT = 3
# Backends log every request at DEBUG through these.
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_LOG_PATH: Path | None = None


def debug_requested(settings: "Settings") -> bool:
    """Return True when either debug switch in ``settings`` is on."""

    return bool(settings.debug_logging or settings.debug_mode)


def setup_logging(
    *,
    debug: bool = False,
    log_dir: Path | str | None = None,
    console: bool = True,
    force: bool = False,
) -> Path:
    """Install the file and stderr handlers on the root logger.

    Repeated calls return the existing log path unless ``force`` is set, which
    is how the CLI raises the level once settings turn debugging on.
    """

    global _LOG_PATH
    if _LOG_PATH is not None and not force:
        return _LOG_PATH

    file_level = logging.DEBUG if debug else logging.INFO
    target_dir = Path(log_dir or os.environ.get(_LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / _LOG_FILE_NAME

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8"
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [file_handler]

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG if debug else logging.WARNING)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    logging.basicConfig(level=file_level, handlers=handlers, force=True)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    _LOG_PATH = log_path
    return log_path


def current_log_path() -> Path | None:
    """Return the active log file, or None before :func:`setup_logging` ran."""

    return _LOG_PATH
