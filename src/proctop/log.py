"""proctop logging configuration.

All modules log through the ``proctop`` logger:
    from proctop.log import logger

Writes to ~/.proctop/proctop.log (rotating, 5 MB max, 3 backups). Nothing
goes to the console, the terminal belongs to the TUI.
"""

from __future__ import annotations

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s.%(funcName)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_logger_lock = threading.Lock()


def default_log_path() -> Path:
    """Return ~/.proctop/proctop.log."""
    return Path.home() / ".proctop" / "proctop.log"


def _make_handler(path: Path) -> logging.Handler:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = RotatingFileHandler(
            str(path),
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=3,
            encoding="utf-8",
        )
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    except OSError:
        # Unwritable home directory: keep logging calls harmless
        handler = logging.NullHandler()
        try:
            sys.stderr.write(f"proctop: WARNING: could not open log file {path}, logging disabled\n")
        except OSError:
            pass
    return handler


def configure(level: str = "INFO", path: Path | None = None) -> logging.Logger:
    """
    (Re)attach the file handler and set the level of the proctop logger.

    Args:
        level: Standard logging level name.
        path: Log file location, defaults to ``default_log_path()``.
    """
    log = logging.getLogger("proctop")
    with _logger_lock:
        for handler in list(log.handlers):
            log.removeHandler(handler)
            handler.close()
        log.setLevel(level.upper())
        log.propagate = False
        log.addHandler(_make_handler(path or default_log_path()))
    return log


logger = logging.getLogger("proctop")
logger.addHandler(logging.NullHandler())
