"""Logging setup for scalper.

Console output goes through rich; every record at INFO and above is also
appended to a rotating log file so errors outlive the terminal session.
"""

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

MAX_BYTES = 5_000_000
BACKUPS = 10

FILE_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def setup_logging(level: int = logging.INFO, log_path: Optional[Path] = None) -> None:
    """Configure the root logger once at startup.

    Args:
        level: Console and root log level.
        log_path: Rotating log file; no file is written when None.
    """
    root = logging.getLogger()
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        handler = RichHandler(rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s", datefmt="%H:%M:%S"))
        root.addHandler(handler)

    if log_path is not None:
        log_path = Path(log_path).expanduser()
        target = os.path.abspath(log_path)
        already = any(
            isinstance(h, logging.handlers.RotatingFileHandler) and h.baseFilename == target
            for h in root.handlers
        )
        if not already:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                filename=log_path,
                maxBytes=MAX_BYTES,
                backupCount=BACKUPS,
                encoding="utf-8",
            )
            file_handler.setLevel(logging.INFO)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
            root.addHandler(file_handler)

    root.setLevel(level)

    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger namespaced under ``scalper``."""
    return logging.getLogger(f"scalper.{name}")
