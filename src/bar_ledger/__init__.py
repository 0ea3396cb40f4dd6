"""Bar ledger: remote-synced daily sales with an offline workbook cache.

Importing the package configures the shared ``bar_ledger`` logger. The file
handler keeps DEBUG detail (fetch generations, applied push events, cache
writes) while the console stays at INFO unless :func:`set_console_level`
lowers it.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = Path(os.environ.get("BAR_LEDGER_LOG_DIR", PROJECT_ROOT / ".logs")).expanduser()
LOG_FILE = LOG_DIR / "bar_ledger.log"
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"

_console_handler = logging.StreamHandler(sys.stderr)


def _configure_logging() -> logging.Logger:
    """Attach the rotating file and console handlers exactly once."""

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=1_000_000,
            backupCount=5,
            encoding="utf-8",
        )
    except OSError as exc:
        print(
            f"Warning: unable to initialize log file at '{LOG_FILE}': {exc}",
            file=sys.stderr,
        )
    else:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    _console_handler.setLevel(logging.INFO)
    _console_handler.setFormatter(formatter)
    logger.addHandler(_console_handler)

    return logger


def set_console_level(level: int) -> None:
    """Change how much of the log reaches stderr (the file is unaffected)."""

    _console_handler.setLevel(level)


log = _configure_logging()
log.debug("Logger initialized for the 'bar_ledger' package (file: %s)", LOG_FILE)
