"""
Logging configuration for cfmta.

Console output carries pass progress and operation logs; the optional
log file additionally keeps DEBUG detail such as every poll and request.
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

CONSOLE_FORMAT = '%(levelname)s: %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# chatty third-party loggers, kept at WARNING unless debugging
NOISY_LOGGERS = ("urllib3",)


def setup_logging(log_level: str = "INFO", log_file: bool = True) -> logging.Logger:
    """
    Configure the root logger for a deployment run.

    Args:
        log_level: Root level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Also write a timestamped DEBUG log under get_log_dir()

    Returns:
        The root logger
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root.addHandler(console)

    if log_file:
        path = _new_log_file()
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root.addHandler(handler)
        root.info(f"Writing log to {path}")

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)

    return root


def setup_logging_from_settings(settings) -> logging.Logger:
    """Configure logging from the "logging" section of a Settings object."""
    return setup_logging(
        log_level=settings.get("logging.level", "INFO"),
        log_file=bool(settings.get("logging.file", True)),
    )


def get_log_dir() -> Path:
    """Platform cache directory for cfmta log files."""
    if os.name == 'nt':
        base = os.environ.get('LOCALAPPDATA', os.path.expanduser('~'))
    else:
        base = os.environ.get('XDG_CACHE_HOME', os.path.expanduser('~/.cache'))
    return Path(base) / 'cfmta' / 'logs'


def _new_log_file() -> Path:
    log_dir = get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / f"cfmta_{datetime.now():%Y%m%d_%H%M%S}.log"
