"""Root logger setup for the billing API server.

Every record goes to stdout and to a log file. The level comes from the
LOG_LEVEL environment variable (INFO when unset or unknown); DEBUG also
shows idempotent replays and SQL.
"""

import logging
import os
import sys
from pathlib import Path

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty library loggers held at WARNING unless DEBUG is requested
NOISY_LOGGERS = ("sqlalchemy.engine", "uvicorn.access")


def get_log_level(name: str | None = None) -> int:
    """Resolve a level name (default: LOG_LEVEL env var) to a logging constant."""
    requested = (name or os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    level = logging.getLevelNamesMapping().get(requested)
    return level if level is not None else logging.INFO


def setup_server_logging(log_file: str = "logs/server.log", level: str | None = None) -> None:
    """Route the root logger to stdout and ``log_file``, replacing prior handlers.

    Args:
        log_file: Log file path; parent directories are created
        level: Level name overriding LOG_LEVEL
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    log_level = get_log_level(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(log_level)

    for handler in (
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(log_path, encoding="utf-8"),
    ):
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    noisy_level = logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)


__all__ = ["get_log_level", "setup_server_logging"]
