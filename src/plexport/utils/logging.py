from __future__ import annotations
import logging
from os import getenv
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
PACKAGE_LOGGER = "plexport"


def log_dir() -> Path:
    override = getenv("PLEXPORT_LOG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".cache" / "plexport"


def setup_logging(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    if any(getattr(h, "_plexport_file", False) for h in logger.handlers):
        return logger

    # Ensure the cache directory exists for the log file
    directory = log_dir()
    directory.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(directory / "plexport.log", encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._plexport_file = True
    logger.addHandler(handler)
    return logger


def enable_console_logging(level: int = logging.INFO) -> logging.Handler:
    """Mirror every plexport log record to stderr.

    The handler goes on the package logger, so module loggers created by
    :func:`setup_logging` reach it through propagation.
    """
    root = logging.getLogger(PACKAGE_LOGGER)
    for handler in root.handlers:
        if getattr(handler, "_plexport_console", False):
            handler.setLevel(level)
            return handler
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._plexport_console = True
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)
    return handler
