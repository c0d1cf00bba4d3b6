"""Shared utility functions for the Bank Statement API."""

import logging
from datetime import UTC, datetime
from pathlib import Path

import colorlog

LOGGER_ROOT = "statement-api"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Get a logger with a colorized format for the project.

    Loggers below the ``statement-api`` tree propagate to the tree root, which owns the handlers.
    """
    root = logging.getLogger(LOGGER_ROOT)
    if not root.handlers:
        handler = logging.StreamHandler()
        formatter = colorlog.ColoredFormatter(
            "%(log_color)s" + LOG_FORMAT,
            datefmt="%Y-%m-%d %H:%M:%S",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "bold_red",
            },
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    root.propagate = False
    if name == LOGGER_ROOT:
        return root
    if not name.startswith(LOGGER_ROOT + "."):
        name = f"{LOGGER_ROOT}.{name}"
    return logging.getLogger(name)


def setup_logging(level: str = "INFO", log_file: str | None = None) -> logging.Logger:
    """Set the project log level and add a file handler for persistent logs (not colorized)."""
    logger = get_logger(LOGGER_ROOT)
    logger.setLevel(level)
    if log_file and not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        ensure_dir(Path(log_file).parent)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)
    return logger


def ensure_dir(path: str | Path) -> None:
    """Ensure a directory exists (like mkdir -p)."""
    Path(path).mkdir(parents=True, exist_ok=True)


def utcnow() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def utcnow_iso() -> str:
    """Get the current UTC time as an ISO8601 string."""
    return utcnow().isoformat()


def truncate(text: str, limit: int = 300) -> str:
    """Shorten text for log lines."""
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."
