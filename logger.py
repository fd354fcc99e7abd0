"""Logging configuration for the RemindAI dispatch service."""

import logging
import sys
from datetime import datetime

from config import LOG_DIR, LOG_LEVEL

# httpx logs full request URLs at INFO, which includes the Gemini API key
QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "apscheduler.executors.default": logging.WARNING,
    "apscheduler.scheduler": logging.INFO,
}


def setup_logging(level: str = LOG_LEVEL) -> logging.Logger:
    """Set up the service logger with a dated file log and an optional console.

    Args:
        level: Level name for the service logger (e.g. "INFO", "DEBUG")

    Returns:
        The configured "remindai" logger
    """
    logger = logging.getLogger("remindai")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False

    # Clear any existing handlers
    logger.handlers.clear()

    # One file per day, shared by the dispatcher and any inbound adapter
    log_file = LOG_DIR / f"dispatch-{datetime.now().strftime('%Y-%m-%d')}.log"
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    logger.addHandler(file_handler)

    # Console handler (only if attached to a terminal)
    if sys.stdout is not None and sys.stdout.isatty():
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(message)s",
            datefmt="%H:%M:%S"
        ))
        logger.addHandler(console_handler)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    return logger


# Global logger instance
logger = setup_logging()
