"""Logging configuration for the bridge."""

import logging
import os
import sys

LOGGER_NAME = "msgbridge"


def setup_logging(level: str | None = None) -> logging.Logger:
    """Set up logging with proper handlers and formatters."""
    logger = logging.getLogger(LOGGER_NAME)
    level_name = (level or os.getenv("MSGBRIDGE_LOG_LEVEL") or "INFO").upper()
    log_level = getattr(logging, level_name, logging.INFO)
    logger.setLevel(log_level)

    # Clear any existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Propagate so pytest's caplog still sees records
    logger.propagate = True

    return logger


# Global logger instance
logger = setup_logging()
