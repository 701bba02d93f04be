"""
Logging configuration for the workflow engine.

All components log under the ``spindle`` logger hierarchy so a single
handler setup covers executors, context compression and collaborators.
"""

import logging
import os
import sys
from typing import Optional, Tuple

ROOT_LOGGER = "spindle"

LOG_FORMAT = "%(asctime)s [%(levelname)8s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    level: str = "INFO",
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Configure structured logging for the engine.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for logging (defaults to stderr only)

    Returns:
        The configured ``spindle`` logger

    Example:
        >>> logger = configure_logging("DEBUG")
        >>> get_logger("sequential").info("Step started")
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Avoid duplicate handlers if already configured
    if logger.handlers:
        if not log_file or any(
            isinstance(h, logging.FileHandler) and h.baseFilename == os.path.abspath(log_file)
            for h in logger.handlers
        ):
            return logger
        logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(component: str) -> logging.Logger:
    """
    Get or create a logger for an engine component.

    Args:
        component: Component name (e.g., "sequential", "summarizer")

    Returns:
        Logger instance (root auto-configured if not already set up)
    """
    if not logging.getLogger(ROOT_LOGGER).handlers:
        configure_logging(*configure_from_environment())

    return logging.getLogger(f"{ROOT_LOGGER}.{component}")


def configure_from_environment() -> Tuple[str, Optional[str]]:
    """Read log level and log file overrides from the environment."""
    log_level = os.environ.get("SPINDLE_LOG_LEVEL", "INFO")
    log_file = os.environ.get("SPINDLE_LOG_FILE")

    return log_level, log_file
