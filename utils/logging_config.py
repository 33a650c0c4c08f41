"""Logging configuration for the PDF table extraction tool."""

import logging
import sys
from typing import Optional

LOGGER_NAME = "pdf_tables"


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Configure package-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to INFO.

    Returns:
        Configured package logger.
    """
    log_level = getattr(logging, level.upper(), logging.INFO) if level else logging.INFO

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger(LOGGER_NAME)
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Args:
        name: Module name (typically __name__).

    Returns:
        Logger instance under the package logger.
    """
    return logging.getLogger(f"{LOGGER_NAME}.{name}")
