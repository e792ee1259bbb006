"""Logging configuration for the cluster controller.

The controller is a long-running process whose log stream is its primary
output, so the console handler follows the configured level. Records carry
the thread name to tell worker and watch threads apart.
"""

import logging
import sys
from pathlib import Path

from cluster_controller.exceptions import ConfigurationError

LOG_FORMAT = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that log every HTTP request at DEBUG.
NOISY_LOGGERS = ("urllib3", "kubernetes")


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ConfigurationError(
            f"Unknown log level: {level}",
            "Use one of DEBUG, INFO, WARNING, ERROR, CRITICAL",
        )
    return resolved


def setup_logging(level: str = "INFO", log_file: Path | None = None, verbose: bool = False) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to a log file that receives DEBUG output
        verbose: If True, set level to DEBUG

    Raises:
        ConfigurationError: If level is not a known logging level
    """
    console_level = _resolve_level("DEBUG" if verbose else level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
    root_level = console_level

    if log_file:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            root_level = logging.DEBUG
        except OSError as e:
            logging.warning(f"Failed to create log file handler: {e}")

    root_logger.setLevel(root_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
