"""
Logging configuration for BenchRank.

Every module logs through `logging.getLogger(__name__)`, so configuring the
`benchrank` logger here controls the engine, the aggregator, the
orchestrator and the API in one place.
"""

import logging
import sys
from typing import Optional

ROOT_LOGGER_NAME = "benchrank"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that drown out run logs at DEBUG
NOISY_LOGGERS = ("pymongo", "urllib3", "asyncio")


def setup_logging(
    level: str = "INFO",
    format_string: Optional[str] = None,
    log_file: Optional[str] = None,
    quiet_dependencies: bool = True
) -> logging.Logger:
    """
    Configure the `benchrank` logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_string: Log record format (defaults to DEFAULT_FORMAT)
        log_file: Optional file that receives the same records as stdout
        quiet_dependencies: Cap driver/HTTP library loggers at WARNING

    Returns:
        The configured `benchrank` logger
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(format_string or DEFAULT_FORMAT)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(numeric_level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if quiet_dependencies:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    return root_logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger inside the `benchrank` hierarchy.

    Example:
        >>> get_logger("computation").name
        'benchrank.computation'
    """
    if name:
        return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
    return logging.getLogger(ROOT_LOGGER_NAME)


class LogContext:
    """
    Temporarily change a logger's level.

    Example:
        with LogContext("DEBUG", "ranking"):
            engine.compute(epoch_id, matches)
    """

    def __init__(self, level: str = "DEBUG", logger_name: Optional[str] = None):
        self.level = getattr(logging, level.upper(), logging.DEBUG)
        self.logger = get_logger(logger_name)
        self._previous: Optional[int] = None

    def __enter__(self) -> 'LogContext':
        self._previous = self.logger.level
        self.logger.setLevel(self.level)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if self._previous is not None:
            self.logger.setLevel(self._previous)
        return False
