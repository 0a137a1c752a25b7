"""
Utility helpers for BenchRank.
"""

from benchrank.utils.logger_config import setup_logging, get_logger, LogContext
from benchrank.utils.timestamps import utc_now, parse_timestamp, to_iso

__all__ = [
    "setup_logging",
    "get_logger",
    "LogContext",
    "utc_now",
    "parse_timestamp",
    "to_iso",
]
