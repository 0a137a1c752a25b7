"""
API middleware.
"""

from benchrank.api.middleware.logging import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware"]
