"""
Error taxonomy for ranking computations.

InputIntegrityError is fatal for the ELO engine and skippable for the
trust aggregator. Everything else is raised by the orchestrator and
converted into a structured failure by `RankingOrchestrator.trigger()`.
"""

from datetime import datetime
from typing import Optional


class RankingError(Exception):
    """Base class for all ranking computation errors."""


class InputIntegrityError(RankingError):
    """A match or signal is malformed or contradicts other input."""

    def __init__(self, reason: str, record_id: Optional[str] = None):
        self.reason = reason
        self.record_id = record_id
        if record_id:
            message = f"Invalid input record {record_id!r}: {reason}"
        else:
            message = f"Invalid input record: {reason}"
        super().__init__(message)


class ConcurrentRunError(RankingError):
    """The run lock is held by another computation."""

    def __init__(self, holder: Optional[str] = None, acquired_at: Optional[datetime] = None):
        self.holder = holder
        self.acquired_at = acquired_at
        super().__init__("computation already in progress")


class LockStaleError(RankingError):
    """The run lock has been held past the staleness threshold."""

    def __init__(self, holder: Optional[str], age_seconds: float, threshold_seconds: float):
        self.holder = holder
        self.age_seconds = age_seconds
        self.threshold_seconds = threshold_seconds
        super().__init__(
            f"Run lock held by {holder!r} for {age_seconds:.0f}s "
            f"(stale after {threshold_seconds:.0f}s); a supervisor must clear it"
        )


class PublishInconsistencyError(RankingError):
    """Epoch outputs are incomplete or unfit to become the current view."""


class RunCancelledError(RankingError):
    """The run was cancelled before the publish step."""

    def __init__(self):
        super().__init__("computation cancelled before publish")


class EpochStateError(RankingError):
    """An epoch lifecycle transition or pointer move is not allowed."""
