"""
Core types for BenchRank.

Value objects shared by the ELO engine, the trust aggregator, the
orchestrator and the stores.
"""

from benchrank.core.errors import (
    RankingError,
    InputIntegrityError,
    ConcurrentRunError,
    LockStaleError,
    PublishInconsistencyError,
    RunCancelledError,
    EpochStateError,
)
from benchrank.core.match import MatchOutcome, ModelMatch
from benchrank.core.signals import (
    SignalSource,
    TargetKind,
    ReviewSignal,
    EntityGraph,
    ScoredResponse,
)
from benchrank.core.epoch import (
    EpochStatus,
    RankingKind,
    ALL_RANKING_KINDS,
    ComputationEpoch,
    RunLockInfo,
)
from benchrank.core.scores import (
    ModelRating,
    SubjectScore,
    PromptQualityScore,
    BenchmarkQualityScore,
    ContributorScore,
    ReviewerTrustScore,
    ModelPerformanceScore,
    row_from_dict,
)

__all__ = [
    # Errors
    "RankingError",
    "InputIntegrityError",
    "ConcurrentRunError",
    "LockStaleError",
    "PublishInconsistencyError",
    "RunCancelledError",
    "EpochStateError",
    # Inputs
    "MatchOutcome",
    "ModelMatch",
    "SignalSource",
    "TargetKind",
    "ReviewSignal",
    "EntityGraph",
    "ScoredResponse",
    # Epochs
    "EpochStatus",
    "RankingKind",
    "ALL_RANKING_KINDS",
    "ComputationEpoch",
    "RunLockInfo",
    # Outputs
    "ModelRating",
    "SubjectScore",
    "PromptQualityScore",
    "BenchmarkQualityScore",
    "ContributorScore",
    "ReviewerTrustScore",
    "ModelPerformanceScore",
    "row_from_dict",
]
