"""
Computation epochs, ranking kinds and the run lock record.

An epoch is created RUNNING by the orchestrator and transitions exactly
once, to SUCCEEDED or FAILED. Only SUCCEEDED epochs may become current.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from benchrank.core.errors import EpochStateError
from benchrank.utils.timestamps import parse_timestamp, to_iso


class EpochStatus(str, Enum):
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class RankingKind(str, Enum):
    """Each kind has its own current-view pointer."""
    MODEL_ELO = "model_elo"
    MODEL_PERFORMANCE = "model_performance"
    PROMPT_QUALITY = "prompt_quality"
    BENCHMARK_QUALITY = "benchmark_quality"
    CONTRIBUTOR = "contributor"
    REVIEWER_TRUST = "reviewer_trust"


ALL_RANKING_KINDS: List[RankingKind] = list(RankingKind)


@dataclass
class ComputationEpoch:
    """
    One ranking computation run.

    Attributes:
        epoch_id: Monotonic identifier
        started_at: When the run entered RUNNING
        read_horizon: Fixed `as_of` all inputs were read at
        status: RUNNING, SUCCEEDED or FAILED
        completed_at: When the run reached a terminal status
        matches_processed: Matches replayed by the ELO engine
        models_updated: Models whose rating changed vs. the previous epoch
        new_models_added: Models rated for the first time
        skipped_signals: Malformed signals skipped by the aggregator
        elapsed_ms: Wall time of the run
        parameters: Snapshot of the RankingParams used
        error: Failure message for FAILED epochs
        published_kinds: Ranking kinds whose pointer this epoch became
    """
    epoch_id: int
    started_at: datetime
    read_horizon: Optional[datetime] = None
    status: EpochStatus = EpochStatus.RUNNING
    completed_at: Optional[datetime] = None
    matches_processed: int = 0
    models_updated: int = 0
    new_models_added: int = 0
    skipped_signals: int = 0
    elapsed_ms: float = 0.0
    parameters: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    published_kinds: List[str] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status != EpochStatus.RUNNING

    def mark_succeeded(
        self,
        completed_at: datetime,
        elapsed_ms: float,
        matches_processed: int,
        models_updated: int,
        new_models_added: int,
        skipped_signals: int = 0,
    ) -> None:
        """
        Transition RUNNING -> SUCCEEDED and record the run counters.

        Raises:
            EpochStateError: If the epoch is not RUNNING
        """
        if self.status != EpochStatus.RUNNING:
            raise EpochStateError(
                f"Epoch {self.epoch_id} is {self.status.value}; cannot mark SUCCEEDED"
            )
        self.status = EpochStatus.SUCCEEDED
        self.completed_at = completed_at
        self.elapsed_ms = elapsed_ms
        self.matches_processed = matches_processed
        self.models_updated = models_updated
        self.new_models_added = new_models_added
        self.skipped_signals = skipped_signals

    def mark_failed(self, completed_at: datetime, elapsed_ms: float, error: str) -> None:
        """
        Transition RUNNING -> FAILED.

        Raises:
            EpochStateError: If the epoch is not RUNNING
        """
        if self.status != EpochStatus.RUNNING:
            raise EpochStateError(
                f"Epoch {self.epoch_id} is {self.status.value}; cannot mark FAILED"
            )
        self.status = EpochStatus.FAILED
        self.completed_at = completed_at
        self.elapsed_ms = elapsed_ms
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "epoch_id": self.epoch_id,
            "started_at": to_iso(self.started_at),
            "read_horizon": to_iso(self.read_horizon),
            "status": self.status.value,
            "completed_at": to_iso(self.completed_at),
            "matches_processed": self.matches_processed,
            "models_updated": self.models_updated,
            "new_models_added": self.new_models_added,
            "skipped_signals": self.skipped_signals,
            "elapsed_ms": self.elapsed_ms,
            "parameters": dict(self.parameters),
            "error": self.error,
            "published_kinds": list(self.published_kinds),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ComputationEpoch':
        return cls(
            epoch_id=int(data["epoch_id"]),
            started_at=parse_timestamp(data["started_at"]),
            read_horizon=parse_timestamp(data.get("read_horizon")),
            status=EpochStatus(data.get("status", EpochStatus.RUNNING.value)),
            completed_at=parse_timestamp(data.get("completed_at")),
            matches_processed=int(data.get("matches_processed", 0)),
            models_updated=int(data.get("models_updated", 0)),
            new_models_added=int(data.get("new_models_added", 0)),
            skipped_signals=int(data.get("skipped_signals", 0)),
            elapsed_ms=float(data.get("elapsed_ms", 0.0)),
            parameters=dict(data.get("parameters") or {}),
            error=data.get("error"),
            published_kinds=list(data.get("published_kinds") or []),
        )

    def __repr__(self) -> str:
        return f"ComputationEpoch({self.epoch_id}, {self.status.value})"


@dataclass(frozen=True)
class RunLockInfo:
    """Holder of the global run lock."""
    holder: str
    acquired_at: datetime

    def age_seconds(self, now: datetime) -> float:
        return (now - self.acquired_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {"holder": self.holder, "acquired_at": to_iso(self.acquired_at)}
