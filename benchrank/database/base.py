"""
Storage contract for the ranking engine.

A store plays three roles:
    * read-only Match/Signal source, always read at a fixed `as_of` horizon
    * append-only epoch output tables keyed by (epoch_id, kind, subject_id)
    * the small mutable state: current-view pointers and the run lock

Input reads return raw documents; parsing and validation belong to the
computation components so that malformed records surface there.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from benchrank.core.epoch import ComputationEpoch, EpochStatus, RankingKind, RunLockInfo
from benchrank.core.signals import EntityGraph
from benchrank.utils.timestamps import parse_timestamp


def within_horizon(value: Any, as_of: datetime) -> bool:
    """
    Whether a record timestamp is at or before the horizon.

    Missing or unparseable timestamps are let through so that the component
    that validates the record reports it.
    """
    try:
        ts = parse_timestamp(value)
    except (TypeError, ValueError):
        return True
    if ts is None:
        return True
    return ts <= as_of


def row_to_document(row: Any, kind: RankingKind) -> Dict[str, Any]:
    """Normalize a typed row or a plain dict to a stored output document."""
    data = row.to_dict() if hasattr(row, "to_dict") else dict(row)
    return {
        "epoch_id": int(data["epoch_id"]),
        "kind": RankingKind(kind).value,
        "subject_id": data["subject_id"],
        "score": data.get("score"),
        "sample_size": int(data.get("sample_size", 0)),
        "details": dict(data.get("details") or {}),
    }


def ranking_sort_key(doc: Dict[str, Any]) -> Tuple:
    """Score descending with unavailable scores last, then subject id."""
    score = doc.get("score")
    return (score is None, -(score or 0.0), doc["subject_id"])


class RankingStore(ABC):
    """Abstract ranking store."""

    # =========================================================================
    # Inputs
    # =========================================================================

    @abstractmethod
    def list_eligible_matches(self, as_of: datetime) -> List[Dict[str, Any]]:
        """Match documents with occurred_at <= as_of, ordered by (occurred_at, match_id)."""

    @abstractmethod
    def list_model_slugs(self) -> Optional[Set[str]]:
        """Registered model slugs, or None when no registry is kept."""

    @abstractmethod
    def list_eligible_signals(self, as_of: datetime) -> List[Dict[str, Any]]:
        """Signal documents with occurred_at <= as_of."""

    @abstractmethod
    def get_entity_graph(self, as_of: datetime) -> EntityGraph:
        """Authorship and membership snapshot."""

    @abstractmethod
    def list_scored_responses(self, as_of: datetime) -> List[Dict[str, Any]]:
        """Response score documents with created_at <= as_of."""

    # =========================================================================
    # Epochs
    # =========================================================================

    @abstractmethod
    def create_epoch(
        self,
        started_at: datetime,
        read_horizon: datetime,
        parameters: Dict[str, Any]
    ) -> ComputationEpoch:
        """Allocate the next epoch id and store the epoch as RUNNING."""

    @abstractmethod
    def save_epoch(self, epoch: ComputationEpoch) -> None:
        pass

    @abstractmethod
    def complete_epoch(self, epoch: ComputationEpoch) -> bool:
        """
        Store a terminal epoch only if the stored one is still RUNNING.

        Returns:
            False if the stored epoch is missing or already terminal
        """

    @abstractmethod
    def get_epoch(self, epoch_id: int) -> Optional[ComputationEpoch]:
        pass

    @abstractmethod
    def list_epochs(
        self,
        limit: Optional[int] = None,
        status: Optional[EpochStatus] = None
    ) -> List[ComputationEpoch]:
        """Epochs newest first."""

    # =========================================================================
    # Outputs
    # =========================================================================

    @abstractmethod
    def persist_epoch_outputs(self, epoch_id: int, kind: RankingKind, rows: Iterable[Any]) -> int:
        """
        Idempotent bulk upsert keyed by (epoch_id, kind, subject_id).

        Returns:
            Number of rows written
        """

    @abstractmethod
    def count_epoch_outputs(self, epoch_id: int, kind: RankingKind) -> int:
        pass

    @abstractmethod
    def get_epoch_outputs(self, epoch_id: int, kind: RankingKind) -> List[Dict[str, Any]]:
        """All rows of one kind for an epoch, ordered by subject id."""

    @abstractmethod
    def query_epoch_outputs(
        self,
        epoch_id: int,
        kind: RankingKind,
        min_sample: int = 0,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Ranked page of rows with sample_size >= min_sample.

        Returns:
            (rows, total matching rows)
        """

    @abstractmethod
    def delete_epoch_outputs(self, epoch_id: int) -> int:
        pass

    # =========================================================================
    # Current views
    # =========================================================================

    @abstractmethod
    def get_current_views(self) -> Dict[RankingKind, int]:
        pass

    @abstractmethod
    def publish_current_views(self, pointers: Mapping[RankingKind, int]) -> None:
        """Move every given pointer in one atomic update."""

    def publish_current_view(self, kind: RankingKind, epoch_id: int) -> None:
        self.publish_current_views({kind: epoch_id})

    def get_current_epoch_id(self, kind: RankingKind) -> Optional[int]:
        return self.get_current_views().get(kind)

    # =========================================================================
    # Run lock
    # =========================================================================

    @abstractmethod
    def acquire_run_lock(self, holder: str, now: datetime) -> bool:
        """Take the global run lock; False if someone else holds it."""

    @abstractmethod
    def get_run_lock(self) -> Optional[RunLockInfo]:
        pass

    def holds_run_lock(self, holder: str) -> bool:
        lock = self.get_run_lock()
        return lock is not None and lock.holder == holder

    @abstractmethod
    def release_run_lock(self, holder: str) -> bool:
        """Release the lock if `holder` owns it."""

    @abstractmethod
    def clear_run_lock(self, acquired_before: Optional[datetime] = None) -> Optional[RunLockInfo]:
        """
        Force-release the lock regardless of holder.

        Args:
            acquired_before: Only clear a lock taken before this instant

        Returns:
            The cleared lock, or None if nothing was cleared
        """
