"""
In-memory ranking store.

Used by the test suite and for local runs without MongoDB. All state sits
behind one lock, so pointer flips and lock acquisition are atomic with
respect to concurrent readers in the same process.
"""

import copy
import logging
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from benchrank.core.epoch import ComputationEpoch, EpochStatus, RankingKind, RunLockInfo
from benchrank.core.signals import EntityGraph
from benchrank.database.base import RankingStore, ranking_sort_key, row_to_document, within_horizon
from benchrank.utils.timestamps import parse_timestamp

logger = logging.getLogger(__name__)


class InMemoryRankingStore(RankingStore):
    """
    Thread-safe dictionary-backed store.

    Example:
        >>> store = InMemoryRankingStore()
        >>> store.add_match({"match_id": "m1", "prompt_id": "p1", ...})
        >>> store.acquire_run_lock("worker-1", utc_now())
        True
    """

    def __init__(self):
        self._lock = threading.RLock()

        self.matches: List[Dict[str, Any]] = []
        self.signals: List[Dict[str, Any]] = []
        self.prompts: List[Dict[str, Any]] = []
        self.prompt_sets: List[Dict[str, Any]] = []
        self.responses: List[Dict[str, Any]] = []
        self.models: Set[str] = set()

        self._epochs: Dict[int, Dict[str, Any]] = {}
        self._next_epoch_id = 1
        # {(epoch_id, kind): {subject_id: document}}
        self._outputs: Dict[Tuple[int, str], Dict[str, Dict[str, Any]]] = {}
        self._views: Dict[RankingKind, int] = {}
        self._run_lock: Optional[RunLockInfo] = None

    # =========================================================================
    # Input loading
    # =========================================================================

    def add_match(self, match: Dict[str, Any]) -> None:
        with self._lock:
            self.matches.append(dict(match))

    def add_signal(self, signal: Dict[str, Any]) -> None:
        with self._lock:
            self.signals.append(dict(signal))

    def add_prompt(self, prompt: Dict[str, Any]) -> None:
        with self._lock:
            self.prompts.append(dict(prompt))

    def add_prompt_set(self, prompt_set: Dict[str, Any]) -> None:
        with self._lock:
            self.prompt_sets.append(dict(prompt_set))

    def add_response(self, response: Dict[str, Any]) -> None:
        with self._lock:
            self.responses.append(dict(response))

    def add_model(self, model_slug: str) -> None:
        with self._lock:
            self.models.add(model_slug)

    # =========================================================================
    # Inputs
    # =========================================================================

    def list_eligible_matches(self, as_of: datetime) -> List[Dict[str, Any]]:
        with self._lock:
            docs = [dict(m) for m in self.matches if within_horizon(m.get("occurred_at"), as_of)]

        def order(doc):
            try:
                ts = parse_timestamp(doc.get("occurred_at"))
            except (TypeError, ValueError):
                ts = None
            return (ts is None, ts or as_of, str(doc.get("match_id", "")))

        return sorted(docs, key=order)

    def list_model_slugs(self) -> Optional[Set[str]]:
        with self._lock:
            return set(self.models) if self.models else None

    def list_eligible_signals(self, as_of: datetime) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(s) for s in self.signals if within_horizon(s.get("occurred_at"), as_of)]

    def get_entity_graph(self, as_of: datetime) -> EntityGraph:
        with self._lock:
            prompts = [p for p in self.prompts if within_horizon(p.get("created_at"), as_of)]
            sets = [s for s in self.prompt_sets if within_horizon(s.get("created_at"), as_of)]
            responses = [r for r in self.responses if within_horizon(r.get("created_at"), as_of)]
            return EntityGraph.from_documents(prompts, sets, responses)

    def list_scored_responses(self, as_of: datetime) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                dict(r) for r in self.responses
                if "score" in r and within_horizon(r.get("created_at"), as_of)
            ]

    # =========================================================================
    # Epochs
    # =========================================================================

    def create_epoch(
        self,
        started_at: datetime,
        read_horizon: datetime,
        parameters: Dict[str, Any]
    ) -> ComputationEpoch:
        with self._lock:
            epoch = ComputationEpoch(
                epoch_id=self._next_epoch_id,
                started_at=started_at,
                read_horizon=read_horizon,
                parameters=copy.deepcopy(parameters),
            )
            self._next_epoch_id += 1
            self._epochs[epoch.epoch_id] = epoch.to_dict()
            return epoch

    def save_epoch(self, epoch: ComputationEpoch) -> None:
        with self._lock:
            self._epochs[epoch.epoch_id] = epoch.to_dict()

    def complete_epoch(self, epoch: ComputationEpoch) -> bool:
        with self._lock:
            stored = self._epochs.get(epoch.epoch_id)
            if stored is None or stored["status"] != EpochStatus.RUNNING.value:
                return False
            self._epochs[epoch.epoch_id] = epoch.to_dict()
            return True

    def get_epoch(self, epoch_id: int) -> Optional[ComputationEpoch]:
        with self._lock:
            doc = self._epochs.get(epoch_id)
            return ComputationEpoch.from_dict(doc) if doc else None

    def list_epochs(
        self,
        limit: Optional[int] = None,
        status: Optional[EpochStatus] = None
    ) -> List[ComputationEpoch]:
        with self._lock:
            epochs = [
                ComputationEpoch.from_dict(self._epochs[eid])
                for eid in sorted(self._epochs, reverse=True)
            ]
        if status is not None:
            epochs = [e for e in epochs if e.status == status]
        if limit is not None:
            epochs = epochs[:limit]
        return epochs

    # =========================================================================
    # Outputs
    # =========================================================================

    def persist_epoch_outputs(self, epoch_id: int, kind: RankingKind, rows: Iterable[Any]) -> int:
        documents = [row_to_document(row, kind) for row in rows]
        for doc in documents:
            if doc["epoch_id"] != epoch_id:
                raise ValueError(
                    f"Row for {doc['subject_id']!r} is tagged with epoch "
                    f"{doc['epoch_id']}, expected {epoch_id}"
                )

        with self._lock:
            table = self._outputs.setdefault((epoch_id, RankingKind(kind).value), {})
            for doc in documents:
                table[doc["subject_id"]] = doc
        return len(documents)

    def count_epoch_outputs(self, epoch_id: int, kind: RankingKind) -> int:
        with self._lock:
            return len(self._outputs.get((epoch_id, RankingKind(kind).value), {}))

    def get_epoch_outputs(self, epoch_id: int, kind: RankingKind) -> List[Dict[str, Any]]:
        with self._lock:
            table = self._outputs.get((epoch_id, RankingKind(kind).value), {})
            return [copy.deepcopy(table[k]) for k in sorted(table)]

    def query_epoch_outputs(
        self,
        epoch_id: int,
        kind: RankingKind,
        min_sample: int = 0,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Dict[str, Any]], int]:
        with self._lock:
            table = self._outputs.get((epoch_id, RankingKind(kind).value), {})
            rows = [copy.deepcopy(d) for d in table.values() if d["sample_size"] >= min_sample]
        rows.sort(key=ranking_sort_key)
        return rows[offset:offset + limit], len(rows)

    def delete_epoch_outputs(self, epoch_id: int) -> int:
        deleted = 0
        with self._lock:
            for key in [k for k in self._outputs if k[0] == epoch_id]:
                deleted += len(self._outputs.pop(key))
        return deleted

    # =========================================================================
    # Current views
    # =========================================================================

    def get_current_views(self) -> Dict[RankingKind, int]:
        with self._lock:
            return dict(self._views)

    def publish_current_views(self, pointers: Mapping[RankingKind, int]) -> None:
        with self._lock:
            for kind, epoch_id in pointers.items():
                self._views[RankingKind(kind)] = int(epoch_id)
        logger.debug(f"Current views now {self.get_current_views()}")

    # =========================================================================
    # Run lock
    # =========================================================================

    def acquire_run_lock(self, holder: str, now: datetime) -> bool:
        with self._lock:
            if self._run_lock is not None:
                return False
            self._run_lock = RunLockInfo(holder=holder, acquired_at=now)
            return True

    def get_run_lock(self) -> Optional[RunLockInfo]:
        with self._lock:
            return self._run_lock

    def release_run_lock(self, holder: str) -> bool:
        with self._lock:
            if self._run_lock is None or self._run_lock.holder != holder:
                return False
            self._run_lock = None
            return True

    def clear_run_lock(self, acquired_before: Optional[datetime] = None) -> Optional[RunLockInfo]:
        with self._lock:
            if self._run_lock is None:
                return None
            if acquired_before is not None and self._run_lock.acquired_at >= acquired_before:
                return None
            cleared, self._run_lock = self._run_lock, None
            return cleared
