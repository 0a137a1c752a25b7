"""
Ranking orchestrator.

Coordinates one computation run end to end:

    IDLE -> ACQUIRING_LOCK -> RUNNING -> PUBLISHING -> PUBLISHED
    ACQUIRING_LOCK | RUNNING | PUBLISHING -> ABORTED (on failure or cancel)

A run reads every input at one fixed read horizon, computes all ranking
kinds under a fresh epoch id, persists them, verifies completeness and only
then flips every current-view pointer in one atomic update. Any failure
before the flip leaves the published rankings exactly as they were.

The store is the fence: the epoch only becomes SUCCEEDED if it is still
RUNNING in the store and the run still holds the lock, so a run whose lock
a supervisor cleared as stale can never publish.
"""

import logging
import os
import socket
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from benchrank.config.params import MatchSource, RankingParams
from benchrank.core.epoch import (
    ALL_RANKING_KINDS,
    ComputationEpoch,
    EpochStatus,
    RankingKind,
)
from benchrank.core.errors import (
    ConcurrentRunError,
    EpochStateError,
    PublishInconsistencyError,
    RunCancelledError,
)
from benchrank.core.scores import ModelRating
from benchrank.database.base import RankingStore
from benchrank.ranking.derivation import derive_matches
from benchrank.ranking.elo import EloComputation, EloEngine
from benchrank.ranking.performance import compute_model_performance
from benchrank.trust.aggregator import TrustAggregator, TrustComputation
from benchrank.utils.timestamps import utc_now

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    """Orchestrator run state."""
    IDLE = "IDLE"
    ACQUIRING_LOCK = "ACQUIRING_LOCK"
    RUNNING = "RUNNING"
    PUBLISHING = "PUBLISHING"
    PUBLISHED = "PUBLISHED"
    ABORTED = "ABORTED"


_ACTIVE_STATES = (RunState.ACQUIRING_LOCK, RunState.RUNNING, RunState.PUBLISHING)


@dataclass
class ComputationResult:
    """Structured outcome of a triggered computation."""
    success: bool
    busy: bool = False
    status: Optional[str] = None
    published: bool = False
    computation_id: Optional[int] = None
    matches_processed: int = 0
    models_updated: int = 0
    new_models_added: int = 0
    skipped_signals: int = 0
    elapsed_ms: float = 0.0
    error: Optional[str] = None

    @classmethod
    def from_epoch(cls, epoch: ComputationEpoch) -> 'ComputationResult':
        """`status` is the epoch's status; `success` also requires the publish."""
        published = epoch.status == EpochStatus.SUCCEEDED and bool(epoch.published_kinds)
        return cls(
            success=published,
            status=epoch.status.value,
            published=published,
            computation_id=epoch.epoch_id,
            matches_processed=epoch.matches_processed,
            models_updated=epoch.models_updated,
            new_models_added=epoch.new_models_added,
            skipped_signals=epoch.skipped_signals,
            elapsed_ms=epoch.elapsed_ms,
            error=epoch.error,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "busy": self.busy,
            "status": self.status,
            "published": self.published,
            "computation_id": self.computation_id,
            "matches_processed": self.matches_processed,
            "models_updated": self.models_updated,
            "new_models_added": self.new_models_added,
            "skipped_signals": self.skipped_signals,
            "elapsed_ms": self.elapsed_ms,
            "error": self.error,
        }


@dataclass
class _RunOutputs:
    elo: EloComputation
    trust: TrustComputation
    rows: Dict[RankingKind, List[Any]] = field(default_factory=dict)


def _default_holder() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class RankingOrchestrator:
    """
    Single-flight ranking computation with atomic publish.

    Example:
        >>> orchestrator = RankingOrchestrator(store, RankingParams())
        >>> result = orchestrator.trigger()
        >>> result.success, result.computation_id
        (True, 1)
    """

    def __init__(
        self,
        store: RankingStore,
        params: Optional[RankingParams] = None,
        clock: Optional[Callable[[], datetime]] = None,
        holder: Optional[str] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Input source and output/lock/pointer store
            params: Engine, aggregator and orchestration parameters
            clock: Returns the current aware UTC time (injectable for tests)
            holder: Identity recorded on the run lock
        """
        self.store = store
        self.params = params or RankingParams()
        self.clock = clock or utc_now
        self.holder = holder or _default_holder()

        self.elo_engine = EloEngine(self.params.elo)
        self.aggregator = TrustAggregator(self.params.trust)

        self._state = RunState.IDLE
        self._state_lock = threading.Lock()
        self._cancel_event = threading.Event()
        self.last_epoch: Optional[ComputationEpoch] = None

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> RunState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: RunState) -> None:
        with self._state_lock:
            logger.debug(f"Run state {self._state.value} -> {state.value}")
            self._state = state

    def cancel(self) -> bool:
        """
        Request cancellation of the in-flight run.

        Returns:
            True if the request can still take effect (the run has not
            started publishing), False otherwise
        """
        with self._state_lock:
            if self._state not in (RunState.ACQUIRING_LOCK, RunState.RUNNING):
                return False
            self._cancel_event.set()
        logger.info("Cancellation requested")
        return True

    def _check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise RunCancelledError()

    # =========================================================================
    # Runs
    # =========================================================================

    def run_computation(self) -> ComputationEpoch:
        """
        Run one full computation and publish it.

        Returns:
            The SUCCEEDED, published epoch

        Raises:
            ConcurrentRunError: Another run holds the lock; nothing was written
            InputIntegrityError: A malformed match or response aborted the run
            PublishInconsistencyError: A publish gate blocked the epoch
            RunCancelledError: The run was cancelled before publishing
        """
        with self._state_lock:
            if self._state in _ACTIVE_STATES:
                raise ConcurrentRunError(holder=self.holder)
            self._state = RunState.ACQUIRING_LOCK
            self._cancel_event.clear()
            self.last_epoch = None
        now = self.clock()

        if not self.store.acquire_run_lock(self.holder, now):
            self._set_state(RunState.IDLE)
            lock = self.store.get_run_lock()
            logger.info(f"Computation rejected, lock held by {lock.holder if lock else 'unknown'}")
            raise ConcurrentRunError(
                holder=lock.holder if lock else None,
                acquired_at=lock.acquired_at if lock else None,
            )

        epoch: Optional[ComputationEpoch] = None
        started = time.perf_counter()
        try:
            epoch = self.store.create_epoch(
                started_at=now,
                read_horizon=now,
                parameters=self.params.snapshot(),
            )
            self.last_epoch = epoch
            self._set_state(RunState.RUNNING)
            logger.info(f"Epoch {epoch.epoch_id} running (read horizon {now.isoformat()})")

            outputs = self._compute(epoch)
            self._check_skip_ratio(outputs.trust)
            self._check_cancelled()

            self._persist(epoch, outputs)
            self._check_cancelled()

            epoch = self._publish(epoch, outputs, started)
            self._set_state(RunState.PUBLISHED)
            logger.info(
                f"Epoch {epoch.epoch_id} published: {epoch.matches_processed} matches, "
                f"{epoch.models_updated} models updated, {epoch.new_models_added} new, "
                f"{epoch.skipped_signals} signals skipped, {epoch.elapsed_ms:.0f}ms"
            )
            return epoch

        except Exception as e:
            self._set_state(RunState.ABORTED)
            elapsed_ms = (time.perf_counter() - started) * 1000
            current = self.last_epoch
            if current is not None and current.status == EpochStatus.RUNNING:
                current.mark_failed(self.clock(), elapsed_ms, f"{type(e).__name__}: {e}")
                try:
                    if not self.store.complete_epoch(current):
                        logger.warning(f"Epoch {current.epoch_id} was already finished by another process")
                except Exception as save_error:
                    logger.error(f"Could not record failure of epoch {current.epoch_id}: {save_error}")
            logger.error(f"Computation aborted: {type(e).__name__}: {e}")
            raise

        finally:
            try:
                if not self.store.release_run_lock(self.holder):
                    logger.warning(f"Run lock was not held by {self.holder} at release")
            except Exception as e:
                logger.error(f"Failed to release run lock: {e}")

    def trigger(self) -> ComputationResult:
        """
        Run a computation and report the outcome without raising.

        Returns:
            ComputationResult; `busy` is set when another run holds the lock,
            `status` is the epoch status as stored
        """
        try:
            return ComputationResult.from_epoch(self.run_computation())
        except ConcurrentRunError as e:
            return ComputationResult(success=False, busy=True, error=str(e))
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            epoch = self._stored_epoch(self.last_epoch)
            if epoch is not None and epoch.is_terminal:
                result = ComputationResult.from_epoch(epoch)
                result.success = False
                result.error = error
                return result
            return ComputationResult(
                success=False,
                status=EpochStatus.FAILED.value,
                computation_id=epoch.epoch_id if epoch else None,
                error=error,
            )

    def _stored_epoch(self, epoch: Optional[ComputationEpoch]) -> Optional[ComputationEpoch]:
        if epoch is None:
            return None
        try:
            return self.store.get_epoch(epoch.epoch_id) or epoch
        except Exception as e:
            logger.error(f"Could not read back epoch {epoch.epoch_id}: {e}")
            return epoch

    # =========================================================================
    # Steps
    # =========================================================================

    def _compute(self, epoch: ComputationEpoch) -> _RunOutputs:
        as_of = epoch.read_horizon
        epoch_id = epoch.epoch_id
        computation = self.params.computation

        # All inputs are read before any computation starts
        responses = self.store.list_scored_responses(as_of)
        if computation.match_source == MatchSource.DERIVED:
            matches = derive_matches(
                responses,
                eligible_prompts=self._eligible_prompts(),
                include_ties=computation.include_ties,
            )
        else:
            matches = self.store.list_eligible_matches(as_of)
        known_models = self.store.list_model_slugs()
        previous_ratings = self._previous_ratings()
        previous_trust = self._previous_trust()
        signals = self.store.list_eligible_signals(as_of)
        graph = self.store.get_entity_graph(as_of)
        self._check_cancelled()

        def run_elo() -> EloComputation:
            return self.elo_engine.compute(epoch_id, matches, previous_ratings, known_models)

        def run_trust() -> TrustComputation:
            return self.aggregator.compute(epoch_id, signals, graph, previous_trust)

        if computation.parallel:
            with ThreadPoolExecutor(max_workers=2, thread_name_prefix="ranking") as pool:
                elo_future = pool.submit(run_elo)
                trust_future = pool.submit(run_trust)
                elo = elo_future.result()
                trust = trust_future.result()
        else:
            elo = run_elo()
            trust = run_trust()

        performance = compute_model_performance(epoch_id, responses)

        outputs = _RunOutputs(elo=elo, trust=trust)
        outputs.rows[RankingKind.MODEL_ELO] = elo.rows()
        outputs.rows[RankingKind.MODEL_PERFORMANCE] = [performance[k] for k in sorted(performance)]
        outputs.rows.update(trust.rows_by_kind())
        return outputs

    def _eligible_prompts(self) -> Optional[Set[str]]:
        """Prompts at or above the quality floor in the published epoch, None to bootstrap."""
        epoch_id = self.store.get_current_epoch_id(RankingKind.PROMPT_QUALITY)
        if epoch_id is None:
            return None
        floor = self.params.computation.min_prompt_quality
        return {
            row["subject_id"]
            for row in self.store.get_epoch_outputs(epoch_id, RankingKind.PROMPT_QUALITY)
            if row.get("score") is not None and row["score"] >= floor
        }

    def _previous_ratings(self) -> Dict[str, ModelRating]:
        epoch_id = self.store.get_current_epoch_id(RankingKind.MODEL_ELO)
        if epoch_id is None:
            return {}
        rows = self.store.get_epoch_outputs(epoch_id, RankingKind.MODEL_ELO)
        return {row["subject_id"]: ModelRating.from_dict(row) for row in rows}

    def _previous_trust(self) -> Dict[str, float]:
        epoch_id = self.store.get_current_epoch_id(RankingKind.REVIEWER_TRUST)
        if epoch_id is None:
            return {}
        rows = self.store.get_epoch_outputs(epoch_id, RankingKind.REVIEWER_TRUST)
        return {row["subject_id"]: row["score"] for row in rows if row.get("score") is not None}

    def _check_skip_ratio(self, trust: TrustComputation) -> None:
        limit = self.params.computation.max_skip_ratio
        if trust.skip_ratio > limit:
            raise PublishInconsistencyError(
                f"{trust.skipped} of {trust.total_signals} signals skipped "
                f"({trust.skip_ratio:.1%}), above the {limit:.1%} limit"
            )

    def _persist(self, epoch: ComputationEpoch, outputs: _RunOutputs) -> None:
        for kind in ALL_RANKING_KINDS:
            rows = outputs.rows.get(kind, [])
            self.store.persist_epoch_outputs(epoch.epoch_id, kind, rows)

        for kind in ALL_RANKING_KINDS:
            expected = len(outputs.rows.get(kind, []))
            stored = self.store.count_epoch_outputs(epoch.epoch_id, kind)
            if stored != expected:
                raise PublishInconsistencyError(
                    f"Epoch {epoch.epoch_id} {kind.value}: {stored} rows stored, {expected} computed"
                )

    def _check_lock_held(self, epoch: ComputationEpoch) -> None:
        if not self.store.holds_run_lock(self.holder):
            raise PublishInconsistencyError(
                f"Epoch {epoch.epoch_id}: run lock is no longer held by {self.holder}"
            )

    def _publish(self, epoch: ComputationEpoch, outputs: _RunOutputs, started: float) -> ComputationEpoch:
        """Commit the epoch as SUCCEEDED and flip the pointers; returns the committed epoch."""
        with self._state_lock:
            if self._cancel_event.is_set():
                raise RunCancelledError()
            self._state = RunState.PUBLISHING
        self._check_lock_held(epoch)

        # The RUNNING epoch stays untouched until the store accepts the transition
        succeeded = replace(epoch, parameters=dict(epoch.parameters), published_kinds=[])
        succeeded.mark_succeeded(
            completed_at=self.clock(),
            elapsed_ms=(time.perf_counter() - started) * 1000,
            matches_processed=outputs.elo.matches_processed,
            models_updated=outputs.elo.models_updated,
            new_models_added=outputs.elo.new_models_added,
            skipped_signals=outputs.trust.skipped,
        )
        succeeded.published_kinds = [kind.value for kind in ALL_RANKING_KINDS]
        if not self.store.complete_epoch(succeeded):
            raise PublishInconsistencyError(
                f"Epoch {epoch.epoch_id} is no longer RUNNING in the store"
            )
        self.last_epoch = succeeded

        try:
            self._check_lock_held(succeeded)
            self.store.publish_current_views({kind: succeeded.epoch_id for kind in ALL_RANKING_KINDS})
        except Exception as e:
            succeeded.published_kinds = []
            try:
                self.store.save_epoch(succeeded)
            except Exception as save_error:
                logger.error(f"Could not clear published kinds of epoch {succeeded.epoch_id}: {save_error}")
            raise PublishInconsistencyError(
                f"Epoch {succeeded.epoch_id} succeeded but could not be published: {e}"
            ) from e
        return succeeded

    # =========================================================================
    # Maintenance
    # =========================================================================

    @contextmanager
    def _exclusive(self, purpose: str):
        if not self.store.acquire_run_lock(self.holder, self.clock()):
            lock = self.store.get_run_lock()
            raise ConcurrentRunError(
                holder=lock.holder if lock else None,
                acquired_at=lock.acquired_at if lock else None,
            )
        logger.debug(f"Run lock taken for {purpose}")
        try:
            yield
        finally:
            self.store.release_run_lock(self.holder)

    def rollback(self, kind: RankingKind, epoch_id: Optional[int] = None) -> int:
        """
        Point one ranking kind back at an earlier SUCCEEDED epoch.

        Args:
            kind: Ranking kind to move
            epoch_id: Target epoch; defaults to the newest SUCCEEDED epoch
                older than the current one

        Returns:
            The epoch id the kind now points at

        Raises:
            EpochStateError: If the target is missing or not SUCCEEDED
            ConcurrentRunError: If a computation is in progress
        """
        kind = RankingKind(kind)
        with self._exclusive(f"rollback of {kind.value}"):
            current = self.store.get_current_epoch_id(kind)

            if epoch_id is None:
                candidates = [
                    e for e in self.store.list_epochs(status=EpochStatus.SUCCEEDED)
                    if current is None or e.epoch_id < current
                ]
                if not candidates:
                    raise EpochStateError(f"No earlier succeeded epoch to roll {kind.value} back to")
                target = candidates[0]
            else:
                target = self.store.get_epoch(epoch_id)
                if target is None:
                    raise EpochStateError(f"Epoch {epoch_id} does not exist")
                if target.status != EpochStatus.SUCCEEDED:
                    raise EpochStateError(
                        f"Epoch {epoch_id} is {target.status.value}; only SUCCEEDED epochs can be current"
                    )

            self.store.publish_current_view(kind, target.epoch_id)
            logger.info(f"Rolled {kind.value} back from epoch {current} to {target.epoch_id}")
            return target.epoch_id

    def collect_garbage(self, retain: Optional[int] = None) -> Dict[str, Any]:
        """
        Delete output rows of old epochs nothing points at.

        Epoch records are kept; only their rows go.

        Args:
            retain: Newest epochs to keep regardless (defaults to epoch_retention)

        Returns:
            {"epoch_ids": [...], "rows_deleted": n}
        """
        retain = self.params.computation.epoch_retention if retain is None else retain
        if retain < 1:
            raise ValueError("retain must be at least 1")

        with self._exclusive("garbage collection"):
            epochs = self.store.list_epochs()
            keep = {e.epoch_id for e in epochs[:retain]}
            keep.update(self.store.get_current_views().values())

            collected: List[int] = []
            rows_deleted = 0
            for epoch in epochs:
                if epoch.epoch_id in keep or epoch.status == EpochStatus.RUNNING:
                    continue
                deleted = self.store.delete_epoch_outputs(epoch.epoch_id)
                if deleted:
                    collected.append(epoch.epoch_id)
                    rows_deleted += deleted

        if collected:
            logger.info(f"Collected {rows_deleted} rows from epochs {collected}")
        return {"epoch_ids": collected, "rows_deleted": rows_deleted}
