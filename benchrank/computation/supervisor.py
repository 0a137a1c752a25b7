"""
Stale run-lock recovery.

A crashed run can leave the global lock behind. The supervisor clears a
lock older than the staleness threshold and fails the epoch the crashed
run left RUNNING, so the next trigger can proceed.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from benchrank.core.constants import LOCK_STALE_SECONDS
from benchrank.core.epoch import EpochStatus, RunLockInfo
from benchrank.core.errors import LockStaleError
from benchrank.database.base import RankingStore
from benchrank.utils.timestamps import utc_now

logger = logging.getLogger(__name__)


class LockSupervisor:
    """
    Detect and clear a stuck run lock.

    Example:
        >>> supervisor = LockSupervisor(store, stale_after=900)
        >>> supervisor.check()        # None when the lock is free or fresh
    """

    def __init__(
        self,
        store: RankingStore,
        stale_after: float = LOCK_STALE_SECONDS,
        clock: Optional[Callable[[], datetime]] = None
    ):
        if stale_after <= 0:
            raise ValueError("stale_after must be positive")
        self.store = store
        self.stale_after = stale_after
        self.clock = clock or utc_now

    def stale_lock(self) -> Optional[LockStaleError]:
        """The staleness condition of the current lock, if any."""
        lock = self.store.get_run_lock()
        if lock is None:
            return None
        age = lock.age_seconds(self.clock())
        if age <= self.stale_after:
            return None
        return LockStaleError(lock.holder, age, self.stale_after)

    def check(self) -> Optional[RunLockInfo]:
        """
        Clear the lock if it is stale.

        Returns:
            The cleared lock, or None if nothing was cleared
        """
        stale = self.stale_lock()
        if stale is None:
            return None

        now = self.clock()
        cutoff = now - timedelta(seconds=self.stale_after)
        cleared = self.store.clear_run_lock(acquired_before=cutoff)
        if cleared is None:
            return None

        logger.warning(f"Cleared stale run lock: {stale}")
        failed = self._fail_orphaned_epochs(now, cutoff, str(stale))
        if failed:
            logger.warning(f"Marked orphaned epochs FAILED: {failed}")
        return cleared

    def _fail_orphaned_epochs(self, now: datetime, cutoff: datetime, reason: str) -> List[int]:
        """Fail RUNNING epochs started before the cutoff; newer ones belong to live runs."""
        failed = []
        for epoch in self.store.list_epochs(status=EpochStatus.RUNNING):
            if epoch.started_at >= cutoff:
                continue
            elapsed_ms = (now - epoch.started_at).total_seconds() * 1000
            epoch.mark_failed(now, elapsed_ms, reason)
            if self.store.complete_epoch(epoch):
                failed.append(epoch.epoch_id)
        return failed
