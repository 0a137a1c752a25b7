"""
Read-side queries over the current views.

Every query resolves the kind's pointer first and then reads only that
epoch's rows, so a reader never mixes rows from two epochs and never sees
an epoch that is still being written.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from benchrank.core.constants import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from benchrank.core.epoch import RankingKind
from benchrank.database.base import RankingStore
from benchrank.utils.timestamps import to_iso

logger = logging.getLogger(__name__)


@dataclass
class RankingPage:
    """One page of a ranking."""
    kind: RankingKind
    epoch_id: Optional[int]
    computed_at: Optional[datetime]
    entries: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    limit: int = DEFAULT_PAGE_LIMIT
    offset: int = 0

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.entries) < self.total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "epoch_id": self.epoch_id,
            "computed_at": to_iso(self.computed_at),
            "entries": self.entries,
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
            "has_more": self.has_more,
        }


class RankingQueryService:
    """
    Paginated access to the published rankings.

    Example:
        >>> service = RankingQueryService(store)
        >>> page = service.get_rankings(RankingKind.MODEL_ELO, min_sample=10)
        >>> page.entries[0]["rank"]
        1
    """

    def __init__(self, store: RankingStore):
        self.store = store

    def get_rankings(
        self,
        kind: RankingKind,
        min_sample: int = 0,
        limit: int = DEFAULT_PAGE_LIMIT,
        offset: int = 0
    ) -> RankingPage:
        """
        Get a page of the current ranking for one kind.

        Args:
            kind: Ranking kind
            min_sample: Minimum sample size (matches, opinions, prompts...)
            limit: Page size, 1 to MAX_PAGE_LIMIT
            offset: Rows to skip

        Returns:
            RankingPage; empty with epoch_id None when nothing is published

        Raises:
            ValueError: On out-of-range paging arguments
        """
        kind = RankingKind(kind)
        if min_sample < 0:
            raise ValueError("min_sample must be >= 0")
        if not 1 <= limit <= MAX_PAGE_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_LIMIT}")
        if offset < 0:
            raise ValueError("offset must be >= 0")

        epoch_id = self.store.get_current_epoch_id(kind)
        if epoch_id is None:
            return RankingPage(kind=kind, epoch_id=None, computed_at=None, limit=limit, offset=offset)

        epoch = self.store.get_epoch(epoch_id)
        rows, total = self.store.query_epoch_outputs(
            epoch_id, kind, min_sample=min_sample, limit=limit, offset=offset
        )

        entries = []
        for position, row in enumerate(rows, start=offset + 1):
            entry = {
                "rank": position,
                "subject_id": row["subject_id"],
                "score": row.get("score"),
                "sample_size": row.get("sample_size", 0),
            }
            entry.update(row.get("details") or {})
            entries.append(entry)

        return RankingPage(
            kind=kind,
            epoch_id=epoch_id,
            computed_at=epoch.completed_at if epoch else None,
            entries=entries,
            total=total,
            limit=limit,
            offset=offset,
        )

    def get_current_epochs(self) -> Dict[str, Optional[int]]:
        """Pointer per ranking kind (None where nothing is published)."""
        views = self.store.get_current_views()
        return {kind.value: views.get(kind) for kind in RankingKind}
