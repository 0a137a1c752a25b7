"""
Pairwise model match records.

A ModelMatch is one outcome between two models on a single prompt. Matches
are immutable once recorded; the ELO engine replays all of them each epoch.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from benchrank.core.errors import InputIntegrityError
from benchrank.utils.timestamps import parse_timestamp, to_iso


class MatchOutcome(str, Enum):
    """Result of a pairwise match from model A's point of view."""
    A_WINS = "A_WINS"
    B_WINS = "B_WINS"
    TIE = "TIE"


@dataclass(frozen=True)
class ModelMatch:
    """
    One pairwise comparison between two models on a prompt.

    Attributes:
        match_id: Unique match identifier (secondary sort key)
        prompt_id: Prompt both models answered
        model_a: Slug of the first model
        model_b: Slug of the second model
        outcome: Winner or tie
        occurred_at: When the match happened (primary sort key)
        is_shareable: Display flag only; never affects rating eligibility
        model_a_score: Averaged response score of A (derived matches only)
        model_b_score: Averaged response score of B (derived matches only)
    """
    match_id: str
    prompt_id: str
    model_a: str
    model_b: str
    outcome: MatchOutcome
    occurred_at: datetime
    is_shareable: bool = True
    model_a_score: Optional[float] = None
    model_b_score: Optional[float] = None

    def __post_init__(self):
        if not self.match_id:
            raise InputIntegrityError("missing match id")
        if not self.prompt_id:
            raise InputIntegrityError("match references no prompt", self.match_id)
        if not self.model_a or not self.model_b:
            raise InputIntegrityError("missing model reference", self.match_id)
        if self.model_a == self.model_b:
            raise InputIntegrityError(
                f"self-match of model {self.model_a!r}", self.match_id
            )
        if not isinstance(self.outcome, MatchOutcome):
            raise InputIntegrityError("missing or unknown outcome", self.match_id)
        if not isinstance(self.occurred_at, datetime):
            raise InputIntegrityError("missing occurrence time", self.match_id)

    @property
    def sort_key(self) -> Tuple[datetime, str]:
        """Total replay order: (occurred_at, match_id)."""
        return (self.occurred_at, self.match_id)

    @property
    def models(self) -> Tuple[str, str]:
        return (self.model_a, self.model_b)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "match_id": self.match_id,
            "prompt_id": self.prompt_id,
            "model_a": self.model_a,
            "model_b": self.model_b,
            "outcome": self.outcome.value,
            "occurred_at": to_iso(self.occurred_at),
            "is_shareable": self.is_shareable,
            "model_a_score": self.model_a_score,
            "model_b_score": self.model_b_score,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ModelMatch':
        """
        Create from a stored document.

        Raises:
            InputIntegrityError: If any required field is missing or invalid
        """
        if not isinstance(data, Mapping):
            raise InputIntegrityError(f"match record is a {type(data).__name__}, not a mapping")
        match_id = data.get("match_id")
        match_id = str(match_id) if match_id is not None else ""

        raw_outcome = data.get("outcome")
        try:
            outcome = MatchOutcome(raw_outcome)
        except ValueError:
            raise InputIntegrityError(
                f"missing or unknown outcome {raw_outcome!r}", match_id or None
            )

        try:
            occurred_at = parse_timestamp(data.get("occurred_at"))
        except ValueError as e:
            raise InputIntegrityError(f"bad occurrence time: {e}", match_id or None)

        return cls(
            match_id=match_id,
            prompt_id=data.get("prompt_id") or "",
            model_a=data.get("model_a") or "",
            model_b=data.get("model_b") or "",
            outcome=outcome,
            occurred_at=occurred_at,
            is_shareable=bool(data.get("is_shareable", True)),
            model_a_score=data.get("model_a_score"),
            model_b_score=data.get("model_b_score"),
        )

    def __repr__(self) -> str:
        return f"ModelMatch({self.match_id}: {self.model_a} vs {self.model_b} -> {self.outcome.value})"
