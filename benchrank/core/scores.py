"""
Versioned output rows.

Every row is tagged with the epoch that produced it and is immutable once
written. All rows expose `subject_id`, `score` and `sample_size` so the
stores and the projection layer can treat ranking kinds uniformly.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional, Type

from benchrank.core.epoch import RankingKind


@dataclass
class ModelRating:
    """ELO rating of one model in one epoch."""
    epoch_id: int
    model_slug: str
    elo_score: float
    match_count: int = 0
    win_count: int = 0
    loss_count: int = 0
    tie_count: int = 0

    KIND: ClassVar[RankingKind] = RankingKind.MODEL_ELO

    @property
    def subject_id(self) -> str:
        return self.model_slug

    @property
    def score(self) -> float:
        return self.elo_score

    @property
    def sample_size(self) -> int:
        return self.match_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "epoch_id": self.epoch_id,
            "kind": self.KIND.value,
            "subject_id": self.model_slug,
            "score": self.elo_score,
            "sample_size": self.match_count,
            "details": {
                "win_count": self.win_count,
                "loss_count": self.loss_count,
                "tie_count": self.tie_count,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ModelRating':
        details = data.get("details") or {}
        return cls(
            epoch_id=int(data["epoch_id"]),
            model_slug=data["subject_id"],
            elo_score=float(data["score"]),
            match_count=int(data.get("sample_size", 0)),
            win_count=int(details.get("win_count", 0)),
            loss_count=int(details.get("loss_count", 0)),
            tie_count=int(details.get("tie_count", 0)),
        )

    def __repr__(self) -> str:
        return f"ModelRating({self.model_slug}, elo={self.elo_score:.2f}, n={self.match_count})"


@dataclass
class SubjectScore:
    """
    Score of a prompt, benchmark, contributor or reviewer in one epoch.

    `score` is None when the subject has data but too little to report a
    number (see BenchmarkQualityScore). Subjects with no data get no row.
    """
    epoch_id: int
    subject_id: str
    score: Optional[float]
    sample_size: int
    details: Dict[str, Any] = field(default_factory=dict)

    KIND: ClassVar[RankingKind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "epoch_id": self.epoch_id,
            "kind": self.KIND.value,
            "subject_id": self.subject_id,
            "score": self.score,
            "sample_size": self.sample_size,
            "details": dict(self.details),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SubjectScore':
        score = data.get("score")
        return cls(
            epoch_id=int(data["epoch_id"]),
            subject_id=data["subject_id"],
            score=float(score) if score is not None else None,
            sample_size=int(data.get("sample_size", 0)),
            details=dict(data.get("details") or {}),
        )


class PromptQualityScore(SubjectScore):
    KIND = RankingKind.PROMPT_QUALITY


class BenchmarkQualityScore(SubjectScore):
    KIND = RankingKind.BENCHMARK_QUALITY


class ContributorScore(SubjectScore):
    KIND = RankingKind.CONTRIBUTOR


class ReviewerTrustScore(SubjectScore):
    KIND = RankingKind.REVIEWER_TRUST


class ModelPerformanceScore(SubjectScore):
    KIND = RankingKind.MODEL_PERFORMANCE


ROW_TYPES: Dict[RankingKind, Type] = {
    RankingKind.MODEL_ELO: ModelRating,
    RankingKind.MODEL_PERFORMANCE: ModelPerformanceScore,
    RankingKind.PROMPT_QUALITY: PromptQualityScore,
    RankingKind.BENCHMARK_QUALITY: BenchmarkQualityScore,
    RankingKind.CONTRIBUTOR: ContributorScore,
    RankingKind.REVIEWER_TRUST: ReviewerTrustScore,
}


def row_from_dict(kind: RankingKind, data: Dict[str, Any]):
    """Rebuild a typed output row from a stored document."""
    return ROW_TYPES[RankingKind(kind)].from_dict(data)
