"""
Parameter Pydantic models for BenchRank.

The K-factor, default rating and trust-weight formulas are deployment
configuration. Every epoch stores a snapshot of the RankingParams it was
computed with.
"""

from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field, field_validator

from benchrank.core import constants


class MatchSource(str, Enum):
    """Where the ELO engine's matches come from."""
    RECORDED = "recorded"   # persisted ModelMatch records
    DERIVED = "derived"     # paired from averaged response scores


class EloParams(BaseModel):
    """ELO engine parameters."""

    k_factor: float = Field(
        default=constants.ELO_K_FACTOR,
        gt=0,
        description="Fixed K-factor applied to every match"
    )
    default_rating: float = Field(
        default=constants.ELO_DEFAULT_RATING,
        description="Rating a model starts from on first appearance"
    )

    model_config = {"extra": "forbid"}


class TrustParams(BaseModel):
    """Trust/quality aggregation parameters."""

    neutral_trust: float = Field(
        default=constants.NEUTRAL_TRUST,
        ge=0.0,
        le=1.0,
        description="Trust used for actors with no previous-epoch score"
    )
    review_weight: float = Field(
        default=constants.REVIEW_WEIGHT,
        gt=0,
        description="Weight of a full review"
    )
    quick_feedback_weight: float = Field(
        default=constants.QUICK_FEEDBACK_WEIGHT,
        gt=0,
        description="Weight of a quick thumbs up/down"
    )
    prior_strength: float = Field(
        default=constants.PRIOR_STRENGTH,
        ge=0,
        description="Pseudo-count pulling sparse scores toward 0.5"
    )
    min_benchmark_prompts: int = Field(
        default=constants.MIN_BENCHMARK_PROMPTS,
        ge=1,
        description="Scored prompts needed before a benchmark gets a number"
    )
    author_weight: float = Field(
        default=constants.AUTHOR_WEIGHT,
        ge=0,
        description="Contributor credit multiplier for authors/owners"
    )
    collaborator_weight: float = Field(
        default=constants.COLLABORATOR_WEIGHT,
        ge=0,
        description="Contributor credit multiplier for co-authors"
    )
    comment_weight: float = Field(
        default=constants.COMMENT_WEIGHT,
        ge=0,
        description="Contributor credit per comment"
    )
    min_consensus_reviewers: int = Field(
        default=constants.MIN_CONSENSUS_REVIEWERS,
        ge=2,
        description="Opinions on a prompt needed before a consensus exists"
    )

    model_config = {"extra": "forbid"}

    @field_validator("collaborator_weight")
    @classmethod
    def collaborator_not_above_author(cls, v, info):
        author = info.data.get("author_weight", constants.AUTHOR_WEIGHT)
        if v > author:
            raise ValueError("collaborator_weight cannot exceed author_weight")
        return v


class ComputationParams(BaseModel):
    """Orchestrator parameters."""

    max_skip_ratio: float = Field(
        default=constants.MAX_SKIP_RATIO,
        ge=0.0,
        le=1.0,
        description="Largest share of skipped signals that still publishes"
    )
    lock_stale_seconds: float = Field(
        default=constants.LOCK_STALE_SECONDS,
        gt=0,
        description="Age after which a held run lock is stale"
    )
    parallel: bool = Field(
        default=True,
        description="Run the ELO engine and the aggregator concurrently"
    )
    match_source: MatchSource = Field(
        default=MatchSource.RECORDED,
        description="Recorded matches or matches derived from response scores"
    )
    min_prompt_quality: float = Field(
        default=constants.MIN_PROMPT_QUALITY,
        ge=0.0,
        le=1.0,
        description="Prompt quality gate for derived matches"
    )
    include_ties: bool = Field(
        default=False,
        description="Emit TIE for equal averaged scores when deriving matches"
    )
    epoch_retention: int = Field(
        default=constants.EPOCH_RETENTION,
        ge=1,
        description="Newest epochs kept by garbage collection"
    )

    model_config = {"extra": "forbid"}


class RankingParams(BaseModel):
    """All parameters of one computation run."""

    elo: EloParams = Field(default_factory=EloParams)
    trust: TrustParams = Field(default_factory=TrustParams)
    computation: ComputationParams = Field(default_factory=ComputationParams)

    model_config = {"extra": "forbid"}

    def snapshot(self) -> Dict[str, Any]:
        """JSON-compatible copy stored on each epoch."""
        return self.model_dump(mode="json")
