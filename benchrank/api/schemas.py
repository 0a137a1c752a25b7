"""
Pydantic schemas for API request/response validation.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Computations
# =============================================================================

class ComputationResultResponse(BaseModel):
    """Outcome of a triggered computation."""
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


class EpochResponse(BaseModel):
    """One computation epoch."""
    epoch_id: int
    status: str
    started_at: Optional[str] = None
    read_horizon: Optional[str] = None
    completed_at: Optional[str] = None
    matches_processed: int = 0
    models_updated: int = 0
    new_models_added: int = 0
    skipped_signals: int = 0
    elapsed_ms: float = 0.0
    parameters: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    published_kinds: List[str] = Field(default_factory=list)


class EpochListResponse(BaseModel):
    """Recent epochs, newest first."""
    epochs: List[EpochResponse]
    total: int


# =============================================================================
# Rankings
# =============================================================================

class RankingEntry(BaseModel):
    """Single ranking row; kind-specific breakdown fields are passed through."""
    model_config = ConfigDict(extra="allow")

    rank: int
    subject_id: str
    score: Optional[float] = None
    sample_size: int = 0


class RankingPageResponse(BaseModel):
    """Page of a published ranking."""
    kind: str
    epoch_id: Optional[int] = None
    computed_at: Optional[str] = None
    entries: List[RankingEntry]
    total: int
    limit: int
    offset: int
    has_more: bool


class CurrentViewsResponse(BaseModel):
    """Current epoch per ranking kind."""
    views: Dict[str, Optional[int]]


# =============================================================================
# Health and Errors
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    storage_backend: str
    database_connected: bool
    run_lock_held: bool
    timestamp: str


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: Optional[str] = None
    code: str
