"""
MongoDB document schemas.

These describe the documents the ranking store reads and writes. Input
collections are owned by the platform; the engine only reads them.
"""

from datetime import datetime
from typing import Any, Dict, List

# =============================================================================
# Input Documents (read-only)
# =============================================================================

MATCH_SCHEMA: Dict[str, Any] = {
    "match_id": str,                       # Unique, tie-break for equal timestamps
    "prompt_id": str,
    "model_a": str,
    "model_b": str,                        # Never equal to model_a
    "outcome": str,                        # A_WINS | B_WINS | TIE
    "occurred_at": datetime,
    "is_shareable": bool,                  # Display only, does not affect ratings
}

SIGNAL_SCHEMA: Dict[str, Any] = {
    "signal_id": str,
    "source_kind": str,                    # REVIEW | QUICK_FEEDBACK | COMMENT | COAUTHORSHIP
    "actor_user_id": str,
    "target_kind": str,                    # PROMPT | PROMPT_SET | RESPONSE
    "target_entity_id": str,
    "weight": float,                       # Opinion sign and strength in [-1, 1]
    "occurred_at": datetime,
}

PROMPT_SCHEMA: Dict[str, Any] = {
    "prompt_id": str,
    "author_id": str,
    "created_at": datetime,
}

PROMPT_SET_SCHEMA: Dict[str, Any] = {
    "prompt_set_id": str,
    "owner_id": str,
    "collaborators": List[str],
    "prompt_ids": List[str],
    "created_at": datetime,
}

RESPONSE_SCHEMA: Dict[str, Any] = {
    "response_id": str,
    "prompt_id": str,
    "model_slug": str,
    "score": float,                        # Optional; absent for unscored responses
    "created_at": datetime,
}

MODEL_SCHEMA: Dict[str, Any] = {
    "model_slug": str,                     # Registry; a match outside it is fatal
}

# =============================================================================
# Output and Control Documents
# =============================================================================

EPOCH_SCHEMA: Dict[str, Any] = {
    "_id": int,                            # Same as epoch_id
    "epoch_id": int,
    "started_at": str,                     # ISO-8601, UTC
    "read_horizon": str,
    "status": str,                         # RUNNING | SUCCEEDED | FAILED
    "completed_at": str,
    "matches_processed": int,
    "models_updated": int,
    "new_models_added": int,
    "skipped_signals": int,
    "elapsed_ms": float,
    "parameters": Dict[str, Any],          # RankingParams snapshot
    "error": str,
    "published_kinds": List[str],
}

OUTPUT_SCHEMA: Dict[str, Any] = {
    "epoch_id": int,                       # Unique with kind + subject_id
    "kind": str,
    "subject_id": str,
    "score": float,                        # null when unavailable
    "sample_size": int,
    "details": Dict[str, Any],             # Kind-specific breakdown
}

CURRENT_VIEWS_SCHEMA: Dict[str, Any] = {
    "_id": str,                            # Always "current"
    "pointers": {
        # "<ranking_kind>": epoch_id
    },
    "updated_at": datetime,
}

RUN_LOCK_SCHEMA: Dict[str, Any] = {
    "_id": str,                            # Lock name; uniqueness is the mutex
    "holder": str,
    "acquired_at": datetime,
}

COUNTER_SCHEMA: Dict[str, Any] = {
    "_id": str,
    "value": int,
}
