"""
Ranking module for BenchRank.

Implements the full-history ELO engine, match derivation from scored
responses and the model performance ranking.
"""

from benchrank.ranking.elo import (
    EloEngine,
    EloComputation,
    expected_score,
    actual_score,
    match_sort_key,
    update_pair,
)
from benchrank.ranking.derivation import derive_matches, aggregate_prompt_scores
from benchrank.ranking.performance import compute_model_performance

__all__ = [
    # ELO
    "EloEngine",
    "EloComputation",
    "expected_score",
    "actual_score",
    "match_sort_key",
    "update_pair",
    # Derivation
    "derive_matches",
    "aggregate_prompt_scores",
    # Performance
    "compute_model_performance",
]
