"""
BenchRank - Ranking & Rating Computation Engine

Turns pairwise model matches and reviewer signals into consistent,
versioned rankings for a community benchmarking platform.

Key Features:
- Deterministic full-history ELO over pairwise model matches
- Prompt/benchmark quality, contributor and reviewer trust scores
- Single-flight computation runs with an atomic publish of every ranking
- Epoch-versioned outputs with current-view pointers, rollback and GC
"""

__version__ = "0.1.0"
__author__ = "BenchRank Team"

from benchrank.core.epoch import ComputationEpoch, EpochStatus, RankingKind
from benchrank.core.match import MatchOutcome, ModelMatch
from benchrank.core.signals import EntityGraph, ReviewSignal
from benchrank.ranking.elo import EloEngine
from benchrank.trust.aggregator import TrustAggregator
from benchrank.computation.orchestrator import ComputationResult, RankingOrchestrator
from benchrank.projections.queries import RankingQueryService

__all__ = [
    # Core
    "ComputationEpoch",
    "EpochStatus",
    "RankingKind",
    "MatchOutcome",
    "ModelMatch",
    "EntityGraph",
    "ReviewSignal",
    # Engines
    "EloEngine",
    "TrustAggregator",
    # Runs and queries
    "ComputationResult",
    "RankingOrchestrator",
    "RankingQueryService",
]
