"""
Configuration module for BenchRank.

Provides environment-backed settings and validated parameter models.
"""

from benchrank.config.settings import Settings, get_settings, configure, reset_settings
from benchrank.config.params import (
    MatchSource,
    EloParams,
    TrustParams,
    ComputationParams,
    RankingParams,
)

__all__ = [
    "Settings",
    "get_settings",
    "configure",
    "reset_settings",
    "MatchSource",
    "EloParams",
    "TrustParams",
    "ComputationParams",
    "RankingParams",
]
