"""
Current-view projections.
"""

from benchrank.projections.queries import RankingPage, RankingQueryService

__all__ = ["RankingPage", "RankingQueryService"]
