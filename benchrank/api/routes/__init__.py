"""
API Routes for BenchRank.

- computations: trigger runs and inspect epochs
- rankings: current views and ranking pages
"""

from benchrank.api.routes.computations import router as computations_router
from benchrank.api.routes.rankings import router as rankings_router

__all__ = [
    "computations_router",
    "rankings_router",
]
