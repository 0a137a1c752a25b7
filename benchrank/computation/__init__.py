"""
Computation runs: orchestration, publishing and lock supervision.
"""

from benchrank.computation.orchestrator import (
    ComputationResult,
    RankingOrchestrator,
    RunState,
)
from benchrank.computation.supervisor import LockSupervisor

__all__ = [
    "ComputationResult",
    "RankingOrchestrator",
    "RunState",
    "LockSupervisor",
]
