"""
Computation API endpoints.

Triggers ranking computations and exposes the epoch history.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from benchrank.api.dependencies import get_orchestrator, get_store, get_supervisor
from benchrank.api.schemas import ComputationResultResponse, EpochListResponse, EpochResponse
from benchrank.computation.orchestrator import RankingOrchestrator
from benchrank.computation.supervisor import LockSupervisor
from benchrank.database.base import RankingStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rankings", tags=["computations"])


@router.post(
    "/compute",
    response_model=ComputationResultResponse,
    responses={409: {"model": ComputationResultResponse}, 500: {"model": ComputationResultResponse}},
    summary="Run a ranking computation",
    description="Recompute every ranking and publish the new epoch. "
                "Returns 409 immediately if a computation is already running."
)
def trigger_computation(
    orchestrator: RankingOrchestrator = Depends(get_orchestrator),
    supervisor: LockSupervisor = Depends(get_supervisor),
):
    """Trigger a computation (runs in the request's worker thread)."""
    supervisor.check()
    result = orchestrator.trigger()

    if result.busy:
        status_code = 409
    elif not result.success:
        status_code = 500
    else:
        status_code = 200
    return JSONResponse(status_code=status_code, content=result.to_dict())


@router.get(
    "/computations",
    response_model=EpochListResponse,
    summary="List computations"
)
async def list_computations(
    limit: int = Query(20, ge=1, le=200),
    store: RankingStore = Depends(get_store),
):
    """Most recent epochs, newest first."""
    epochs = store.list_epochs(limit=limit)
    return EpochListResponse(
        epochs=[EpochResponse(**e.to_dict()) for e in epochs],
        total=len(epochs),
    )


@router.get(
    "/computations/{epoch_id}",
    response_model=EpochResponse,
    summary="Get a computation"
)
async def get_computation(epoch_id: int, store: RankingStore = Depends(get_store)):
    epoch = store.get_epoch(epoch_id)
    if epoch is None:
        raise HTTPException(status_code=404, detail=f"Computation not found: {epoch_id}")
    return EpochResponse(**epoch.to_dict())
