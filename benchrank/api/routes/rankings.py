"""
Ranking API endpoints.

Read-only, paginated access to the currently published rankings.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from benchrank.api.dependencies import get_query_service
from benchrank.api.schemas import CurrentViewsResponse, RankingPageResponse
from benchrank.core.constants import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from benchrank.core.epoch import RankingKind
from benchrank.projections.queries import RankingQueryService

router = APIRouter(prefix="/rankings", tags=["rankings"])

VALID_KINDS = [k.value for k in RankingKind]


@router.get(
    "/current",
    response_model=CurrentViewsResponse,
    summary="Current epoch per ranking kind"
)
async def get_current_views(service: RankingQueryService = Depends(get_query_service)):
    return CurrentViewsResponse(views=service.get_current_epochs())


@router.get(
    "/{kind}",
    response_model=RankingPageResponse,
    summary="Get a ranking",
    description=f"Valid kinds: {', '.join(VALID_KINDS)}"
)
async def get_ranking(
    kind: str,
    min_sample: Optional[int] = Query(None, ge=0, description="Minimum sample size"),
    min_matches: Optional[int] = Query(None, ge=0, description="Alias of min_sample"),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
    service: RankingQueryService = Depends(get_query_service),
):
    """Page of the current ranking, best first."""
    if kind not in VALID_KINDS:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown ranking kind: {kind}. Valid kinds: {VALID_KINDS}"
        )

    threshold = min_sample if min_sample is not None else (min_matches or 0)
    page = service.get_rankings(RankingKind(kind), min_sample=threshold, limit=limit, offset=offset)
    return RankingPageResponse(**page.to_dict())
