"""Fiber lookup endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import func, select

from metagraph_sync.api.v1.endpoints.dependencies import (
    RejectionServiceDep,
    SessionDep,
    SubmitterDep,
)
from metagraph_sync.models import Fiber, FiberTransition
from metagraph_sync.schemas.common import MAX_ORDINAL
from metagraph_sync.schemas.fiber import (
    FiberResponse,
    FiberSequenceResponse,
    FiberTransitionListResponse,
    FiberTransitionResponse,
)
from metagraph_sync.schemas.rejection import RejectionListResponse, RejectionResponse
from metagraph_sync.services.metagraph import MetagraphError
from metagraph_sync.services.rejections import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

router = APIRouter(prefix="/fibers", tags=["fibers"])

LimitQuery = Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)]
OffsetQuery = Annotated[int, Query(ge=0, le=MAX_ORDINAL)]


@router.get("/{fiber_id}", response_model=FiberResponse)
async def get_fiber(fiber_id: str, db: SessionDep) -> FiberResponse:
    fiber = db.get(Fiber, fiber_id)
    if fiber is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Fiber not found")
    return FiberResponse.model_validate(fiber)


@router.get("/{fiber_id}/transitions", response_model=FiberTransitionListResponse)
async def list_fiber_transitions(
    fiber_id: str,
    db: SessionDep,
    limit: LimitQuery = DEFAULT_PAGE_SIZE,
    offset: OffsetQuery = 0,
) -> FiberTransitionListResponse:
    """Transitions recorded for a fiber, newest first."""
    rows = db.scalars(
        select(FiberTransition)
        .where(FiberTransition.fiber_id == fiber_id)
        .order_by(FiberTransition.created_at.desc(), FiberTransition.id.desc())
        .limit(limit)
        .offset(offset)
    ).all()
    total = (
        db.scalar(
            select(func.count())
            .select_from(FiberTransition)
            .where(FiberTransition.fiber_id == fiber_id)
        )
        or 0
    )
    return FiberTransitionListResponse(
        transitions=[FiberTransitionResponse.model_validate(row) for row in rows],
        total=total,
        has_more=offset + len(rows) < total,
    )


@router.get("/{fiber_id}/rejections", response_model=RejectionListResponse)
async def list_fiber_rejections(
    fiber_id: str,
    db: SessionDep,
    service: RejectionServiceDep,
    limit: LimitQuery = DEFAULT_PAGE_SIZE,
    offset: OffsetQuery = 0,
) -> RejectionListResponse:
    rows, total = service.list_rejections(db, fiber_id=fiber_id, limit=limit, offset=offset)
    return RejectionListResponse(
        rejections=[RejectionResponse.model_validate(row) for row in rows],
        total=total,
        has_more=offset + len(rows) < total,
    )


@router.get("/{fiber_id}/sequence", response_model=FiberSequenceResponse)
async def get_fiber_sequence(fiber_id: str, submitter: SubmitterDep) -> FiberSequenceResponse:
    """Next sequence number for ``fiber_id``: DL1's value or the cached one if ahead."""
    if submitter is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Submitter not running"
        )
    try:
        next_sequence = await submitter.next_sequence(fiber_id)
    except MetagraphError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="DL1 unavailable"
        ) from exc
    return FiberSequenceResponse(
        fiber_id=fiber_id,
        next_sequence=next_sequence,
        cached_sequence=submitter.cache.get(fiber_id),
    )
