"""Rejected transaction query endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from metagraph_sync.api.v1.endpoints.dependencies import RejectionServiceDep, SessionDep
from metagraph_sync.schemas.common import MAX_ORDINAL
from metagraph_sync.schemas.rejection import (
    RejectionDetailResponse,
    RejectionListResponse,
    RejectionResponse,
)
from metagraph_sync.services.rejections import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

router = APIRouter(prefix="/rejections", tags=["rejections"])


@router.get("", response_model=RejectionListResponse)
async def list_rejections(
    db: SessionDep,
    service: RejectionServiceDep,
    fiber_id: Annotated[str | None, Query(alias="fiberId")] = None,
    update_type: Annotated[str | None, Query(alias="updateType")] = None,
    from_ordinal: Annotated[int | None, Query(alias="fromOrdinal", ge=0, le=MAX_ORDINAL)] = None,
    to_ordinal: Annotated[int | None, Query(alias="toOrdinal", ge=0, le=MAX_ORDINAL)] = None,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
    offset: Annotated[int, Query(ge=0, le=MAX_ORDINAL)] = 0,
) -> RejectionListResponse:
    """Rejections newest first, filtered by fiber, update type and ordinal range."""
    rows, total = service.list_rejections(
        db,
        fiber_id=fiber_id,
        update_type=update_type,
        from_ordinal=from_ordinal,
        to_ordinal=to_ordinal,
        limit=limit,
        offset=offset,
    )
    return RejectionListResponse(
        rejections=[RejectionResponse.model_validate(row) for row in rows],
        total=total,
        has_more=offset + len(rows) < total,
    )


@router.get("/{update_hash}", response_model=RejectionDetailResponse)
async def get_rejection(
    update_hash: str, db: SessionDep, service: RejectionServiceDep
) -> RejectionDetailResponse:
    rejection = service.get_by_hash(db, update_hash)
    if rejection is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Rejection not found"
        )
    return RejectionDetailResponse.model_validate(rejection)
