"""Indexer status and snapshot listing endpoints."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, HTTPException, Query, Request, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from metagraph_sync.api.v1.endpoints.dependencies import (
    ConfirmationPollerDep,
    IndexingQueueDep,
    SessionDep,
    SnapshotPollerDep,
)
from metagraph_sync.models import Fiber, IndexedSnapshot, RejectedTransaction
from metagraph_sync.models.snapshot import SNAPSHOT_STATUS_CONFIRMED, SNAPSHOT_STATUSES
from metagraph_sync.schemas.fiber_state import KIND_AGENT_IDENTITY, KIND_CONTRACT
from metagraph_sync.schemas.snapshot import SnapshotListResponse, SnapshotResponse
from metagraph_sync.services.confirmations import get_confirmation_stats

DEFAULT_SNAPSHOT_LIMIT = 20
MAX_SNAPSHOT_LIMIT = 100

router = APIRouter(tags=["snapshots"])


def _count(db: Session, *conditions: Any, model: Any = Fiber) -> int:
    return db.scalar(select(func.count()).select_from(model).where(*conditions)) or 0


@router.get("/status")
async def get_status(
    request: Request,
    db: SessionDep,
    confirmation_poller: ConfirmationPollerDep,
    snapshot_poller: SnapshotPollerDep,
    queue: IndexingQueueDep,
) -> dict[str, Any]:
    """Indexer progress, confirmation counts and poller state."""
    last_snapshot = db.scalars(
        select(IndexedSnapshot).order_by(IndexedSnapshot.ordinal.desc())
    ).first()
    last_confirmed = db.scalars(
        select(IndexedSnapshot)
        .where(IndexedSnapshot.status == SNAPSHOT_STATUS_CONFIRMED)
        .order_by(IndexedSnapshot.ordinal.desc())
    ).first()

    confirmation_stats = (
        confirmation_poller.stats(db) if confirmation_poller else get_confirmation_stats(db)
    )

    return {
        "lastIndexedOrdinal": last_snapshot.ordinal if last_snapshot else None,
        "lastIndexedAt": last_snapshot.indexed_at if last_snapshot else None,
        "lastIndexedStatus": last_snapshot.status if last_snapshot else None,
        "lastConfirmedOrdinal": last_confirmed.ordinal if last_confirmed else None,
        "lastConfirmedAt": last_confirmed.confirmed_at if last_confirmed else None,
        "confirmations": confirmation_stats,
        "poller": snapshot_poller.stats() if snapshot_poller else None,
        "indexing": queue.stats() if queue else None,
        "webhookSubscription": getattr(request.app.state, "webhook_subscription_id", None),
        "totalAgents": _count(db, Fiber.kind == KIND_AGENT_IDENTITY),
        "totalContracts": _count(db, Fiber.kind == KIND_CONTRACT),
        "totalFibers": _count(db),
        "totalRejections": _count(db, model=RejectedTransaction),
    }


@router.get("/snapshots", response_model=SnapshotListResponse)
async def list_snapshots(
    db: SessionDep,
    snapshot_status: Annotated[str | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1)] = DEFAULT_SNAPSHOT_LIMIT,
) -> SnapshotListResponse:
    """Most recent snapshots first, optionally filtered by status."""
    conditions = []
    if snapshot_status is not None:
        if snapshot_status not in SNAPSHOT_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown status {snapshot_status!r}",
            )
        conditions.append(IndexedSnapshot.status == snapshot_status)

    rows = db.scalars(
        select(IndexedSnapshot)
        .where(*conditions)
        .order_by(IndexedSnapshot.ordinal.desc())
        .limit(min(limit, MAX_SNAPSHOT_LIMIT))
    ).all()
    return SnapshotListResponse(
        snapshots=[SnapshotResponse.model_validate(row) for row in rows],
        total=_count(db, *conditions, model=IndexedSnapshot),
    )
