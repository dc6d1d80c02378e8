"""Webhook endpoints ML0 pushes snapshot and rejection notifications to."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, Response, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from metagraph_sync.api.v1.endpoints.dependencies import (
    IndexingQueueDep,
    IngestionDep,
    RejectionServiceDep,
    SessionDep,
)
from metagraph_sync.schemas.rejection import REJECTION_EVENT, RejectionAck, RejectionNotification
from metagraph_sync.schemas.snapshot import SnapshotNotification, WebhookAck
from metagraph_sync.services.rejections import RejectionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhooks"])


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body"
        ) from exc


def _handle_rejection(
    body: Any, db: Session, service: RejectionService, response: Response
) -> dict[str, Any]:
    try:
        notification = RejectionNotification.model_validate(body)
    except ValidationError as exc:
        logger.warning("Invalid rejection webhook payload: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid rejection payload"
        ) from exc

    rejection = notification.rejection
    logger.info(
        "Received rejection notification: ordinal=%d, type=%s, fiber=%s",
        notification.ordinal,
        rejection.update_type,
        rejection.fiber_id,
    )
    result = service.store(db, notification, raw_payload=body)
    if result.created:
        response.status_code = status.HTTP_201_CREATED
        ack = RejectionAck(update_hash=rejection.update_hash)
    else:
        response.status_code = status.HTTP_200_OK
        ack = RejectionAck(update_hash=rejection.update_hash, already_indexed=True)
    return ack.model_dump(by_alias=True, exclude_none=True)


@router.post("/snapshot", status_code=status.HTTP_202_ACCEPTED)
async def receive_snapshot(
    request: Request,
    response: Response,
    db: SessionDep,
    ingestion: IngestionDep,
    rejections: RejectionServiceDep,
    queue: IndexingQueueDep,
) -> dict[str, Any]:
    """Accept an ML0 snapshot notification.

    ML0 sends rejection events to the same callback URL, so bodies whose
    ``event`` is ``transaction.rejected`` are handled as rejections.

    Returns 202 when a new PENDING record was created and queued for indexing,
    200 with ``alreadyIndexed`` when the ordinal was seen before, and 400 for a
    malformed body.
    """
    body = await _read_json(request)
    if isinstance(body, dict) and body.get("event") == REJECTION_EVENT:
        return _handle_rejection(body, db, rejections, response)

    try:
        notification = SnapshotNotification.model_validate(body)
    except ValidationError as exc:
        logger.warning("Invalid snapshot webhook payload: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid snapshot notification"
        ) from exc

    logger.info(
        "Received snapshot notification: ordinal=%d, hash=%s",
        notification.ordinal,
        notification.hash,
    )
    result = ingestion.ingest(db, notification)
    if not result.created:
        response.status_code = status.HTTP_200_OK
        ack = WebhookAck(ordinal=result.ordinal, status=result.status, already_indexed=True)
        return ack.model_dump(by_alias=True, exclude_none=True)

    if queue is not None:
        queue.enqueue(notification)
    else:
        logger.warning("Indexing queue not running; snapshot %d left PENDING", result.ordinal)
    ack = WebhookAck(ordinal=result.ordinal, status=result.status)
    return ack.model_dump(by_alias=True, exclude_none=True)


@router.post("/rejection", status_code=status.HTTP_201_CREATED)
async def receive_rejection(
    request: Request,
    response: Response,
    db: SessionDep,
    rejections: RejectionServiceDep,
) -> dict[str, Any]:
    """Accept a rejection notification sent directly rather than routed."""
    body = await _read_json(request)
    return _handle_rejection(body, db, rejections, response)
