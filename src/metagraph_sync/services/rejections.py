"""Storage and lookup of transactions ML0 rejected during validation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from metagraph_sync.models import RejectedTransaction
from metagraph_sync.schemas.rejection import RejectionNotification

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class StoreResult:
    rejection: RejectedTransaction
    created: bool


class RejectionService:
    """Persists rejection notifications, one row per update hash."""

    def store(
        self,
        db: Session,
        notification: RejectionNotification,
        raw_payload: dict[str, Any] | None = None,
    ) -> StoreResult:
        """Persist ``notification`` unless its update hash is already stored.

        ``raw_payload`` is the body as received; the validated model is stored
        when it is not given.
        """
        detail = notification.rejection
        existing = self.get_by_hash(db, detail.update_hash)
        if existing is not None:
            logger.info("Rejection %s already indexed", detail.update_hash)
            return StoreResult(rejection=existing, created=False)

        record = RejectedTransaction(
            ordinal=notification.ordinal,
            timestamp=notification.timestamp,
            update_type=detail.update_type,
            fiber_id=detail.fiber_id,
            update_hash=detail.update_hash,
            errors=[item.model_dump() for item in detail.errors],
            signers=list(detail.signers),
            raw_payload=(
                raw_payload
                if raw_payload is not None
                else notification.model_dump(mode="json", by_alias=True)
            ),
        )
        db.add(record)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = self.get_by_hash(db, detail.update_hash)
            if existing is None:
                raise
            return StoreResult(rejection=existing, created=False)

        db.refresh(record)
        logger.warning(
            "Stored rejection %s for fiber %s (%s): %s",
            detail.update_hash,
            detail.fiber_id,
            detail.update_type,
            ", ".join(item.code for item in detail.errors) or "no error codes",
        )
        return StoreResult(rejection=record, created=True)

    @staticmethod
    def get_by_hash(db: Session, update_hash: str) -> RejectedTransaction | None:
        return db.scalars(
            select(RejectedTransaction).where(RejectedTransaction.update_hash == update_hash)
        ).first()

    @staticmethod
    def list_rejections(
        db: Session,
        *,
        fiber_id: str | None = None,
        update_type: str | None = None,
        from_ordinal: int | None = None,
        to_ordinal: int | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> tuple[list[RejectedTransaction], int]:
        """Return one page of rejections, newest first, and the total matching."""
        conditions = []
        if fiber_id:
            conditions.append(RejectedTransaction.fiber_id == fiber_id)
        if update_type:
            conditions.append(RejectedTransaction.update_type == update_type)
        if from_ordinal is not None:
            conditions.append(RejectedTransaction.ordinal >= from_ordinal)
        if to_ordinal is not None:
            conditions.append(RejectedTransaction.ordinal <= to_ordinal)

        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(offset, 0)
        rows = db.scalars(
            select(RejectedTransaction)
            .where(*conditions)
            .order_by(RejectedTransaction.created_at.desc(), RejectedTransaction.id.desc())
            .limit(limit)
            .offset(offset)
        ).all()
        total = db.scalar(
            select(func.count()).select_from(RejectedTransaction).where(*conditions)
        )
        return list(rows), total or 0
