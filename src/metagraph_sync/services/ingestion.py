"""Front door for ML0 snapshot notifications.

Both the webhook and the fallback poller call ``SnapshotIngestionService``.
It deduplicates by ordinal and materialises a PENDING ``IndexedSnapshot``;
the state fetch that follows runs on the indexing queue, never inline.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from metagraph_sync.models import SNAPSHOT_STATUS_PENDING, IndexedSnapshot
from metagraph_sync.models.snapshot import SOURCE_WEBHOOK
from metagraph_sync.schemas.snapshot import SnapshotNotification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestResult:
    """Outcome of ingesting one notification."""

    ordinal: int
    status: str
    created: bool


class SnapshotIngestionService:
    """Creates PENDING snapshot records, at most one per ordinal."""

    def ingest(
        self,
        db: Session,
        notification: SnapshotNotification,
        *,
        source: str = SOURCE_WEBHOOK,
    ) -> IngestResult:
        """Record ``notification`` unless its ordinal is already indexed.

        A concurrent insert of the same ordinal loses the unique-key race and is
        reported as a duplicate instead of an error.
        """
        existing = db.get(IndexedSnapshot, notification.ordinal)
        if existing is not None:
            logger.info(
                "Snapshot %d already indexed (status: %s)", existing.ordinal, existing.status
            )
            return IngestResult(ordinal=existing.ordinal, status=existing.status, created=False)

        record = IndexedSnapshot(
            ordinal=notification.ordinal,
            hash=notification.hash,
            status=SNAPSHOT_STATUS_PENDING,
            source=source,
        )
        db.add(record)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = db.get(IndexedSnapshot, notification.ordinal)
            if existing is None:
                raise
            logger.info("Snapshot %d indexed concurrently; treating as duplicate", existing.ordinal)
            return IngestResult(ordinal=existing.ordinal, status=existing.status, created=False)

        logger.info("Created PENDING snapshot %d via %s", record.ordinal, source)
        return IngestResult(ordinal=record.ordinal, status=record.status, created=True)
