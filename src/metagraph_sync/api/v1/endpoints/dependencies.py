"""Request dependencies shared by the v1 endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from metagraph_sync.db.session import get_db
from metagraph_sync.services.confirmations import ConfirmationPoller
from metagraph_sync.services.indexing import IndexingQueue
from metagraph_sync.services.ingestion import SnapshotIngestionService
from metagraph_sync.services.rejections import RejectionService
from metagraph_sync.services.snapshot_poller import SnapshotPoller
from metagraph_sync.services.submission import SequencedSubmitter


def get_indexing_queue(request: Request) -> IndexingQueue | None:
    """Queue created at startup; None before startup or in bare test apps."""
    return getattr(request.app.state, "indexing_queue", None)


def get_confirmation_poller(request: Request) -> ConfirmationPoller | None:
    return getattr(request.app.state, "confirmation_poller", None)


def get_snapshot_poller(request: Request) -> SnapshotPoller | None:
    return getattr(request.app.state, "snapshot_poller", None)


def get_submitter(request: Request) -> SequencedSubmitter | None:
    """Submitter sharing the process-wide sequence cache."""
    return getattr(request.app.state, "submitter", None)


def get_ingestion_service() -> SnapshotIngestionService:
    return SnapshotIngestionService()


def get_rejection_service() -> RejectionService:
    return RejectionService()


SessionDep = Annotated[Session, Depends(get_db)]
IndexingQueueDep = Annotated[IndexingQueue | None, Depends(get_indexing_queue)]
ConfirmationPollerDep = Annotated[ConfirmationPoller | None, Depends(get_confirmation_poller)]
SnapshotPollerDep = Annotated[SnapshotPoller | None, Depends(get_snapshot_poller)]
IngestionDep = Annotated[SnapshotIngestionService, Depends(get_ingestion_service)]
RejectionServiceDep = Annotated[RejectionService, Depends(get_rejection_service)]
SubmitterDep = Annotated[SequencedSubmitter | None, Depends(get_submitter)]
