# src/metagraph_sync/services/__init__.py
"""Indexing, confirmation and submission services."""

from .confirmations import ConfirmationPoller
from .indexing import IndexingQueue
from .ingestion import SnapshotIngestionService
from .processor import SnapshotProcessor
from .rejections import RejectionService
from .sequence_cache import SequenceCache
from .snapshot_poller import SnapshotPoller
from .submission import SequencedSubmitter

__all__ = [
    "ConfirmationPoller",
    "IndexingQueue",
    "RejectionService",
    "SequenceCache",
    "SequencedSubmitter",
    "SnapshotIngestionService",
    "SnapshotPoller",
    "SnapshotProcessor",
]
