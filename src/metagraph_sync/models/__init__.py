# src/metagraph_sync/models/__init__.py
"""SQLAlchemy models for the metagraph sync service."""

from .fiber import Fiber, FiberTransition
from .rejection import RejectedTransaction
from .snapshot import (
    SNAPSHOT_STATUSES,
    SNAPSHOT_STATUS_CONFIRMED,
    SNAPSHOT_STATUS_ORPHANED,
    SNAPSHOT_STATUS_PENDING,
    IndexedSnapshot,
)

__all__ = [
    "Fiber", "FiberTransition",
    "RejectedTransaction",
    "IndexedSnapshot",
    "SNAPSHOT_STATUSES",
    "SNAPSHOT_STATUS_CONFIRMED",
    "SNAPSHOT_STATUS_ORPHANED",
    "SNAPSHOT_STATUS_PENDING",
]
