# src/metagraph_sync/models/snapshot.py
"""SQLAlchemy model for ML0 snapshots observed by the indexer."""

from datetime import UTC, datetime

from sqlalchemy import VARCHAR, BigInteger, DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from metagraph_sync.db.session import Base

SNAPSHOT_STATUS_PENDING = "PENDING"
SNAPSHOT_STATUS_CONFIRMED = "CONFIRMED"
SNAPSHOT_STATUS_ORPHANED = "ORPHANED"
SNAPSHOT_STATUSES = (
    SNAPSHOT_STATUS_PENDING,
    SNAPSHOT_STATUS_CONFIRMED,
    SNAPSHOT_STATUS_ORPHANED,
)

SOURCE_WEBHOOK = "webhook"
SOURCE_POLLER = "poller"


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


class IndexedSnapshot(Base):
    """One row per ML0 ordinal seen through the webhook or the fallback poller.

    Status moves PENDING -> CONFIRMED once GL0 includes the snapshot, or
    PENDING -> ORPHANED once a later ordinal is confirmed first. Both are final.
    """

    __tablename__ = "indexed_snapshot"

    ordinal: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    hash: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        VARCHAR(16), nullable=False, default=SNAPSHOT_STATUS_PENDING, index=True
    )
    # Set only on the transition to CONFIRMED.
    gl0_ordinal: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    indexed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    source: Mapped[str] = mapped_column(VARCHAR(16), nullable=False, default=SOURCE_WEBHOOK)

    # Counters written by the processor; opaque to the confirmation logic.
    fibers_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    agents_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    contracts_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
