# src/metagraph_sync/models/fiber.py
"""SQLAlchemy models for fibers and their recorded transitions."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, VARCHAR, BigInteger, Boolean, DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from metagraph_sync.db.session import Base
from metagraph_sync.models.snapshot import utcnow


class Fiber(Base):
    """Latest indexed view of a state machine running on the metagraph.

    The ``*_gl0_ordinal`` columns are back-filled by the confirmation poller
    once the ML0 snapshot that produced the row is confirmed in GL0.
    """

    __tablename__ = "fiber"

    fiber_id: Mapped[str] = mapped_column(Text, primary_key=True)
    workflow_type: Mapped[str] = mapped_column(Text, nullable=False, default="Unknown")
    workflow_desc: Mapped[str | None] = mapped_column(Text, nullable=True)
    # AgentIdentity, Contract, Market or Unknown.
    kind: Mapped[str] = mapped_column(VARCHAR(32), nullable=False, default="Unknown")
    current_state: Mapped[str] = mapped_column(Text, nullable=False, default="unknown")
    # ACTIVE, ARCHIVED or FAILED.
    status: Mapped[str] = mapped_column(VARCHAR(16), nullable=False, default="ACTIVE")
    owners: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    state_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    sequence_number: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    created_ordinal: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    updated_ordinal: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    created_gl0_ordinal: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    updated_gl0_ordinal: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class FiberTransition(Base):
    """A successful state transition observed in a snapshot's event receipt."""

    __tablename__ = "fiber_transition"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    fiber_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    event_name: Mapped[str] = mapped_column(Text, nullable=False)
    from_state: Mapped[str] = mapped_column(Text, nullable=False)
    to_state: Mapped[str] = mapped_column(Text, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    gas_used: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    snapshot_ordinal: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    gl0_ordinal: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
