# src/metagraph_sync/models/rejection.py
"""SQLAlchemy model for transactions ML0 rejected during validation."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from metagraph_sync.db.session import Base
from metagraph_sync.models.snapshot import utcnow


class RejectedTransaction(Base):
    """Rejection notification pushed by ML0, deduplicated by update hash."""

    __tablename__ = "rejected_transaction"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ordinal: Mapped[int] = mapped_column(BigInteger, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    update_type: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    fiber_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    update_hash: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    errors: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    signers: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    raw_payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
