"""initial indexer schema

Revision ID: 3c1f0a9d7e21
Revises:
Create Date: 2026-10-19 09:12:44.518203

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c1f0a9d7e21"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create snapshot, fiber, transition and rejection tables."""
    op.create_table(
        "indexed_snapshot",
        sa.Column("ordinal", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("hash", sa.Text(), nullable=False),
        sa.Column("status", sa.VARCHAR(length=16), nullable=False),
        sa.Column("gl0_ordinal", sa.BigInteger(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("indexed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", sa.VARCHAR(length=16), nullable=False),
        sa.Column("fibers_updated", sa.Integer(), nullable=False),
        sa.Column("agents_updated", sa.Integer(), nullable=False),
        sa.Column("contracts_updated", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("ordinal"),
    )
    op.create_index("ix_indexed_snapshot_hash", "indexed_snapshot", ["hash"])
    op.create_index("ix_indexed_snapshot_status", "indexed_snapshot", ["status"])

    op.create_table(
        "fiber",
        sa.Column("fiber_id", sa.Text(), nullable=False),
        sa.Column("workflow_type", sa.Text(), nullable=False),
        sa.Column("workflow_desc", sa.Text(), nullable=True),
        sa.Column("kind", sa.VARCHAR(length=32), nullable=False),
        sa.Column("current_state", sa.Text(), nullable=False),
        sa.Column("status", sa.VARCHAR(length=16), nullable=False),
        sa.Column("owners", sa.JSON(), nullable=False),
        sa.Column("state_data", sa.JSON(), nullable=False),
        sa.Column("sequence_number", sa.BigInteger(), nullable=False),
        sa.Column("created_ordinal", sa.BigInteger(), nullable=False),
        sa.Column("updated_ordinal", sa.BigInteger(), nullable=False),
        sa.Column("created_gl0_ordinal", sa.BigInteger(), nullable=True),
        sa.Column("updated_gl0_ordinal", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("fiber_id"),
    )
    op.create_index("ix_fiber_created_ordinal", "fiber", ["created_ordinal"])
    op.create_index("ix_fiber_updated_ordinal", "fiber", ["updated_ordinal"])

    op.create_table(
        "fiber_transition",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("fiber_id", sa.Text(), nullable=False),
        sa.Column("event_name", sa.Text(), nullable=False),
        sa.Column("from_state", sa.Text(), nullable=False),
        sa.Column("to_state", sa.Text(), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("gas_used", sa.BigInteger(), nullable=False),
        sa.Column("snapshot_ordinal", sa.BigInteger(), nullable=False),
        sa.Column("gl0_ordinal", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_fiber_transition_fiber_id", "fiber_transition", ["fiber_id"])
    op.create_index(
        "ix_fiber_transition_snapshot_ordinal", "fiber_transition", ["snapshot_ordinal"]
    )

    op.create_table(
        "rejected_transaction",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("ordinal", sa.BigInteger(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("update_type", sa.Text(), nullable=False),
        sa.Column("fiber_id", sa.Text(), nullable=False),
        sa.Column("update_hash", sa.Text(), nullable=False),
        sa.Column("errors", sa.JSON(), nullable=False),
        sa.Column("signers", sa.JSON(), nullable=False),
        sa.Column("raw_payload", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("update_hash"),
    )
    op.create_index(
        "ix_rejected_transaction_update_type", "rejected_transaction", ["update_type"]
    )
    op.create_index("ix_rejected_transaction_fiber_id", "rejected_transaction", ["fiber_id"])


def downgrade() -> None:
    """Drop the indexer tables."""
    op.drop_table("rejected_transaction")
    op.drop_table("fiber_transition")
    op.drop_table("fiber")
    op.drop_table("indexed_snapshot")
