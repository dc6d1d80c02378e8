"""Snapshot notification and snapshot listing schemas."""
from __future__ import annotations

from datetime import datetime

from pydantic import ConfigDict, Field, field_validator

from metagraph_sync.schemas.common import MAX_ORDINAL, CamelModel, parse_iso_timestamp


class SnapshotNotification(CamelModel):
    """Payload ML0 pushes to the webhook when it produces a snapshot."""

    ordinal: int = Field(
        ..., ge=0, le=MAX_ORDINAL, strict=True, description="ML0 snapshot ordinal"
    )
    hash: str = Field(..., min_length=1, description="Snapshot hash reported by ML0")
    timestamp: datetime = Field(..., description="ISO 8601 production time")
    agents_updated: int | None = None
    contracts_updated: int | None = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _require_iso_timestamp(cls, value: object) -> object:
        return parse_iso_timestamp(value)


class WebhookAck(CamelModel):
    """Acknowledgement returned by the snapshot webhook."""

    accepted: bool = True
    ordinal: int
    status: str
    already_indexed: bool | None = None


class SnapshotResponse(CamelModel):
    """Schema for an indexed snapshot returned by the API."""

    ordinal: int
    hash: str
    status: str
    gl0_ordinal: int | None = None
    confirmed_at: datetime | None = None
    indexed_at: datetime | None = None
    source: str | None = None
    fibers_updated: int = 0
    agents_updated: int = 0
    contracts_updated: int = 0

    model_config = ConfigDict(from_attributes=True)


class SnapshotListResponse(CamelModel):
    """Snapshots newest-ordinal-first plus the total matching the filter."""

    snapshots: list[SnapshotResponse]
    total: int
