"""Rejection notification schemas."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import ConfigDict, Field, field_validator

from metagraph_sync.schemas.common import MAX_ORDINAL, CamelModel, parse_iso_timestamp

REJECTION_EVENT = "transaction.rejected"


class ValidationErrorItem(CamelModel):
    """One validation failure reported by ML0."""

    code: str
    message: str


class RejectionDetail(CamelModel):
    """The rejected update itself."""

    update_type: str = Field(..., min_length=1)
    fiber_id: str = Field(..., min_length=1)
    update_hash: str = Field(..., min_length=1)
    errors: list[ValidationErrorItem] = Field(default_factory=list)
    signers: list[str] = Field(default_factory=list)


class RejectionNotification(CamelModel):
    """Payload ML0 pushes when a submitted update fails validation."""

    event: Literal["transaction.rejected"] = REJECTION_EVENT
    ordinal: int = Field(..., ge=0, le=MAX_ORDINAL, strict=True)
    timestamp: datetime
    rejection: RejectionDetail

    @field_validator("timestamp", mode="before")
    @classmethod
    def _require_iso_timestamp(cls, value: object) -> object:
        return parse_iso_timestamp(value)


class RejectionAck(CamelModel):
    """Acknowledgement returned by the rejection webhook."""

    accepted: bool = True
    update_hash: str | None = None
    already_indexed: bool | None = None


class RejectionResponse(CamelModel):
    """Schema for a stored rejection returned by the API."""

    id: int
    ordinal: int
    timestamp: datetime
    update_type: str
    fiber_id: str
    update_hash: str
    errors: list[dict[str, Any]]
    signers: list[str]
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class RejectionDetailResponse(RejectionResponse):
    """Single rejection including the raw webhook payload."""

    raw_payload: dict[str, Any] = Field(default_factory=dict)


class RejectionListResponse(CamelModel):
    """Page of rejections."""

    rejections: list[RejectionResponse]
    total: int
    has_more: bool
