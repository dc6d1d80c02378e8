"""Fiber and transition response schemas."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import ConfigDict

from metagraph_sync.schemas.common import CamelModel


class FiberResponse(CamelModel):
    """Indexed fiber as returned by the API."""

    fiber_id: str
    workflow_type: str
    workflow_desc: str | None = None
    kind: str
    current_state: str
    status: str
    owners: list[str]
    state_data: dict[str, Any]
    sequence_number: int
    created_ordinal: int
    updated_ordinal: int
    created_gl0_ordinal: int | None = None
    updated_gl0_ordinal: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class FiberTransitionResponse(CamelModel):
    id: int
    fiber_id: str
    event_name: str
    from_state: str
    to_state: str
    success: bool
    gas_used: int
    snapshot_ordinal: int
    gl0_ordinal: int | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class FiberTransitionListResponse(CamelModel):
    transitions: list[FiberTransitionResponse]
    total: int
    has_more: bool


class FiberSequenceResponse(CamelModel):
    """Sequence number the next update for a fiber should target."""

    fiber_id: str
    next_sequence: int
    cached_sequence: int
