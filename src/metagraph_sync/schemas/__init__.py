# src/metagraph_sync/schemas/__init__.py
"""
Pydantic schemas for webhook payloads, upstream metagraph documents and API responses.
"""

from .fiber import (
    FiberResponse,
    FiberSequenceResponse,
    FiberTransitionListResponse,
    FiberTransitionResponse,
)
from .fiber_state import FiberStateVariant, parse_fiber_state
from .metagraph import Checkpoint, GlobalSnapshot, StateChannelEntry, StateMachineRecord
from .rejection import RejectionAck, RejectionNotification, RejectionResponse
from .snapshot import SnapshotNotification, SnapshotResponse, WebhookAck

__all__ = [
    "FiberResponse", "FiberSequenceResponse", "FiberTransitionListResponse",
    "FiberTransitionResponse",
    "FiberStateVariant", "parse_fiber_state",
    "Checkpoint", "GlobalSnapshot", "StateChannelEntry", "StateMachineRecord",
    "RejectionAck", "RejectionNotification", "RejectionResponse",
    "SnapshotNotification", "SnapshotResponse", "WebhookAck",
]
