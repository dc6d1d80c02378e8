# src/metagraph_sync/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .fibers import router as fibers_router
from .rejections import router as rejections_router
from .snapshots import router as snapshots_router
from .webhooks import router as webhooks_router

__all__ = [
    "webhooks_router",
    "snapshots_router",
    "fibers_router",
    "rejections_router",
]
