# src/metagraph_sync/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    fibers_router,
    rejections_router,
    snapshots_router,
    webhooks_router,
)

__all__ = [
    "webhooks_router",
    "snapshots_router",
    "fibers_router",
    "rejections_router",
]
