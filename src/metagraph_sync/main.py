# src/metagraph_sync/main.py
"""Main entry point for the metagraph sync service."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from metagraph_sync.api.v1 import (
    fibers_router,
    rejections_router,
    snapshots_router,
    webhooks_router,
)
from metagraph_sync.core.settings import settings
from metagraph_sync.services.confirmations import ConfirmationPoller
from metagraph_sync.services.events import build_event_publisher
from metagraph_sync.services.indexing import IndexingQueue
from metagraph_sync.services.leader import build_poller_lease
from metagraph_sync.services.metagraph import MetagraphError, get_metagraph_client
from metagraph_sync.services.processor import SnapshotProcessor
from metagraph_sync.services.sequence_cache import SequenceCache
from metagraph_sync.services.snapshot_poller import SnapshotPoller
from metagraph_sync.services.submission import SequencedSubmitter

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    description="Snapshot indexer and sequenced submitter for metagraph fibers",
    version=settings.app_version,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

app.add_middleware(GZipMiddleware)

app.include_router(webhooks_router, prefix="/api/v1")
app.include_router(snapshots_router, prefix="/api/v1")
app.include_router(fibers_router, prefix="/api/v1")
app.include_router(rejections_router, prefix="/api/v1")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


async def _subscribe_webhook() -> str | None:
    if not settings.webhook_auto_subscribe or not settings.indexer_callback_url:
        return None
    try:
        subscription_id = await get_metagraph_client().subscribe_webhook(
            settings.indexer_callback_url
        )
    except MetagraphError as exc:
        logger.error(
            "ML0 webhook registration failed: %s; snapshots rely on the fallback poller", exc
        )
        return None
    logger.info("Registered as ML0 webhook subscriber: %s", subscription_id or "ok")
    return subscription_id


@app.on_event("startup")
async def on_startup() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    client = get_metagraph_client()
    publisher = build_event_publisher()
    app.state.event_publisher = publisher

    app.state.submitter = SequencedSubmitter(
        client, SequenceCache(max_size=settings.sequence_cache_max_size)
    )

    queue = IndexingQueue(SnapshotProcessor(client, publisher))
    await queue.start()
    app.state.indexing_queue = queue

    app.state.confirmation_poller = None
    if settings.confirmation_poller_enabled:
        poller = ConfirmationPoller(client, publisher, build_poller_lease("confirmations"))
        await poller.start()
        app.state.confirmation_poller = poller

    app.state.snapshot_poller = None
    if settings.snapshot_poller_enabled:
        fallback = SnapshotPoller(client, queue=queue, lease=build_poller_lease("snapshots"))
        await fallback.start()
        app.state.snapshot_poller = fallback

    # ML0 keeps subscribers in memory; register again on every start.
    app.state.webhook_subscription_id = await _subscribe_webhook()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    for name in ("snapshot_poller", "confirmation_poller", "indexing_queue"):
        worker = getattr(app.state, name, None)
        if worker:
            await worker.stop()
    publisher = getattr(app.state, "event_publisher", None)
    close = getattr(publisher, "close", None)
    if close is not None:
        await close()
    await get_metagraph_client().close()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok", "service": "indexer"}


@app.get("/version")
async def version() -> dict[str, str]:
    return {"service": "indexer", "version": settings.app_version}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("metagraph_sync.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
