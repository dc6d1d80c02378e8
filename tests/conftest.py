# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CONFIRMATION_POLLER_ENABLED", "false")
os.environ.setdefault("SNAPSHOT_POLLER_ENABLED", "false")
os.environ.setdefault("EVENTS_ENABLED", "false")
os.environ.setdefault("WEBHOOK_AUTO_SUBSCRIBE", "false")
os.environ.setdefault("POLLER_LEASE_ENABLED", "false")

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from metagraph_sync.db.session import Base
from metagraph_sync.db.session import get_db as app_get_session
from metagraph_sync.main import app as fastapi_app
from metagraph_sync.models import IndexedSnapshot
from metagraph_sync.models.snapshot import SNAPSHOT_STATUS_PENDING
from metagraph_sync.services.indexing import IndexingQueue
from metagraph_sync.services.metagraph import MetagraphClient

TEST_DB_URL = "sqlite://"


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    # Services commit and roll back on their own, so tests run against real
    # transactions and the tables are emptied afterwards.
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSession()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def fake_indexing_queue() -> MagicMock:
    return MagicMock(spec=IndexingQueue)


@pytest.fixture()
def client(app: FastAPI, fake_indexing_queue: MagicMock) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        real_queue = app.state.indexing_queue
        app.state.indexing_queue = fake_indexing_queue
        try:
            yield test_client
        finally:
            app.state.indexing_queue = real_queue


@pytest.fixture()
def mock_metagraph_client() -> AsyncMock:
    client = AsyncMock(spec=MetagraphClient)
    client.gl0_configured = True
    client.get_metrics = MagicMock(return_value={})
    return client


@pytest.fixture()
def make_snapshot(db_session: Session) -> Callable[..., IndexedSnapshot]:
    """Persist an ``IndexedSnapshot`` row."""

    def _make(
        ordinal: int,
        hash: str | None = None,
        status: str = SNAPSHOT_STATUS_PENDING,
        **fields: Any,
    ) -> IndexedSnapshot:
        snapshot = IndexedSnapshot(
            ordinal=ordinal,
            hash=hash or f"hash-{ordinal}",
            status=status,
            **fields,
        )
        db_session.add(snapshot)
        db_session.commit()
        return snapshot

    return _make
