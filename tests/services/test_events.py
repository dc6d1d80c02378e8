import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from metagraph_sync.services.events import (
    CHANNEL_STATS_UPDATED,
    NullEventPublisher,
    RedisEventPublisher,
    build_event_publisher,
)


@pytest.mark.asyncio
async def test_publish_encodes_payload_as_json():
    redis_client = AsyncMock()
    publisher = RedisEventPublisher(redis_client)

    await publisher.publish(CHANNEL_STATS_UPDATED, {"event": "SNAPSHOT_INDEXED", "ordinal": 42})

    channel, message = redis_client.publish.await_args.args
    assert channel == CHANNEL_STATS_UPDATED
    assert json.loads(message) == {"event": "SNAPSHOT_INDEXED", "ordinal": 42}


@pytest.mark.asyncio
async def test_publish_failure_is_logged_not_raised(caplog):
    redis_client = AsyncMock()
    redis_client.publish.side_effect = RedisConnectionError("gone")
    publisher = RedisEventPublisher(redis_client)

    await publisher.publish(CHANNEL_STATS_UPDATED, {"event": "SNAPSHOT_INDEXED"})

    assert "Failed to publish" in caplog.text


@pytest.mark.asyncio
async def test_close_releases_connection():
    redis_client = AsyncMock()

    await RedisEventPublisher(redis_client).close()

    redis_client.aclose.assert_awaited_once()


def test_disabled_events_use_null_publisher():
    assert isinstance(build_event_publisher(), NullEventPublisher)
