"""Tests for the rejected transaction query endpoints."""

from fastapi import status
from fastapi.testclient import TestClient

from helpers import rejection_payload


def _post(client: TestClient, update_hash: str, **kwargs) -> None:
    r = client.post("/api/v1/webhook/rejection", json=rejection_payload(update_hash, **kwargs))
    assert r.status_code == status.HTTP_201_CREATED


def test_list_rejections(client: TestClient) -> None:
    _post(client, "a", ordinal=10)
    _post(client, "b", ordinal=20, update_type="CreateStateMachine")
    _post(client, "c", ordinal=30, fiber_id="fiber-2")

    r = client.get("/api/v1/rejections")

    assert r.status_code == status.HTTP_200_OK
    data = r.json()
    assert [row["updateHash"] for row in data["rejections"]] == ["c", "b", "a"]
    assert data["total"] == 3
    assert data["hasMore"] is False
    first = data["rejections"][0]
    assert first["fiberId"] == "fiber-2"
    assert first["errors"][0]["code"] == "SequenceNumberMismatch"
    assert "rawPayload" not in first


def test_list_rejections_filters(client: TestClient) -> None:
    _post(client, "a", ordinal=10)
    _post(client, "b", ordinal=20, update_type="CreateStateMachine")
    _post(client, "c", ordinal=30, fiber_id="fiber-2")

    by_fiber = client.get("/api/v1/rejections", params={"fiberId": "fiber-1"}).json()
    assert {row["updateHash"] for row in by_fiber["rejections"]} == {"a", "b"}

    by_type = client.get(
        "/api/v1/rejections", params={"updateType": "CreateStateMachine"}
    ).json()
    assert [row["updateHash"] for row in by_type["rejections"]] == ["b"]

    by_range = client.get(
        "/api/v1/rejections", params={"fromOrdinal": 15, "toOrdinal": 30}
    ).json()
    assert {row["updateHash"] for row in by_range["rejections"]} == {"b", "c"}

    page = client.get("/api/v1/rejections", params={"limit": 2, "offset": 0}).json()
    assert len(page["rejections"]) == 2
    assert page["hasMore"] is True


def test_get_rejection_by_hash(client: TestClient) -> None:
    _post(client, "a")

    r = client.get("/api/v1/rejections/a")

    assert r.status_code == status.HTTP_200_OK
    data = r.json()
    assert data["updateHash"] == "a"
    assert data["rawPayload"]["event"] == "transaction.rejected"


def test_unknown_rejection(client: TestClient) -> None:
    r = client.get("/api/v1/rejections/missing")
    assert r.status_code == status.HTTP_404_NOT_FOUND


def test_limit_above_maximum(client: TestClient) -> None:
    r = client.get("/api/v1/rejections", params={"limit": 101})
    assert r.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_ordinal_filters_beyond_column_range(client: TestClient) -> None:
    r = client.get("/api/v1/rejections", params={"fromOrdinal": 2**64})
    assert r.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    r = client.get("/api/v1/rejections", params={"offset": 2**64})
    assert r.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
