from helpers import rejection_payload
from metagraph_sync.models import RejectedTransaction
from metagraph_sync.schemas.rejection import RejectionNotification
from metagraph_sync.services.rejections import RejectionService


def _store(db, update_hash, **kwargs):
    payload = rejection_payload(update_hash, **kwargs)
    return RejectionService().store(db, RejectionNotification.model_validate(payload), payload)


def test_store_persists_rejection(db_session):
    result = _store(db_session, "upd-1")

    assert result.created is True
    row = result.rejection
    assert row.fiber_id == "fiber-1"
    assert row.update_type == "TransitionStateMachine"
    assert row.errors == [{"code": "SequenceNumberMismatch", "message": "expected 3, got 2"}]
    assert row.signers == ["DAG1owner"]
    assert row.raw_payload["rejection"]["updateHash"] == "upd-1"


def test_store_is_idempotent_per_update_hash(db_session):
    _store(db_session, "upd-1")
    second = _store(db_session, "upd-1", ordinal=43)

    assert second.created is False
    assert second.rejection.ordinal == 42
    assert db_session.query(RejectedTransaction).count() == 1


def test_raw_payload_defaults_to_validated_model(db_session):
    notification = RejectionNotification.model_validate(rejection_payload("upd-9"))

    row = RejectionService().store(db_session, notification).rejection

    assert row.raw_payload["event"] == "transaction.rejected"
    assert row.raw_payload["rejection"]["fiberId"] == "fiber-1"


def test_list_filters_and_orders_newest_first(db_session):
    _store(db_session, "a", fiber_id="f1", ordinal=10)
    _store(db_session, "b", fiber_id="f1", ordinal=20, update_type="CreateStateMachine")
    _store(db_session, "c", fiber_id="f2", ordinal=30)

    rows, total = RejectionService.list_rejections(db_session, fiber_id="f1")
    assert total == 2
    assert [row.update_hash for row in rows] == ["b", "a"]

    rows, total = RejectionService.list_rejections(db_session, update_type="CreateStateMachine")
    assert [row.update_hash for row in rows] == ["b"]

    rows, total = RejectionService.list_rejections(db_session, from_ordinal=20, to_ordinal=30)
    assert total == 2
    assert {row.update_hash for row in rows} == {"b", "c"}


def test_list_paginates(db_session):
    for i in range(5):
        _store(db_session, f"upd-{i}")

    rows, total = RejectionService.list_rejections(db_session, limit=2, offset=2)

    assert total == 5
    assert [row.update_hash for row in rows] == ["upd-2", "upd-1"]


def test_get_by_hash(db_session):
    _store(db_session, "upd-1")

    assert RejectionService.get_by_hash(db_session, "upd-1").fiber_id == "fiber-1"
    assert RejectionService.get_by_hash(db_session, "missing") is None
