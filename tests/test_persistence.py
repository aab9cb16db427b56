import logging

import pytest

from gridfantasy.persistence import (
    SERVER_TIMESTAMP,
    BatchLimitExceeded,
    DocumentExists,
    DocumentNotFound,
    DocumentRef,
    Increment,
    apply_update,
)


def test_document_ref_requires_even_segments():
    ref = DocumentRef("/leagues/L1/members/u1/")
    assert ref.path == "leagues/L1/members/u1"
    assert ref.id == "u1"
    assert ref.collection == "leagues/L1/members"
    with pytest.raises(ValueError):
        DocumentRef("leagues/L1/members")


def test_apply_update_handles_dotted_paths_and_transforms():
    data = {"lockStatus": {"canModify": True, "lockReason": None}, "totalPoints": 10}
    updated = apply_update(
        data,
        {
            "lockStatus.canModify": False,
            "totalPoints": Increment(5),
            "budget": Increment(-50),
            "stamp": SERVER_TIMESTAMP,
        },
        timestamp="2024-03-02T15:00:00+00:00",
    )
    assert updated["lockStatus"] == {"canModify": False, "lockReason": None}
    assert updated["totalPoints"] == 15
    assert updated["budget"] == -50
    assert updated["stamp"] == "2024-03-02T15:00:00+00:00"
    assert data["totalPoints"] == 10


def test_set_get_and_update(store):
    ref = store.doc("fantasyTeams", "t1")
    store.set(ref, {"totalPoints": 1, "createdAt": SERVER_TIMESTAMP})
    store.update(ref, {"totalPoints": Increment(4)})

    snap = store.get(ref)
    assert snap.exists
    assert snap.get("totalPoints") == 5
    assert isinstance(snap.get("createdAt"), str)
    assert not store.get(store.doc("fantasyTeams", "missing")).exists


def test_update_missing_document_raises(store):
    with pytest.raises(DocumentNotFound):
        store.update(store.doc("leagues", "L1", "members", "ghost"), {"totalPoints": Increment(1)})


def test_create_existing_document_raises(store):
    ref = store.doc("races", "r1")
    store.create(ref, {"status": "upcoming"})
    with pytest.raises(DocumentExists):
        store.create(ref, {"status": "upcoming"})


def test_batch_is_atomic(store):
    batch = store.batch()
    batch.set(store.doc("drivers", "d1"), {"price": 100})
    batch.update(store.doc("drivers", "missing"), {"price": 5})
    with pytest.raises(DocumentNotFound):
        batch.commit()
    assert not store.get(store.doc("drivers", "d1")).exists


def test_batch_rejects_operations_over_limit(store):
    batch = store.batch(max_operations=2)
    batch.set(store.doc("drivers", "d1"), {})
    batch.set(store.doc("drivers", "d2"), {})
    with pytest.raises(BatchLimitExceeded):
        batch.set(store.doc("drivers", "d3"), {})


def test_query_filters_and_orders(store):
    store.set(store.doc("leagues", "L1", "members", "a"), {"totalPoints": 10, "active": True})
    store.set(store.doc("leagues", "L1", "members", "b"), {"active": True})
    store.set(store.doc("leagues", "L1", "members", "c"), {"totalPoints": 30, "active": False})
    store.set(store.doc("leagues", "L1", "members", "d"), {"totalPoints": 20, "active": True})

    active = store.query("leagues/L1/members", where=[("active", True)])
    assert [snap.id for snap in active] == ["a", "b", "d"]

    ordered = store.query("leagues/L1/members", order_by="totalPoints", descending=True)
    assert [snap.id for snap in ordered] == ["c", "d", "a", "b"]


def test_get_all_preserves_order_and_missing(store):
    store.set(store.doc("leagues", "L1"), {"name": "One"})
    snaps = store.get_all([store.doc("leagues", "L2"), store.doc("leagues", "L1")])
    assert [(snap.id, snap.exists) for snap in snaps] == [("L2", False), ("L1", True)]


def test_update_listeners_fire_only_for_existing_documents(store):
    seen = []
    store.on_update("races", lambda doc_id, change: seen.append((doc_id, change.before.get("status"), change.after.get("status"))))

    ref = store.doc("races", "r1")
    store.create(ref, {"status": "upcoming"})
    store.update(ref, {"status": "completed"})
    store.set(store.doc("drivers", "d1"), {"price": 10})

    assert seen == [("r1", "upcoming", "completed")]


def test_listener_failure_does_not_undo_write(store, caplog):
    def explode(doc_id, change):
        raise RuntimeError("boom")

    store.on_update("races", explode)
    ref = store.doc("races", "r1")
    store.set(ref, {"status": "upcoming"})
    with caplog.at_level(logging.ERROR, logger="gridfantasy.persistence"):
        store.update(ref, {"status": "completed"})

    assert store.get(ref).get("status") == "completed"
    assert "Update listener failed for races/r1" in caplog.text
