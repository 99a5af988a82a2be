"""
Unit tests for the change feed event model.
"""

import pytest
from bson import ObjectId
from pydantic import ValidationError

from searchsync.sync.events import WATCHED_OPERATIONS, ChangeEvent, OperationType


def test_event_from_mongodb_change():
    oid = ObjectId()
    event = ChangeEvent.model_validate({
        "_id": {"_data": "8263..."},
        "operationType": "replace",
        "ns": {"db": "shop", "coll": "prices"},
        "documentKey": {"_id": oid},
        "fullDocument": {"_id": oid, "Name": "x"},
    })

    assert event.operation_type is OperationType.REPLACE
    assert event.record_id == str(oid)
    assert event.full_document["Name"] == "x"
    assert not event.is_delete


def test_delete_event_has_no_document():
    event = ChangeEvent.model_validate({"operationType": "delete", "documentKey": {"_id": "a"}})

    assert event.is_delete
    assert event.full_document is None


def test_unwatched_operation_is_rejected():
    with pytest.raises(ValidationError):
        ChangeEvent.model_validate({"operationType": "drop", "documentKey": {"_id": "a"}})


def test_watched_operations():
    assert set(WATCHED_OPERATIONS) == {"insert", "update", "replace", "delete"}
