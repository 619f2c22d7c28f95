"""
Tests for the Record model and timestamp helpers.
"""

from datetime import datetime, timedelta

import pytest

from core.storage.base import Record, next_timestamp, parse_timestamp, utcnow


def test_from_dict_prefers_id_over_native_id():
    record = Record.from_dict({"id": "abc", "_id": "zzz", "name": "Tech"})

    assert record.id == "abc"
    assert record.fields == {"name": "Tech"}


def test_from_dict_falls_back_to_native_id():
    record = Record.from_dict({"_id": "legacy-1", "name": "Old"})

    assert record.id == "legacy-1"
    assert "_id" not in record.fields


def test_from_dict_without_any_id_raises():
    with pytest.raises(ValueError):
        Record.from_dict({"name": "nameless"})


def test_from_dict_parses_iso_timestamps():
    record = Record.from_dict({
        "id": "1",
        "createdAt": "2024-05-01T10:00:00.000Z",
        "updatedAt": "2024-05-01T10:00:01",
    })

    assert record.created_at == datetime(2024, 5, 1, 10, 0, 0)
    assert record.updated_at == datetime(2024, 5, 1, 10, 0, 1)


def test_to_dict_and_item_access():
    now = utcnow()
    record = Record(id="1", fields={"name": "Tech"}, created_at=now, updated_at=now)

    assert record.to_dict() == {
        "id": "1",
        "name": "Tech",
        "createdAt": now,
        "updatedAt": now,
    }
    assert record["name"] == "Tech"
    assert record.get("missing", "x") == "x"


def test_matches_is_flat_equality():
    record = Record(id="7", fields={"status": "Active", "tags": ["a", "b"]})

    assert record.matches({})
    assert record.matches({"status": "Active", "id": 7})
    assert record.matches({"tags": ["a", "b"]})
    assert not record.matches({"status": "Pending"})
    assert not record.matches({"status": "Active", "owner": "someone"})


def test_utcnow_has_millisecond_precision():
    assert utcnow().microsecond % 1000 == 0


def test_next_timestamp_is_strictly_increasing():
    future = utcnow() + timedelta(seconds=5)

    assert next_timestamp(future) == future + timedelta(milliseconds=1)
    assert next_timestamp(None) <= utcnow()


def test_parse_timestamp_rejects_garbage():
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(42) is None
