from __future__ import annotations

import io
import json
import uuid
from datetime import date, datetime, timedelta, timezone

import pytest
from bson import Binary, Decimal128, ObjectId

from datastore import (
    BinaryCodec,
    ConfigurationError,
    PlayerLevelData,
    SerializationError,
    StructuredCodec,
    WorldBinaryData,
)
from datastore.codec import document_to_json, excerpt, iso_instant
from sample_entities import Address, Exploding, Opaque, OwnerSettings, Profile, WithOpaque

T = datetime(2024, 5, 1, 12, 30, 0, 123456, tzinfo=timezone.utc)


def _profile(**overrides) -> Profile:
    fields = dict(key="p-1", name="Ann", joined=T)
    fields.update(overrides)
    return Profile(**fields)


def test_iso_instant_is_utc_millis_with_z():
    assert iso_instant(T) == "2024-05-01T12:30:00.123Z"
    assert iso_instant(datetime(2024, 5, 1, 12, 30, 0, 100000, tzinfo=timezone.utc)) == "2024-05-01T12:30:00.100Z"
    # sub-millisecond remainder alone still counts as a whole second
    assert iso_instant(datetime(2024, 5, 1, 12, 30, 0, 999, tzinfo=timezone.utc)) == "2024-05-01T12:30:00Z"
    # naive values are read as UTC
    assert iso_instant(datetime(2024, 5, 1, 12, 30)) == "2024-05-01T12:30:00Z"
    plus_two = timezone(timedelta(hours=2))
    assert iso_instant(datetime(2024, 5, 1, 14, 30, tzinfo=plus_two)) == "2024-05-01T12:30:00Z"


def test_document_to_json_bridges_driver_types():
    oid = ObjectId()
    uid = uuid.uuid4()
    text = document_to_json(
        {
            "when": datetime(2020, 1, 2, 3, 4, 5, 6000),
            "day": date(2020, 1, 2),
            "oid": oid,
            "uid": uid,
            "amount": Decimal128("1.50"),
            "label": b"hello",
        }
    )
    assert json.loads(text) == {
        "when": "2020-01-02T03:04:05.006Z",
        "day": "2020-01-02",
        "oid": str(oid),
        "uid": str(uid),
        "amount": "1.50",
        "label": "hello",
    }


def test_document_to_json_rejects_unknown_types():
    with pytest.raises(TypeError):
        document_to_json({"x": object()})


def test_excerpt_caps_length():
    assert excerpt("a" * 2000) == "a" * 500
    assert excerpt(None) == "null"


def test_to_document_moves_key_into_id():
    collection, key, doc = StructuredCodec().to_document(_profile())
    assert collection == "profiles"
    assert key == "p-1"
    assert doc["_id"] == "p-1"
    assert "key" not in doc
    assert doc["name"] == "Ann"
    assert list(doc)[0] == "_id"


def test_to_document_flat_merge_and_iso_dates():
    _, _, doc = StructuredCodec().to_document(_profile(address=Address(city="Oslo"), tags=["a"]))
    assert doc["joined"] == "2024-05-01T12:30:00.123456Z"
    assert doc["address"] == {"city": "Oslo"}
    assert doc["tags"] == ["a"]
    assert "data" not in doc


def test_to_document_omits_none_by_default():
    _, _, doc = StructuredCodec().to_document(_profile())
    assert "nickname" not in doc
    assert "address" not in doc

    _, _, doc = StructuredCodec(exclude_none=False).to_document(_profile())
    assert doc["nickname"] is None


def test_to_document_tolerates_unknown_types():
    _, _, doc = StructuredCodec().to_document(WithOpaque(key="o-1", label="x", handle=Opaque()))
    assert doc == {"_id": "o-1", "label": "x", "handle": {}}


def test_to_document_failure_carries_excerpt():
    with pytest.raises(SerializationError) as err:
        StructuredCodec().to_document(Exploding(key="x-1", value=3))
    assert err.value.payload_excerpt is not None
    assert "key='x-1'" in err.value.payload_excerpt
    assert len(err.value.payload_excerpt) <= 500


def test_to_document_requires_key():
    with pytest.raises(ConfigurationError):
        StructuredCodec().to_document(OwnerSettings(theme="light"))


def test_from_document_restores_key_field():
    codec = StructuredCodec()
    _, _, doc = codec.to_document(_profile(nickname="annie"))
    restored = codec.from_document(Profile, doc)
    assert restored == _profile(nickname="annie")


def test_from_document_handles_native_dates():
    doc = {"_id": "p-2", "name": "Bo", "joined": datetime(2024, 5, 1, 12, 30, 0, 123456)}
    restored = StructuredCodec().from_document(Profile, doc)
    assert restored.key == "p-2"
    assert restored.joined == datetime(2024, 5, 1, 12, 30, 0, 123000, tzinfo=timezone.utc)


def test_from_document_ignores_unknown_fields():
    restored = StructuredCodec().from_document(PlayerLevelData, {"_id": "p-3", "experience": 7, "legacy": True})
    assert restored == PlayerLevelData(player_id="p-3", experience=7)


def test_from_document_type_mismatch_is_serialization_error():
    with pytest.raises(SerializationError) as err:
        StructuredCodec().from_document(PlayerLevelData, {"_id": "p-4", "experience": "lots" * 300})
    assert err.value.payload_excerpt is not None
    assert len(err.value.payload_excerpt) == 500
    assert err.value.payload_excerpt.startswith('{"experience": "lots')


def test_from_document_unencodable_value_is_serialization_error():
    with pytest.raises(SerializationError):
        StructuredCodec().from_document(PlayerLevelData, {"_id": "p-5", "experience": object()})


def test_binary_to_document():
    world = WorldBinaryData.for_world("lobby", "w1", b"\x00\x01zip")
    collection, key, doc = BinaryCodec().to_document(world)
    assert collection == "worlds"
    assert key == "lobby:w1"
    assert doc == {"_id": "lobby:w1", "data": Binary(b"\x00\x01zip")}


def test_binary_from_document_builds_empty_then_loads():
    restored = BinaryCodec().from_document(WorldBinaryData, {"_id": "lobby:w1", "data": b"\x00\x01zip"})
    assert isinstance(restored, WorldBinaryData)
    assert restored.data == b"\x00\x01zip"
    assert restored.key == "lobby:w1"
    assert restored.size_in_bytes() == 5
    assert restored.open().read() == b"\x00\x01zip"


def test_binary_from_document_without_payload_is_none():
    assert BinaryCodec().from_document(WorldBinaryData, {"_id": "lobby:w1"}) is None
    assert BinaryCodec().from_document(WorldBinaryData, {"_id": "lobby:w1", "data": "text"}) is None


def test_binary_entity_stream_defaults():
    world = WorldBinaryData()
    assert world.size_in_bytes() == 0
    assert world.open().read() == b""
    world.load(io.BytesIO(b"abc"))
    assert world.size_in_bytes() == 3
