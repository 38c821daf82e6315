from __future__ import annotations

import io
import json
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, TypeVar

from bson import Binary, Decimal128, ObjectId
from pydantic import BaseModel, ValidationError

from .errors import ConfigurationError, SerializationError
from .interfaces import StorableBinaryData, StorableStructuredData
from .metadata import GLOBAL_METADATA, MetadataRegistry

ID_FIELD = "_id"
BINARY_FIELD = "data"
EXCERPT_LIMIT = 500

S = TypeVar("S", bound=StorableStructuredData)
B = TypeVar("B", bound=StorableBinaryData)


def excerpt(text: str | None, limit: int = EXCERPT_LIMIT) -> str:
    if text is None:
        return "null"
    return text[:limit]


def iso_instant(value: datetime) -> str:
    """
    Render a datetime as a UTC ISO-8601 instant with millisecond precision:
    2024-05-01T12:30:00.123Z, or 2024-05-01T12:30:00Z on a whole second.
    Naive values are taken to be UTC, which is how pymongo hands back BSON
    dates by default.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    millis = value.microsecond // 1000
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    if millis:
        text += f".{millis:03d}"
    return text + "Z"


def _opaque_value(value: Any) -> Any:
    # model_dump fallback: values pydantic has no serializer for become an empty object.
    return {}


def _bridge_value(value: Any) -> Any:
    # json.dumps default hook: only called for values json can't encode itself.
    if isinstance(value, datetime):
        return iso_instant(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (ObjectId, uuid.UUID)):
        return str(value)
    if isinstance(value, Decimal128):
        return str(value.to_decimal())
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError:
            pass
    raise TypeError(f"{type(value).__name__} has no wire representation")


def document_to_json(document: Mapping[str, Any]) -> str:
    """
    Stage a stored document as a JSON string, with temporal values rendered
    as ISO-8601 whatever type the driver decoded them into.
    """
    return json.dumps(document, default=_bridge_value, ensure_ascii=False)


class StructuredCodec:
    """
    entity <-> document for structured (pydantic) entities.

    The stored document carries the key value under "_id" only; the key
    attribute itself is removed from the payload and put back on load.
    """

    def __init__(
        self,
        *,
        by_alias: bool = False,
        exclude_none: bool = True,
        metadata: MetadataRegistry = GLOBAL_METADATA,
    ):
        self.by_alias = by_alias
        self.exclude_none = exclude_none
        self._metadata = metadata

    def _payload_key(self, cls: type[BaseModel], key_field: str) -> str:
        if self.by_alias:
            info = cls.model_fields.get(key_field)
            if info is not None and info.serialization_alias:
                return info.serialization_alias
            if info is not None and info.alias:
                return info.alias
        return key_field

    def to_document(self, entity: StorableStructuredData) -> tuple[str, str, dict[str, Any]]:
        """Return (collection, key, document)."""
        cls = type(entity)
        meta = self._metadata.metadata_for(cls)
        key = meta.key_of(entity)

        try:
            payload = entity.model_dump(
                mode="json",
                by_alias=self.by_alias,
                exclude_none=self.exclude_none,
                fallback=_opaque_value,
            )
        except (ValueError, TypeError) as e:
            raise SerializationError(
                f"cannot serialize {cls.__name__} {key!r}: {e}",
                payload_excerpt=excerpt(repr(entity)),
            ) from e

        payload.pop(self._payload_key(cls, meta.key_field), None)

        document: dict[str, Any] = {ID_FIELD: key}
        document.update(payload)
        return meta.collection_name, key, document

    def to_json(self, cls: type[S], document: Mapping[str, Any]) -> str:
        """Rebuild the entity-shaped mapping from a stored document and stage it as JSON."""
        meta = self._metadata.metadata_for(cls)
        data = dict(document)
        key = data.pop(ID_FIELD, None)
        data[self._payload_key(cls, meta.key_field)] = key
        try:
            return document_to_json(data)
        except (TypeError, ValueError) as e:
            raise SerializationError(
                f"cannot encode stored document for {cls.__name__} {key!r}: {e}",
                payload_excerpt=excerpt(repr(data)),
            ) from e

    def from_json(self, cls: type[S], text: str) -> S:
        try:
            return cls.model_validate_json(text)
        except ValidationError as e:
            raise SerializationError(
                f"cannot decode {cls.__name__}: {e.error_count()} validation error(s): {e}",
                payload_excerpt=excerpt(text),
            ) from e

    def from_document(self, cls: type[S], document: Mapping[str, Any]) -> S:
        return self.from_json(cls, self.to_json(cls, document))


class BinaryCodec:
    """entity <-> {"_id": key, "data": <bytes>} for binary entities."""

    def __init__(self, *, metadata: MetadataRegistry = GLOBAL_METADATA):
        self._metadata = metadata

    def to_document(self, entity: StorableBinaryData) -> tuple[str, str, dict[str, Any]]:
        meta = self._metadata.metadata_for(type(entity))
        key = meta.key_of(entity)
        stream = entity.open()
        try:
            payload = stream.read()
        finally:
            stream.close()
        if not isinstance(payload, (bytes, bytearray)):
            raise SerializationError(
                f"{type(entity).__name__}.open() must yield bytes, got {type(payload).__name__}"
            )
        return meta.collection_name, key, {ID_FIELD: key, BINARY_FIELD: Binary(bytes(payload))}

    def from_document(self, cls: type[B], document: Mapping[str, Any]) -> B | None:
        """None when the document has no byte payload."""
        meta = self._metadata.metadata_for(cls)
        raw = document.get(BINARY_FIELD)
        if not isinstance(raw, (bytes, bytearray)):
            return None

        try:
            entity = cls()
        except TypeError as e:
            raise ConfigurationError(f"{cls.__qualname__} must be constructible without arguments") from e
        entity.load(io.BytesIO(bytes(raw)))

        key = document.get(ID_FIELD)
        if key is not None:
            setattr(entity, meta.key_field, str(key))
        return entity
