from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any, BinaryIO, Mapping, Protocol

from pydantic import BaseModel


class StorableStructuredData(BaseModel):
    """
    Base for entities persisted as JSON-like documents.

    Subclasses are plain pydantic models plus `@data_collection(...)` and a
    string key attribute.
    """


class StorableBinaryData(abc.ABC):
    """
    Base for entities persisted as a single opaque byte payload.

    Subclasses must be constructible without arguments; the load path builds
    an empty instance and hands it the stored bytes.
    """

    @abc.abstractmethod
    def open(self) -> BinaryIO:
        """Return a readable stream over the current payload."""

    @abc.abstractmethod
    def load(self, stream: BinaryIO) -> None:
        """Replace the payload with the contents of `stream`."""

    @abc.abstractmethod
    def size_in_bytes(self) -> int:
        ...


class DocumentBackend(Protocol):
    """
    Raw collection operations against a document store, keyed by "_id".
    """

    def connect(self) -> None: ...
    def close(self) -> None: ...

    def upsert(self, collection_name: str, doc_id: str, document: Mapping[str, Any]) -> None: ...
    def find_by_id(self, collection_name: str, doc_id: str) -> dict[str, Any] | None: ...
    def count(self, collection_name: str, doc_id: str) -> int: ...
    def delete_by_id(self, collection_name: str, doc_id: str) -> None: ...


@dataclass(frozen=True)
class OperationContext:
    operation: str
    collection: str | None
    key: str | None
    type_name: str


class ErrorSink(Protocol):
    def __call__(self, ctx: OperationContext, exc: Exception) -> None:
        """Handle a failure the facade would otherwise swallow."""
        ...
