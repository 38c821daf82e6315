from __future__ import annotations


class StorageError(Exception):
    """Base class for everything the storage layer raises."""


class ConfigurationError(StorageError):
    """
    The entity type (or instance) is not storable as written: missing
    collection metadata, missing key field, or a null key at store time.

    This is a programming mistake, so the facade never swallows it.
    """


class SerializationError(StorageError):
    def __init__(self, message: str, *, payload_excerpt: str | None = None):
        super().__init__(message)
        self.payload_excerpt = payload_excerpt


class ConnectivityError(StorageError):
    """The document store is unreachable or rejected the operation."""
