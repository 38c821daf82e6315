from __future__ import annotations

from .annotations import DataKey, data_collection
from .codec import BinaryCodec, StructuredCodec
from .entities import PlayerLevelData, PlayerStatsData, WorldBinaryData
from .errors import ConfigurationError, ConnectivityError, SerializationError, StorageError
from .interfaces import (
    DocumentBackend,
    ErrorSink,
    OperationContext,
    StorableBinaryData,
    StorableStructuredData,
)
from .metadata import GLOBAL_METADATA, EntityMetadata, MetadataRegistry
from .mongo_backend import MongoDocumentBackend
from .settings import StorageSettings, get_settings
from .storage import DataStorage, LoggingErrorSink, RaisingErrorSink

__all__ = [
    "DataKey",
    "data_collection",
    "StorableStructuredData",
    "StorableBinaryData",
    "DocumentBackend",
    "ErrorSink",
    "OperationContext",
    "EntityMetadata",
    "MetadataRegistry",
    "GLOBAL_METADATA",
    "StructuredCodec",
    "BinaryCodec",
    "MongoDocumentBackend",
    "DataStorage",
    "LoggingErrorSink",
    "RaisingErrorSink",
    "StorageSettings",
    "get_settings",
    "StorageError",
    "ConfigurationError",
    "SerializationError",
    "ConnectivityError",
    "PlayerStatsData",
    "PlayerLevelData",
    "WorldBinaryData",
]
