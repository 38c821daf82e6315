from __future__ import annotations

import logging
from typing import Any, Mapping

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

from .errors import ConnectivityError
from .interfaces import DocumentBackend
from .settings import StorageSettings

logger = logging.getLogger(__name__)


class MongoDocumentBackend(DocumentBackend):
    """
    Holds the one shared MongoClient and runs raw "_id"-keyed collection
    operations against it.

    - Collection handles are fetched from the shared database on demand.
    - Driver errors surface as ConnectivityError.

    Pass `client` to use a pre-built client (e.g. mongomock.MongoClient in
    tests); it is not pinged on connect.
    """

    def __init__(
        self,
        connection_string: str = "mongodb://mongo:27017",
        database_name: str = "mineplex",
        *,
        server_selection_timeout_ms: int = 5000,
        client: Any = None,
    ):
        self._connection_string = connection_string
        self._database_name = database_name
        self._timeout_ms = server_selection_timeout_ms
        self._injected_client = client
        self._client: Any = None
        self._db: Database | None = None

    @classmethod
    def from_settings(cls, settings: StorageSettings, *, client: Any = None) -> "MongoDocumentBackend":
        return cls(
            connection_string=settings.connection_string,
            database_name=settings.database,
            server_selection_timeout_ms=settings.server_selection_timeout_ms,
            client=client,
        )

    @property
    def connected(self) -> bool:
        return self._db is not None

    @property
    def database_name(self) -> str:
        return self._database_name

    def connect(self) -> None:
        if self._db is not None:
            return
        try:
            if self._injected_client is not None:
                client = self._injected_client
            else:
                client = MongoClient(self._connection_string, serverSelectionTimeoutMS=self._timeout_ms)
                # MongoClient connects lazily; force a round trip so startup fails loudly.
                try:
                    client.admin.command("ping")
                except PyMongoError:
                    client.close()
                    raise
            self._client = client
            self._db = client[self._database_name]
        except PyMongoError as e:
            logger.error("Failed to connect to MongoDB at %s: %r", self._connection_string, e)
            raise ConnectivityError(f"failed to initialize MongoDB connection: {e}") from e
        logger.info("Connected to MongoDB database: %s", self._database_name)

    def close(self) -> None:
        if self._client is None:
            return
        if self._injected_client is None:
            self._client.close()
        self._client = None
        self._db = None
        logger.info("Disconnected from MongoDB")

    def collection(self, name: str) -> Collection:
        if self._db is None:
            raise ConnectivityError("storage backend is not connected")
        return self._db[name]

    def upsert(self, collection_name: str, doc_id: str, document: Mapping[str, Any]) -> None:
        coll = self.collection(collection_name)
        try:
            coll.replace_one({"_id": doc_id}, dict(document), upsert=True)
        except PyMongoError as e:
            raise ConnectivityError(f"upsert {collection_name}/{doc_id} failed: {e}") from e

    def find_by_id(self, collection_name: str, doc_id: str) -> dict[str, Any] | None:
        coll = self.collection(collection_name)
        try:
            return coll.find_one({"_id": doc_id})
        except PyMongoError as e:
            raise ConnectivityError(f"find {collection_name}/{doc_id} failed: {e}") from e

    def count(self, collection_name: str, doc_id: str) -> int:
        coll = self.collection(collection_name)
        try:
            return int(coll.count_documents({"_id": doc_id}, limit=1))
        except PyMongoError as e:
            raise ConnectivityError(f"count {collection_name}/{doc_id} failed: {e}") from e

    def delete_by_id(self, collection_name: str, doc_id: str) -> None:
        coll = self.collection(collection_name)
        try:
            coll.delete_one({"_id": doc_id})
        except PyMongoError as e:
            raise ConnectivityError(f"delete {collection_name}/{doc_id} failed: {e}") from e
