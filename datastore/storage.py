from __future__ import annotations

import asyncio
import functools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

from .codec import BinaryCodec, StructuredCodec, excerpt
from .errors import ConfigurationError, ConnectivityError, SerializationError
from .interfaces import (
    DocumentBackend,
    ErrorSink,
    OperationContext,
    StorableBinaryData,
    StorableStructuredData,
)
from .metadata import GLOBAL_METADATA, MetadataRegistry
from .mongo_backend import MongoDocumentBackend
from .settings import StorageSettings, get_settings

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=StorableStructuredData)
B = TypeVar("B", bound=StorableBinaryData)
R = TypeVar("R")


class LoggingErrorSink(ErrorSink):
    def __call__(self, ctx: OperationContext, exc: Exception) -> None:
        logger.error(
            "[DataStorage] Failed to %s: collection=%s, key=%s, class=%s: %s",
            ctx.operation,
            ctx.collection,
            ctx.key,
            ctx.type_name,
            exc,
            exc_info=exc,
        )
        if isinstance(exc, SerializationError) and exc.payload_excerpt is not None:
            logger.error("[DataStorage] Payload that failed to (de)serialize: %s", exc.payload_excerpt)


class RaisingErrorSink(ErrorSink):
    def __call__(self, ctx: OperationContext, exc: Exception) -> None:
        raise exc


class DataStorage:
    """
    Public storage contract for structured and binary entities.

    Every operation has an `*_async` twin that runs the sync body on the
    storage's worker pool. Configuration errors (bad entity declarations,
    None keys) raise; anything else goes to the error sink and the call
    returns None / False / nothing.
    """

    def __init__(
        self,
        backend: DocumentBackend | None = None,
        *,
        settings: StorageSettings | None = None,
        error_sink: ErrorSink | None = None,
        metadata: MetadataRegistry = GLOBAL_METADATA,
    ):
        self._settings = settings or get_settings()
        self._backend = backend or MongoDocumentBackend.from_settings(self._settings)
        if error_sink is None:
            error_sink = RaisingErrorSink() if self._settings.raise_errors else LoggingErrorSink()
        self._error_sink = error_sink
        self._metadata = metadata

        self._codec = StructuredCodec(metadata=metadata)
        self._binary_codec = BinaryCodec(metadata=metadata)

        self._executor_lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None
        self._torn_down = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def setup(self) -> None:
        self._backend.connect()
        with self._executor_lock:
            self._torn_down = False
        self._ensure_executor()

    def teardown(self) -> None:
        with self._executor_lock:
            executor, self._executor = self._executor, None
            self._torn_down = True
        if executor is not None:
            executor.shutdown(wait=True)
        self._backend.close()

    def __enter__(self) -> "DataStorage":
        self.setup()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.teardown()

    @property
    def backend(self) -> DocumentBackend:
        return self._backend

    @property
    def codec(self) -> StructuredCodec:
        return self._codec

    def reset_codec(self, **options: Any) -> None:
        """Replace the structured codec with defaults overridden by `options`."""
        # Each call reads self._codec once, so a plain rebind is enough.
        self._codec = StructuredCodec(metadata=self._metadata, **options)

    def _ensure_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._torn_down:
                raise ConnectivityError("storage has been torn down; call setup() again")
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._settings.max_workers,
                    thread_name_prefix="datastore",
                )
            return self._executor

    async def _submit(self, fn: Callable[..., R], *args: Any) -> R:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._ensure_executor(), functools.partial(fn, *args))

    def _guarded(self, ctx: OperationContext, body: Callable[[], R], default: R) -> R:
        try:
            return body()
        except ConfigurationError:
            raise
        except Exception as e:
            self._error_sink(ctx, e)
            return default

    # ------------------------------------------------------------------
    # Structured
    # ------------------------------------------------------------------
    def store_structured_data(self, data: StorableStructuredData) -> None:
        cls = type(data)
        meta = self._metadata.metadata_for(cls)
        key = meta.key_of(data)
        ctx = OperationContext("store structured data", meta.collection_name, key, cls.__name__)

        def _store() -> None:
            collection, doc_id, document = self._codec.to_document(data)
            if self._settings.debug_log_documents:
                logger.debug(
                    "[DataStorage] Document fields: collection=%s, key=%s, fields=%s",
                    collection,
                    doc_id,
                    list(document),
                )
            self._backend.upsert(collection, doc_id, document)
            logger.info("[DataStorage] Stored structured data: collection=%s, key=%s", collection, doc_id)

        self._guarded(ctx, _store, None)

    def load_structured_data(self, data_class: type[S], key: str) -> S | None:
        collection = self._metadata.collection_name(data_class)
        self._metadata.key_field(data_class)
        ctx = OperationContext("load structured data", collection, key, data_class.__name__)

        def _load() -> S | None:
            logger.info(
                "[DataStorage] Loading structured data: collection=%s, key=%s, class=%s",
                collection,
                key,
                data_class.__name__,
            )
            document = self._backend.find_by_id(collection, key)
            if document is None:
                logger.info("[DataStorage] Document not found: collection=%s, key=%s", collection, key)
                return None

            codec = self._codec
            text = codec.to_json(data_class, document)
            if self._settings.debug_log_documents:
                logger.debug(
                    "[DataStorage] Document keys=%s, JSON (first 500 chars): %s",
                    list(document),
                    excerpt(text),
                )
            entity = codec.from_json(data_class, text)
            logger.info(
                "[DataStorage] Successfully loaded: collection=%s, key=%s, class=%s",
                collection,
                key,
                data_class.__name__,
            )
            return entity

        return self._guarded(ctx, _load, None)

    def structured_data_exists(self, data_class: type[S], key: str) -> bool:
        return self._exists(data_class, key, "check structured data")

    def delete_structured_data(self, data_class: type[S], key: str) -> None:
        self._delete(data_class, key, "delete structured data")

    async def store_structured_data_async(self, data: StorableStructuredData) -> None:
        await self._submit(self.store_structured_data, data)

    async def load_structured_data_async(self, data_class: type[S], key: str) -> S | None:
        return await self._submit(self.load_structured_data, data_class, key)

    async def structured_data_exists_async(self, data_class: type[S], key: str) -> bool:
        return await self._submit(self.structured_data_exists, data_class, key)

    async def delete_structured_data_async(self, data_class: type[S], key: str) -> None:
        await self._submit(self.delete_structured_data, data_class, key)

    # ------------------------------------------------------------------
    # Binary
    # ------------------------------------------------------------------
    def store_binary_data(self, data: StorableBinaryData) -> None:
        cls = type(data)
        meta = self._metadata.metadata_for(cls)
        key = meta.key_of(data)
        ctx = OperationContext("store binary data", meta.collection_name, key, cls.__name__)

        def _store() -> None:
            collection, doc_id, document = self._binary_codec.to_document(data)
            self._backend.upsert(collection, doc_id, document)
            logger.info("[DataStorage] Stored binary data: collection=%s, key=%s", collection, doc_id)

        self._guarded(ctx, _store, None)

    def load_binary_data(self, data_class: type[B], key: str) -> B | None:
        collection = self._metadata.collection_name(data_class)
        self._metadata.key_field(data_class)
        ctx = OperationContext("load binary data", collection, key, data_class.__name__)

        def _load() -> B | None:
            document = self._backend.find_by_id(collection, key)
            if document is None:
                logger.info("[DataStorage] Document not found: collection=%s, key=%s", collection, key)
                return None
            return self._binary_codec.from_document(data_class, document)

        return self._guarded(ctx, _load, None)

    def binary_data_exists(self, data_class: type[B], key: str) -> bool:
        return self._exists(data_class, key, "check binary data")

    def delete_binary_data(self, data_class: type[B], key: str) -> None:
        self._delete(data_class, key, "delete binary data")

    async def store_binary_data_async(self, data: StorableBinaryData) -> None:
        await self._submit(self.store_binary_data, data)

    async def load_binary_data_async(self, data_class: type[B], key: str) -> B | None:
        return await self._submit(self.load_binary_data, data_class, key)

    async def binary_data_exists_async(self, data_class: type[B], key: str) -> bool:
        return await self._submit(self.binary_data_exists, data_class, key)

    async def delete_binary_data_async(self, data_class: type[B], key: str) -> None:
        await self._submit(self.delete_binary_data, data_class, key)

    # ------------------------------------------------------------------
    # Shared
    # ------------------------------------------------------------------
    def _exists(self, data_class: type, key: str, operation: str) -> bool:
        collection = self._metadata.collection_name(data_class)
        ctx = OperationContext(operation, collection, key, data_class.__name__)
        return self._guarded(ctx, lambda: self._backend.count(collection, key) > 0, False)

    def _delete(self, data_class: type, key: str, operation: str) -> None:
        collection = self._metadata.collection_name(data_class)
        ctx = OperationContext(operation, collection, key, data_class.__name__)
        self._guarded(ctx, lambda: self._backend.delete_by_id(collection, key), None)
