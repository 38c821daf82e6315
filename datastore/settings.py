from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("%s=%r is not an integer; using %d", name, raw, default)
        return default


@dataclass(frozen=True)
class StorageSettings:
    # Connection
    connection_string: str = "mongodb://mongo:27017"
    database: str = "mineplex"
    server_selection_timeout_ms: int = 5000

    # Async worker pool
    max_workers: int = 8

    # Error policy: re-raise instead of log-and-return-empty
    raise_errors: bool = False

    # Debug
    debug_log_documents: bool = False


def get_settings(env_file: str | None = None) -> StorageSettings:
    if env_file:
        load_dotenv(env_file)

    defaults = StorageSettings()
    return StorageSettings(
        connection_string=os.getenv("DATASTORE_CONNECTION_STRING", defaults.connection_string).strip(),
        database=os.getenv("DATASTORE_DATABASE", defaults.database).strip(),
        server_selection_timeout_ms=_env_int(
            "DATASTORE_SERVER_SELECTION_TIMEOUT_MS", defaults.server_selection_timeout_ms
        ),
        max_workers=max(1, _env_int("DATASTORE_MAX_WORKERS", defaults.max_workers)),
        raise_errors=_env_bool("DATASTORE_RAISE_ERRORS", defaults.raise_errors),
        debug_log_documents=_env_bool("DATASTORE_DEBUG_LOG_DOCUMENTS", defaults.debug_log_documents),
    )
