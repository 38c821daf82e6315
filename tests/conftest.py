from __future__ import annotations

from pathlib import Path
import sys


import mongomock
import pytest


# Ensure the repository root (parent of ./tests) is importable during pytest collection.
# This avoids ModuleNotFoundError for imports like `import datastore...` under pytest import modes
# that don't automatically prepend the cwd/rootdir to sys.path.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture
def mongo_client() -> mongomock.MongoClient:
    """
    In-memory stand-in for a MongoClient so tests never need a live server.
    """
    return mongomock.MongoClient()


@pytest.fixture
def settings():
    from datastore.settings import StorageSettings

    return StorageSettings(database="datastore_test", max_workers=2, debug_log_documents=True)


@pytest.fixture
def backend(mongo_client, settings):
    from datastore.mongo_backend import MongoDocumentBackend

    b = MongoDocumentBackend.from_settings(settings, client=mongo_client)
    b.connect()
    yield b
    b.close()


@pytest.fixture
def storage(backend, settings):
    from datastore.storage import DataStorage

    s = DataStorage(backend, settings=settings)
    s.setup()
    yield s
    s.teardown()


@pytest.fixture
def raw_db(mongo_client, settings):
    """Direct handle on the database the storage writes to."""
    return mongo_client[settings.database]
