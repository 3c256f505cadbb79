"""
Shared fixtures: an in-memory object store, a throwaway SQLite database per
test, and a TestClient wired to both.
"""
import os
import threading
import time

# Must be set before catalog.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("IMAGE_MODE", "append_variable")
os.environ.setdefault("STORAGE_URL", "http://storage.test")
os.environ.setdefault("STORAGE_KEY", "test-key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from catalog import models  # noqa: F401  (registers tables)
from catalog.db import Base, make_engine, get_db
from catalog.errors import StorageError
from catalog.locks import KeyedLock
from catalog.products import ProductService
from catalog.reconciler import FileBlob, ImageMode
from catalog.storage_client import get_storage

PNG = b"\x89PNG\r\n\x1a\n"


class FakeStore:
    """Dict-backed object store with failure injection."""

    base_url = "http://storage.test/public"

    def __init__(self):
        self.objects = {}
        self.puts = []
        self.deletes = []
        self.fail_data = set()       # put() fails for these payloads
        self.fail_delete = set()     # delete() fails for these keys
        self.put_delay = 0.0
        self.gate = None             # threading.Event that put() waits on
        self.put_started = threading.Event()
        self._lock = threading.Lock()

    def public_url(self, key):
        return f"{self.base_url}/{key}"

    def put(self, key, data, content_type):
        self.put_started.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.put_delay:
            time.sleep(self.put_delay)
        if data in self.fail_data:
            raise StorageError(f"injected upload failure for {key}")
        with self._lock:
            self.objects[key] = data
            self.puts.append(key)
        return self.public_url(key)

    def delete(self, key):
        if key in self.fail_delete:
            raise StorageError(f"injected delete failure for {key}")
        with self._lock:
            self.objects.pop(key, None)
            self.deletes.append(key)


def make_blob(name="photo.png", data=None, content_type="image/png"):
    return FileBlob(filename=name, content_type=content_type, data=data if data is not None else PNG + name.encode())


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'catalog.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def make_service(db, store):
    def _make(session=None, **overrides):
        options = dict(
            capacity=6,
            mode=ImageMode.APPEND_VARIABLE,
            max_file_size=5 * 1024 * 1024,
            max_files=6,
            deadline=5.0,
            workers=4,
            manual_order=True,
            locks=KeyedLock(),
        )
        options.update(overrides)
        return ProductService(session or db, store, **options)
    return _make


@pytest.fixture
def client(session_factory, store):
    from catalog.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
