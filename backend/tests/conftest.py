"""
Shared pytest fixtures for the video file host test suite.

Environment variables are pinned before `app` is imported so the module
level singletons never touch the working directory. Every test gets its own
storage directory, metadata document and services, wired into the FastAPI
app through dependency overrides.
"""

import os
import tempfile

_TMP_ROOT = tempfile.mkdtemp(prefix="video-file-host-tests-")
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_ROOT, "uploads")
os.environ["METADATA_PATH"] = os.path.join(_TMP_ROOT, "data", "metadata.json")
os.environ["STATIC_DIR"] = os.path.join(_TMP_ROOT, "no-static")
os.environ["API_KEY"] = "test-api-key"
os.environ["DEFAULT_EXPIRY_MINUTES"] = "180"

import httpx
import pytest
from hypothesis import HealthCheck, settings

from app.dependencies import (
    get_file_storage,
    get_lifecycle_manager,
    get_metadata_store,
    get_range_responder,
)
from app.main import app
from app.services.file_storage import FileStorageService
from app.services.lifecycle import LifecycleManager
from app.services.metadata_store import MetadataStore
from app.services.range_responder import RangeResponder

settings.register_profile(
    "default",
    max_examples=100,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)
settings.load_profile("default")

API_KEY = "test-api-key"
MAX_UPLOAD_BYTES = 64 * 1024


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def storage(tmp_path) -> FileStorageService:
    """Storage rooted in a pytest-managed temporary directory."""
    return FileStorageService(base_path=tmp_path / "uploads", max_upload_bytes=MAX_UPLOAD_BYTES)


@pytest.fixture
def metadata_path(tmp_path):
    return tmp_path / "data" / "metadata.json"


@pytest.fixture
async def store(metadata_path):
    """Empty record store with the default 180 minute expiry."""
    store = MetadataStore(path=metadata_path, default_expiry_minutes=180)
    yield store
    await store.flush()


@pytest.fixture
def lifecycle(store, storage) -> LifecycleManager:
    return LifecycleManager(store, storage, interval_seconds=3600)


@pytest.fixture
def responder(storage) -> RangeResponder:
    return RangeResponder(storage)


@pytest.fixture
def stored_file(storage, store):
    """Write bytes under a fresh name and create its record; returns the record."""

    def _stored_file(data: bytes = b"0123456789", ext: str = ".mp4", **kwargs):
        name = storage.generate_name(f"clip{ext}")
        storage.path_for(name).write_bytes(data)
        return store.create(
            name,
            original_name=f"clip{ext}",
            size=len(data),
            mime_type="video/mp4",
            **kwargs,
        )

    return _stored_file


# =============================================================================
# HTTP Fixtures
# =============================================================================

@pytest.fixture
async def client(storage, store, lifecycle, responder):
    """Async client against the app, wired to this test's services."""
    app.dependency_overrides[get_file_storage] = lambda: storage
    app.dependency_overrides[get_metadata_store] = lambda: store
    app.dependency_overrides[get_lifecycle_manager] = lambda: lifecycle
    app.dependency_overrides[get_range_responder] = lambda: responder
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def api_headers() -> dict:
    return {"x-api-key": API_KEY}
