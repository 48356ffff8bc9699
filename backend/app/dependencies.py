"""FastAPI dependencies.

Usage in routes:
    from app.dependencies import get_metadata_store

    @router.get("/items")
    async def list_items(store: MetadataStore = Depends(get_metadata_store)):
        return store.list()

Tests swap the service singletons through `app.dependency_overrides`.
"""
import hmac
from typing import Optional

from fastapi import Header

from app.config import settings
from app.errors import AuthError
from app.services.file_storage import FileStorageService, file_storage
from app.services.lifecycle import LifecycleManager, lifecycle_manager
from app.services.metadata_store import MetadataStore, metadata_store
from app.services.range_responder import RangeResponder, range_responder


def get_metadata_store() -> MetadataStore:
    return metadata_store


def get_file_storage() -> FileStorageService:
    return file_storage


def get_lifecycle_manager() -> LifecycleManager:
    return lifecycle_manager


def get_range_responder() -> RangeResponder:
    return range_responder


async def require_api_key(x_api_key: Optional[str] = Header(None)) -> None:
    """Reject the request unless `x-api-key` matches the configured API_KEY."""
    expected = settings.API_KEY
    if not expected or not x_api_key:
        raise AuthError()
    if not hmac.compare_digest(x_api_key.encode("utf-8"), expected.encode("utf-8")):
        raise AuthError()
