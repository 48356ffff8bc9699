"""Upload acceptance shared by the public and API upload routes."""
import json
import logging
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

from fastapi import Request, UploadFile

from app.config import settings
from app.errors import InternalError, ValidationError
from app.schemas.file import FileRecord
from app.services.file_storage import FileStorageService
from app.services.metadata_store import MetadataStore

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".mp4", ".mov", ".avi"}
ALLOWED_MIME_PREFIX = "video/"

# Random names are 48 bits; a handful of retries is plenty
_MAX_NAME_ATTEMPTS = 10


def validate_video(upload: Optional[UploadFile]) -> UploadFile:
    if upload is None or not upload.filename:
        raise ValidationError('File tidak ditemukan di field "file"')
    ext = Path(upload.filename).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationError("Tipe file tidak diizinkan. Hanya .mp4, .mov, .avi yang diperbolehkan.")
    if not (upload.content_type or "").lower().startswith(ALLOWED_MIME_PREFIX):
        raise ValidationError("File bukan video yang valid.")
    return upload


def parse_meta(raw: Optional[str]) -> dict:
    """Decode the JSON `meta` form field. Empty means no metadata."""
    if not raw:
        return {}
    try:
        meta = json.loads(raw)
    except ValueError:
        raise ValidationError("Field meta harus berupa JSON yang valid")
    if not isinstance(meta, dict):
        raise ValidationError("Field meta harus berupa JSON object")
    return meta


async def _unused_name(upload: UploadFile, storage: FileStorageService, store: MetadataStore) -> str:
    # Soft-deleted records keep their id, so an id is never handed out twice
    for _ in range(_MAX_NAME_ATTEMPTS):
        name = storage.generate_name(upload.filename)
        if name not in store and not await storage.exists(name):
            return name
    raise InternalError()


async def accept_upload(
    upload: UploadFile,
    storage: FileStorageService,
    store: MetadataStore,
    expiry_minutes: Any = None,
    metadata: Optional[dict] = None,
    client_ip: str = "-",
) -> FileRecord:
    """Write a validated upload to disk and create its record."""
    name = await _unused_name(upload, storage, store)
    size = await storage.write_upload(upload, name)
    record = store.create(
        name,
        original_name=upload.filename,
        size=size,
        mime_type=upload.content_type,
        expiry_minutes=expiry_minutes,
        metadata=metadata,
    )
    logger.info(f"Upload accepted ip={client_ip} filename={name} size={size} bytes")
    return record


def file_url(request: Request, filename: str) -> str:
    base = settings.PUBLIC_BASE_URL.rstrip("/") or str(request.base_url).rstrip("/")
    return f"{base}/files/{quote(filename)}"
