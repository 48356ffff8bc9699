"""File record and request/response schemas."""
from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import BaseModel

from app.schemas.base import CamelModel


class FileRecord(CamelModel):
    """One uploaded file. `id` doubles as the storage filename."""

    id: str
    filename: str
    original_name: str
    size: int
    mime_type: str
    created_at: datetime
    expiry_minutes: int | float
    expires_at: datetime
    metadata: dict = {}
    deleted: bool = False
    deleted_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def is_active(self, now: datetime) -> bool:
        return not self.deleted and not self.is_expired(now)


def compute_expires_at(start: datetime, minutes: int | float) -> datetime:
    return start + timedelta(minutes=minutes)


class FileUpdate(BaseModel):
    """PATCH body. Keys stay snake_case on the wire."""
    expiry_minutes: Optional[Any] = None
    # Type is checked by the store so unknown ids still get 404
    metadata: Optional[Any] = None


class FileWithUrl(FileRecord):
    url: str


class UploadResponse(CamelModel):
    success: bool = True
    url: str
    filename: str
    size: int
    expires_at: datetime
    expiry_minutes: int | float


class FileEnvelope(CamelModel):
    success: bool = True
    file: FileRecord


class UploadedFileEnvelope(CamelModel):
    success: bool = True
    file: FileWithUrl


class FileListResponse(CamelModel):
    success: bool = True
    files: list[FileRecord]


class MessageResponse(CamelModel):
    success: bool = True
    message: str
