"""File record store.

The full record set lives in memory and is the source of truth for the
running process. Every mutation schedules a best-effort rewrite of the JSON
document at `METADATA_PATH`; writes are serialized and atomic (temp file +
rename), but fire-and-forget, so the document may lag the in-memory state
by the writes still queued. A crash loses at most that lag.

All methods must be called from the event loop thread. Mutations never
await between reading and writing a record, which keeps them atomic with
respect to other coroutines without an explicit lock.
"""
import asyncio
import json
import logging
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import aiofiles
import aiofiles.os
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.config import settings
from app.errors import InternalError, NotFound, ValidationError
from app.schemas.file import FileRecord, compute_expires_at
from app.services.file_storage import FileStorageService

logger = logging.getLogger(__name__)

_timestamp = TypeAdapter(datetime)

STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def coerce_expiry_minutes(value: Any) -> int | float | None:
    """Return `value` as a finite positive number of minutes, or None.

    Accepts numbers and numeric strings. Integral values come back as int.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        minutes = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(minutes) or minutes <= 0:
        return None
    return int(minutes) if minutes.is_integer() else minutes


def _is_storage_name(value: Any) -> bool:
    try:
        return isinstance(value, str) and FileStorageService.safe_name(value) == value
    except NotFound:
        return False


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = _timestamp.validate_python(value)
    except PydanticValidationError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class MetadataStore:
    """Owns the record set and its persisted JSON document."""

    def __init__(self, path: str | Path | None = None, default_expiry_minutes: float | None = None):
        self.path = Path(path or settings.METADATA_PATH)
        default = coerce_expiry_minutes(
            default_expiry_minutes if default_expiry_minutes is not None
            else settings.DEFAULT_EXPIRY_MINUTES
        )
        if default is None:
            raise ValueError("default_expiry_minutes must be a finite number > 0")
        self.default_expiry_minutes = default

        self._records: dict[str, FileRecord] = {}
        self._pending: set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()
        self._save_seq = 0

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: str) -> bool:
        return record_id in self._records

    # ── Persistence ──────────────────────────────────────────────

    async def load(self) -> None:
        """Read the document and normalize it into the record set.

        A missing, unreadable, corrupt or non-array document yields an empty
        set instead of failing startup.
        """
        entries: Any = []
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                raw = await f.read()
            entries = json.loads(raw)
        except FileNotFoundError:
            logger.info(f"No metadata document at {self.path}, starting empty")
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read metadata document {self.path}: {e}; starting empty")
            entries = []

        if not isinstance(entries, list):
            logger.warning(f"Metadata document {self.path} is not an array; starting empty")
            entries = []

        records = self.normalize_after_load(entries)
        self._records = {r.id: r for r in records}
        logger.info(f"Loaded {len(self._records)} file record(s)")

    def normalize_after_load(self, entries: list) -> list[FileRecord]:
        """Repair entries written by an older or interrupted process.

        Fills missing createdAt with now, coerces invalid expiryMinutes to the
        default, derives missing expiresAt and defaults `deleted` to False.
        Entries that are not objects, lack a string id, or repeat an id
        are dropped.
        """
        now = utcnow()
        seen: set[str] = set()
        records: list[FileRecord] = []

        for index, entry in enumerate(entries):
            if not isinstance(entry, dict) or not isinstance(entry.get("id"), str) or not entry["id"]:
                logger.warning(f"Skipping malformed metadata entry #{index}")
                continue
            record_id = entry["id"]
            if record_id in seen:
                logger.warning(f"Skipping duplicate metadata entry for {record_id}")
                continue

            minutes = coerce_expiry_minutes(entry.get("expiryMinutes"))
            if minutes is None:
                minutes = self.default_expiry_minutes
            created_at = _parse_timestamp(entry.get("createdAt")) or now
            expires_at = _parse_timestamp(entry.get("expiresAt")) or compute_expires_at(created_at, minutes)
            deleted = entry.get("deleted")
            metadata = entry.get("metadata")
            filename = entry.get("filename")
            if not _is_storage_name(filename):
                filename = record_id
            size = entry.get("size")

            try:
                record = FileRecord(
                    id=record_id,
                    filename=filename,
                    original_name=str(entry.get("originalName") or filename),
                    size=size if isinstance(size, int) and not isinstance(size, bool) else 0,
                    mime_type=str(entry.get("mimeType") or "application/octet-stream"),
                    created_at=created_at,
                    expiry_minutes=minutes,
                    expires_at=expires_at,
                    metadata=metadata if isinstance(metadata, dict) else {},
                    deleted=deleted if isinstance(deleted, bool) else False,
                    deleted_at=_parse_timestamp(entry.get("deletedAt")),
                )
            except PydanticValidationError as e:
                logger.warning(f"Skipping unreadable metadata entry for {record_id}: {e}")
                continue

            seen.add(record_id)
            records.append(record)

        return records

    def save(self) -> None:
        """Schedule a write of the current record set and return immediately.

        Failures are logged, never raised.
        """
        self._save_seq += 1
        seq = self._save_seq
        snapshot = self._serialize()
        task = asyncio.get_running_loop().create_task(self._write(seq, snapshot))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Wait until every scheduled write has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _serialize(self) -> str:
        return json.dumps(
            [r.model_dump(mode="json", by_alias=True) for r in self._records.values()],
            indent=2,
            ensure_ascii=False,
        )

    async def _write(self, seq: int, snapshot: str) -> None:
        async with self._write_lock:
            # A newer snapshot is queued behind us, let it do the work
            if seq < self._save_seq:
                return
            tmp_path = self.path.with_name(self.path.name + ".tmp")
            try:
                await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
                async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                    await f.write(snapshot)
                await aiofiles.os.replace(tmp_path, self.path)
            except Exception as e:
                logger.error(f"Failed to save metadata to {self.path}: {e}")

    # ── Records ──────────────────────────────────────────────────

    def create(
        self,
        record_id: str,
        *,
        original_name: str,
        size: int,
        mime_type: str,
        expiry_minutes: Any = None,
        metadata: Optional[dict] = None,
    ) -> FileRecord:
        """Add a record for a freshly stored file.

        An absent or invalid `expiry_minutes` falls back to the default.
        """
        if record_id in self._records:
            raise InternalError(f"Identifier already in use: {record_id}")

        minutes = coerce_expiry_minutes(expiry_minutes)
        if minutes is None:
            minutes = self.default_expiry_minutes
        now = utcnow()
        record = FileRecord(
            id=record_id,
            filename=record_id,
            original_name=original_name,
            size=size,
            mime_type=mime_type,
            created_at=now,
            expiry_minutes=minutes,
            expires_at=compute_expires_at(now, minutes),
            metadata=metadata or {},
        )
        self._records[record_id] = record
        self.save()
        return record

    def get(self, record_id: str) -> FileRecord:
        record = self._records.get(record_id)
        if record is None:
            raise NotFound()
        return record

    def list(self, status: Optional[str] = None, now: Optional[datetime] = None) -> list[FileRecord]:
        """All records, or only `active` / `expired` ones as of `now`."""
        records = list(self._records.values())
        now = now or utcnow()
        if status == STATUS_ACTIVE:
            return [r for r in records if r.is_active(now)]
        if status == STATUS_EXPIRED:
            return [r for r in records if not r.is_active(now)]
        return records

    def update(
        self,
        record_id: str,
        expiry_minutes: Any = None,
        metadata: Optional[dict] = None,
    ) -> FileRecord:
        """Change expiry and/or replace metadata.

        A new expiry counts from now. Nothing is mutated when the input is invalid.
        """
        record = self.get(record_id)

        minutes = None
        if expiry_minutes is not None:
            minutes = coerce_expiry_minutes(expiry_minutes)
            if minutes is None:
                raise ValidationError("expiry_minutes harus angka > 0")
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("metadata harus berupa object")

        if minutes is not None:
            record.expiry_minutes = minutes
            record.expires_at = compute_expires_at(utcnow(), minutes)
        if metadata is not None:
            record.metadata = metadata

        self.save()
        return record

    def mark_deleted(self, record_id: str) -> FileRecord:
        """Flag a record deleted. No-op when it already is."""
        record = self.get(record_id)
        if record.deleted:
            return record
        record.deleted = True
        record.deleted_at = utcnow()
        self.save()
        return record


metadata_store = MetadataStore()
