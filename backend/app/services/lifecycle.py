"""Expiry cleanup.

Record lifecycle: active -> expired (time passes) -> deleted (terminal).
The sweep runs as an asyncio task inside the FastAPI process: once at
startup to reclaim files that expired while the process was down, then
every CLEANUP_INTERVAL_SECONDS after the previous sweep finished. Sweeps
never overlap.
"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from app.config import settings
from app.errors import FileHostError, InternalError
from app.schemas.file import FileRecord
from app.services.file_storage import FileStorageService, file_storage
from app.services.metadata_store import MetadataStore, metadata_store, utcnow

logger = logging.getLogger(__name__)


class LifecycleManager:
    """Deletes backing files of expired records and marks the records deleted."""

    def __init__(
        self,
        store: MetadataStore,
        storage: FileStorageService,
        interval_seconds: float | None = None,
    ):
        self.store = store
        self.storage = storage
        self.interval_seconds = interval_seconds or settings.CLEANUP_INTERVAL_SECONDS
        self._sweep_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """Remove every expired, not yet deleted file. Returns how many were marked deleted.

        A removal failure other than "already gone" is logged and the record
        stays undeleted so the next sweep retries it. Skipped (returns 0) if
        another sweep is still running.
        """
        if self._sweep_lock.locked():
            logger.info("Sweep already in progress, skipping")
            return 0

        async with self._sweep_lock:
            deleted = 0
            candidates = [r.id for r in self.store.list() if not r.deleted]
            for record_id in candidates:
                record = self.store.get(record_id)
                # Re-checked per record: expiry may have been extended while we awaited
                check_time = now or utcnow()
                if record.deleted or not record.is_expired(check_time):
                    continue
                try:
                    await self.storage.remove(record.filename)
                except (OSError, FileHostError) as e:
                    logger.error(f"Failed to delete expired file {record.filename!r}: {e}")
                    continue
                self.store.mark_deleted(record.id)
                deleted += 1
                logger.info(f"Deleted expired file {record.filename} (expiresAt={record.expires_at.isoformat()})")

            if deleted:
                logger.info(f"Sweep removed {deleted} expired file(s)")
            return deleted

    async def delete_now(self, record_id: str) -> FileRecord:
        """Delete a file on request. Already-deleted records are returned unchanged.

        Raises NotFound for unknown ids and InternalError when the file
        can't be removed for a reason other than already being gone.
        """
        record = self.store.get(record_id)
        if record.deleted:
            return record
        try:
            await self.storage.remove(record.filename)
        except (OSError, FileHostError) as e:
            logger.error(f"Failed to delete file {record.filename!r}: {e}")
            raise InternalError("Gagal menghapus file di server")
        return self.store.mark_deleted(record.id)

    async def run_periodic(self) -> None:
        """Sweep immediately, then again `interval_seconds` after each sweep finishes."""
        logger.info(f"Cleanup loop started (interval={self.interval_seconds}s)")
        while True:
            try:
                await self.sweep()
            except Exception as e:
                logger.exception(f"Cleanup sweep error: {e}")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_periodic())
        return self._task

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.store.flush()


lifecycle_manager = LifecycleManager(metadata_store, file_storage)
