"""Local disk storage for uploaded media."""
import logging
import secrets
from stat import S_ISREG
from pathlib import Path
from typing import AsyncIterator

import aiofiles
import aiofiles.os
from fastapi import UploadFile

from app.config import settings
from app.errors import NotFound, PayloadTooLarge

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class FileStorageService:
    """Handles file write/read/delete under one flat directory."""

    def __init__(self, base_path: str | Path | None = None, max_upload_bytes: int | None = None):
        self.base_path = Path(base_path or settings.UPLOAD_DIR).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.max_upload_bytes = max_upload_bytes or settings.MAX_UPLOAD_BYTES

    @staticmethod
    def generate_name(original_name: str) -> str:
        """Random 12-hex-char name keeping the original (lowercased) extension."""
        ext = Path(original_name or "").suffix.lower()
        return secrets.token_hex(6) + ext

    @staticmethod
    def safe_name(name: str) -> str:
        """Strip directory components. Raises NotFound for names that can't be a stored file."""
        base = (name or "").replace("\\", "/").rsplit("/", 1)[-1]
        if not base or base.startswith("."):
            raise NotFound()
        return base

    def path_for(self, name: str) -> Path:
        return self.base_path / self.safe_name(name)

    async def write_upload(self, upload: UploadFile, name: str) -> int:
        """Stream an upload to disk. Returns the number of bytes written."""
        path = self.path_for(name)
        written = 0
        try:
            async with aiofiles.open(path, "wb") as f:
                while chunk := await upload.read(CHUNK_SIZE):
                    written += len(chunk)
                    if written > self.max_upload_bytes:
                        logger.info(f"Upload {name} rejected: over {self.max_upload_bytes} bytes")
                        raise PayloadTooLarge()
                    await f.write(chunk)
        except Exception:
            await self.remove(name)
            raise
        return written

    async def stat(self, name: str) -> int | None:
        """Size of the stored file, or None if there is no regular file by that name."""
        try:
            st = await aiofiles.os.stat(self.path_for(name))
        except FileNotFoundError:
            return None
        if not S_ISREG(st.st_mode):
            return None
        return st.st_size

    async def exists(self, name: str) -> bool:
        return await self.stat(name) is not None

    async def remove(self, name: str) -> bool:
        """Delete a stored file. False if it was already gone; other OSErrors propagate."""
        try:
            await aiofiles.os.remove(self.path_for(name))
        except FileNotFoundError:
            return False
        return True

    async def open(self, name: str):
        """Open a stored file for reading. The handle stays valid if the file is unlinked."""
        try:
            return await aiofiles.open(self.path_for(name), "rb")
        except (FileNotFoundError, IsADirectoryError):
            raise NotFound()

    @staticmethod
    async def iter_range(handle, start: int, end: int, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
        """Yield bytes [start, end] from an open handle, then close it."""
        try:
            await handle.seek(start)
            remaining = end - start + 1
            while remaining > 0:
                chunk = await handle.read(min(chunk_size, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk
        finally:
            await handle.close()


file_storage = FileStorageService()
