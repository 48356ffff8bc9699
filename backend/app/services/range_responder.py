"""Full and partial (Range) responses for stored media.

Each request opens its own read handle, so concurrent range requests on the
same file never block each other, and a file unlinked mid-stream keeps
streaming until the handle is closed.
"""
import re
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Optional

from app.errors import NotFound, RangeNotSatisfiable
from app.services.file_storage import FileStorageService, file_storage

CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_RANGE_RE = re.compile(r"^bytes=(\d+)-(\d*)$")


@dataclass
class StreamResponse:
    status_code: int
    headers: dict[str, str]
    body: AsyncIterator[bytes]
    # Closes the read handle; safe to call after the body finished
    close: Callable[[], Awaitable[None]]
    media_type: str = DEFAULT_CONTENT_TYPE


def content_type_for(name: str) -> str:
    return CONTENT_TYPES.get(Path(name).suffix.lower(), DEFAULT_CONTENT_TYPE)


def parse_range(header: str, file_size: int) -> tuple[int, int]:
    """Parse `bytes=<start>-<end?>` into an inclusive (start, end) pair.

    Raises RangeNotSatisfiable when the header is malformed or the range
    doesn't fit inside a file of `file_size` bytes.
    """
    match = _RANGE_RE.match(header.strip())
    if not match:
        raise RangeNotSatisfiable(file_size)
    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) else file_size - 1
    if start >= file_size or end >= file_size or start > end:
        raise RangeNotSatisfiable(file_size)
    return start, end


class RangeResponder:
    def __init__(self, storage: FileStorageService):
        self.storage = storage

    async def respond(self, file_id: str, range_header: Optional[str] = None) -> StreamResponse:
        name = self.storage.safe_name(file_id)
        file_size = await self.storage.stat(name)
        if file_size is None:
            raise NotFound()

        content_type = content_type_for(name)

        if not range_header:
            handle = await self.storage.open(name)
            return StreamResponse(
                status_code=200,
                headers={
                    "Content-Length": str(file_size),
                    "Accept-Ranges": "bytes",
                },
                body=self.storage.iter_range(handle, 0, file_size - 1),
                close=handle.close,
                media_type=content_type,
            )

        start, end = parse_range(range_header, file_size)
        length = end - start + 1
        handle = await self.storage.open(name)
        return StreamResponse(
            status_code=206,
            headers={
                "Content-Range": f"bytes {start}-{end}/{file_size}",
                "Accept-Ranges": "bytes",
                "Content-Length": str(length),
            },
            body=self.storage.iter_range(handle, start, end),
            close=handle.close,
            media_type=content_type,
        )


range_responder = RangeResponder(file_storage)
