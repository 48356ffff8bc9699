"""Public media routes: simple upload and streaming download."""
from typing import Optional

from fastapi import APIRouter, Depends, File, Header, Request, UploadFile
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from app.dependencies import get_file_storage, get_metadata_store, get_range_responder
from app.schemas.file import UploadResponse
from app.services.file_storage import FileStorageService
from app.services.metadata_store import MetadataStore
from app.services.range_responder import RangeResponder
from app.services.uploads import accept_upload, file_url, validate_video

router = APIRouter(tags=["media"])


@router.post("/upload", response_model=UploadResponse)
async def upload(
    request: Request,
    file: Optional[UploadFile] = File(None),
    storage: FileStorageService = Depends(get_file_storage),
    store: MetadataStore = Depends(get_metadata_store),
):
    """Upload a video with the default expiry."""
    upload_file = validate_video(file)
    record = await accept_upload(
        upload_file,
        storage,
        store,
        client_ip=request.client.host if request.client else "-",
    )
    return UploadResponse(
        url=file_url(request, record.filename),
        filename=record.filename,
        size=record.size,
        expires_at=record.expires_at,
        expiry_minutes=record.expiry_minutes,
    )


@router.get("/files/{filename}")
async def stream_file(
    filename: str,
    range: Optional[str] = Header(None),
    responder: RangeResponder = Depends(get_range_responder),
):
    """Stream a stored file, honoring a single `Range: bytes=start-end`."""
    result = await responder.respond(filename, range)
    return StreamingResponse(
        result.body,
        status_code=result.status_code,
        headers=result.headers,
        media_type=result.media_type,
        background=BackgroundTask(result.close),
    )
