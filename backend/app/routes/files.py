"""Files management API (shared-secret protected)."""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile

from app.dependencies import (
    get_file_storage,
    get_lifecycle_manager,
    get_metadata_store,
    require_api_key,
)
from app.errors import ValidationError
from app.schemas.file import (
    FileEnvelope,
    FileListResponse,
    FileUpdate,
    FileWithUrl,
    MessageResponse,
    UploadedFileEnvelope,
)
from app.services.file_storage import FileStorageService
from app.services.lifecycle import LifecycleManager
from app.services.metadata_store import MetadataStore
from app.services.uploads import accept_upload, file_url, parse_meta, validate_video

router = APIRouter(prefix="/api/files", tags=["files"], dependencies=[Depends(require_api_key)])


@router.post("", response_model=UploadedFileEnvelope)
async def upload_file(
    request: Request,
    file: Optional[UploadFile] = File(None),
    expiry_minutes: Optional[str] = Form(None),
    meta: Optional[str] = Form(None),
    storage: FileStorageService = Depends(get_file_storage),
    store: MetadataStore = Depends(get_metadata_store),
):
    """Upload a video with an optional expiry and JSON metadata.

    An invalid expiry_minutes falls back to the default expiry.
    """
    upload = validate_video(file)
    metadata = parse_meta(meta)
    record = await accept_upload(
        upload,
        storage,
        store,
        expiry_minutes=expiry_minutes,
        metadata=metadata,
        client_ip=request.client.host if request.client else "-",
    )
    return UploadedFileEnvelope(
        file=FileWithUrl(**record.model_dump(), url=file_url(request, record.filename)),
    )


@router.get("", response_model=FileListResponse)
async def list_files(
    status: Optional[str] = Query(None),
    store: MetadataStore = Depends(get_metadata_store),
):
    """List records, optionally only `active` or `expired` ones."""
    return FileListResponse(files=store.list(status))


@router.get("/{file_id}", response_model=FileEnvelope)
async def get_file(file_id: str, store: MetadataStore = Depends(get_metadata_store)):
    """Get one record, deleted ones included."""
    return FileEnvelope(file=store.get(file_id))


@router.patch("/{file_id}", response_model=FileEnvelope)
async def update_file(
    file_id: str,
    body: Optional[FileUpdate] = None,
    store: MetadataStore = Depends(get_metadata_store),
):
    """Change expiry (counted from now) and/or replace metadata.

    An explicit `"expiry_minutes": null` is rejected; an absent key leaves expiry alone.
    """
    body = body or FileUpdate()
    if "expiry_minutes" in body.model_fields_set and body.expiry_minutes is None:
        store.get(file_id)
        raise ValidationError("expiry_minutes harus angka > 0")
    record = store.update(file_id, expiry_minutes=body.expiry_minutes, metadata=body.metadata)
    return FileEnvelope(file=record)


@router.delete("/{file_id}", response_model=MessageResponse)
async def delete_file(
    file_id: str,
    lifecycle: LifecycleManager = Depends(get_lifecycle_manager),
):
    """Delete the stored file now. Repeating it on a deleted file is a no-op."""
    await lifecycle.delete_now(file_id)
    return MessageResponse(message="File berhasil dihapus")
