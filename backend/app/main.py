"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.errors import (
    FileHostError,
    InternalError,
    PayloadTooLarge,
    RangeNotSatisfiable,
    ValidationError,
)
from app.services.lifecycle import lifecycle_manager
from app.services.metadata_store import metadata_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load records, reclaim files that expired while down, start the cleanup loop."""
    await metadata_store.load()
    lifecycle_manager.start()

    yield

    await lifecycle_manager.stop()


app = FastAPI(
    title="Video File Host",
    version="1.0.0",
    description="Temporary video hosting with expiry cleanup and range streaming.",
    lifespan=lifespan,
)

# Multipart boundaries, part headers and the small form fields
UPLOAD_BODY_OVERHEAD = 64 * 1024
UPLOAD_PATHS = ("/upload", "/api/files")


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "message": message}, status_code=status_code)


@app.middleware("http")
async def reject_oversized_uploads(request: Request, call_next):
    """Refuse uploads whose declared length is already over the limit, before the body is read.

    Bodies without Content-Length are still capped while being written to disk.
    """
    if request.method == "POST" and request.url.path in UPLOAD_PATHS:
        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > settings.MAX_UPLOAD_BYTES + UPLOAD_BODY_OVERHEAD:
            logger.warning(f"Rejected {request.url.path} upload of {declared} bytes before reading it")
            return _error_response(PayloadTooLarge.status_code, PayloadTooLarge.default_message)
    return await call_next(request)


# CORS
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Range", "Accept-Ranges", "Content-Length"],
)


@app.exception_handler(RangeNotSatisfiable)
async def range_not_satisfiable_handler(request: Request, exc: RangeNotSatisfiable):
    return Response(status_code=416, headers={"Content-Range": f"bytes */{exc.file_size}"})


@app.exception_handler(FileHostError)
async def file_host_error_handler(request: Request, exc: FileHostError):
    return _error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.info(f"Rejected request to {request.url.path}: {exc.errors()}")
    return _error_response(ValidationError.status_code, ValidationError.default_message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return _error_response(InternalError.status_code, InternalError.default_message)


@app.get("/health")
async def health_check():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


# Register routers
from app.routes.files import router as files_router
from app.routes.media import router as media_router
app.include_router(files_router)
app.include_router(media_router)

# Upload UI, only when bundled
if Path(settings.STATIC_DIR).is_dir():
    app.mount("/", StaticFiles(directory=settings.STATIC_DIR, html=True), name="static")
