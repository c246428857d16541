from __future__ import annotations

import io
import mimetypes
import posixpath
from typing import Iterable, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from PIL import Image, UnidentifiedImageError

from app.core.config import Settings, get_settings
from app.dependencies import get_storage, get_sweeper, get_upload_service
from app.models import StoredFile
from app.schemas import (
    CleanupResponse,
    DiscardRequest,
    DiscardResponse,
    FinalizeRequest,
    FinalizeResponse,
    UploadResponse,
)
from app.services.uploads import UploadService
from app.services.utils import file_extension
from orphan_sweeper import ObjectStorage, RetentionSweeper
from orphan_sweeper.exceptions import ObjectNotFoundError, StorageError

upload_router = APIRouter(prefix="/upload", tags=["uploads"])
api_router = APIRouter(prefix="/api/v1", tags=["maintenance"])
download_router = APIRouter(tags=["downloads"])


def _validate_upload(filename: str, size: int, extensions: Iterable[str], max_bytes: int) -> None:
    allowed = {ext.lower() for ext in extensions}
    extension = file_extension(filename)
    if extension not in allowed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported file extension '{extension}'. Allowed extensions: {', '.join(sorted(allowed))}",
        )
    if size > max_bytes:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File too large.")


def _store(uploads: UploadService, upload: UploadFile, content: bytes, folder: Optional[str], label: str) -> StoredFile:
    try:
        return uploads.store(upload.filename or "upload", content, folder=folder, mime_type=upload.content_type)
    except StorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to upload {label}: {exc}",
        )


@upload_router.post("/file", response_model=UploadResponse, name="upload_file")
async def upload_file(
    file: UploadFile = File(...),
    folder: Optional[str] = Form(None),
    settings: Settings = Depends(get_settings),
    uploads: UploadService = Depends(get_upload_service),
) -> UploadResponse:
    content = await file.read()
    await file.close()
    _validate_upload(file.filename or "", len(content), settings.file_extensions, settings.max_file_bytes)

    stored = _store(uploads, file, content, folder, "file")
    return UploadResponse(**stored.to_dict(), message="File uploaded successfully.")


@upload_router.post("/image", response_model=UploadResponse, name="upload_image")
async def upload_image(
    file: UploadFile = File(...),
    folder: Optional[str] = Form(None),
    settings: Settings = Depends(get_settings),
    uploads: UploadService = Depends(get_upload_service),
) -> UploadResponse:
    content = await file.read()
    await file.close()
    _validate_upload(file.filename or "", len(content), settings.image_extensions, settings.max_image_bytes)

    try:
        with Image.open(io.BytesIO(content)) as image:
            width, height = image.size
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is not a valid image")

    stored = _store(uploads, file, content, folder, "image")
    stored.width, stored.height = width, height
    return UploadResponse(**stored.to_dict(), message="Image uploaded successfully.")


@upload_router.post("/finalize", response_model=FinalizeResponse, name="finalize_upload")
async def finalize_upload(
    payload: FinalizeRequest,
    uploads: UploadService = Depends(get_upload_service),
) -> FinalizeResponse:
    try:
        new_path = uploads.move_to_folder(payload.path, payload.folder)
    except FileNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    return FinalizeResponse(path=new_path)


@upload_router.post("/discard", response_model=DiscardResponse, name="discard_uploads")
async def discard_uploads(
    payload: DiscardRequest,
    uploads: UploadService = Depends(get_upload_service),
) -> DiscardResponse:
    return DiscardResponse(deleted=uploads.delete_files(payload.paths))


@api_router.post("/maintenance/cleanup", response_model=CleanupResponse, name="run_cleanup")
def run_cleanup(
    days: int = Query(1, ge=0),
    dry_run: bool = Query(False),
    sweeper: RetentionSweeper = Depends(get_sweeper),
) -> CleanupResponse:
    result = sweeper.run(days=days, dry_run=dry_run)
    return CleanupResponse(**result.to_dict())


def _file_response(storage: ObjectStorage, path: str, disposition: str, cache_control: str) -> Response:
    try:
        if not storage.exists(path):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
        content = storage.get(path)
    except ObjectNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))

    filename = posixpath.basename(path)
    media_type, _ = mimetypes.guess_type(filename)
    return Response(
        content=content,
        media_type=media_type or "application/octet-stream",
        headers={
            "Content-Disposition": f'{disposition}; filename="{filename}"',
            "Cache-Control": cache_control,
        },
    )


@download_router.get("/downloads/{path:path}", name="serve_file")
def serve_file(
    path: str,
    download: bool = Query(False),
    storage: ObjectStorage = Depends(get_storage),
) -> Response:
    """Serve a stored file inline, or as an attachment with ``?download=true``."""

    disposition = "attachment" if download else "inline"
    return _file_response(storage, path, disposition, "public, max-age=3600")


@download_router.get("/downloading/{path:path}", name="download_file")
def download_file(path: str, storage: ObjectStorage = Depends(get_storage)) -> Response:
    return _file_response(storage, path, "attachment", "no-cache, must-revalidate")
