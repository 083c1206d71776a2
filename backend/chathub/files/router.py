"""FastAPI router for attachment upload endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, File, HTTPException, UploadFile
from fastapi.responses import FileResponse

from chathub.config import get_config

from .schemas import UploadResponse
from .service import FileStorageService, FileTooLargeError, UnsupportedFileError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["files"])


def get_storage() -> FileStorageService:
    """Storage service configured from the ``uploads`` settings section."""
    settings = get_config().uploads
    return FileStorageService.get_instance(
        upload_dir=settings.upload_dir,
        db_path=settings.db_path,
        max_file_size_bytes=settings.max_file_size_bytes,
        allowed_extensions=settings.allowed_extensions,
    )


@router.post("/api/upload", response_model=UploadResponse)
async def upload_file(file: Optional[UploadFile] = File(None)) -> UploadResponse:
    """Upload an attachment.

    Supported file types:
    - Images: jpg, jpeg, png, gif
    - Documents: pdf, doc, docx, txt

    Returns:
        UploadResponse to be sent as the ``file`` of a chat message.

    Raises:
        HTTPException 400: If no file was sent or its type is not allowed
        HTTPException 413: If the file exceeds the size limit
    """
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    content = await file.read()
    mime_type = file.content_type or "application/octet-stream"

    try:
        stored = get_storage().save_file(file.filename, content, mime_type)
    except UnsupportedFileError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except FileTooLargeError as e:
        raise HTTPException(status_code=413, detail=str(e))

    logger.info(f"File uploaded: {stored.original_filename} ({stored.size_bytes} bytes)")

    return UploadResponse(
        url=f"/uploads/{stored.stored_filename}",
        filename=stored.original_filename,
        size=stored.size_bytes,
        mimetype=stored.mime_type,
    )


@router.get("/uploads/{stored_filename}")
async def download_file(stored_filename: str):
    """Serve a previously uploaded file.

    Raises:
        HTTPException 404: If the file is unknown or missing on disk
    """
    storage = get_storage()
    metadata = storage.get_file(stored_filename)
    file_path = storage.get_file_path(stored_filename) if metadata else None
    if metadata is None or file_path is None:
        raise HTTPException(status_code=404, detail="File not found")

    return FileResponse(
        path=file_path,
        filename=metadata.original_filename,
        media_type=metadata.mime_type,
    )
