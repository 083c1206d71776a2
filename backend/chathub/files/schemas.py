"""Pydantic schemas for attachment uploads.

This module defines:
- StoredFile: metadata recorded for every accepted upload
- UploadResponse: API response, shaped like a chat message attachment
- MIME_TYPES_BY_EXTENSION: which content types each extension may carry
"""
import time
from typing import Dict, FrozenSet

from pydantic import BaseModel, Field


class StoredFile(BaseModel):
    """Metadata for an uploaded file, as stored in DuckDB."""
    stored_filename: str = Field(..., description="Filename on disk")
    original_filename: str = Field(..., description="Filename sent by the client")
    mime_type: str = Field(..., description="MIME type of the file")
    size_bytes: int = Field(..., description="File size in bytes")
    uploaded_at: float = Field(default_factory=time.time, description="Upload timestamp")


class UploadResponse(BaseModel):
    """Response after a successful upload.

    Clients pass this object unchanged as the ``file`` field of
    ``send_message`` / ``private_message``.
    """
    url: str = Field(..., description="URL the file is served from")
    filename: str = Field(..., description="Original filename")
    size: int = Field(..., description="File size in bytes")
    mimetype: str = Field(..., description="MIME type")


# Content types accepted for each allowed extension
MIME_TYPES_BY_EXTENSION: Dict[str, FrozenSet[str]] = {
    "jpeg": frozenset({"image/jpeg"}),
    "jpg": frozenset({"image/jpeg"}),
    "png": frozenset({"image/png"}),
    "gif": frozenset({"image/gif"}),
    "pdf": frozenset({"application/pdf"}),
    "doc": frozenset({"application/msword"}),
    "docx": frozenset({
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    }),
    "txt": frozenset({"text/plain"}),
}
