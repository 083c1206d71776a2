"""File storage service for chat attachments.

Handles file storage on disk and metadata tracking in DuckDB.
Files are stored in: {upload_dir}/file-{ms}-{random}.{ext}
"""
import logging
import secrets
import time
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

import duckdb

from .schemas import MIME_TYPES_BY_EXTENSION, StoredFile

logger = logging.getLogger(__name__)


class UnsupportedFileError(ValueError):
    """Upload whose extension or content type is not allowed."""


class FileTooLargeError(ValueError):
    """Upload larger than the configured size limit."""


class FileStorageService:
    """Service for storing uploaded attachments."""

    _instance: Optional["FileStorageService"] = None

    def __init__(
        self,
        upload_dir: str = "uploads",
        db_path: str = "file_metadata.duckdb",
        max_file_size_bytes: int = 10 * 1024 * 1024,
        allowed_extensions: Optional[Iterable[str]] = None,
    ) -> None:
        """Initialize the file storage service."""
        self._upload_dir = Path(upload_dir)
        self._db_path = db_path
        self.max_file_size_bytes = max_file_size_bytes
        self.allowed_extensions = {
            ext.lower().lstrip(".")
            for ext in (allowed_extensions or MIME_TYPES_BY_EXTENSION)
        }

        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._ensure_upload_dir()
        self._initialize_db()

    @classmethod
    def get_instance(cls, **kwargs) -> "FileStorageService":
        """Get or create the singleton instance."""
        if cls._instance is None:
            cls._instance = cls(**kwargs)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance (for testing)."""
        if cls._instance and cls._instance._connection:
            cls._instance._connection.close()
        cls._instance = None

    @property
    def upload_dir(self) -> Path:
        return self._upload_dir

    def _ensure_upload_dir(self) -> None:
        self._upload_dir.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get or create database connection."""
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS file_metadata (
                stored_filename VARCHAR PRIMARY KEY,
                original_filename VARCHAR NOT NULL,
                mime_type VARCHAR NOT NULL,
                size_bytes BIGINT NOT NULL,
                uploaded_at TIMESTAMP NOT NULL
            )
        """)

    def validate(self, filename: str, mime_type: str, size_bytes: int) -> str:
        """Check an upload against the allowed types and size limit.

        Both the extension and the declared content type must match an
        allowed type.

        Returns:
            The normalized extension (without the dot).

        Raises:
            UnsupportedFileError: If the type is not allowed.
            FileTooLargeError: If the file exceeds the size limit.
        """
        ext = Path(filename).suffix.lower().lstrip(".")
        accepted = MIME_TYPES_BY_EXTENSION.get(ext, frozenset())
        if ext not in self.allowed_extensions or mime_type.lower() not in accepted:
            raise UnsupportedFileError(
                "Invalid file type. Only images and documents are allowed."
            )
        if size_bytes > self.max_file_size_bytes:
            raise FileTooLargeError(
                f"File size ({size_bytes} bytes) exceeds limit "
                f"({self.max_file_size_bytes} bytes)"
            )
        return ext

    def save_file(self, filename: str, content: bytes, mime_type: str) -> StoredFile:
        """Validate and write an upload to disk, recording its metadata.

        Args:
            filename: Original filename.
            content: File content as bytes.
            mime_type: MIME type declared by the client.

        Returns:
            StoredFile with the generated on-disk name.
        """
        ext = self.validate(filename, mime_type, len(content))
        stored_filename = f"file-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}.{ext}"

        file_path = self._upload_dir / stored_filename
        file_path.write_bytes(content)
        logger.info(f"Saved file: {file_path} ({len(content)} bytes)")

        stored = StoredFile(
            stored_filename=stored_filename,
            original_filename=filename,
            mime_type=mime_type,
            size_bytes=len(content),
        )
        self._get_connection().execute(
            """
            INSERT INTO file_metadata
            (stored_filename, original_filename, mime_type, size_bytes, uploaded_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            [
                stored.stored_filename,
                stored.original_filename,
                stored.mime_type,
                stored.size_bytes,
                datetime.fromtimestamp(stored.uploaded_at),
            ]
        )
        return stored

    def get_file(self, stored_filename: str) -> Optional[StoredFile]:
        """Get file metadata by its on-disk name."""
        result = self._get_connection().execute(
            """
            SELECT stored_filename, original_filename, mime_type, size_bytes, uploaded_at
            FROM file_metadata
            WHERE stored_filename = ?
            """,
            [stored_filename]
        ).fetchone()

        if not result:
            return None

        return StoredFile(
            stored_filename=result[0],
            original_filename=result[1],
            mime_type=result[2],
            size_bytes=result[3],
            uploaded_at=result[4].timestamp() if result[4] else 0,
        )

    def get_file_path(self, stored_filename: str) -> Optional[Path]:
        """Get the path on disk for a stored file, or None if it is gone."""
        if self.get_file(stored_filename) is None:
            return None
        file_path = self._upload_dir / stored_filename
        if not file_path.exists():
            return None
        return file_path

    def list_files(self) -> List[StoredFile]:
        results = self._get_connection().execute(
            """
            SELECT stored_filename, original_filename, mime_type, size_bytes, uploaded_at
            FROM file_metadata
            ORDER BY uploaded_at ASC
            """
        ).fetchall()
        return [
            StoredFile(
                stored_filename=r[0],
                original_filename=r[1],
                mime_type=r[2],
                size_bytes=r[3],
                uploaded_at=r[4].timestamp() if r[4] else 0,
            )
            for r in results
        ]
