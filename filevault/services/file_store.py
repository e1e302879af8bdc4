"""
File record store for finished uploads.
Metadata goes to SQLite, content to one file per record under storage_dir.
"""

import mimetypes
import os
import sqlite3
import tempfile
import logging
import uuid
from datetime import datetime
from typing import Iterable, List, Optional
from pathlib import Path

from filevault.models import FileRecord
from filevault.services.errors import FileRecordNotFound

logger = logging.getLogger(__name__)

DEFAULT_FILE_TYPE = "application/octet-stream"


def guess_file_type(filename: str, content_type: Optional[str] = None) -> str:
    """Prefer the declared content type, then the filename extension."""
    if content_type and content_type != DEFAULT_FILE_TYPE:
        return content_type
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or DEFAULT_FILE_TYPE


class FileStore:
    """SQLite-backed store of completed files."""

    def __init__(self, db_path: str, storage_dir: str, url_prefix: str = "/api"):
        self.db_path = Path(db_path)
        self.storage_dir = Path(storage_dir)
        self.url_prefix = url_prefix.rstrip("/")
        self._init_database()

    def _init_database(self):
        """Initialize the database with required tables."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS files (
                    id TEXT PRIMARY KEY,
                    original_filename TEXT NOT NULL,
                    file_type TEXT NOT NULL,
                    size INTEGER NOT NULL,
                    uploaded_at TEXT NOT NULL,
                    storage_path TEXT NOT NULL
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_files_uploaded_at ON files(uploaded_at)
            """)

            conn.commit()
            logger.info(f"File store initialized at {self.db_path}")

    def locator(self, file_id: str) -> str:
        return f"{self.url_prefix}/files/{file_id}/download/"

    def save(self, chunks: Iterable[bytes], original_filename: str,
             content_type: Optional[str] = None) -> FileRecord:
        """
        Write content and record it.

        Content is streamed into a temporary file and renamed into place only
        once complete; if anything fails no file and no record remain.

        Args:
            chunks: Byte blocks written in order
            original_filename: Name the client uploaded the file as
            content_type: Declared MIME type, if any

        Returns:
            The persisted FileRecord
        """
        file_id = uuid.uuid4().hex
        suffix = Path(original_filename).suffix
        final_path = self.storage_dir / f"{file_id}{suffix}"

        fd, tmp_path = tempfile.mkstemp(dir=self.storage_dir, prefix=".tmp_")
        size = 0
        try:
            with os.fdopen(fd, "wb") as f:
                for block in chunks:
                    f.write(block)
                    size += len(block)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, final_path)
        except BaseException:
            try:
                os.remove(tmp_path)
            except FileNotFoundError:
                pass
            raise

        record = FileRecord(
            id=file_id,
            original_filename=original_filename,
            file_type=guess_file_type(original_filename, content_type),
            size=size,
            uploaded_at=datetime.now(),
            file=self.locator(file_id),
            storage_path=str(final_path),
        )
        try:
            self._insert(record)
        except BaseException:
            final_path.unlink(missing_ok=True)
            raise

        logger.info(f"Stored file {file_id} ({original_filename}, {size} bytes)")
        return record

    def _insert(self, record: FileRecord) -> None:
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO files (
                    id, original_filename, file_type, size, uploaded_at, storage_path
                ) VALUES (?, ?, ?, ?, ?, ?)
            """, (
                record.id,
                record.original_filename,
                record.file_type,
                record.size,
                record.uploaded_at.isoformat(),
                record.storage_path,
            ))
            conn.commit()

    def get(self, file_id: str) -> FileRecord:
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT id, original_filename, file_type, size, uploaded_at, storage_path
                FROM files WHERE id = ?
            """, (file_id,))
            row = cursor.fetchone()
        if not row:
            raise FileRecordNotFound(file_id)
        return self._row_to_record(row)

    def list_files(self) -> List[FileRecord]:
        """List all files, newest first."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT id, original_filename, file_type, size, uploaded_at, storage_path
                FROM files
                ORDER BY uploaded_at DESC
            """)
            rows = cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    def delete(self, file_id: str) -> None:
        record = self.get(file_id)
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM files WHERE id = ?", (file_id,))
            deleted = cursor.rowcount > 0
            conn.commit()
        if not deleted:
            # lost a race with another delete
            raise FileRecordNotFound(file_id)
        Path(record.storage_path).unlink(missing_ok=True)
        logger.info(f"Deleted file {file_id}")

    def _row_to_record(self, row) -> FileRecord:
        return FileRecord(
            id=row[0],
            original_filename=row[1],
            file_type=row[2],
            size=row[3],
            uploaded_at=datetime.fromisoformat(row[4]),
            file=self.locator(row[0]),
            storage_path=row[5],
        )
