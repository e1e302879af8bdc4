import logging
from typing import List, Optional

from filevault.config import Settings, settings as default_settings
from filevault.models import ChunkAccepted, FileRecord, UploadStatus
from filevault.services.chunk_store import ChunkStore, validate_session_id
from filevault.services.errors import (
    ChunkWriteFailed,
    FileTooLarge,
    InvalidChunk,
    ReassemblyFailed,
    SessionNotFound,
    UploadError,
)
from filevault.services.file_store import FileStore
from filevault.services.reassembler import Reassembler
from filevault.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


def validate_filename(filename: str) -> None:
    """Reject names that can never be stored, before any bytes are staged."""
    if not filename:
        raise InvalidChunk("A filename is required")
    if len(filename) > 255:
        raise InvalidChunk(f"Filename is {len(filename)} characters, limit is 255")
    if any(ord(c) < 32 or ord(c) == 127 for c in filename):
        raise InvalidChunk(f"Filename {filename!r} contains control characters")


class UploadCoordinator:
    """Entry point for chunk submission, completion and the small-file path."""

    def __init__(self, registry: SessionRegistry, chunk_store: ChunkStore,
                 file_store: FileStore, config: Settings):
        self.registry = registry
        self.chunk_store = chunk_store
        self.file_store = file_store
        self.config = config
        self.reassembler = Reassembler(registry, chunk_store, file_store)

    @classmethod
    def from_settings(cls, config: Settings) -> "UploadCoordinator":
        return cls(
            registry=SessionRegistry(),
            chunk_store=ChunkStore(config.upload_base_dir),
            file_store=FileStore(config.database_path, config.storage_dir, config.api_prefix),
            config=config,
        )

    def submit_chunk(self, session_id: str, chunk_index: int, total_chunks: int,
                     filename: str, data: bytes) -> ChunkAccepted:
        validate_session_id(session_id)
        if total_chunks <= 0:
            raise InvalidChunk(f"totalChunks must be positive, got {total_chunks}")
        if chunk_index < 0 or chunk_index >= total_chunks:
            raise InvalidChunk(f"Chunk index {chunk_index} outside [0, {total_chunks})")
        validate_filename(filename)
        if not data:
            raise InvalidChunk(f"Chunk {chunk_index} of session {session_id} is empty")
        if len(data) > self.config.max_chunk_size_bytes:
            raise InvalidChunk(
                f"Chunk {chunk_index} is {len(data)} bytes, limit is {self.config.max_chunk_size_bytes}"
            )

        expected = self.registry.get_or_create(session_id, total_chunks, filename)

        # byte I/O happens outside the session lock
        try:
            self.chunk_store.put(session_id, chunk_index, data)
        except OSError as e:
            logger.error(f"Failed to stage chunk {chunk_index} for {session_id}: {e}")
            raise ChunkWriteFailed(f"Could not store chunk {chunk_index}: {e}") from e

        try:
            with self.registry.locked(session_id, expected=expected) as session:
                session.mark_chunk_received(chunk_index)
                received = len(session.received_indices)
        except SessionNotFound:
            # completed, swept or replaced while the chunk was being written
            self._discard_stray_chunk(session_id, chunk_index)
            raise

        logger.debug(f"Received chunk {chunk_index + 1}/{total_chunks} for {session_id}")
        return ChunkAccepted(
            session_id=session_id,
            chunk_index=chunk_index,
            received_chunks=received,
            total_chunks=total_chunks,
        )

    def _discard_stray_chunk(self, session_id: str, chunk_index: int) -> None:
        try:
            with self.registry.locked(session_id) as current:
                # a session recreated under this id keeps chunks it already counts
                if chunk_index not in current.received_indices:
                    self.chunk_store.discard(session_id, chunk_index)
        except SessionNotFound:
            self.chunk_store.discard(session_id, chunk_index)

    def complete_upload(self, session_id: str, filename: str, total_chunks: int) -> FileRecord:
        if total_chunks <= 0:
            raise InvalidChunk(f"totalChunks must be positive, got {total_chunks}")
        try:
            return self.reassembler.complete(session_id, filename, total_chunks)
        except UploadError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error completing {session_id}")
            raise ReassemblyFailed(session_id, str(e)) from e

    def submit_small_file(self, data: bytes, filename: str,
                          content_type: Optional[str] = None) -> FileRecord:
        validate_filename(filename)
        if not data:
            raise InvalidChunk(f"File {filename} is empty")
        if len(data) > self.config.max_upload_size_bytes:
            raise FileTooLarge(
                f"File is {len(data)} bytes, limit is {self.config.max_upload_size_bytes}"
            )
        return self.file_store.save([data], filename, content_type)

    def abandon_upload(self, session_id: str) -> None:
        with self.registry.locked(session_id):
            self.registry.remove(session_id)
            self.chunk_store.purge(session_id)
        logger.info(f"Abandoned upload session {session_id}")

    def session_status(self, session_id: str) -> UploadStatus:
        with self.registry.locked(session_id) as session:
            received = sorted(session.received_indices)
            return UploadStatus(
                session_id=session.session_id,
                original_filename=session.original_filename,
                total_chunks=session.total_chunks,
                received_indices=received,
                missing_indices=session.missing_indices(),
                progress=len(received) / session.total_chunks,
                created_at=session.created_at,
                last_activity=session.last_activity,
            )

    def sweep(self, max_age: Optional[float] = None) -> List[str]:
        if max_age is None:
            max_age = self.config.session_max_age_seconds
        return self.registry.sweep_expired(max_age, self.chunk_store)

    def list_files(self) -> List[FileRecord]:
        return self.file_store.list_files()

    def get_file(self, file_id: str) -> FileRecord:
        return self.file_store.get(file_id)

    def delete_file(self, file_id: str) -> None:
        self.file_store.delete(file_id)


# Global coordinator instance
coordinator: Optional[UploadCoordinator] = None


def get_coordinator() -> UploadCoordinator:
    """Get the global upload coordinator, creating it on first use."""
    global coordinator
    if coordinator is None:
        coordinator = UploadCoordinator.from_settings(default_settings)
    return coordinator


def init_coordinator(config: Optional[Settings] = None) -> UploadCoordinator:
    global coordinator
    coordinator = UploadCoordinator.from_settings(config or default_settings)
    logger.info("Upload coordinator initialized")
    return coordinator


def shutdown_coordinator():
    global coordinator
    coordinator = None
