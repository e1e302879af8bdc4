import logging
import sqlite3
from typing import Iterator, Optional

from filevault.models import FileRecord
from filevault.services.chunk_store import ChunkStore
from filevault.services.errors import (
    ChunkNotFound,
    IncompleteUpload,
    ReassemblyFailed,
    SessionConflict,
)
from filevault.services.file_store import FileStore
from filevault.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class Reassembler:
    """Turns a fully staged session into a stored file."""

    def __init__(self, registry: SessionRegistry, chunk_store: ChunkStore, file_store: FileStore):
        self.registry = registry
        self.chunk_store = chunk_store
        self.file_store = file_store

    def _iter_chunks(self, session_id: str, total_chunks: int) -> Iterator[bytes]:
        for index in range(total_chunks):
            yield self.chunk_store.get(session_id, index)

    def complete(self, session_id: str, original_filename: str, expected_total_chunks: int,
                 content_type: Optional[str] = None) -> FileRecord:
        """
        Concatenate all chunks of a session, in index order, into a FileRecord.

        The per-session lock is held for the whole concatenation so that racing
        completions and the sweeper serialize behind it.

        Raises:
            SessionNotFound: unknown, completed or swept session
            SessionConflict: filename or chunk count disagree with the session
            IncompleteUpload: some indices in [0, expected_total_chunks) missing
            ReassemblyFailed: the file store write failed; session kept intact
        """
        with self.registry.locked(session_id) as session:
            if session.total_chunks != expected_total_chunks:
                raise SessionConflict(
                    f"Session {session_id} expects {session.total_chunks} chunks, "
                    f"completion claims {expected_total_chunks}"
                )
            if session.original_filename != original_filename:
                raise SessionConflict(
                    f"Session {session_id} is for {session.original_filename!r}, "
                    f"completion claims {original_filename!r}"
                )

            missing = session.missing_indices(expected_total_chunks)
            if missing:
                raise IncompleteUpload(session_id, missing)

            try:
                record = self.file_store.save(
                    self._iter_chunks(session_id, expected_total_chunks),
                    original_filename,
                    content_type,
                )
            except ChunkNotFound as e:
                # recorded as received but gone from staging
                session.received_indices.discard(e.chunk_index)
                logger.error(f"Staged chunk {e.chunk_index} missing for {session_id}")
                raise IncompleteUpload(session_id, [e.chunk_index]) from e
            except (OSError, sqlite3.Error) as e:
                logger.error(f"Reassembly failed for {session_id}: {e}")
                raise ReassemblyFailed(session_id, str(e)) from e

            self.registry.remove(session_id)

        # the record is durable from here on; cleanup failures only leave
        # an orphaned staging directory for the sweeper
        try:
            self.chunk_store.purge(session_id)
        except OSError as e:
            logger.warning(f"Failed to purge chunks for completed session {session_id}: {e}")

        logger.info(f"Completed upload {session_id} as file {record.id} ({record.size} bytes)")
        return record
