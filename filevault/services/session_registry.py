"""
Process-wide registry of in-flight chunked upload sessions.

Each session lives in its own slot guarded by its own lock, so unrelated
uploads never contend. The registry lock only protects the id -> slot map.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterator, List, Optional, Union

from filevault.models import UploadSession
from filevault.services.chunk_store import ChunkStore, validate_session_id
from filevault.services.errors import SessionConflict, SessionNotFound

logger = logging.getLogger(__name__)


@dataclass
class _SessionSlot:
    session: UploadSession
    lock: threading.Lock = field(default_factory=threading.Lock)
    # set once the session is removed; waiters on the lock must not use it
    closed: bool = False


class SessionRegistry:
    """Owns the lifecycle of upload sessions."""

    def __init__(self):
        self._slots: Dict[str, _SessionSlot] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)

    def get_or_create(self, session_id: str, total_chunks: int, filename: str) -> UploadSession:
        validate_session_id(session_id)
        with self._lock:
            slot = self._slots.get(session_id)
            if slot is None:
                now = datetime.now()
                session = UploadSession(
                    session_id=session_id,
                    original_filename=filename,
                    total_chunks=total_chunks,
                    created_at=now,
                    last_activity=now,
                )
                self._slots[session_id] = _SessionSlot(session=session)
                logger.info(f"Created upload session {session_id} for {filename} ({total_chunks} chunks)")
                return session

        # total_chunks and filename never change after creation
        session = slot.session
        if session.total_chunks != total_chunks:
            raise SessionConflict(
                f"Session {session_id} expects {session.total_chunks} chunks, got {total_chunks}"
            )
        if session.original_filename != filename:
            raise SessionConflict(
                f"Session {session_id} is for {session.original_filename!r}, got {filename!r}"
            )
        return session

    def get(self, session_id: str) -> UploadSession:
        with self._lock:
            slot = self._slots.get(session_id)
        if slot is None:
            raise SessionNotFound(session_id)
        return slot.session

    def remove(self, session_id: str) -> None:
        """Forget a session. No-op when it is already gone."""
        with self._lock:
            slot = self._slots.pop(session_id, None)
        if slot is not None:
            slot.closed = True
            logger.info(f"Removed upload session {session_id}")

    @contextmanager
    def locked(self, session_id: str, expected: Optional[UploadSession] = None) -> Iterator[UploadSession]:
        """
        Hold the per-session lock and yield the live session.

        When expected is given, a session recreated under the same id since
        the caller obtained expected counts as not found.
        """
        with self._lock:
            slot = self._slots.get(session_id)
        if slot is None:
            raise SessionNotFound(session_id)
        with slot.lock:
            if slot.closed or (expected is not None and slot.session is not expected):
                raise SessionNotFound(session_id)
            yield slot.session

    def sweep_expired(self, max_age: Union[float, timedelta], chunk_store: ChunkStore) -> List[str]:
        """
        Remove and purge sessions idle for at least max_age.

        Orphaned staging directories (no registered session) of the same age
        are purged too; they are left behind when cleanup after a completed
        upload failed. Purge errors are logged and retried on the next sweep.

        Returns:
            Ids of the sessions and orphaned directories reclaimed
        """
        if not isinstance(max_age, timedelta):
            max_age = timedelta(seconds=max_age)

        with self._lock:
            candidates = list(self._slots.items())

        swept: List[str] = []
        for session_id, slot in candidates:
            if datetime.now() - slot.session.last_activity < max_age:
                continue
            with slot.lock:
                if slot.closed:
                    continue
                # activity may have happened while waiting for the lock
                if datetime.now() - slot.session.last_activity < max_age:
                    continue
                self.remove(session_id)
                swept.append(session_id)
                try:
                    chunk_store.purge(session_id)
                except OSError as e:
                    logger.warning(f"Failed to purge chunks for expired session {session_id}: {e}")
            logger.info(f"Swept expired upload session {session_id}")

        for session_id in self._orphaned(chunk_store, max_age):
            try:
                chunk_store.purge(session_id)
                swept.append(session_id)
                logger.info(f"Purged orphaned staging directory {session_id}")
            except OSError as e:
                logger.warning(f"Failed to purge orphaned staging directory {session_id}: {e}")

        return swept

    def _orphaned(self, chunk_store: ChunkStore, max_age: timedelta) -> List[str]:
        with self._lock:
            live = set(self._slots)
        orphans = []
        for session_id in chunk_store.session_ids():
            if session_id in live:
                continue
            modified: Optional[datetime] = chunk_store.last_modified(session_id)
            if modified is not None and datetime.now() - modified >= max_age:
                orphans.append(session_id)
        return orphans
