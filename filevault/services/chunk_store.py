"""
Disk-backed staging area for uploaded chunks.

Chunks live at <base_dir>/<session_id>/part_NNNNNN. Every write goes to a
temporary file in the session directory and is renamed over the final name,
so concurrent writers of the same key never produce torn bytes.
"""

import logging
import os
import re
import shutil
import tempfile
from datetime import datetime
from typing import List, Optional

from filevault.services.errors import ChunkNotFound, InvalidChunk

logger = logging.getLogger(__name__)

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_.\-]{1,128}$")
_PART_PREFIX = "part_"


def validate_session_id(session_id: str) -> None:
    """Reject ids that cannot safely name a staging directory."""
    if not session_id or not _SESSION_ID_RE.match(session_id) or session_id in (".", ".."):
        raise InvalidChunk(f"Invalid upload session id: {session_id!r}")


class ChunkStore:
    """Durable chunk staging keyed by (session id, chunk index)."""

    def __init__(self, base_dir: str):
        self.base_dir = base_dir
        os.makedirs(self.base_dir, exist_ok=True)

    def _session_dir(self, session_id: str) -> str:
        validate_session_id(session_id)
        return os.path.join(self.base_dir, session_id)

    def _part_path(self, session_id: str, chunk_index: int) -> str:
        return os.path.join(self._session_dir(session_id), f"{_PART_PREFIX}{chunk_index:06d}")

    def put(self, session_id: str, chunk_index: int, data: bytes) -> None:
        if chunk_index < 0:
            raise InvalidChunk(f"Chunk index must be non-negative, got {chunk_index}")
        if not data:
            raise InvalidChunk(f"Chunk {chunk_index} of session {session_id} is empty")

        out_dir = self._session_dir(session_id)
        os.makedirs(out_dir, exist_ok=True)
        part_path = self._part_path(session_id, chunk_index)

        fd, tmp_path = tempfile.mkstemp(dir=out_dir, prefix=".tmp_")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, part_path)
        except BaseException:
            try:
                os.remove(tmp_path)
            except FileNotFoundError:
                pass
            raise
        logger.debug(f"Staged chunk {chunk_index} ({len(data)} bytes) for {session_id}")

    def get(self, session_id: str, chunk_index: int) -> bytes:
        part_path = self._part_path(session_id, chunk_index)
        try:
            with open(part_path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            raise ChunkNotFound(session_id, chunk_index) from None

    def discard(self, session_id: str, chunk_index: int) -> None:
        """Remove a single chunk, and its directory if that leaves it empty."""
        try:
            os.remove(self._part_path(session_id, chunk_index))
        except FileNotFoundError:
            pass
        try:
            os.rmdir(self._session_dir(session_id))
        except OSError:
            # not empty, or already gone
            pass

    def indices(self, session_id: str) -> List[int]:
        out_dir = self._session_dir(session_id)
        if not os.path.isdir(out_dir):
            return []
        parts = []
        for name in os.listdir(out_dir):
            if name.startswith(_PART_PREFIX):
                try:
                    parts.append(int(name[len(_PART_PREFIX):]))
                except ValueError:
                    continue
        return sorted(parts)

    def purge(self, session_id: str) -> None:
        """Delete every chunk of a session. Silent when nothing is staged."""
        out_dir = self._session_dir(session_id)
        try:
            shutil.rmtree(out_dir)
        except FileNotFoundError:
            return
        logger.info(f"Purged staged chunks for {session_id}")

    def session_ids(self) -> List[str]:
        if not os.path.isdir(self.base_dir):
            return []
        return sorted(
            name for name in os.listdir(self.base_dir)
            if os.path.isdir(os.path.join(self.base_dir, name)) and _SESSION_ID_RE.match(name)
        )

    def last_modified(self, session_id: str) -> Optional[datetime]:
        try:
            return datetime.fromtimestamp(os.path.getmtime(self._session_dir(session_id)))
        except FileNotFoundError:
            return None
