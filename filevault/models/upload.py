from __future__ import annotations

from pydantic import BaseModel, Field
from enum import Enum
from typing import List, Optional, Set
from datetime import datetime


class UploadState(str, Enum):
    """Client-side state of a single file upload."""
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    FAILED = "failed"
    SUCCEEDED = "succeeded"


class UploadSession(BaseModel):
    """Represents a chunked upload session and its progression state."""

    session_id: str
    original_filename: str
    total_chunks: int
    created_at: datetime
    last_activity: datetime

    # chunk indices (0-based) staged so far
    received_indices: Set[int] = Field(default_factory=set)

    def mark_chunk_received(self, index: int) -> None:
        self.received_indices.add(index)
        self.last_activity = datetime.now()

    def missing_indices(self, expected_total: Optional[int] = None) -> List[int]:
        total = self.total_chunks if expected_total is None else expected_total
        return [i for i in range(total) if i not in self.received_indices]


class ChunkAccepted(BaseModel):
    """Acknowledgement returned for an accepted chunk."""

    session_id: str
    chunk_index: int
    received_chunks: int
    total_chunks: int


class UploadStatus(BaseModel):
    session_id: str
    original_filename: str
    total_chunks: int
    received_indices: List[int]
    missing_indices: List[int]
    progress: float
    created_at: datetime
    last_activity: datetime
