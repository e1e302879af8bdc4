"""
Error taxonomy for the upload pipeline.

Every error carries the HTTP status it maps to, a client-facing hint, and
whether retrying the same request can succeed. The error middleware turns
these into JSON responses.
"""

from typing import Any, Dict, Iterable, List, Optional


class UploadError(Exception):
    """Base class for upload pipeline errors"""

    status_code: int = 400
    hint: str = "Check the request parameters and try again"
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.status_code,
            "message": self.message,
            "hint": self.hint,
            "retryable": self.retryable,
        }


class InvalidChunk(UploadError):
    """Malformed, empty, oversized or out-of-range chunk."""
    status_code = 400
    hint = "The chunk is malformed; resending it unchanged will not help"


class SessionConflict(UploadError):
    """Chunk metadata disagrees with the recorded session."""
    status_code = 409
    hint = "Abort this upload and start again with a new file id"


class SessionNotFound(UploadError):
    status_code = 404
    hint = "The upload session is unknown or expired; restart the upload"

    def __init__(self, session_id: str):
        super().__init__(f"Upload session {session_id} not found")
        self.session_id = session_id


class IncompleteUpload(UploadError):
    status_code = 409
    hint = "Submit the missing chunks, then retry completion"

    def __init__(self, session_id: str, missing: Iterable[int]):
        self.missing: List[int] = sorted(missing)
        super().__init__(
            f"Upload session {session_id} is missing chunks {self.missing}"
        )
        self.session_id = session_id

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["missing_chunks"] = self.missing
        return data


class ReassemblyFailed(UploadError):
    """Storage failure while producing the final file. Chunks are kept."""
    status_code = 500
    hint = "Retry completion; staged chunks were kept"
    retryable = True

    def __init__(self, session_id: str, reason: Optional[str] = None):
        message = f"Reassembly failed for upload session {session_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.session_id = session_id


class ChunkWriteFailed(UploadError):
    status_code = 503
    hint = "Retry the chunk"
    retryable = True


class FileTooLarge(UploadError):
    status_code = 413
    hint = "Use the chunked upload path or a smaller file"


class FileRecordNotFound(UploadError):
    status_code = 404
    hint = "The file does not exist or was already deleted"

    def __init__(self, file_id: str):
        super().__init__(f"File {file_id} not found")
        self.file_id = file_id


class ChunkNotFound(Exception):
    """Raised by the chunk store for a missing (session, index) key."""

    def __init__(self, session_id: str, chunk_index: int):
        super().__init__(f"Chunk {chunk_index} of session {session_id} not found")
        self.session_id = session_id
        self.chunk_index = chunk_index
