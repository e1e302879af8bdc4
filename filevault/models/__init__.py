from filevault.models.file import FileRecord
from filevault.models.upload import ChunkAccepted, UploadSession, UploadState, UploadStatus

__all__ = [
    "ChunkAccepted",
    "FileRecord",
    "UploadSession",
    "UploadState",
    "UploadStatus",
]
