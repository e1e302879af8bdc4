from pydantic import BaseModel, Field
from datetime import datetime


class FileRecord(BaseModel):
    """Represents a finalized, downloadable file."""

    id: str
    original_filename: str
    file_type: str
    size: int
    uploaded_at: datetime
    # retrieval locator handed to clients
    file: str
    storage_path: str = Field(exclude=True)
