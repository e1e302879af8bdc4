from fastapi import APIRouter, Depends
from datetime import datetime, timezone
import logging
import platform
import sys

from filevault.config import settings
from filevault.services.upload_coordinator import UploadCoordinator, get_coordinator

logger = logging.getLogger(__name__)
router = APIRouter()

@router.get("/server/info")
async def server_info(coordinator: UploadCoordinator = Depends(get_coordinator)):
    """
    Server information endpoint
    Returns server details and the upload configuration clients should follow
    """
    logger.info("Server info requested")
    config = coordinator.config
    return {
        "service": "filevault-upload-server",
        "version": settings.app_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "system": {
            "platform": platform.platform(),
            "python_version": sys.version,
            "architecture": platform.architecture()[0]
        },
        "uploads": {
            "chunk_size_bytes": config.chunk_size_bytes,
            "max_chunk_size_bytes": config.max_chunk_size_bytes,
            "max_upload_size_bytes": config.max_upload_size_bytes,
            "max_chunk_retries": config.max_chunk_retries,
            "session_max_age_seconds": config.session_max_age_seconds,
            "active_sessions": len(coordinator.registry),
        },
        "status": "running"
    }
