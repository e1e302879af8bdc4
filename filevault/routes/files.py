import logging
import os
from typing import List

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse
from starlette.concurrency import run_in_threadpool

from filevault.models import FileRecord
from filevault.services.errors import FileRecordNotFound
from filevault.services.upload_coordinator import UploadCoordinator, get_coordinator

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/files/", response_model=FileRecord)
async def upload_file(
    file: UploadFile = File(...),
    coordinator: UploadCoordinator = Depends(get_coordinator),
):
    """
    Small-file upload
    Stores the file directly without any chunk staging
    """
    try:
        data = await file.read()
    finally:
        await file.close()
    return await run_in_threadpool(
        coordinator.submit_small_file, data, file.filename or "", file.content_type
    )


@router.get("/files/", response_model=List[FileRecord])
async def list_files(coordinator: UploadCoordinator = Depends(get_coordinator)):
    return await run_in_threadpool(coordinator.list_files)


@router.get("/files/{file_id}/", response_model=FileRecord)
async def get_file(file_id: str, coordinator: UploadCoordinator = Depends(get_coordinator)):
    return await run_in_threadpool(coordinator.get_file, file_id)


@router.delete("/files/{file_id}/", status_code=204)
async def delete_file(file_id: str, coordinator: UploadCoordinator = Depends(get_coordinator)):
    await run_in_threadpool(coordinator.delete_file, file_id)


@router.get("/files/{file_id}/download/")
async def download_file(file_id: str, coordinator: UploadCoordinator = Depends(get_coordinator)):
    record = await run_in_threadpool(coordinator.get_file, file_id)
    if not os.path.isfile(record.storage_path):
        logger.error(f"Stored content for {file_id} is missing at {record.storage_path}")
        raise FileRecordNotFound(file_id)
    logger.info(f"Download requested for {file_id}")
    return FileResponse(
        record.storage_path,
        media_type=record.file_type,
        filename=record.original_filename,
    )
