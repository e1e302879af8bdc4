import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool

from filevault.models import FileRecord, UploadStatus
from filevault.services.upload_coordinator import UploadCoordinator, get_coordinator

logger = logging.getLogger(__name__)
router = APIRouter()


class CompleteUploadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_id: str = Field(alias="fileId")
    original_filename: str = Field(alias="originalFilename")
    total_chunks: int = Field(alias="totalChunks")


class ChunkUploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "ok"
    file_id: str = Field(alias="fileId")
    chunk_index: int = Field(alias="chunkIndex")
    received_chunks: int = Field(alias="receivedChunks")
    total_chunks: int = Field(alias="totalChunks")


@router.post("/files/chunk/", response_model=ChunkUploadResponse, response_model_by_alias=True)
async def upload_chunk(
    file: UploadFile = File(...),
    file_id: str = Form(..., alias="fileId"),
    chunk_index: int = Form(..., alias="chunkIndex"),
    total_chunks: int = Form(..., alias="totalChunks"),
    original_filename: str = Form(..., alias="originalFilename"),
    coordinator: UploadCoordinator = Depends(get_coordinator),
):
    try:
        data = await file.read()
    finally:
        await file.close()

    accepted = await run_in_threadpool(
        coordinator.submit_chunk, file_id, chunk_index, total_chunks, original_filename, data
    )
    return ChunkUploadResponse(
        file_id=accepted.session_id,
        chunk_index=accepted.chunk_index,
        received_chunks=accepted.received_chunks,
        total_chunks=accepted.total_chunks,
    )


@router.post("/files/complete/", response_model=FileRecord)
async def complete_upload(
    req: CompleteUploadRequest,
    coordinator: UploadCoordinator = Depends(get_coordinator),
):
    record = await run_in_threadpool(
        coordinator.complete_upload, req.file_id, req.original_filename, req.total_chunks
    )
    logger.info(f"Upload {req.file_id} completed as {record.id}")
    return record


@router.get("/files/chunk/{file_id}/status/", response_model=UploadStatus)
async def upload_status(file_id: str, coordinator: UploadCoordinator = Depends(get_coordinator)):
    return await run_in_threadpool(coordinator.session_status, file_id)


@router.delete("/files/chunk/{file_id}/")
async def abandon_upload(file_id: str, coordinator: UploadCoordinator = Depends(get_coordinator)):
    await run_in_threadpool(coordinator.abandon_upload, file_id)
    return {"status": "cancelled", "fileId": file_id}
