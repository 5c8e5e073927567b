"""Call recording endpoints: upload, list, process, retry, delete."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from autoreply.api.models import (
    CallDetail,
    CallSummary,
    ProcessResult,
    UploadFailure,
    UploadResponse,
    WorkerResponse,
)
from autoreply.config import settings
from autoreply.dependencies import (
    get_blob_store,
    get_call_processor,
    get_call_repository,
    get_call_uploader,
    get_chunk_store,
)
from autoreply.errors import InvalidTransition
from autoreply.ingestion.models import SourceType
from autoreply.ingestion.pipeline import CallProcessor
from autoreply.ingestion.storage import BlobStore, CallRepository, ChunkStore
from autoreply.ingestion.uploads import CallUploader, UploadRejected

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/calls", response_model=UploadResponse)
async def upload_calls(
    files: Annotated[list[UploadFile], File(...)],
    phone_number: Annotated[str, Form()],
    uploader: Annotated[CallUploader, Depends(get_call_uploader)],
) -> UploadResponse:
    """Store each audio file and register it as an ``uploaded`` call.

    Files are handled independently; one bad file does not stop the rest.
    """
    if not phone_number.strip():
        raise HTTPException(status_code=400, detail="Phone number is required")

    response = UploadResponse(success=True)
    for file in files:
        name = file.filename or "recording"
        data = await file.read()
        try:
            unit = await asyncio.to_thread(uploader.upload, name, data, file.content_type, phone_number)
        except UploadRejected as exc:
            response.failed.append(UploadFailure(file_name=name, error=str(exc)))
            continue
        except Exception as exc:
            logger.exception("Upload of %s failed", name)
            response.failed.append(UploadFailure(file_name=name, error=f"Failed to store file: {exc}"))
            continue
        response.uploaded.append(CallSummary.from_unit(unit))

    response.success = not response.failed
    return response


@router.get("/api/calls", response_model=list[CallSummary])
async def list_calls(
    repo: Annotated[CallRepository, Depends(get_call_repository)],
) -> list[CallSummary]:
    """List all calls, newest upload first."""
    return [CallSummary.from_unit(u) for u in repo.list_units()]


@router.post("/api/calls/process", response_model=WorkerResponse)
async def process_pending(
    processor: Annotated[CallProcessor, Depends(get_call_processor)],
    batch_size: int = settings.worker_batch_size,
) -> WorkerResponse:
    """Run one worker pass over the oldest uploaded calls."""
    if batch_size < 1:
        raise HTTPException(status_code=400, detail="batch_size must be >= 1")
    report = await processor.run_pending(batch_size)
    return WorkerResponse(
        processed=report.processed,
        failed=report.failed,
        results=[ProcessResult.from_outcome(o) for o in report.outcomes],
    )


@router.get("/api/calls/{call_id}", response_model=CallDetail)
async def get_call(
    call_id: str,
    repo: Annotated[CallRepository, Depends(get_call_repository)],
) -> CallDetail:
    unit = repo.get_detail(call_id)
    if unit is None:
        raise HTTPException(status_code=404, detail="Call not found")
    return CallDetail.from_unit(unit)


@router.post("/api/calls/{call_id}/process", response_model=ProcessResult)
async def process_call(
    call_id: str,
    processor: Annotated[CallProcessor, Depends(get_call_processor)],
) -> ProcessResult:
    """Drive one uploaded call through the pipeline."""
    try:
        outcome = await asyncio.to_thread(processor.process, call_id)
    except InvalidTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if outcome is None:
        raise HTTPException(status_code=404, detail="Call not found")
    return ProcessResult.from_outcome(outcome)


@router.post("/api/calls/{call_id}/retry", response_model=CallSummary)
async def retry_call(
    call_id: str,
    processor: Annotated[CallProcessor, Depends(get_call_processor)],
) -> CallSummary:
    """Reset a call to ``uploaded`` so the next worker pass picks it up again."""
    unit = await asyncio.to_thread(processor.retry, call_id)
    if unit is None:
        raise HTTPException(status_code=404, detail="Call not found")
    return CallSummary.from_unit(unit)


@router.delete("/api/calls/{call_id}")
async def delete_call(
    call_id: str,
    repo: Annotated[CallRepository, Depends(get_call_repository)],
    blobs: Annotated[BlobStore, Depends(get_blob_store)],
    chunks: Annotated[ChunkStore, Depends(get_chunk_store)],
) -> dict[str, str]:
    """Delete a call, its chunks and its stored audio."""
    unit = repo.get(call_id)
    if unit is None:
        raise HTTPException(status_code=404, detail="Call not found")

    chunks.delete_for_owner(SourceType.CALL, call_id)
    repo.delete(call_id)
    if unit.payload_ref:
        try:
            blobs.delete(unit.payload_ref)
        except Exception:
            logger.exception("Could not remove audio %s for call %s", unit.payload_ref, call_id)
    return {"status": "deleted", "id": call_id}
