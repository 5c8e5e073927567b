"""Document upload endpoint: UTF-8 text -> searchable chunks."""

from __future__ import annotations

import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from autoreply.api.models import DocumentResponse
from autoreply.dependencies import get_document_ingestor
from autoreply.errors import DuplicateChunkError, EmbeddingError, InvariantViolation
from autoreply.ingestion.documents import DocumentIngestor

router = APIRouter()

# 10 MB of text is far beyond any realistic knowledge-base document
MAX_DOCUMENT_BYTES = 10 * 1024 * 1024


@router.post("/api/documents", response_model=DocumentResponse)
async def upload_document(
    file: Annotated[UploadFile, File(...)],
    ingestor: Annotated[DocumentIngestor, Depends(get_document_ingestor)],
    phone_number: Annotated[str | None, Form()] = None,
) -> DocumentResponse:
    """Ingest a plain-text document and optionally map it to a business number."""
    raw = await file.read()
    if len(raw) > MAX_DOCUMENT_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {MAX_DOCUMENT_BYTES // (1024 * 1024)} MB.",
        )
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="Document must be UTF-8 text") from exc

    name = file.filename or "document.txt"
    try:
        document_id, count = await asyncio.to_thread(ingestor.ingest, name, text, phone_number or None)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (DuplicateChunkError, InvariantViolation) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except EmbeddingError as exc:
        status = 503 if exc.is_transient else 502
        raise HTTPException(status_code=status, detail=str(exc)) from exc

    return DocumentResponse(document_id=document_id, file_name=name, chunk_count=count)
