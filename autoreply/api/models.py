"""Pydantic request/response schemas for the autoreply API."""

from __future__ import annotations

from pydantic import BaseModel

from autoreply.ingestion.models import Classification, IngestionState, IngestionUnit
from autoreply.ingestion.pipeline import ProcessOutcome


class ClassificationResponse(BaseModel):
    is_blank: bool
    is_spam: bool
    is_relevant: bool
    blank_confidence: float
    spam_confidence: float
    relevance_confidence: float
    reasoning: str | None = None
    fallback: bool = False

    @classmethod
    def from_classification(cls, c: Classification) -> ClassificationResponse:
        return cls(
            is_blank=c.is_blank,
            is_spam=c.is_spam,
            is_relevant=c.is_relevant,
            blank_confidence=c.blank_confidence,
            spam_confidence=c.spam_confidence,
            relevance_confidence=c.relevance_confidence,
            reasoning=c.reasoning,
            fallback=c.fallback,
        )


class CallSummary(BaseModel):
    """A call recording for list views."""

    id: str
    file_name: str
    status: IngestionState
    phone_number: str | None = None
    chunk_count: int = 0
    error_reason: str | None = None
    uploaded_at: str | None = None
    processed_at: str | None = None

    @classmethod
    def from_unit(cls, unit: IngestionUnit) -> CallSummary:
        return cls(
            id=unit.id,
            file_name=unit.file_name,
            status=unit.status,
            phone_number=unit.phone_number,
            chunk_count=unit.chunk_count,
            error_reason=unit.error_reason,
            uploaded_at=unit.uploaded_at,
            processed_at=unit.processed_at,
        )


class CallDetail(CallSummary):
    """Full call detail including transcript and classification."""

    transcript: str | None = None
    classification: ClassificationResponse | None = None

    @classmethod
    def from_unit(cls, unit: IngestionUnit) -> CallDetail:
        summary = CallSummary.from_unit(unit)
        return cls(
            **summary.model_dump(),
            transcript=unit.transcript,
            classification=(
                ClassificationResponse.from_classification(unit.classification)
                if unit.classification
                else None
            ),
        )


class UploadFailure(BaseModel):
    file_name: str
    error: str


class UploadResponse(BaseModel):
    """Response body for ``POST /api/calls``; ``success`` is False if any file failed."""

    success: bool
    uploaded: list[CallSummary] = []
    failed: list[UploadFailure] = []


class ProcessResult(BaseModel):
    call_id: str
    status: IngestionState | None = None
    chunk_count: int = 0
    error: str | None = None
    skipped: bool = False

    @classmethod
    def from_outcome(cls, outcome: ProcessOutcome) -> ProcessResult:
        return cls(
            call_id=outcome.call_id,
            status=outcome.status,
            chunk_count=outcome.chunk_count,
            error=outcome.error,
            skipped=outcome.skipped,
        )


class WorkerResponse(BaseModel):
    processed: int
    failed: int
    results: list[ProcessResult]


class MappingResponse(BaseModel):
    phone_number: str
    data_source: str
    document_ids: list[str] = []
    call_ids: list[str] = []
    catalog_store_id: str | None = None
    system_prompt: str | None = None
    has_credentials: bool = False


class DocumentResponse(BaseModel):
    document_id: str
    file_name: str
    chunk_count: int


class ValidateTokenRequest(BaseModel):
    store_domain: str
    storefront_token: str


class ValidateTokenResponse(BaseModel):
    valid: bool
    store_name: str | None = None
    error: str | None = None


class SyncResponse(BaseModel):
    store_id: str
    products: int
    pages: int
    collections: int
    chunks: int
    failures: list[str] = []


class RespondRequest(BaseModel):
    """Inbound message to answer: ``from_number`` is the customer, ``to_number`` the business."""

    from_number: str
    to_number: str
    message_text: str
    message_id: str | None = None


class RespondResponse(BaseModel):
    success: bool
    response: str | None = None
    sent: bool | None = None
    error: str | None = None
    no_documents: bool = False
