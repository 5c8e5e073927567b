"""Pipeline configuration: per-kind ingestion policies."""

from __future__ import annotations

from dataclasses import dataclass

from autoreply.ingestion.models import DuplicatePolicy


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable configuration for the ingestion pipelines.

    Call transcripts and documents reject duplicate chunk text; catalog syncs
    skip it, since storefront copy is often repeated across entities.
    """

    call_duplicates: DuplicatePolicy = DuplicatePolicy.ERROR
    document_duplicates: DuplicatePolicy = DuplicatePolicy.ERROR
    catalog_duplicates: DuplicatePolicy = DuplicatePolicy.SKIP
    chunk_max_chars: int = 1500
    chunk_insert_batch: int = 50
