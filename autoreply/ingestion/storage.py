"""Supabase storage helpers for recordings, chunks and call records."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any, cast

from postgrest.exceptions import APIError
from supabase import Client, create_client

from autoreply.errors import DuplicateChunkError
from autoreply.ingestion.models import (
    Classification,
    ContentChunk,
    DuplicatePolicy,
    IngestionState,
    IngestionUnit,
    SourceType,
)

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"

RAG_CHUNKS = "rag_chunks"
CATALOG_CHUNKS = "catalog_chunks"


def get_supabase_client(url: str, key: str) -> Client:
    """Create a Supabase client; called once by the process entry point."""
    return create_client(url, key)


def utcnow() -> str:
    return datetime.now(UTC).isoformat()


def result_rows(result: Any) -> list[dict[str, Any]]:
    # Supabase .data is typed as JSON (broad union); cast to concrete type.
    return cast(list[dict[str, Any]], result.data or [])


class BlobStore:
    """Object storage for raw payloads (call audio) in one Supabase bucket."""

    def __init__(self, client: Client, bucket: str) -> None:
        self._client = client
        self.bucket = bucket

    def upload(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        self._client.storage.from_(self.bucket).upload(
            key, data, file_options={"content-type": content_type, "upsert": "false"}
        )
        return key

    def download(self, path: str) -> bytes:
        return self._client.storage.from_(self.bucket).download(path)

    def delete(self, path: str) -> None:
        self._client.storage.from_(self.bucket).remove([path])


class ChunkStore:
    """Persists :class:`ContentChunk` rows and enforces owner-level uniqueness.

    Document and call chunks live in ``rag_chunks`` (owner = source id);
    catalog chunks live in ``catalog_chunks`` (owner = store id).
    """

    def __init__(self, client: Client, batch_size: int = 50) -> None:
        self._client = client
        self.batch_size = batch_size

    @staticmethod
    def _table_for(source_type: SourceType) -> str:
        return CATALOG_CHUNKS if source_type.is_catalog else RAG_CHUNKS

    @staticmethod
    def _conflict_columns(table: str) -> str:
        if table == CATALOG_CHUNKS:
            return "store_id,content_type,chunk_text"
        return "source_id,source_type,content"

    @staticmethod
    def _row(chunk: ContentChunk) -> dict[str, Any]:
        if chunk.source_type.is_catalog:
            return {
                "store_id": chunk.owner_key,
                "content_type": chunk.source_type.value,
                "content_id": chunk.source_id,
                "title": chunk.title,
                "chunk_text": chunk.text,
                "embedding": chunk.embedding,
                "metadata": chunk.metadata,
            }
        return {
            "source_type": chunk.source_type.value,
            "source_id": chunk.owner_key,
            "chunk_index": chunk.chunk_index,
            "content": chunk.text,
            "embedding": chunk.embedding,
            "metadata": chunk.metadata,
        }

    @staticmethod
    def dedupe(chunks: Sequence[ContentChunk], policy: DuplicatePolicy) -> list[ContentChunk]:
        """Drop or reject chunks that repeat ``(owner, source type, text)`` in *chunks*."""
        seen: set[tuple[str, SourceType, str]] = set()
        unique: list[ContentChunk] = []
        for chunk in chunks:
            key = (chunk.owner_key, chunk.source_type, chunk.text)
            if key in seen:
                if policy is DuplicatePolicy.ERROR:
                    raise DuplicateChunkError(
                        f"Duplicate {chunk.source_type} chunk for owner {chunk.owner_key}"
                    )
                logger.info("Skipping duplicate %s chunk for %s", chunk.source_type, chunk.owner_key)
                continue
            seen.add(key)
            unique.append(chunk)
        return unique

    def insert(self, chunks: Sequence[ContentChunk], policy: DuplicatePolicy) -> int:
        """Store chunks in batches and return how many rows were written.

        Raises:
            DuplicateChunkError: Under ``DuplicatePolicy.ERROR`` when the text
                already exists for the owner, in the input or in the table.
        """
        unique = self.dedupe(chunks, policy)
        by_table: dict[str, list[dict[str, Any]]] = {}
        for chunk in unique:
            by_table.setdefault(self._table_for(chunk.source_type), []).append(self._row(chunk))

        written = 0
        for table, rows in by_table.items():
            for i in range(0, len(rows), self.batch_size):
                batch = rows[i : i + self.batch_size]
                if policy is DuplicatePolicy.SKIP:
                    result = (
                        self._client.table(table)
                        .upsert(batch, on_conflict=self._conflict_columns(table), ignore_duplicates=True)
                        .execute()
                    )
                    written += len(result_rows(result))
                    continue
                try:
                    self._client.table(table).insert(batch).execute()
                except APIError as exc:
                    if exc.code == UNIQUE_VIOLATION:
                        raise DuplicateChunkError(f"Duplicate chunk text in {table}: {exc.message}") from exc
                    raise
                written += len(batch)
        return written

    def delete_for_owner(self, source_type: SourceType, owner_key: str) -> None:
        """Remove every chunk an owner has for *source_type* (or the whole store for catalog)."""
        if source_type.is_catalog:
            self._client.table(CATALOG_CHUNKS).delete().eq("store_id", owner_key).execute()
            return
        (
            self._client.table(RAG_CHUNKS)
            .delete()
            .eq("source_type", source_type.value)
            .eq("source_id", owner_key)
            .execute()
        )


class CallRepository:
    """Row access for ``call_recordings`` and its satellite tables.

    Only the ingestion state machine and the upload path write here.
    """

    def __init__(self, client: Client) -> None:
        self._client = client

    def create(
        self,
        file_name: str,
        storage_path: str,
        phone_number: str | None,
        file_size: int | None = None,
        mime_type: str | None = None,
    ) -> IngestionUnit:
        result = (
            self._client.table("call_recordings")
            .insert(
                {
                    "file_name": file_name,
                    "storage_path": storage_path,
                    "phone_number": phone_number,
                    "file_size": file_size,
                    "mime_type": mime_type,
                    "status": IngestionState.UPLOADED.value,
                    "uploaded_at": utcnow(),
                }
            )
            .execute()
        )
        return IngestionUnit.from_row(result_rows(result)[0])

    def get(self, call_id: str) -> IngestionUnit | None:
        result = self._client.table("call_recordings").select("*").eq("id", call_id).limit(1).execute()
        rows = result_rows(result)
        return IngestionUnit.from_row(rows[0]) if rows else None

    def get_detail(self, call_id: str) -> IngestionUnit | None:
        """Load a unit together with its transcript and classification."""
        unit = self.get(call_id)
        if unit is None:
            return None
        transcripts = result_rows(
            self._client.table("call_transcripts")
            .select("transcript")
            .eq("call_id", call_id)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        if transcripts:
            unit.transcript = transcripts[0].get("transcript")
        classifications = result_rows(
            self._client.table("call_classifications")
            .select("*")
            .eq("call_id", call_id)
            .order("classified_at", desc=True)
            .limit(1)
            .execute()
        )
        if classifications:
            c = classifications[0]
            unit.classification = Classification(
                is_blank=bool(c.get("is_blank")),
                is_spam=bool(c.get("is_spam")),
                is_relevant=bool(c.get("is_relevant")),
                blank_confidence=float(c.get("blank_confidence") or 0),
                spam_confidence=float(c.get("spam_confidence") or 0),
                relevance_confidence=float(c.get("relevance_confidence") or 0),
                reasoning=(c.get("classification_metadata") or {}).get("reasoning"),
                fallback=bool((c.get("classification_metadata") or {}).get("fallback")),
            )
        return unit

    def list_units(self) -> list[IngestionUnit]:
        result = self._client.table("call_recordings").select("*").order("uploaded_at", desc=True).execute()
        return [IngestionUnit.from_row(r) for r in result_rows(result)]

    def pending(self, limit: int) -> list[IngestionUnit]:
        """Oldest ``uploaded`` units first, at most *limit* of them."""
        result = (
            self._client.table("call_recordings")
            .select("*")
            .eq("status", IngestionState.UPLOADED.value)
            .order("uploaded_at")
            .limit(limit)
            .execute()
        )
        return [IngestionUnit.from_row(r) for r in result_rows(result)]

    def claim(self, call_id: str) -> bool:
        """Atomically move an ``uploaded`` unit to ``transcribing``.

        Returns False when another worker already claimed it.
        """
        result = (
            self._client.table("call_recordings")
            .update({"status": IngestionState.TRANSCRIBING.value})
            .eq("id", call_id)
            .eq("status", IngestionState.UPLOADED.value)
            .execute()
        )
        return bool(result_rows(result))

    def set_status(self, call_id: str, status: IngestionState, **fields: Any) -> None:
        values: dict[str, Any] = {"status": status.value, **fields}
        if status.is_terminal:
            values.setdefault("processed_at", utcnow())
        self._client.table("call_recordings").update(values).eq("id", call_id).execute()

    def save_transcript(self, call_id: str, transcript: str) -> None:
        self._client.table("call_transcripts").insert(
            {"call_id": call_id, "transcript": transcript, "transcript_length": len(transcript)}
        ).execute()

    def save_classification(self, call_id: str, classification: Classification) -> None:
        self._client.table("call_classifications").insert(
            {
                "call_id": call_id,
                "is_blank": classification.is_blank,
                "is_spam": classification.is_spam,
                "is_relevant": classification.is_relevant,
                "blank_confidence": classification.blank_confidence,
                "spam_confidence": classification.spam_confidence,
                "relevance_confidence": classification.relevance_confidence,
                "classification_metadata": {
                    "reasoning": classification.reasoning,
                    "fallback": classification.fallback,
                },
            }
        ).execute()

    def map_phone(self, phone_number: str, call_id: str) -> None:
        self._client.table("phone_call_mapping").insert(
            {"phone_number": phone_number, "call_id": call_id}
        ).execute()

    def unmap_phone(self, call_id: str) -> None:
        self._client.table("phone_call_mapping").delete().eq("call_id", call_id).execute()

    def reset(self, call_id: str) -> None:
        """Drop everything derived from a unit and put it back to ``uploaded``."""
        self.unmap_phone(call_id)
        self._client.table("call_transcripts").delete().eq("call_id", call_id).execute()
        self._client.table("call_classifications").delete().eq("call_id", call_id).execute()
        self._client.table("call_recordings").update(
            {
                "status": IngestionState.UPLOADED.value,
                "error_reason": None,
                "chunk_count": 0,
                "processed_at": None,
            }
        ).eq("id", call_id).execute()

    def delete(self, call_id: str) -> bool:
        result = self._client.table("call_recordings").delete().eq("id", call_id).execute()
        return bool(result_rows(result))
