"""Plain-text document ingestion into ``rag_chunks``."""

from __future__ import annotations

import logging

from supabase import Client

from autoreply.ingestion.chunking import chunk_text
from autoreply.ingestion.embeddings import EmbeddingClient
from autoreply.ingestion.models import ContentChunk, SourceType
from autoreply.ingestion.storage import ChunkStore, result_rows
from autoreply.pipeline_config import PipelineConfig
from autoreply.retrieval.directory import SourceDirectory

logger = logging.getLogger(__name__)


class DocumentIngestor:
    def __init__(
        self,
        client: Client,
        embedder: EmbeddingClient,
        chunks: ChunkStore,
        directory: SourceDirectory,
        config: PipelineConfig | None = None,
    ) -> None:
        self._client = client
        self._embedder = embedder
        self._chunks = chunks
        self._directory = directory
        self.config = config or PipelineConfig()

    def ingest(self, file_name: str, text: str, phone_number: str | None = None) -> tuple[str, int]:
        """Chunk, embed and store *text*; optionally map it to *phone_number*.

        Returns:
            ``(document_id, chunk_count)``.

        Raises:
            ValueError: The text produced no chunks.
        """
        texts = chunk_text(text, self.config.chunk_max_chars)
        if not texts:
            raise ValueError("Document contains no text")

        result = self._client.table("documents").insert({"file_name": file_name}).execute()
        document_id = str(result_rows(result)[0]["id"])

        try:
            vectors = self._embedder.session().embed_batch(texts)
            chunks = [
                ContentChunk(
                    source_type=SourceType.DOCUMENT,
                    source_id=document_id,
                    owner_key=document_id,
                    text=t,
                    embedding=v,
                    chunk_index=i,
                    metadata={"file_name": file_name},
                )
                for i, (t, v) in enumerate(zip(texts, vectors, strict=True))
            ]
            count = self._chunks.insert(chunks, self.config.document_duplicates)
            self._client.table("documents").update({"chunk_count": count}).eq("id", document_id).execute()
            if phone_number:
                self._directory.map_document(phone_number, document_id)
        except Exception:
            logger.error("Ingestion of %s failed; removing document %s", file_name, document_id)
            self._chunks.delete_for_owner(SourceType.DOCUMENT, document_id)
            self._client.table("documents").delete().eq("id", document_id).execute()
            raise

        logger.info("Ingested document %s (%s) with %d chunks", document_id, file_name, count)
        return document_id, count
