"""Provider clients and pipeline components, built once per process.

FastAPI routes depend on the ``get_*`` component factories; tests replace
them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache

import httpx
from anthropic import Anthropic
from openai import OpenAI
from supabase import Client

from autoreply.config import settings
from autoreply.ingestion.catalog import CatalogSyncer
from autoreply.ingestion.classifier import TranscriptClassifier
from autoreply.ingestion.documents import DocumentIngestor
from autoreply.ingestion.embeddings import EmbeddingClient
from autoreply.ingestion.pipeline import CallProcessor
from autoreply.ingestion.shopify import ShopifyClient
from autoreply.ingestion.storage import BlobStore, CallRepository, ChunkStore, get_supabase_client
from autoreply.ingestion.transcription import AssemblyAITranscriber
from autoreply.ingestion.uploads import CallUploader
from autoreply.pipeline_config import PipelineConfig
from autoreply.retrieval.delivery import WhatsAppSender
from autoreply.retrieval.directory import SourceDirectory
from autoreply.retrieval.generation import ClaudeChat
from autoreply.retrieval.responder import AutoResponder, MessageLog
from autoreply.retrieval.search import RetrievalEngine, VectorIndex


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    return get_supabase_client(settings.supabase_url, settings.supabase_key)


@lru_cache(maxsize=1)
def get_http() -> httpx.Client:
    return httpx.Client(timeout=settings.whatsapp_timeout)


@lru_cache(maxsize=1)
def get_anthropic() -> Anthropic:
    return Anthropic(api_key=settings.anthropic_api_key)


@lru_cache(maxsize=1)
def get_pipeline_config() -> PipelineConfig:
    return PipelineConfig(chunk_max_chars=settings.chunk_max_chars)


@lru_cache(maxsize=1)
def get_embedder() -> EmbeddingClient:
    return EmbeddingClient(
        OpenAI(api_key=settings.openai_api_key),
        model=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
        request_delay=settings.embedding_request_delay,
        max_attempts=settings.embedding_max_attempts,
    )


@lru_cache(maxsize=1)
def get_chunk_store() -> ChunkStore:
    return ChunkStore(get_supabase(), batch_size=get_pipeline_config().chunk_insert_batch)


@lru_cache(maxsize=1)
def get_call_repository() -> CallRepository:
    return CallRepository(get_supabase())


@lru_cache(maxsize=1)
def get_blob_store() -> BlobStore:
    return BlobStore(get_supabase(), settings.recordings_bucket)


@lru_cache(maxsize=1)
def get_directory() -> SourceDirectory:
    return SourceDirectory(get_supabase(), max_attempts=settings.mapping_max_attempts)


@lru_cache(maxsize=1)
def get_call_processor() -> CallProcessor:
    classifier = TranscriptClassifier(
        ClaudeChat(get_anthropic(), settings.classifier_model, max_tokens=500, temperature=0.1),
        settings.business_description,
    )
    return CallProcessor(
        repo=get_call_repository(),
        blobs=get_blob_store(),
        transcriber=AssemblyAITranscriber(settings.assemblyai_api_key),
        classifier=classifier,
        embedder=get_embedder(),
        chunks=get_chunk_store(),
        config=get_pipeline_config(),
    )


@lru_cache(maxsize=1)
def get_call_uploader() -> CallUploader:
    return CallUploader(get_blob_store(), get_call_repository(), max_bytes=settings.max_audio_bytes)


@lru_cache(maxsize=1)
def get_document_ingestor() -> DocumentIngestor:
    return DocumentIngestor(
        get_supabase(), get_embedder(), get_chunk_store(), get_directory(), get_pipeline_config()
    )


@lru_cache(maxsize=1)
def get_catalog_syncer() -> CatalogSyncer:
    http = get_http()
    return CatalogSyncer(
        get_supabase(),
        lambda domain, token: ShopifyClient(domain, token, http),
        get_embedder(),
        get_chunk_store(),
        get_pipeline_config(),
    )


@lru_cache(maxsize=1)
def get_responder() -> AutoResponder:
    return AutoResponder(
        directory=get_directory(),
        embedder=get_embedder(),
        engine=RetrievalEngine(VectorIndex(get_supabase())),
        chat=ClaudeChat(
            get_anthropic(),
            settings.llm_model,
            max_tokens=settings.reply_max_tokens,
            temperature=settings.reply_temperature,
        ),
        sender=WhatsAppSender(get_http(), settings.whatsapp_send_url, settings.whatsapp_timeout),
        log=MessageLog(get_supabase()),
        retrieval_limit=settings.retrieval_limit,
        history_fetch=settings.history_fetch_limit,
        history_keep=settings.history_prompt_turns,
    )
