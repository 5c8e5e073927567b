"""Tests for call uploads, document ingestion and transcription."""

from __future__ import annotations

import re
from unittest.mock import MagicMock, patch

import pytest

from autoreply.errors import DuplicateChunkError, TranscriptionError
from autoreply.ingestion.documents import DocumentIngestor
from autoreply.ingestion.embeddings import EmbeddingClient
from autoreply.ingestion.models import DuplicatePolicy, SourceType
from autoreply.ingestion.transcription import AssemblyAITranscriber
from autoreply.ingestion.uploads import CallUploader, UploadRejected, storage_key
from autoreply.pipeline_config import PipelineConfig
from tests.fakes import FakeOpenAI, make_unit, supabase_returning

AUDIO = b"\xff\xfb\x90\x00" + b"\x00" * 100  # fake MP3 header


class TestCallUploader:
    def test_storage_key_keeps_extension(self) -> None:
        key = storage_key("Call With Priya.WAV")
        assert re.fullmatch(r"\d{13}-[0-9a-f]{12}\.wav", key)
        assert storage_key("noext").endswith(".mp3")

    def test_upload_creates_unit(self) -> None:
        blobs, repo = MagicMock(), MagicMock()
        blobs.upload.side_effect = lambda key, data, content_type: key
        repo.create.return_value = make_unit()

        unit = CallUploader(blobs, repo).upload("call.mp3", AUDIO, "audio/mpeg", "+15550001")

        assert unit.id == "call-1"
        key = blobs.upload.call_args.args[0]
        repo.create.assert_called_once_with(
            file_name="call.mp3",
            storage_path=key,
            phone_number="+15550001",
            file_size=len(AUDIO),
            mime_type="audio/mpeg",
        )

    @pytest.mark.parametrize(
        ("data", "content_type"),
        [(AUDIO, "text/plain"), (AUDIO, None), (b"", "audio/mpeg"), (b"x" * 11, "audio/mpeg")],
    )
    def test_rejected_before_storage(self, data: bytes, content_type: str | None) -> None:
        blobs, repo = MagicMock(), MagicMock()

        with pytest.raises(UploadRejected):
            CallUploader(blobs, repo, max_bytes=10).upload("a.mp3", data, content_type, None)

        blobs.upload.assert_not_called()
        repo.create.assert_not_called()

    def test_failed_insert_removes_blob(self) -> None:
        blobs, repo = MagicMock(), MagicMock()
        blobs.upload.return_value = "123-abc.mp3"
        repo.create.side_effect = RuntimeError("insert failed")

        with pytest.raises(RuntimeError):
            CallUploader(blobs, repo).upload("call.mp3", AUDIO, "audio/mpeg", None)

        blobs.delete.assert_called_once_with("123-abc.mp3")


def _ingestor(embedder: EmbeddingClient, chunks: MagicMock, directory: MagicMock | None = None):  # type: ignore[no-untyped-def]
    client = supabase_returning(data=[{"id": "doc-7"}])
    return (
        DocumentIngestor(client, embedder, chunks, directory or MagicMock(), PipelineConfig(chunk_max_chars=60)),
        client,
    )


class TestDocumentIngestor:
    TEXT = "Returns are accepted within seven days.\n\nShipping to Pune takes three to five days."

    def test_ingest_and_map(self, embedder: EmbeddingClient, openai_fake: FakeOpenAI) -> None:
        chunks, directory = MagicMock(), MagicMock()
        chunks.insert.side_effect = lambda items, policy: len(items)
        ingestor, client = _ingestor(embedder, chunks, directory)

        document_id, count = ingestor.ingest("faq.txt", self.TEXT, phone_number="+15550001")

        assert (document_id, count) == ("doc-7", 2)
        stored, policy = chunks.insert.call_args.args
        assert policy is DuplicatePolicy.ERROR
        assert {c.owner_key for c in stored} == {"doc-7"}
        assert all(c.source_type is SourceType.DOCUMENT for c in stored)
        assert len(openai_fake.requests) == 2
        client.table.return_value.update.assert_called_once_with({"chunk_count": 2})
        directory.map_document.assert_called_once_with("+15550001", "doc-7")

    def test_empty_text(self, embedder: EmbeddingClient) -> None:
        chunks = MagicMock()
        ingestor, client = _ingestor(embedder, chunks)

        with pytest.raises(ValueError):
            ingestor.ingest("empty.txt", "  \n ")

        client.table.assert_not_called()

    def test_failure_rolls_back(self, embedder: EmbeddingClient) -> None:
        chunks, directory = MagicMock(), MagicMock()
        chunks.insert.side_effect = DuplicateChunkError("Duplicate chunk text in rag_chunks")
        ingestor, client = _ingestor(embedder, chunks, directory)

        with pytest.raises(DuplicateChunkError):
            ingestor.ingest("faq.txt", self.TEXT, phone_number="+15550001")

        chunks.delete_for_owner.assert_called_once_with(SourceType.DOCUMENT, "doc-7")
        client.table.return_value.delete.assert_called_once()
        directory.map_document.assert_not_called()


class TestAssemblyAITranscriber:
    def test_missing_key(self) -> None:
        with pytest.raises(TranscriptionError, match="not configured"):
            AssemblyAITranscriber("").transcribe(AUDIO, "call.mp3")

    def test_returns_text(self) -> None:
        with patch("autoreply.ingestion.transcription.aai") as aai:
            aai.Transcriber.return_value.transcribe.return_value = MagicMock(
                status="completed", text="Hello, I want to track my order."
            )

            text = AssemblyAITranscriber("key").transcribe(AUDIO, "call.mp3")

        assert text == "Hello, I want to track my order."
        aai.TranscriptionConfig.assert_called_once_with(speech_models=["universal-3-pro"])
        assert aai.Transcriber.return_value.transcribe.call_args.args == (AUDIO,)

    def test_error_status(self) -> None:
        with patch("autoreply.ingestion.transcription.aai") as aai:
            aai.Transcriber.return_value.transcribe.return_value = MagicMock(
                status=aai.TranscriptStatus.error, error="audio too short"
            )

            with pytest.raises(TranscriptionError, match="audio too short"):
                AssemblyAITranscriber("key").transcribe(AUDIO, "call.mp3")

    def test_sdk_exception(self) -> None:
        with patch("autoreply.ingestion.transcription.aai") as aai:
            aai.Transcriber.return_value.transcribe.side_effect = ConnectionError("unreachable")

            with pytest.raises(TranscriptionError, match="unreachable"):
                AssemblyAITranscriber("key").transcribe(AUDIO, "call.mp3")
