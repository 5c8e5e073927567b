"""Call ingestion state machine: transcribe -> classify -> chunk -> embed -> store."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from autoreply.ingestion.chunking import chunk_text
from autoreply.ingestion.classifier import TranscriptClassifier
from autoreply.ingestion.embeddings import EmbeddingClient
from autoreply.ingestion.models import (
    ContentChunk,
    IngestionState,
    IngestionUnit,
    SourceType,
    ensure_transition,
)
from autoreply.ingestion.storage import BlobStore, CallRepository, ChunkStore
from autoreply.ingestion.transcription import Transcriber
from autoreply.pipeline_config import PipelineConfig

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5


@dataclass
class ProcessOutcome:
    """Where one unit ended up after a processing attempt."""

    call_id: str
    status: IngestionState | None
    chunk_count: int = 0
    error: str | None = None
    skipped: bool = False


@dataclass
class WorkerReport:
    outcomes: list[ProcessOutcome] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return sum(1 for o in self.outcomes if not o.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status is IngestionState.FAILED or o.error)


class CallProcessor:
    """Drives uploaded call recordings to a terminal state.

    Each stage persists the unit's status before it returns, so a crash
    leaves the row in the last state that actually completed. Nothing is
    retried inside a run; ``retry`` puts a unit back to ``uploaded``.
    """

    def __init__(
        self,
        repo: CallRepository,
        blobs: BlobStore,
        transcriber: Transcriber,
        classifier: TranscriptClassifier,
        embedder: EmbeddingClient,
        chunks: ChunkStore,
        config: PipelineConfig | None = None,
    ) -> None:
        self._repo = repo
        self._blobs = blobs
        self._transcriber = transcriber
        self._classifier = classifier
        self._embedder = embedder
        self._chunks = chunks
        self.config = config or PipelineConfig()

    def _advance(
        self, call_id: str, current: IngestionState, target: IngestionState, **fields: Any
    ) -> IngestionState:
        ensure_transition(current, target)
        self._repo.set_status(call_id, target, **fields)
        return target

    def _fail(self, unit: IngestionUnit, current: IngestionState, reason: str) -> ProcessOutcome:
        logger.error("Call %s failed during %s: %s", unit.id, current, reason)
        self._advance(unit.id, current, IngestionState.FAILED, error_reason=reason)
        return ProcessOutcome(unit.id, IngestionState.FAILED, error=reason)

    @staticmethod
    def _best_effort(action: Callable[..., Any], *args: Any) -> None:
        try:
            action(*args)
        except Exception:
            logger.exception("Best-effort write %s failed", getattr(action, "__name__", action))

    def process(self, call_id: str) -> ProcessOutcome | None:
        """Run one ``uploaded`` unit through every stage.

        Returns None when the unit does not exist, and a skipped outcome when
        another worker claimed it first.

        Raises:
            InvalidTransition: The unit is not in ``uploaded``.
        """
        unit = self._repo.get(call_id)
        if unit is None:
            return None
        ensure_transition(unit.status, IngestionState.TRANSCRIBING)
        if not self._repo.claim(call_id):
            logger.info("Call %s already claimed by another worker", call_id)
            return ProcessOutcome(call_id, None, skipped=True)

        state = IngestionState.TRANSCRIBING
        try:
            if not unit.payload_ref:
                raise ValueError("Call has no stored audio")
            audio = self._blobs.download(unit.payload_ref)
            transcript = self._transcriber.transcribe(audio, unit.file_name)
        except Exception as exc:
            return self._fail(unit, state, f"Transcription failed: {exc}")

        self._best_effort(self._repo.save_transcript, call_id, transcript)
        state = self._advance(call_id, state, IngestionState.CLASSIFYING)

        classification = self._classifier.classify(transcript)
        self._best_effort(self._repo.save_classification, call_id, classification)

        target = classification.terminal_state()
        state = self._advance(call_id, state, target)
        if target is not IngestionState.CHUNKING:
            logger.info("Call %s classified as %s", call_id, target)
            return ProcessOutcome(call_id, target)

        # The unit only counts as indexed once `relevant` is persisted.
        try:
            count = self._index(unit, transcript)
            state = self._advance(call_id, state, IngestionState.RELEVANT, chunk_count=count)
        except Exception as exc:
            self._best_effort(self._repo.unmap_phone, call_id)
            self._best_effort(self._chunks.delete_for_owner, SourceType.CALL, call_id)
            return self._fail(unit, state, f"Chunking failed: {exc}")

        logger.info("Call %s indexed with %d chunks", call_id, count)
        return ProcessOutcome(call_id, state, chunk_count=count)

    def _index(self, unit: IngestionUnit, transcript: str) -> int:
        texts = chunk_text(transcript, self.config.chunk_max_chars)
        if not texts:
            raise ValueError("No text chunks produced from transcript")

        session = self._embedder.session()
        vectors = session.embed_batch(texts)
        chunks = [
            ContentChunk(
                source_type=SourceType.CALL,
                source_id=unit.id,
                owner_key=unit.id,
                text=text,
                embedding=vector,
                chunk_index=i,
                metadata={"file_name": unit.file_name},
            )
            for i, (text, vector) in enumerate(zip(texts, vectors, strict=True))
        ]
        count = self._chunks.insert(chunks, self.config.call_duplicates)

        if unit.phone_number:
            self._repo.map_phone(unit.phone_number, unit.id)
        else:
            logger.warning("Call %s has no phone number; no mapping created", unit.id)
        return count

    def retry(self, call_id: str) -> IngestionUnit | None:
        """Put a unit back to ``uploaded`` from any state, discarding derived data."""
        unit = self._repo.get(call_id)
        if unit is None:
            return None
        self._chunks.delete_for_owner(SourceType.CALL, call_id)
        self._repo.reset(call_id)
        logger.info("Call %s reset from %s to uploaded", call_id, unit.status)
        return self._repo.get(call_id)

    async def run_pending(self, batch_size: int = DEFAULT_BATCH_SIZE) -> WorkerReport:
        """Process up to *batch_size* uploaded units concurrently.

        Every unit settles; one unit's exception never aborts the others.
        """
        units = await asyncio.to_thread(self._repo.pending, batch_size)
        if not units:
            return WorkerReport()

        results = await asyncio.gather(
            *(asyncio.to_thread(self.process, unit.id) for unit in units),
            return_exceptions=True,
        )

        report = WorkerReport()
        for unit, result in zip(units, results, strict=True):
            if isinstance(result, BaseException):
                logger.error("Worker failed on call %s: %s", unit.id, result)
                report.outcomes.append(ProcessOutcome(unit.id, None, error=str(result)))
            elif result is None:
                report.outcomes.append(ProcessOutcome(unit.id, None, skipped=True))
            else:
                report.outcomes.append(result)
        logger.info("Worker pass: %d units, %d failed", len(units), report.failed)
        return report
