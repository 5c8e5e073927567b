"""Speech-to-text for call recordings via the AssemblyAI SDK."""

from __future__ import annotations

import logging
from typing import Protocol

import assemblyai as aai  # type: ignore[import-untyped]

from autoreply.errors import TranscriptionError

logger = logging.getLogger(__name__)


class Transcriber(Protocol):
    def transcribe(self, audio: bytes, file_name: str) -> str: ...


class AssemblyAITranscriber:
    """Single-attempt transcription; any failure is fatal to the current stage."""

    def __init__(self, api_key: str, speech_models: tuple[str, ...] = ("universal-3-pro",)) -> None:
        self._api_key = api_key
        self._speech_models = list(speech_models)

    def transcribe(self, audio: bytes, file_name: str) -> str:
        """Transcribe raw audio bytes and return plain text.

        The SDK accepts bytes directly, so no temp file is written.

        Raises:
            TranscriptionError: The provider rejected the audio or was unreachable.
        """
        if not self._api_key:
            raise TranscriptionError("Audio transcription is not configured (ASSEMBLYAI_API_KEY)")

        aai.settings.api_key = self._api_key
        # speech_models must be explicit; the SDK default is an empty list the API rejects.
        config = aai.TranscriptionConfig(speech_models=self._speech_models)

        try:
            transcript = aai.Transcriber().transcribe(audio, config=config)
        except Exception as exc:
            raise TranscriptionError(f"Transcription service unavailable for {file_name}: {exc}") from exc

        if transcript.status == aai.TranscriptStatus.error:
            raise TranscriptionError(f"Transcription failed for {file_name}: {transcript.error}")

        text = transcript.text or ""
        logger.info("Transcribed %s (%d chars)", file_name, len(text))
        return text
