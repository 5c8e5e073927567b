"""Error taxonomy shared by the ingestion and retrieval pipelines."""

from __future__ import annotations

from enum import StrEnum


class AutoreplyError(Exception):
    """Base class for every error raised by this package."""


class TransientRemoteError(AutoreplyError):
    """A remote call failed in a way that may succeed on a later attempt."""


class PermanentRemoteError(AutoreplyError):
    """A remote call failed and retrying will not help (bad input, auth, ...)."""


class EmbeddingErrorKind(StrEnum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class EmbeddingError(AutoreplyError):
    """Embedding generation failed.

    ``kind`` is ``transient`` when rate-limit retries were exhausted and
    ``permanent`` for anything the client does not retry.
    """

    def __init__(self, message: str, kind: EmbeddingErrorKind) -> None:
        super().__init__(message)
        self.kind = kind

    @property
    def is_transient(self) -> bool:
        return self.kind is EmbeddingErrorKind.TRANSIENT


class MappingLookupError(TransientRemoteError):
    """The mapping store could not be read after all retry attempts."""


class TranscriptionError(PermanentRemoteError):
    """The speech-to-text provider rejected or failed on the audio."""


class CatalogAPIError(AutoreplyError):
    """The catalog provider returned an HTTP or GraphQL error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvariantViolation(AutoreplyError):
    """A data invariant would be broken by the requested operation."""


class DuplicateChunkError(InvariantViolation):
    """Chunk text already exists for the same owner and source type."""


class InvalidTransition(InvariantViolation):
    """An ingestion unit was asked to move to a state it cannot reach."""
