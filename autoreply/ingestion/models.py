"""Data models for the ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from autoreply.errors import InvalidTransition


class SourceType(StrEnum):
    """Where a chunk's text came from."""

    DOCUMENT = "document"
    CALL = "call"
    CATALOG_PRODUCT = "product"
    CATALOG_PAGE = "page"
    CATALOG_COLLECTION = "collection"

    @property
    def is_catalog(self) -> bool:
        return self in _CATALOG_TYPES


_CATALOG_TYPES = frozenset(
    {SourceType.CATALOG_PRODUCT, SourceType.CATALOG_PAGE, SourceType.CATALOG_COLLECTION}
)


class IngestionState(StrEnum):
    """Lifecycle of a call recording moving through the pipeline."""

    UPLOADED = "uploaded"
    TRANSCRIBING = "transcribing"
    CLASSIFYING = "classifying"
    CHUNKING = "chunking"
    BLANK = "blank"
    SPAM = "spam"
    RELEVANT = "relevant"
    IRRELEVANT = "irrelevant"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self]


# Forward transitions only. Manual retry back to UPLOADED bypasses this table.
TRANSITIONS: dict[IngestionState, frozenset[IngestionState]] = {
    IngestionState.UPLOADED: frozenset({IngestionState.TRANSCRIBING, IngestionState.FAILED}),
    IngestionState.TRANSCRIBING: frozenset({IngestionState.CLASSIFYING, IngestionState.FAILED}),
    IngestionState.CLASSIFYING: frozenset(
        {
            IngestionState.CHUNKING,
            IngestionState.BLANK,
            IngestionState.SPAM,
            IngestionState.IRRELEVANT,
            IngestionState.FAILED,
        }
    ),
    IngestionState.CHUNKING: frozenset({IngestionState.RELEVANT, IngestionState.FAILED}),
    IngestionState.BLANK: frozenset(),
    IngestionState.SPAM: frozenset(),
    IngestionState.RELEVANT: frozenset(),
    IngestionState.IRRELEVANT: frozenset(),
    IngestionState.FAILED: frozenset(),
}


def ensure_transition(current: IngestionState, target: IngestionState) -> None:
    """Raise :class:`InvalidTransition` unless *current* may move to *target*."""
    if target not in TRANSITIONS[current]:
        raise InvalidTransition(f"Cannot move ingestion unit from {current} to {target}")


class DuplicatePolicy(StrEnum):
    """What to do when a chunk's text already exists for the same owner."""

    ERROR = "error"
    SKIP = "skip"


@dataclass(frozen=True)
class Classification:
    """Three independent judgments about a call transcript."""

    is_blank: bool
    is_spam: bool
    is_relevant: bool
    blank_confidence: float
    spam_confidence: float
    relevance_confidence: float
    reasoning: str | None = None
    fallback: bool = False

    def terminal_state(self) -> IngestionState:
        """Pick the outcome; blank wins over spam, spam over relevant."""
        if self.is_blank:
            return IngestionState.BLANK
        if self.is_spam:
            return IngestionState.SPAM
        if self.is_relevant:
            return IngestionState.CHUNKING
        return IngestionState.IRRELEVANT


@dataclass
class IngestionUnit:
    """One uploaded call recording."""

    id: str
    status: IngestionState
    file_name: str
    payload_ref: str | None = None
    phone_number: str | None = None
    transcript: str | None = None
    classification: Classification | None = None
    chunk_count: int = 0
    error_reason: str | None = None
    uploaded_at: str | None = None
    processed_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> IngestionUnit:
        return cls(
            id=str(row["id"]),
            status=IngestionState(row["status"]),
            file_name=row.get("file_name") or "",
            payload_ref=row.get("storage_path"),
            phone_number=row.get("phone_number"),
            chunk_count=row.get("chunk_count") or 0,
            error_reason=row.get("error_reason"),
            uploaded_at=row.get("uploaded_at"),
            processed_at=row.get("processed_at"),
        )


@dataclass
class ContentChunk:
    """A chunk ready for storage: text, its vector and where it belongs."""

    source_type: SourceType
    source_id: str
    owner_key: str
    text: str
    embedding: list[float]
    chunk_index: int = 0
    title: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
