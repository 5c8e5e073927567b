"""Similarity search over document, call and catalog chunks.

One query per scope member, then a single merge barrier: stable sort by
descending similarity and truncate to the requested limit.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, assert_never

from supabase import Client

from autoreply.ingestion.models import SourceType
from autoreply.ingestion.storage import result_rows

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentScope:
    ids: tuple[str, ...]


@dataclass(frozen=True)
class CallScope:
    ids: tuple[str, ...]


@dataclass(frozen=True)
class CatalogScope:
    store_id: str


Scope = DocumentScope | CallScope | CatalogScope


@dataclass
class RankedMatch:
    chunk_id: str
    text: str
    similarity: float
    source_type: SourceType
    source_id: str
    title: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def _similarity(value: Any) -> float:
    return min(1.0, max(0.0, float(value)))


class VectorIndex:
    """Thin wrapper over the two similarity RPCs."""

    def __init__(self, client: Client) -> None:
        self._client = client

    def match_documents(
        self,
        query_embedding: list[float],
        match_count: int,
        target_document: str | None,
        source_types: Sequence[SourceType],
    ) -> list[RankedMatch]:
        result = self._client.rpc(
            "match_documents",
            {
                "query_embedding": query_embedding,
                "match_count": match_count,
                "target_document": target_document,
                "source_types": [s.value for s in source_types],
            },
        ).execute()
        return [
            RankedMatch(
                chunk_id=str(r["id"]),
                text=r["content"],
                similarity=_similarity(r["similarity"]),
                source_type=SourceType(r["source_type"]),
                source_id=str(r["source_id"]),
                metadata=r.get("metadata") or {},
            )
            for r in result_rows(result)
        ]

    def match_catalog_chunks(
        self, query_embedding: list[float], store_id: str, match_count: int
    ) -> list[RankedMatch]:
        result = self._client.rpc(
            "match_catalog_chunks",
            {
                "query_embedding": query_embedding,
                "store_id_param": store_id,
                "match_count": match_count,
            },
        ).execute()
        return [
            RankedMatch(
                chunk_id=str(r["id"]),
                text=r["chunk_text"],
                similarity=_similarity(r["similarity"]),
                source_type=SourceType(r["content_type"]),
                source_id=str(r.get("content_id") or r["store_id"]),
                title=r.get("title"),
                metadata=r.get("metadata") or {},
            )
            for r in result_rows(result)
        ]


def rank(matches: Iterable[RankedMatch], limit: int) -> list[RankedMatch]:
    """Stable sort by descending similarity, then keep the first *limit*."""
    # sorted() is stable with reverse=True, so ties keep upstream order.
    return sorted(matches, key=lambda m: m.similarity, reverse=True)[:limit]


class RetrievalEngine:
    def __init__(self, index: VectorIndex) -> None:
        self._index = index

    def _fan_out(self, query_embedding: list[float], scope: Scope, limit: int) -> list[RankedMatch]:
        match scope:
            case DocumentScope(ids=ids):
                found: list[RankedMatch] = []
                for document_id in ids:
                    found.extend(
                        self._index.match_documents(
                            query_embedding, limit, document_id, [SourceType.DOCUMENT]
                        )
                    )
                return found
            case CallScope(ids=ids):
                if not ids:
                    return []
                wanted = set(ids)
                candidates = self._index.match_documents(
                    query_embedding, limit * len(ids), None, [SourceType.CALL]
                )
                return [m for m in candidates if m.source_id in wanted]
            case CatalogScope(store_id=store_id):
                if not store_id:
                    return []
                return self._index.match_catalog_chunks(query_embedding, store_id, limit)
            case _:
                assert_never(scope)

    def retrieve(self, query_embedding: list[float], scope: Scope, limit: int = 5) -> list[RankedMatch]:
        """Top *limit* chunks for one scope, best first."""
        return self.retrieve_all(query_embedding, [scope], limit)

    def retrieve_all(
        self, query_embedding: list[float], scopes: Sequence[Scope], limit: int = 5
    ) -> list[RankedMatch]:
        """Merge several scopes (e.g. documents and calls) into one ranking."""
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        found: list[RankedMatch] = []
        for scope in scopes:
            found.extend(self._fan_out(query_embedding, scope, limit))
        ranked = rank(found, limit)
        logger.debug("Retrieved %d of %d candidates", len(ranked), len(found))
        return ranked
