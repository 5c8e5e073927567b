"""Catalog ingestion: Shopify products, pages and collections -> catalog chunks."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any, TypeVar

from supabase import Client

from autoreply.ingestion.chunking import chunk_text
from autoreply.ingestion.embeddings import EmbeddingClient, EmbeddingSession
from autoreply.ingestion.models import ContentChunk, SourceType
from autoreply.ingestion.shopify import CatalogPage, Collection, Page, Product, ShopifyClient
from autoreply.ingestion.storage import ChunkStore, result_rows, utcnow
from autoreply.pipeline_config import PipelineConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TAG_RE = re.compile(r"<[^>]*>")

ClientFactory = Callable[[str, str], ShopifyClient]


def strip_html(html: str) -> str:
    return _TAG_RE.sub("", html).strip()


def product_url(product: Product, store_domain: str) -> str:
    return product.url or f"https://{store_domain}/products/{product.handle}"


def product_text(product: Product) -> str:
    lines = [f"Product: {product.title}"]
    if product.description:
        lines.append(f"Description: {strip_html(product.description)}")

    prices = [v.price for v in product.variants if v.price is not None]
    if prices:
        currency = product.variants[0].currency
        low, high = min(prices), max(prices)
        if low == high:
            lines.append(f"Price: {currency} {low:.2f}")
        else:
            lines.append(f"Price Range: {currency} {low:.2f} - {currency} {high:.2f}")

    available = sum(1 for v in product.variants if v.available)
    lines.append(f"Availability: {available}/{len(product.variants)} variants available")

    skus = [v.sku for v in product.variants if v.sku]
    if skus:
        lines.append(f"SKUs: {', '.join(skus)}")
    if product.image_count:
        lines.append(f"Images: {product.image_count} available")
    return "\n".join(lines)


def page_text(page: Page) -> str:
    lines = [f"Page: {page.title}"]
    if page.body:
        lines.append(f"Content: {strip_html(page.body)}")
    return "\n".join(lines)


def collection_text(collection: Collection) -> str:
    lines = [f"Collection: {collection.title}"]
    if collection.description:
        lines.append(f"Description: {strip_html(collection.description)}")
    return "\n".join(lines)


def paginate(fetch: Callable[[str | None], CatalogPage[T]], max_items: int | None = None) -> Iterator[T]:
    """Yield items across pages until exhausted or *max_items* reached."""
    after: str | None = None
    seen = 0
    while True:
        page = fetch(after)
        for item in page.items:
            if max_items is not None and seen >= max_items:
                return
            yield item
            seen += 1
        if max_items is not None and seen >= max_items:
            return
        if not page.has_next_page or not page.end_cursor:
            return
        after = page.end_cursor


@dataclass
class SyncReport:
    store_id: str
    products: int = 0
    pages: int = 0
    collections: int = 0
    chunks: int = 0
    failures: list[str] = field(default_factory=list)


@dataclass
class CatalogStore:
    id: str
    store_domain: str
    storefront_token: str
    phone_number: str | None = None
    website_url: str | None = None
    store_name: str | None = None
    last_synced_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> CatalogStore:
        return cls(
            id=str(row["id"]),
            store_domain=row["store_domain"],
            storefront_token=row["storefront_token"],
            phone_number=row.get("phone_number"),
            website_url=row.get("website_url"),
            store_name=row.get("store_name"),
            last_synced_at=row.get("last_synced_at"),
        )


class CatalogSyncer:
    """Rebuilds one store's catalog chunks from the Storefront API.

    A failing entity is logged and counted; the sync carries on with the rest.
    """

    def __init__(
        self,
        client: Client,
        client_factory: ClientFactory,
        embedder: EmbeddingClient,
        chunks: ChunkStore,
        config: PipelineConfig | None = None,
    ) -> None:
        self._client = client
        self._client_factory = client_factory
        self._embedder = embedder
        self._chunks = chunks
        self.config = config or PipelineConfig()

    def get_store(self, store_id: str) -> CatalogStore | None:
        rows = result_rows(self._client.table("catalog_stores").select("*").eq("id", store_id).limit(1).execute())
        return CatalogStore.from_row(rows[0]) if rows else None

    def validate_token(self, store_domain: str, storefront_token: str) -> str:
        """Return the shop name if *storefront_token* works for *store_domain*.

        Raises:
            ValueError: The domain is not a ``*.myshopify.com`` domain.
            CatalogAPIError: The Storefront API rejected the token.
        """
        if not store_domain or not storefront_token:
            raise ValueError("store_domain and storefront_token are required")
        if not store_domain.endswith(".myshopify.com"):
            raise ValueError("Invalid Shopify store domain. Must end with '.myshopify.com'")
        return self._client_factory(store_domain, storefront_token).get_store_info()["name"]

    def _ingest_entity(
        self,
        session: EmbeddingSession,
        store: CatalogStore,
        source_type: SourceType,
        entity_id: str,
        title: str,
        text: str,
        metadata: dict[str, Any],
    ) -> int:
        texts = chunk_text(text, self.config.chunk_max_chars)
        vectors = session.embed_batch(texts)
        chunks = [
            ContentChunk(
                source_type=source_type,
                source_id=entity_id,
                owner_key=store.id,
                text=t,
                embedding=v,
                chunk_index=i,
                title=title,
                metadata=metadata,
            )
            for i, (t, v) in enumerate(zip(texts, vectors, strict=True))
        ]
        return self._chunks.insert(chunks, self.config.catalog_duplicates)

    def _guarded(self, report: SyncReport, label: str, action: Callable[[], int]) -> bool:
        try:
            report.chunks += action()
        except Exception as exc:
            logger.exception("Failed to sync %s for store %s", label, report.store_id)
            report.failures.append(f"{label}: {exc}")
            return False
        return True

    def sync(self, store_id: str, max_items: int | None = None) -> SyncReport | None:
        """Clear and rebuild the store's chunks; None when the store does not exist.

        Args:
            store_id: ``catalog_stores`` row id.
            max_items: Optional cap applied to each of products, pages and collections.
        """
        store = self.get_store(store_id)
        if store is None:
            return None

        api = self._client_factory(store.store_domain, store.storefront_token)
        session = self._embedder.session()
        report = SyncReport(store_id=store.id)

        self._chunks.delete_for_owner(SourceType.CATALOG_PRODUCT, store.id)
        logger.info("Cleared existing chunks for store %s", store.id)

        for product in paginate(lambda after: api.get_products(250, after), max_items):
            metadata = {
                "handle": product.handle,
                "url": product_url(product, store.store_domain),
                "variants_count": len(product.variants),
                "available_variants": sum(1 for v in product.variants if v.available),
                "images_count": product.image_count,
            }
            if self._guarded(
                report,
                f"product {product.title}",
                lambda p=product, m=metadata: self._ingest_entity(
                    session, store, SourceType.CATALOG_PRODUCT, p.id, p.title, product_text(p), m
                ),
            ):
                report.products += 1

        for page in paginate(lambda after: api.get_pages(100, after), max_items):
            if self._guarded(
                report,
                f"page {page.title}",
                lambda p=page: self._ingest_entity(
                    session, store, SourceType.CATALOG_PAGE, p.id, p.title, page_text(p), {"handle": p.handle}
                ),
            ):
                report.pages += 1

        for collection in paginate(lambda after: api.get_collections(100, after), max_items):
            if self._guarded(
                report,
                f"collection {collection.title}",
                lambda c=collection: self._ingest_entity(
                    session,
                    store,
                    SourceType.CATALOG_COLLECTION,
                    c.id,
                    c.title,
                    collection_text(c),
                    {"handle": c.handle},
                ),
            ):
                report.collections += 1

        self._client.table("catalog_stores").update({"last_synced_at": utcnow()}).eq("id", store.id).execute()
        logger.info(
            "Synced store %s: %d products, %d pages, %d collections, %d chunks, %d failures",
            store.id,
            report.products,
            report.pages,
            report.collections,
            report.chunks,
            len(report.failures),
        )
        return report
