"""Shopify Storefront GraphQL client (read-only catalog access)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import httpx

from autoreply.errors import CatalogAPIError

logger = logging.getLogger(__name__)

API_VERSION = "2024-01"

T = TypeVar("T")

_STATUS_MESSAGES = {
    401: "Invalid or expired Shopify storefront access token. Please check your token and try again.",
    403: "Access forbidden. Your storefront token may not have the required permissions.",
    404: "Shopify store not found. Please check your store domain.",
    429: "Rate limit exceeded. Please try again later.",
}

_SHOP_QUERY = "query GetStoreInfo { shop { name } }"

_PRODUCTS_QUERY = """
query GetProducts($first: Int!, $after: String) {
  products(first: $first, after: $after) {
    edges {
      node {
        id
        title
        description
        handle
        onlineStoreUrl
        variants(first: 100) {
          edges { node { id price { amount currencyCode } availableForSale sku } }
        }
        images(first: 10) { edges { node { url altText } } }
      }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""

_PAGES_QUERY = """
query GetPages($first: Int!, $after: String) {
  pages(first: $first, after: $after) {
    edges { node { id title handle body } }
    pageInfo { hasNextPage endCursor }
  }
}
"""

_COLLECTIONS_QUERY = """
query GetCollections($first: Int!, $after: String) {
  collections(first: $first, after: $after) {
    edges { node { id title description handle } }
    pageInfo { hasNextPage endCursor }
  }
}
"""


@dataclass
class ProductVariant:
    id: str
    price: float | None
    currency: str
    available: bool
    sku: str | None = None


@dataclass
class Product:
    id: str
    title: str
    handle: str
    description: str = ""
    url: str | None = None
    variants: list[ProductVariant] = field(default_factory=list)
    image_count: int = 0


@dataclass
class Page:
    id: str
    title: str
    handle: str
    body: str = ""


@dataclass
class Collection:
    id: str
    title: str
    handle: str
    description: str = ""


@dataclass
class CatalogPage(Generic[T]):
    """One page of a cursor-paginated listing."""

    items: list[T]
    has_next_page: bool
    end_cursor: str | None = None


def _connection(data: dict[str, Any], key: str) -> dict[str, Any]:
    conn = data.get(key)
    if not isinstance(conn, dict):
        raise CatalogAPIError(f"Shopify response is missing '{key}'")
    return conn


def _nodes(connection: dict[str, Any]) -> list[dict[str, Any]]:
    return [edge["node"] for edge in connection.get("edges", [])]


def _page_info(connection: dict[str, Any]) -> tuple[bool, str | None]:
    info = connection.get("pageInfo") or {}
    return bool(info.get("hasNextPage")), info.get("endCursor")


def _variant(node: dict[str, Any]) -> ProductVariant:
    price = node.get("price") or {}
    try:
        amount: float | None = float(price.get("amount"))
    except (TypeError, ValueError):
        amount = None
    return ProductVariant(
        id=node["id"],
        price=amount,
        currency=price.get("currencyCode") or "",
        available=bool(node.get("availableForSale")),
        sku=node.get("sku") or None,
    )


class ShopifyClient:
    """Storefront API access for one store domain and token."""

    def __init__(
        self,
        store_domain: str,
        storefront_token: str,
        http: httpx.Client,
        timeout: float = 30.0,
    ) -> None:
        self.store_domain = store_domain
        self._token = storefront_token
        self._http = http
        self.timeout = timeout

    @property
    def endpoint(self) -> str:
        return f"https://{self.store_domain}/api/{API_VERSION}/graphql.json"

    def _request(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = self._http.post(
                self.endpoint,
                json={"query": query, "variables": variables or {}},
                headers={"X-Shopify-Storefront-Access-Token": self._token},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            raise CatalogAPIError(f"Could not reach Shopify store {self.store_domain}: {exc}") from exc

        if response.status_code >= 400:
            message = _STATUS_MESSAGES.get(
                response.status_code,
                f"Shopify API error: {response.status_code} {response.reason_phrase}",
            )
            raise CatalogAPIError(message, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as exc:
            raise CatalogAPIError(f"Shopify returned a non-JSON response: {exc}") from exc
        if not isinstance(body, dict):
            raise CatalogAPIError("Shopify returned an unexpected response body")
        if body.get("errors"):
            raise CatalogAPIError(f"Shopify GraphQL errors: {json.dumps(body['errors'])}")
        return body.get("data") or {}

    def get_store_info(self) -> dict[str, str]:
        shop = _connection(self._request(_SHOP_QUERY), "shop")
        return {"name": shop.get("name") or ""}

    def get_products(self, first: int = 250, after: str | None = None) -> CatalogPage[Product]:
        conn = _connection(self._request(_PRODUCTS_QUERY, {"first": first, "after": after}), "products")
        items = [
            Product(
                id=node["id"],
                title=node.get("title") or "",
                handle=node.get("handle") or "",
                description=node.get("description") or "",
                url=node.get("onlineStoreUrl"),
                variants=[_variant(v) for v in _nodes(node.get("variants") or {})],
                image_count=len(_nodes(node.get("images") or {})),
            )
            for node in _nodes(conn)
        ]
        return CatalogPage(items, *_page_info(conn))

    def get_pages(self, first: int = 100, after: str | None = None) -> CatalogPage[Page]:
        conn = _connection(self._request(_PAGES_QUERY, {"first": first, "after": after}), "pages")
        items = [
            Page(id=n["id"], title=n.get("title") or "", handle=n.get("handle") or "", body=n.get("body") or "")
            for n in _nodes(conn)
        ]
        return CatalogPage(items, *_page_info(conn))

    def get_collections(self, first: int = 100, after: str | None = None) -> CatalogPage[Collection]:
        data = self._request(_COLLECTIONS_QUERY, {"first": first, "after": after})
        conn = _connection(data, "collections")
        items = [
            Collection(
                id=n["id"],
                title=n.get("title") or "",
                handle=n.get("handle") or "",
                description=n.get("description") or "",
            )
            for n in _nodes(conn)
        ]
        return CatalogPage(items, *_page_info(conn))
