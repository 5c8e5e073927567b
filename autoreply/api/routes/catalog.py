"""Catalog endpoints: validate a storefront token and sync a store."""

from __future__ import annotations

import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from autoreply.api.models import SyncResponse, ValidateTokenRequest, ValidateTokenResponse
from autoreply.dependencies import get_catalog_syncer
from autoreply.errors import CatalogAPIError
from autoreply.ingestion.catalog import CatalogSyncer

router = APIRouter()


@router.post("/api/catalog/validate-token", response_model=ValidateTokenResponse)
async def validate_token(
    body: ValidateTokenRequest,
    syncer: Annotated[CatalogSyncer, Depends(get_catalog_syncer)],
) -> ValidateTokenResponse:
    try:
        name = await asyncio.to_thread(syncer.validate_token, body.store_domain, body.storefront_token)
    except (ValueError, CatalogAPIError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ValidateTokenResponse(valid=True, store_name=name)


@router.post("/api/catalog/{store_id}/sync", response_model=SyncResponse)
async def sync_store(
    store_id: str,
    syncer: Annotated[CatalogSyncer, Depends(get_catalog_syncer)],
    max_items: int | None = None,
) -> SyncResponse:
    """Rebuild a store's catalog chunks from its Storefront API."""
    try:
        report = await asyncio.to_thread(syncer.sync, store_id, max_items)
    except CatalogAPIError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    if report is None:
        raise HTTPException(status_code=404, detail="Store not found")
    return SyncResponse(
        store_id=report.store_id,
        products=report.products,
        pages=report.pages,
        collections=report.collections,
        chunks=report.chunks,
        failures=report.failures,
    )
