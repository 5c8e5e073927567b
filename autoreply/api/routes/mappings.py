"""Phone mapping endpoints: inspect and delete a number's content scope."""

from __future__ import annotations

import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from autoreply.api.models import MappingResponse
from autoreply.dependencies import get_directory
from autoreply.errors import InvariantViolation, MappingLookupError
from autoreply.retrieval.directory import SourceDirectory

router = APIRouter()


@router.get("/api/mappings/{phone_number}", response_model=MappingResponse)
async def get_mapping(
    phone_number: str,
    directory: Annotated[SourceDirectory, Depends(get_directory)],
) -> MappingResponse:
    try:
        mapping = await asyncio.to_thread(directory.resolve, phone_number)
    except MappingLookupError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except InvariantViolation as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if mapping is None:
        raise HTTPException(status_code=404, detail="No mapping for this phone number")

    return MappingResponse(
        phone_number=mapping.phone_key,
        data_source=mapping.data_source.value,
        document_ids=mapping.document_ids,
        call_ids=mapping.call_ids,
        catalog_store_id=mapping.catalog_store_id,
        system_prompt=mapping.system_prompt,
        has_credentials=mapping.credentials.complete,
    )


@router.delete("/api/mappings/{phone_number}")
async def delete_mapping(
    phone_number: str,
    directory: Annotated[SourceDirectory, Depends(get_directory)],
) -> dict[str, str]:
    if not await asyncio.to_thread(directory.delete, phone_number):
        raise HTTPException(status_code=404, detail="No mapping for this phone number")
    return {"status": "deleted", "phone_number": phone_number}
