"""Auto-reply endpoint: answer one inbound WhatsApp message."""

from __future__ import annotations

import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends

from autoreply.api.models import RespondRequest, RespondResponse
from autoreply.dependencies import get_responder
from autoreply.retrieval.responder import AutoResponder

router = APIRouter()


@router.post("/api/respond", response_model=RespondResponse)
async def respond(
    body: RespondRequest,
    responder: Annotated[AutoResponder, Depends(get_responder)],
) -> RespondResponse:
    """Run retrieval, generation and delivery for one message.

    Failures come back in the body (``success=False``), not as HTTP errors.
    """
    result = await asyncio.to_thread(
        responder.answer, body.from_number, body.to_number, body.message_text, body.message_id
    )
    return RespondResponse(
        success=result.success,
        response=result.response,
        sent=result.sent,
        error=result.error,
        no_documents=result.no_documents,
    )
