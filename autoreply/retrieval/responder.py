"""Auto-reply orchestration: mapping -> retrieval -> generation -> delivery.

``AutoResponder.answer`` never raises. Every failure before delivery becomes
an ``AnswerResult`` with ``success=False``; conversation-log writes are
best-effort.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from anthropic.types import MessageParam
from supabase import Client

from autoreply.ingestion.embeddings import EmbeddingClient
from autoreply.ingestion.storage import result_rows, utcnow
from autoreply.retrieval.delivery import DeliveryResult, MessageSender
from autoreply.retrieval.directory import DataSource, SourceDirectory, SourceMapping
from autoreply.retrieval.generation import ChatProvider, build_system_prompt
from autoreply.retrieval.search import CallScope, CatalogScope, DocumentScope, RetrievalEngine, Scope

logger = logging.getLogger(__name__)

INBOUND = "MoMessage"
OUTBOUND = "MtMessage"


@dataclass
class AnswerResult:
    success: bool
    response: str | None = None
    sent: bool | None = None
    error: str | None = None
    no_documents: bool = False


class MessageLog:
    """Conversation history in ``whatsapp_messages``."""

    def __init__(self, client: Client) -> None:
        self._client = client

    def recent_turns(self, counterpart: str, fetch: int = 20, keep: int = 10) -> list[MessageParam]:
        """The last *keep* of the most recent *fetch* messages with *counterpart*, oldest first."""
        result = (
            self._client.table("whatsapp_messages")
            .select("content_text, event_type, from_number, to_number, received_at")
            .or_(f"from_number.eq.{counterpart},to_number.eq.{counterpart}")
            .order("received_at", desc=True)
            .limit(fetch)
            .execute()
        )
        turns: list[MessageParam] = []
        for row in reversed(result_rows(result)):
            text = row.get("content_text")
            if not text or row.get("event_type") not in (INBOUND, OUTBOUND):
                continue
            role = "user" if row["event_type"] == INBOUND else "assistant"
            turns.append({"role": role, "content": text})
        return turns[-keep:] if keep else []

    def record_reply(self, message_id: str | None, business: str, customer: str, text: str) -> None:
        reply_id = f"auto_{message_id or 'direct'}_{int(time.time() * 1000)}"
        self._client.table("whatsapp_messages").insert(
            {
                "message_id": reply_id,
                "channel": "whatsapp",
                "from_number": business,
                "to_number": customer,
                "received_at": utcnow(),
                "content_type": "text",
                "content_text": text,
                "sender_name": "AI Assistant",
                "event_type": OUTBOUND,
                "raw_payload": {"isAutoResponse": True, "inReplyTo": message_id},
            }
        ).execute()

    def mark_responded(self, message_id: str, sent: bool) -> None:
        self._client.table("whatsapp_messages").update(
            {"auto_respond_sent": sent, "response_sent_at": utcnow()}
        ).eq("message_id", message_id).execute()


def _merge_turns(history: list[MessageParam], message_text: str) -> list[MessageParam]:
    # Claude requires alternating roles starting with "user"; fold repeats together.
    merged: list[dict[str, Any]] = []
    for turn in [*history, {"role": "user", "content": message_text}]:
        if merged and merged[-1]["role"] == turn["role"]:
            merged[-1]["content"] = f"{merged[-1]['content']}\n{turn['content']}"
        else:
            merged.append(dict(turn))
    while merged and merged[0]["role"] != "user":
        merged.pop(0)
    return merged  # type: ignore[return-value]


class AutoResponder:
    def __init__(
        self,
        directory: SourceDirectory,
        embedder: EmbeddingClient,
        engine: RetrievalEngine,
        chat: ChatProvider,
        sender: MessageSender,
        log: MessageLog,
        retrieval_limit: int = 5,
        history_fetch: int = 20,
        history_keep: int = 10,
    ) -> None:
        self._directory = directory
        self._embedder = embedder
        self._engine = engine
        self._chat = chat
        self._sender = sender
        self._log = log
        self.retrieval_limit = retrieval_limit
        self.history_fetch = history_fetch
        self.history_keep = history_keep

    @staticmethod
    def _scopes(mapping: SourceMapping) -> list[Scope]:
        if mapping.data_source is DataSource.SHOPIFY:
            return [CatalogScope(mapping.catalog_store_id)] if mapping.catalog_store_id else []
        scopes: list[Scope] = []
        if mapping.document_ids:
            scopes.append(DocumentScope(tuple(mapping.document_ids)))
        if mapping.call_ids:
            scopes.append(CallScope(tuple(mapping.call_ids)))
        return scopes

    def _best_effort(self, what: str, action: Any, *args: Any) -> None:
        try:
            action(*args)
        except Exception:
            logger.exception("Could not %s", what)

    def answer(
        self,
        from_key: str,
        to_key: str,
        message_text: str,
        message_id: str | None = None,
    ) -> AnswerResult:
        """Generate and deliver a grounded reply to one inbound message.

        Args:
            from_key: Customer number (sender of the inbound message).
            to_key: Business number the message was sent to.
            message_text: Inbound text.
            message_id: Inbound message id, used to mark it responded.
        """
        try:
            data_source = self._directory.data_source_for(to_key)
            if data_source is None:
                logger.info("No data source mapped for %s", to_key)
                return AnswerResult(
                    False, error="No data source mapped to this business number", no_documents=True
                )

            mapping = self._directory.resolve(to_key)
            if mapping is None:
                return AnswerResult(False, error="Failed to fetch phone mapping details")
            if not mapping.credentials.complete:
                return AnswerResult(
                    False, error="No WhatsApp API credentials found for this business number"
                )

            if mapping.is_empty:
                what = "Shopify store" if data_source is DataSource.SHOPIFY else "documents or calls"
                return AnswerResult(
                    False, error=f"No {what} mapped to this business number", no_documents=True
                )
            scopes = self._scopes(mapping)

            query_embedding = self._embedder.session().embed(message_text)
            matches = self._engine.retrieve_all(query_embedding, scopes, self.retrieval_limit)
            if not matches:
                logger.info("No relevant chunks found for %s", to_key)

            history = self._log.recent_turns(from_key, self.history_fetch, self.history_keep)
            system_prompt = build_system_prompt(data_source, matches, mapping.system_prompt)
            response = self._chat.complete(system_prompt, _merge_turns(history, message_text))
            if not response:
                return AnswerResult(False, error="No response generated from LLM")
        except Exception as exc:
            logger.exception("Auto-response failed for %s -> %s", from_key, to_key)
            return AnswerResult(False, error=str(exc))

        try:
            delivery = self._sender.send(from_key, response, mapping.credentials)
        except Exception as exc:
            logger.exception("Delivery to %s raised", from_key)
            delivery = DeliveryResult(False, str(exc))
        if not delivery.success:
            if message_id:
                self._best_effort("mark message unsent", self._log.mark_responded, message_id, False)
            return AnswerResult(
                False,
                response=response,
                sent=False,
                error=f"Generated response but failed to send: {delivery.error}",
            )

        self._best_effort("record reply", self._log.record_reply, message_id, to_key, from_key, response)
        if message_id:
            self._best_effort("mark message responded", self._log.mark_responded, message_id, True)
        logger.info("Auto-response sent to %s", from_key)
        return AnswerResult(True, response=response, sent=True)
