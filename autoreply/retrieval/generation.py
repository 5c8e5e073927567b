"""Claude-powered chat completion and reply prompt assembly."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from anthropic import Anthropic
from anthropic.types import MessageParam, TextBlock

from autoreply.ingestion.models import SourceType
from autoreply.retrieval.directory import DataSource
from autoreply.retrieval.search import RankedMatch

NO_CONTEXT = "No relevant context found in the documents."

FILE_RULES = (
    "Your ONLY job is to answer questions based strictly on the provided document context.\n\n"
    "STRICT RULES:\n"
    "- ONLY answer questions using information from the CONTEXT below\n"
    '- If the answer is not in the CONTEXT, say "I don\'t have that information in the document"\n'
    "- NEVER use your general knowledge or make assumptions beyond the document\n"
    "- NEVER offer to do tasks you cannot do (generate files, make calls, etc.)\n"
    "- Be concise and friendly - keep responses under 300 words\n"
    "- Use clear, simple language appropriate for WhatsApp chat\n"
    "- Format responses with line breaks for readability"
)

CATALOG_RULES = (
    "ROLE:\n"
    "You are a sales executive for an online store chatting with customers on WhatsApp.\n"
    "Sound warm, natural and trustworthy. Match the customer's language.\n\n"
    "PRODUCT PRESENTATION:\n"
    "- When asked about a product, include its name, price, key details and stock status\n"
    "- Share the product link after the details or as soon as the customer shows interest\n"
    "- If the customer confirms (yes, ok, send link), share the link right away without repeating yourself\n"
    "- Never mention images\n\n"
    "STRICT RULES:\n"
    "- ONLY answer using information from the CONTEXT below\n"
    "- If information is not in the context, say you don't have it but can help with other questions\n"
    "- Provide pricing in the store's currency format\n"
    "- Politely redirect unrelated or unsafe requests back to shopping\n"
    "- Keep responses concise and formatted with line breaks for WhatsApp"
)


class ChatProvider(Protocol):
    def complete(self, system_prompt: str, messages: Sequence[MessageParam]) -> str: ...


class ClaudeChat:
    """Chat-style completion: ``complete(system_prompt, messages) -> text``."""

    def __init__(
        self,
        client: Anthropic,
        model: str,
        max_tokens: int = 500,
        temperature: float = 0.2,
    ) -> None:
        self._client = client
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    def complete(self, system_prompt: str, messages: Sequence[MessageParam]) -> str:
        response = self._client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system=system_prompt,
            messages=list(messages),
        )

        # response.content[0] is a union of block types;
        # we always request plain text so the first block should be TextBlock.
        block = response.content[0] if response.content else None
        if not isinstance(block, TextBlock):
            raise ValueError(f"Expected TextBlock from Claude, got {type(block).__name__}")
        return block.text


def format_context(matches: Sequence[RankedMatch]) -> str:
    """Join retrieved chunk texts into the prompt's context block."""
    parts: list[str] = []
    for match in matches:
        if match.source_type is SourceType.CATALOG_PRODUCT and match.metadata.get("url"):
            parts.append(f"{match.text}\nLink: {match.metadata['url']}")
        else:
            parts.append(match.text)
    return "\n\n".join(parts)


def build_system_prompt(
    data_source: DataSource,
    matches: Sequence[RankedMatch],
    custom_prompt: str | None = None,
) -> str:
    """Compose custom prompt (or a default persona), base rules and context."""
    rules = CATALOG_RULES if data_source is DataSource.SHOPIFY else FILE_RULES
    if custom_prompt:
        head = f"{custom_prompt}\n\n{rules}"
    else:
        persona = "Shopify store" if data_source is DataSource.SHOPIFY else "WhatsApp"
        head = f"You are a helpful {persona} assistant.\n\n{rules}"

    context = format_context(matches) or NO_CONTEXT
    return f"{head}\n\nCONTEXT:\n{context}"
