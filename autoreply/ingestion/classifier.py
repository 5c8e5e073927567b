"""Claude-powered blank/spam/relevance classification of call transcripts."""

from __future__ import annotations

import json
import logging
from typing import Any

from autoreply.ingestion.models import Classification
from autoreply.retrieval.generation import ChatProvider

logger = logging.getLogger(__name__)

# Transcripts shorter than this (after stripping) count as blank in the fallback.
BLANK_THRESHOLD = 50
FALLBACK_CONFIDENCE = 0.5

SYSTEM_PROMPT = (
    "You classify phone call transcripts for a business. "
    "Respond with a single JSON object and nothing else."
)

_USER_TEMPLATE = """\
Analyze this call transcript and classify it according to these criteria:

TRANSCRIPT:
{transcript}

CLASSIFICATION TASKS:
1. Is this transcript BLANK or mostly empty? (very short, no meaningful content, silence, etc.)
2. Is this transcript SPAM? (marketing calls, scams, irrelevant promotions, etc.)
3. Is this transcript related to the business? ({business})

Respond with JSON only:
{{
  "isBlank": boolean,
  "isSpam": boolean,
  "isRelevant": boolean,
  "blankConfidence": 0-1,
  "spamConfidence": 0-1,
  "relevanceConfidence": 0-1,
  "reasoning": "brief explanation"
}}"""


def fallback_classification(transcript: str) -> Classification:
    """Conservative classification used when the classifier call fails."""
    return Classification(
        is_blank=len(transcript.strip()) < BLANK_THRESHOLD,
        is_spam=False,
        is_relevant=False,
        blank_confidence=FALLBACK_CONFIDENCE,
        spam_confidence=FALLBACK_CONFIDENCE,
        relevance_confidence=FALLBACK_CONFIDENCE,
        fallback=True,
    )


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_classification(raw: str) -> Classification:
    """Parse the model's JSON reply; raises ValueError on malformed output."""
    try:
        data: Any = json.loads(_strip_fences(raw))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Classifier returned invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Classifier returned {type(data).__name__}, expected an object")

    return Classification(
        is_blank=bool(data.get("isBlank", False)),
        is_spam=bool(data.get("isSpam", False)),
        is_relevant=bool(data.get("isRelevant", False)),
        blank_confidence=float(data.get("blankConfidence") or 0),
        spam_confidence=float(data.get("spamConfidence") or 0),
        relevance_confidence=float(data.get("relevanceConfidence") or 0),
        reasoning=data.get("reasoning"),
    )


class TranscriptClassifier:
    """Classifies a transcript with one chat completion, never retried."""

    def __init__(self, chat: ChatProvider, business_description: str) -> None:
        self._chat = chat
        self.business_description = business_description

    def classify(self, transcript: str) -> Classification:
        """Return the model's judgment, or the length-based fallback on any failure."""
        prompt = _USER_TEMPLATE.format(transcript=transcript, business=self.business_description)
        try:
            raw = self._chat.complete(SYSTEM_PROMPT, [{"role": "user", "content": prompt}])
            return parse_classification(raw)
        except Exception:
            logger.exception("Classification failed; using fallback")
            return fallback_classification(transcript)
