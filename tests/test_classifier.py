"""Tests for transcript classification and its fallback."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from autoreply.ingestion.classifier import (
    TranscriptClassifier,
    fallback_classification,
    parse_classification,
)

VALID = (
    '{"isBlank": false, "isSpam": true, "isRelevant": false, "blankConfidence": 0.1, '
    '"spamConfidence": 0.85, "relevanceConfidence": 0.2, "reasoning": "loan offer"}'
)


class TestParseClassification:
    def test_plain_json(self) -> None:
        c = parse_classification(VALID)
        assert c.is_spam and not c.is_blank and not c.is_relevant
        assert c.spam_confidence == 0.85
        assert c.reasoning == "loan offer"
        assert not c.fallback

    def test_fenced_json(self) -> None:
        c = parse_classification(f"```json\n{VALID}\n```")
        assert c.is_spam

    def test_missing_keys_default_false(self) -> None:
        c = parse_classification('{"isRelevant": true}')
        assert c.is_relevant and not c.is_blank and not c.is_spam
        assert c.blank_confidence == 0.0

    @pytest.mark.parametrize("raw", ["not json at all", "[1, 2]", ""])
    def test_malformed(self, raw: str) -> None:
        with pytest.raises(ValueError):
            parse_classification(raw)


class TestFallback:
    def test_short_transcript_is_blank(self) -> None:
        c = fallback_classification("   hello?   ")
        assert c.is_blank and not c.is_spam and not c.is_relevant
        assert c.fallback

    def test_long_transcript_is_not_blank(self) -> None:
        c = fallback_classification("x" * 50)
        assert not c.is_blank
        assert (c.blank_confidence, c.spam_confidence, c.relevance_confidence) == (0.5, 0.5, 0.5)


class TestTranscriptClassifier:
    def test_sends_transcript_and_business(self) -> None:
        chat = MagicMock()
        chat.complete.return_value = VALID
        classifier = TranscriptClassifier(chat, "ethnic wear store")

        c = classifier.classify("Congratulations, you are pre-approved for a loan")

        assert c.is_spam
        _, messages = chat.complete.call_args.args
        assert "pre-approved for a loan" in messages[0]["content"]
        assert "ethnic wear store" in messages[0]["content"]

    def test_provider_error_uses_fallback(self) -> None:
        chat = MagicMock()
        chat.complete.side_effect = RuntimeError("529 overloaded")

        c = TranscriptClassifier(chat, "store").classify("")

        assert c.fallback and c.is_blank
        chat.complete.assert_called_once()

    def test_bad_json_uses_fallback(self) -> None:
        chat = MagicMock()
        chat.complete.return_value = "I think this is spam."

        c = TranscriptClassifier(chat, "store").classify("y" * 80)

        assert c.fallback and not c.is_blank and not c.is_relevant
