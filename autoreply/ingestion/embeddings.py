"""Embedding helpers using OpenAI text-embedding-3-small.

The :class:`EmbeddingClient` wraps the provider handle and owns the retry
policy; each ingestion job or retrieval call opens its own
:class:`EmbeddingSession`, which carries the de-duplication cache for that
run only.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Callable, Sequence

from openai import OpenAI, RateLimitError
from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from autoreply.errors import EmbeddingError, EmbeddingErrorKind

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_REQUEST_DELAY = 0.1


def is_rate_limit_error(exc: BaseException) -> bool:
    """True for HTTP 429s and provider rate-limit errors."""
    if isinstance(exc, RateLimitError):
        return True
    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    if status == 429:
        return True
    message = str(exc).lower()
    return "rate limit" in message or "429" in message


def text_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class EmbeddingClient:
    """Rate-limit-aware wrapper around the OpenAI embeddings endpoint."""

    def __init__(
        self,
        client: OpenAI,
        model: str = "text-embedding-3-small",
        dimensions: int | None = None,
        request_delay: float = DEFAULT_REQUEST_DELAY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._model = model
        self._dimensions = dimensions
        self.request_delay = request_delay
        self.max_attempts = max_attempts
        self._sleep = sleep

    def pause(self) -> None:
        """Sleep for the inter-request delay used inside a batch."""
        if self.request_delay > 0:
            self._sleep(self.request_delay)

    def session(self) -> EmbeddingSession:
        """Open a new cache scope for one ingestion job or retrieval call."""
        return EmbeddingSession(self)

    def _request(self, text: str) -> list[float]:
        kwargs: dict[str, object] = {"input": [text], "model": self._model}
        if self._dimensions:
            kwargs["dimensions"] = self._dimensions
        response = self._client.embeddings.create(**kwargs)  # type: ignore[call-overload]
        return list(response.data[0].embedding)

    def create(self, text: str) -> list[float]:
        """Embed *text* with one remote call, retrying only on rate limits.

        Waits ``2**attempt`` seconds (attempt counted from 0) plus up to one
        second of jitter between attempts.

        Raises:
            EmbeddingError: ``transient`` once retries are exhausted,
                ``permanent`` for any non-rate-limit failure.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, exp_base=2) + wait_random(0, 1),
            retry=retry_if_exception(is_rate_limit_error),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        try:
            return retrying(self._request, text)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            raise EmbeddingError(
                f"Embedding rate limited after {self.max_attempts} attempts: {last}",
                EmbeddingErrorKind.TRANSIENT,
            ) from last
        except Exception as exc:
            raise EmbeddingError(
                f"Embedding request failed: {exc}", EmbeddingErrorKind.PERMANENT
            ) from exc


class EmbeddingSession:
    """Embeds texts for one logical run, never embedding the same text twice."""

    def __init__(self, client: EmbeddingClient) -> None:
        self._client = client
        self._cache: dict[str, list[float]] = {}
        self.remote_calls = 0

    def _cached(self, text: str) -> list[float] | None:
        return self._cache.get(text_hash(text))

    def _fetch(self, text: str) -> list[float]:
        self.remote_calls += 1
        vector = self._client.create(text)
        self._cache[text_hash(text)] = vector
        return vector

    def embed(self, text: str) -> list[float]:
        """Return the embedding for *text*, from the cache when possible."""
        if not text.strip():
            raise EmbeddingError("Cannot embed empty text", EmbeddingErrorKind.PERMANENT)
        cached = self._cached(text)
        if cached is not None:
            return cached
        return self._fetch(text)

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts* in order, pausing between consecutive remote calls.

        The pause (``request_delay``) keeps a batch from tripping the
        provider's rate limiter; cache hits do not pause.
        """
        vectors: list[list[float]] = []
        called = False
        for text in texts:
            if not text.strip():
                raise EmbeddingError("Cannot embed empty text", EmbeddingErrorKind.PERMANENT)
            cached = self._cached(text)
            if cached is not None:
                vectors.append(cached)
                continue
            if called:
                self._client.pause()
            vectors.append(self._fetch(text))
            called = True
        logger.debug("Embedded %d texts (%d remote calls so far)", len(texts), self.remote_calls)
        return vectors
