"""Fakes for provider clients; no test touches a live service."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

from autoreply.ingestion.models import IngestionState, IngestionUnit


def fake_vector(text: str, dims: int = 4) -> list[float]:
    """Deterministic stand-in embedding derived from the text."""
    base = float(len(text) % 97)
    return [base + i for i in range(dims)]


class FakeOpenAI:
    """Mimics ``OpenAI().embeddings.create``; records every request."""

    def __init__(self, errors: list[BaseException] | None = None) -> None:
        self.requests: list[dict[str, Any]] = []
        self._errors = list(errors or [])
        self.embeddings = SimpleNamespace(create=self._create)

    def _create(self, **kwargs: Any) -> SimpleNamespace:
        self.requests.append(kwargs)
        if self._errors:
            raise self._errors.pop(0)
        text = kwargs["input"][0]
        return SimpleNamespace(data=[SimpleNamespace(embedding=fake_vector(text))])


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class StatusError(Exception):
    """Generic provider error carrying an HTTP status code."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


def make_unit(
    call_id: str = "call-1",
    status: IngestionState = IngestionState.UPLOADED,
    phone_number: str | None = "+15550001",
    payload_ref: str | None = "1700000000000-abc.mp3",
) -> IngestionUnit:
    return IngestionUnit(
        id=call_id,
        status=status,
        file_name="recording.mp3",
        payload_ref=payload_ref,
        phone_number=phone_number,
    )


def supabase_returning(data: list[dict[str, Any]] | None = None) -> MagicMock:
    """A Supabase mock whose every query chain resolves to *data*."""
    client = MagicMock()
    result = MagicMock()
    result.data = data if data is not None else []
    query = MagicMock()
    for method in ("select", "insert", "update", "upsert", "delete", "eq", "or_", "order", "limit"):
        getattr(query, method).return_value = query
    query.execute.return_value = result
    client.table.return_value = query
    client.rpc.return_value = query
    return client
