from __future__ import annotations

import pytest

from autoreply.ingestion.embeddings import EmbeddingClient
from tests.fakes import FakeOpenAI, SleepRecorder


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def openai_fake() -> FakeOpenAI:
    return FakeOpenAI()


@pytest.fixture
def embedder(openai_fake: FakeOpenAI, sleeps: SleepRecorder) -> EmbeddingClient:
    return EmbeddingClient(openai_fake, model="text-embedding-3-small", sleep=sleeps)  # type: ignore[arg-type]
