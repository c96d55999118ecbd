"""Fixtures shared by vector_kb unit tests."""

import pytest

from tests.test_vector_kb.fakes import FakeEmbedding, InMemoryAdapter
from vector_kb.config import IngestionConfig, SearchConfig
from vector_kb.retry import RetryPolicy
from vector_kb.store import VectorStore


@pytest.fixture
def adapter() -> InMemoryAdapter:
    return InMemoryAdapter()


@pytest.fixture
def embedding() -> FakeEmbedding:
    return FakeEmbedding()


@pytest.fixture
def store(adapter: InMemoryAdapter, embedding: FakeEmbedding) -> VectorStore:
    return VectorStore(adapter, embedding, search=SearchConfig(top_k=3, min_score=0.7))


@pytest.fixture
def ingestion_config() -> IngestionConfig:
    return IngestionConfig(
        batch_size=50,
        max_tokens_per_item=100,
        batch_delay_seconds=0.5,
        retry=RetryPolicy(max_attempts=3, base_delay_seconds=0.01, backoff_factor=2.0),
    )
