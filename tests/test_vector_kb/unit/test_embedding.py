"""Unit tests for embedding generation."""

import pytest
import respx
from httpx import Response

from tests.test_vector_kb.fakes import no_sleep
from vector_kb.embedding import EmbeddingConfig, OpenAIEmbedding, create_embedding_client
from vector_kb.errors import EmbeddingProviderError

EMBEDDINGS_URL = "https://api.openai.com/v1/embeddings"


def embeddings_response(*vectors: list[float]) -> Response:
    return Response(
        200,
        json={
            "object": "list",
            "data": [
                {"object": "embedding", "embedding": v, "index": i} for i, v in enumerate(vectors)
            ],
            "model": "text-embedding-3-small",
            "usage": {"prompt_tokens": 5, "total_tokens": 5},
        },
    )


@pytest.fixture
def embedding_config() -> EmbeddingConfig:
    """Standard embedding configuration for tests."""
    return EmbeddingConfig(
        model="openai/text-embedding-3-small",
        dimensions=1536,
        batch_size=100,
        max_retries=3,
        timeout_seconds=10.0,
        api_key="sk-test-key",
    )


class TestEmbeddingConfig:
    """Tests for EmbeddingConfig validation."""

    def test_valid_config(self, embedding_config):
        assert embedding_config.model == "openai/text-embedding-3-small"
        assert embedding_config.dimensions == 1536

    def test_invalid_dimensions(self):
        """Dimensions must be in valid range."""
        with pytest.raises(ValueError):
            EmbeddingConfig(dimensions=50)

        with pytest.raises(ValueError):
            EmbeddingConfig(dimensions=5000)

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            EmbeddingConfig(batch_size=0)

        with pytest.raises(ValueError):
            EmbeddingConfig(batch_size=1000)


class TestOpenAIEmbedding:
    """Tests for OpenAI embedding client."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_embed_single_success(self, embedding_config):
        respx.post(EMBEDDINGS_URL).mock(return_value=embeddings_response([0.1] * 1536))

        client = OpenAIEmbedding(embedding_config, sleep=no_sleep)
        vector = await client.embed_single("Test text")

        assert vector is not None
        assert len(vector) == 1536
        assert all(isinstance(v, float) for v in vector)

    @pytest.mark.asyncio
    @respx.mock
    async def test_embed_batch_keeps_input_order(self, embedding_config):
        """Vectors come back in input order even if the provider shuffles them."""
        respx.post(EMBEDDINGS_URL).mock(
            return_value=Response(
                200,
                json={
                    "object": "list",
                    "data": [
                        {"object": "embedding", "embedding": [0.3] * 1536, "index": 2},
                        {"object": "embedding", "embedding": [0.1] * 1536, "index": 0},
                        {"object": "embedding", "embedding": [0.2] * 1536, "index": 1},
                    ],
                    "model": "text-embedding-3-small",
                    "usage": {"prompt_tokens": 15, "total_tokens": 15},
                },
            )
        )

        client = OpenAIEmbedding(embedding_config, sleep=no_sleep)
        vectors = await client.embed_batch(["Text 1", "Text 2", "Text 3"])

        assert [v[0] for v in vectors] == [0.1, 0.2, 0.3]

    @pytest.mark.asyncio
    async def test_batch_size_exceeded(self, embedding_config):
        client = OpenAIEmbedding(embedding_config, sleep=no_sleep)

        with pytest.raises(ValueError, match="Batch size .* exceeds limit"):
            await client.embed_batch(["text"] * 101)

    @pytest.mark.asyncio
    async def test_empty_batch_returns_empty(self, embedding_config):
        """Empty batch should return empty list without API call."""
        client = OpenAIEmbedding(embedding_config, sleep=no_sleep)
        assert await client.embed_batch([]) == []

    @pytest.mark.asyncio
    @respx.mock
    async def test_retry_on_rate_limit(self, embedding_config):
        """Rate limit (429) should trigger a retry."""
        route = respx.post(EMBEDDINGS_URL).mock(
            side_effect=[
                Response(429, json={"error": {"message": "Rate limit exceeded"}}),
                embeddings_response([0.1] * 1536),
            ]
        )

        client = OpenAIEmbedding(embedding_config, sleep=no_sleep)
        vector = await client.embed_single("Test")

        assert vector is not None
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_exhausted_retries_raise_provider_error(self, embedding_config):
        route = respx.post(EMBEDDINGS_URL).mock(
            return_value=Response(429, json={"error": {"message": "Rate limit exceeded"}})
        )

        embedding_config.max_retries = 2
        client = OpenAIEmbedding(embedding_config, sleep=no_sleep)

        with pytest.raises(EmbeddingProviderError):
            await client.embed_single("Test")
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_retryable_error_fails_fast(self, embedding_config):
        route = respx.post(EMBEDDINGS_URL).mock(
            return_value=Response(401, json={"error": {"message": "Invalid API key"}})
        )

        client = OpenAIEmbedding(embedding_config, sleep=no_sleep)

        with pytest.raises(EmbeddingProviderError):
            await client.embed_batch(["Test"])
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_dimension_mismatch_raises(self, embedding_config):
        respx.post(EMBEDDINGS_URL).mock(return_value=embeddings_response([0.1] * 768))

        client = OpenAIEmbedding(embedding_config, sleep=no_sleep)

        with pytest.raises(ValueError, match="Expected 1536 dimensions"):
            await client.embed_single("Test")

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_vectors_returned_yields_none(self, embedding_config):
        """An answer without vectors is "nothing produced", not a provider error."""
        respx.post(EMBEDDINGS_URL).mock(return_value=embeddings_response())

        client = OpenAIEmbedding(embedding_config, sleep=no_sleep)

        assert await client.embed_single("Test") is None


class TestCreateEmbeddingClient:
    """Tests for factory function."""

    def test_create_openai_client(self):
        config = EmbeddingConfig(model="openai/text-embedding-3-small", api_key="test")
        assert isinstance(create_embedding_client(config), OpenAIEmbedding)

    def test_unknown_model_prefix_raises(self):
        config = EmbeddingConfig(model="unknown/model", api_key="test")

        with pytest.raises(ValueError, match="Unknown model prefix"):
            create_embedding_client(config)

    def test_missing_api_key_raises_provider_error(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "placeholder")
        monkeypatch.delenv("OPENAI_API_KEY")

        with pytest.raises(EmbeddingProviderError, match="Could not create OpenAI client"):
            create_embedding_client(EmbeddingConfig(api_key=None))
