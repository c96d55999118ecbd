"""Embedding client abstraction for model-agnostic vector generation.

Supports the OpenAI embeddings API. All calls are batched and retried on
timeouts, connection drops and rate limits. Provider failures surface as
``EmbeddingProviderError``; an answer without vectors is reported separately
so callers can tell "the provider broke" from "nothing was produced".
"""

import asyncio
from typing import Protocol

import openai
from loguru import logger
from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from vector_kb.errors import EmbeddingProviderError, EmptyEmbeddingError
from vector_kb.retry import RetryExhaustedError, RetryPolicy, Sleeper, retry_async

RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
)


class EmbeddingConfig(BaseModel):
    """Configuration for embedding generation.

    Attributes:
        model: Model identifier (e.g., "openai/text-embedding-3-small")
        dimensions: Expected embedding dimensionality
        batch_size: Number of texts to embed per API call
        max_retries: Maximum attempts for transient failures
        timeout_seconds: API request timeout
        api_key: API key for external services (set via env var)
    """

    model: str = "openai/text-embedding-3-small"
    dimensions: int = Field(default=1536, ge=128, le=4096)
    batch_size: int = Field(default=100, ge=1, le=500)
    max_retries: int = Field(default=3, ge=1, le=10)
    timeout_seconds: float = Field(default=30.0, ge=1.0, le=300.0)
    api_key: str | None = None


class EmbeddingClient(Protocol):
    """Protocol for embedding client implementations."""

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for a batch of texts.

        Args:
            texts: List of input texts (max batch_size)

        Returns:
            List of embedding vectors (same order as inputs)

        Raises:
            ValueError: If batch size exceeds limit
            EmbeddingProviderError: For API failures after retries
            EmptyEmbeddingError: If the provider returned fewer vectors than texts
        """
        ...

    async def embed_single(self, text: str) -> list[float] | None:
        """Generate embedding for a single text.

        Returns:
            Embedding vector, or None when the provider produced none
        """
        ...


class OpenAIEmbedding:
    """OpenAI embedding client with retry logic and batching."""

    def __init__(self, config: EmbeddingConfig, sleep: Sleeper = asyncio.sleep):
        """Initialize OpenAI client.

        Args:
            config: Embedding configuration with API key
            sleep: Awaitable used between retries

        Raises:
            EmbeddingProviderError: If no API key is configured or set in the environment
        """
        self.config = config
        # Retries are handled here so the attempt count follows config.max_retries
        try:
            self.client = AsyncOpenAI(
                api_key=config.api_key, timeout=config.timeout_seconds, max_retries=0
            )
        except openai.OpenAIError as e:
            raise EmbeddingProviderError(f"Could not create OpenAI client: {e}") from e
        self.model_name = config.model.removeprefix("openai/")
        self.retry_policy = RetryPolicy(
            max_attempts=config.max_retries, base_delay_seconds=1.0, backoff_factor=2.0
        )
        self._sleep = sleep

    async def _create(self, texts: list[str]) -> list[list[float]]:
        response = await self.client.embeddings.create(model=self.model_name, input=texts)
        data = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in data]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for a batch of texts with retry logic.

        Args:
            texts: List of input texts (max batch_size)

        Returns:
            List of embedding vectors (same order as inputs)

        Raises:
            ValueError: If batch size exceeds config limit or dimensions mismatch
            EmbeddingProviderError: For API failures after all retries
            EmptyEmbeddingError: If the provider returned fewer vectors than texts
        """
        if len(texts) > self.config.batch_size:
            raise ValueError(f"Batch size {len(texts)} exceeds limit {self.config.batch_size}")

        if not texts:
            return []

        try:
            embeddings = await retry_async(
                lambda: self._create(texts),
                self.retry_policy,
                f"Embedding batch of {len(texts)} texts",
                retry_on=RETRYABLE_ERRORS,
                sleep=self._sleep,
            )
        except RetryExhaustedError as e:
            raise EmbeddingProviderError(str(e)) from e.last_error
        except openai.APIError as e:
            logger.error(f"Embedding provider error: {e}")
            raise EmbeddingProviderError(str(e)) from e

        if len(embeddings) != len(texts):
            raise EmptyEmbeddingError(
                f"Provider returned {len(embeddings)} embeddings for {len(texts)} texts"
            )

        for i, emb in enumerate(embeddings):
            if len(emb) != self.config.dimensions:
                raise ValueError(
                    f"Expected {self.config.dimensions} dimensions, got {len(emb)} for text {i}"
                )

        logger.debug(f"Embedded {len(texts)} texts with {self.model_name}")
        return embeddings

    async def embed_single(self, text: str) -> list[float] | None:
        """Generate embedding for a single text.

        Args:
            text: Input text

        Returns:
            Embedding vector, or None when the provider produced none
        """
        try:
            embeddings = await self.embed_batch([text])
        except EmptyEmbeddingError:
            return None
        return embeddings[0]


def create_embedding_client(config: EmbeddingConfig) -> EmbeddingClient:
    """Factory function to create embedding client based on model config.

    Example:
        >>> config = EmbeddingConfig(model="openai/text-embedding-3-small", api_key="sk-...")
        >>> client = create_embedding_client(config)
    """
    if config.model.startswith("openai/"):
        return OpenAIEmbedding(config)
    raise ValueError(f"Unknown model prefix in {config.model!r}. Expected 'openai/'")
