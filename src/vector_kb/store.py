"""Backend-agnostic vector store.

``VectorStore`` owns everything that must behave the same whatever backend is
active: score filtering, logging, error policy and timeouts. Vendor-specific
steps are delegated to a ``BackendAdapter``.

Error policy:
    - ``query`` and the health checks never raise; failures are logged and
      degrade to an empty result / unhealthy status.
    - ``upsert``, ``delete_all`` and ``delete_by_ids`` log and re-raise.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TypeVar

from loguru import logger

from vector_kb.backends.base import BackendAdapter
from vector_kb.config import SearchConfig, TimeoutConfig
from vector_kb.embedding import EmbeddingClient
from vector_kb.errors import TransientIOError
from vector_kb.models import HealthStatus, StoredVector, VectorRecord

T = TypeVar("T")


class VectorStore:
    """Query, write and health operations over one backend adapter."""

    def __init__(
        self,
        adapter: BackendAdapter,
        embedding_client: EmbeddingClient | None = None,
        search: SearchConfig | None = None,
        timeouts: TimeoutConfig | None = None,
        embedding_factory: Callable[[], EmbeddingClient] | None = None,
    ):
        """Initialize the store.

        Args:
            adapter: Active backend adapter
            embedding_client: Client used to embed query text
            search: Top-K and score threshold
            timeouts: Per-call timeout for adapter and embedding calls
            embedding_factory: Builds the client on first query when
                ``embedding_client`` is None
        """
        if embedding_client is None and embedding_factory is None:
            raise ValueError("Either embedding_client or embedding_factory is required")

        self.adapter = adapter
        self._embedding_client = embedding_client
        self._embedding_factory = embedding_factory
        self.search_config = search or SearchConfig()
        self.timeouts = timeouts or TimeoutConfig()

    @property
    def backend_name(self) -> str:
        return self.adapter.name

    @property
    def embedding_client(self) -> EmbeddingClient:
        if self._embedding_client is None:
            self._embedding_client = self._embedding_factory()
        return self._embedding_client

    async def call_with_timeout(self, awaitable: Awaitable[T], operation: str) -> T:
        """Await a backend or embedding call under the per-call timeout."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeouts.request_seconds)
        except TimeoutError as e:
            raise TransientIOError(
                f"[{self.backend_name}] {operation} timed out after "
                f"{self.timeouts.request_seconds}s"
            ) from e

    def is_relevant(self, score: float | None) -> bool:
        """True when the score meets the configured minimum similarity."""
        if score is None:
            return False
        return score >= self.search_config.min_score

    async def query(self, text: str) -> list[str]:
        """Return texts of the best matches for ``text``.

        Matches below the score threshold and matches without text are
        dropped. Surviving texts keep the backend's rank order.

        Never raises: any failure is logged and yields an empty list.
        """
        start = time.perf_counter()
        try:
            embedding = await self.call_with_timeout(
                self.embedding_client.embed_single(text), "query embedding"
            )
            if embedding is None:
                logger.warning(f"[{self.backend_name}] No embedding produced for query")
                return []

            matches = await self.call_with_timeout(
                self.adapter.search(embedding, self.search_config.top_k), "search"
            )
            if not matches:
                logger.info(f"[{self.backend_name}] No matches found for query.")
                return []

            result = []
            for match in matches:
                score = self.adapter.extract_score(match)
                metadata = self.adapter.extract_metadata(match) or {}
                match_text = self.adapter.extract_text(match)
                topic = metadata.get("topic")

                if not isinstance(match_text, str) or not match_text.strip():
                    logger.warning(
                        f"[{self.backend_name}] Match (score {score}, topic {topic!r}) has no "
                        f"text. This record was not added to result."
                    )
                    continue

                if self.is_relevant(score):
                    logger.info(
                        f"[{self.backend_name}] Accepted match with score {score} "
                        f"(topic {topic!r}, category {metadata.get('category')!r})"
                    )
                    result.append(match_text)
                else:
                    logger.info(
                        f"[{self.backend_name}] Rejected match with score {score} "
                        f"(topic {topic!r}, required min. {self.search_config.min_score})"
                    )

            return result

        except Exception as e:
            logger.error(f"[{self.backend_name}] Error querying knowledge base: {e}")
            return []
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.debug(f"[{self.backend_name}] query finished in {elapsed_ms:.0f}ms")

    async def upsert(self, records: list[VectorRecord]) -> int:
        """Write records to the backend.

        Returns:
            Number of records written

        Raises:
            ValueError: If a record's embedding has the wrong dimensionality
            Exception: Any backend failure, after logging
        """
        if not records:
            logger.info(f"[{self.backend_name}] No vectors to add.")
            return 0

        for record in records:
            if len(record.embedding) != self.adapter.dimensions:
                raise ValueError(
                    f"Record {record.id} has {len(record.embedding)} dimensions, "
                    f"expected {self.adapter.dimensions}"
                )

        try:
            total_added = await self.call_with_timeout(self.adapter.upsert(records), "upsert")
        except Exception as e:
            logger.error(f"[{self.backend_name}] Error adding vectors: {e}")
            raise

        logger.info(f"[{self.backend_name}] Successfully added {total_added} vectors.")
        return total_added

    async def delete_all(self) -> bool:
        try:
            await self.call_with_timeout(self.adapter.delete_all(), "delete all")
        except Exception as e:
            logger.error(f"[{self.backend_name}] Error deleting vectors: {e}")
            raise

        logger.info(f"[{self.backend_name}] Successfully deleted all vectors.")
        return True

    async def delete_by_ids(self, ids: list[str]) -> bool:
        if not ids:
            logger.info(f"[{self.backend_name}] No IDs to delete.")
            return True

        try:
            await self.call_with_timeout(self.adapter.delete_by_ids(ids), "delete by ids")
        except Exception as e:
            logger.error(f"[{self.backend_name}] Error deleting vectors: {e}")
            raise

        logger.info(f"[{self.backend_name}] Successfully deleted {len(ids)} vectors.")
        return True

    async def health_check(self) -> bool:
        """Probe the backend. Never raises."""
        try:
            is_healthy = await self.call_with_timeout(self.adapter.health_check(), "health check")
        except Exception as e:
            logger.error(f"[{self.backend_name}] Health check failed: {e}")
            return False

        if not is_healthy:
            logger.error(f"[{self.backend_name}] Health check failed")
        return is_healthy

    async def detailed_health_check(self) -> HealthStatus:
        is_healthy = await self.health_check()
        return HealthStatus(
            backend_name=self.backend_name,
            is_healthy=is_healthy,
            message="Database is operational" if is_healthy else "Database is not responding",
        )

    async def count(self) -> int:
        return await self.call_with_timeout(self.adapter.count(), "count")

    async def scan(self, page_size: int = 100) -> AsyncIterator[StoredVector]:
        async for vector in self.adapter.scan(page_size):
            yield vector
