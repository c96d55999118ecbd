"""Qdrant adapter built on the async qdrant-client."""

from collections.abc import AsyncIterator
from typing import Any

from loguru import logger
from qdrant_client import AsyncQdrantClient, models
from qdrant_client.http.exceptions import UnexpectedResponse

from vector_kb.backends.base import MAX_REQUEST_SIZE, BackendAdapter
from vector_kb.config import QdrantConfig
from vector_kb.models import StoredVector, VectorRecord
from vector_kb.utils import partition


class QdrantAdapter(BackendAdapter):
    """Qdrant vector store adapter.

    Vectors are stored as points whose payload is the record metadata.
    Upserts are split into requests of ``MAX_REQUEST_SIZE`` points.
    """

    name = "qdrant"

    def __init__(
        self,
        config: QdrantConfig,
        dimensions: int,
        client: AsyncQdrantClient | None = None,
    ):
        """Initialize Qdrant collection client.

        Args:
            config: Qdrant connection settings
            dimensions: Embedding size used when the collection is created
            client: Pre-built client (tests inject a mock here)
        """
        super().__init__(dimensions)
        self.collection_name = config.collection_name
        self.client = client or AsyncQdrantClient(url=config.url, api_key=config.api_key)

    async def _collection_exists(self) -> bool:
        response = await self.client.get_collections()
        return any(c.name == self.collection_name for c in response.collections)

    async def _create_collection(self) -> None:
        await self.client.create_collection(
            collection_name=self.collection_name,
            vectors_config=models.VectorParams(
                size=self.dimensions, distance=models.Distance.COSINE
            ),
        )
        logger.info(f"[{self.name}] Created collection '{self.collection_name}'")

    def _is_already_exists_error(self, error: Exception) -> bool:
        if not isinstance(error, UnexpectedResponse):
            return False
        return error.status_code == 409 or "already exists" in str(error).lower()

    async def search(self, embedding: list[float], top_k: int) -> list[Any]:
        await self.ensure_collection()
        response = await self.client.query_points(
            collection_name=self.collection_name,
            query=embedding,
            limit=top_k,
            with_payload=True,
            with_vectors=False,
        )
        return list(response.points)

    def extract_text(self, match: Any) -> str | None:
        payload = match.payload or {}
        return payload.get("text")

    def extract_score(self, match: Any) -> float | None:
        return match.score

    def extract_metadata(self, match: Any) -> dict[str, Any] | None:
        return match.payload

    async def upsert(self, records: list[VectorRecord]) -> int:
        await self.ensure_collection()

        points = [
            models.PointStruct(
                id=record.id,
                vector=record.embedding,
                payload=record.metadata.to_payload(),
            )
            for record in records
        ]

        chunks = partition(points, MAX_REQUEST_SIZE)
        total_added = 0
        for i, chunk in enumerate(chunks, start=1):
            await self.client.upsert(
                collection_name=self.collection_name, points=chunk, wait=True
            )
            total_added += len(chunk)
            logger.debug(f"[{self.name}] Added chunk {i}/{len(chunks)} ({len(chunk)} vectors)")

        return total_added

    async def delete_all(self) -> None:
        await self.ensure_collection()
        # An empty filter matches every point
        await self.client.delete(
            collection_name=self.collection_name,
            points_selector=models.FilterSelector(filter=models.Filter()),
            wait=True,
        )

    async def delete_by_ids(self, ids: list[str]) -> None:
        await self.ensure_collection()
        await self.client.delete(
            collection_name=self.collection_name,
            points_selector=models.PointIdsList(points=list(ids)),
            wait=True,
        )

    async def health_check(self) -> bool:
        await self.client.get_collections()
        return True

    async def count(self) -> int:
        await self.ensure_collection()
        result = await self.client.count(collection_name=self.collection_name, exact=True)
        return result.count

    async def scan(self, page_size: int = 100) -> AsyncIterator[StoredVector]:
        await self.ensure_collection()
        offset = None
        while True:
            points, offset = await self.client.scroll(
                collection_name=self.collection_name,
                limit=page_size,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            for point in points:
                yield StoredVector(id=str(point.id), metadata=dict(point.payload or {}))
            if offset is None:
                break
