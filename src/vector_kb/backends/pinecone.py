"""Pinecone adapter.

The Pinecone SDK is synchronous; every call runs in a worker thread so the
event loop is never blocked.
"""

import asyncio
from collections.abc import AsyncIterator
from typing import Any

from loguru import logger
from pinecone import Pinecone, ServerlessSpec
from pinecone.exceptions import PineconeApiException

from vector_kb.backends.base import MAX_REQUEST_SIZE, BackendAdapter
from vector_kb.config import PineconeConfig
from vector_kb.models import StoredVector, VectorRecord
from vector_kb.utils import partition


def _is_metadata_value(value: Any) -> bool:
    if isinstance(value, str | bool | int | float):
        return True
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def to_pinecone_metadata(payload: dict[str, Any]) -> dict[str, Any]:
    """Keep only values Pinecone accepts (scalars and lists of strings)."""
    return {k: v for k, v in payload.items() if v is not None and _is_metadata_value(v)}


class PineconeAdapter(BackendAdapter):
    """Pinecone vector index adapter."""

    name = "pinecone"

    def __init__(
        self,
        config: PineconeConfig,
        dimensions: int,
        client: Pinecone | None = None,
    ):
        """Initialize Pinecone client.

        The index handle is resolved lazily, after the index is known to exist.

        Args:
            config: Pinecone connection settings
            dimensions: Embedding size used when the index is created
            client: Pre-built client (tests inject a mock here)
        """
        super().__init__(dimensions)
        self.index_name = config.index_name
        self.namespace = config.namespace
        self.cloud = config.cloud
        self.region = config.region
        self.pc = client or Pinecone(api_key=config.api_key)
        self._index: Any = None

    @property
    def index(self) -> Any:
        if self._index is None:
            self._index = self.pc.Index(self.index_name)
        return self._index

    def _namespace_kwargs(self) -> dict[str, Any]:
        return {"namespace": self.namespace} if self.namespace else {}

    async def _collection_exists(self) -> bool:
        existing_indexes = await asyncio.to_thread(self.pc.list_indexes)
        return self.index_name in [idx["name"] for idx in existing_indexes]

    async def _create_collection(self) -> None:
        await asyncio.to_thread(
            self.pc.create_index,
            name=self.index_name,
            dimension=self.dimensions,
            metric="cosine",
            spec=ServerlessSpec(cloud=self.cloud, region=self.region),
        )
        logger.info(f"[{self.name}] Created index '{self.index_name}'")

    def _is_already_exists_error(self, error: Exception) -> bool:
        if not isinstance(error, PineconeApiException):
            return False
        return getattr(error, "status", None) == 409 or "already exists" in str(error).lower()

    async def search(self, embedding: list[float], top_k: int) -> list[Any]:
        await self.ensure_collection()
        response = await asyncio.to_thread(
            self.index.query,
            vector=embedding,
            top_k=top_k,
            include_metadata=True,
            include_values=False,  # Don't return vectors to save bandwidth
            **self._namespace_kwargs(),
        )
        return list(response.matches)

    def extract_text(self, match: Any) -> str | None:
        metadata = match.metadata or {}
        return metadata.get("text")

    def extract_score(self, match: Any) -> float | None:
        return match.score

    def extract_metadata(self, match: Any) -> dict[str, Any] | None:
        return match.metadata

    async def upsert(self, records: list[VectorRecord]) -> int:
        await self.ensure_collection()

        vectors = [
            {
                "id": record.id,
                "values": record.embedding,
                "metadata": to_pinecone_metadata(record.metadata.to_payload()),
            }
            for record in records
        ]

        total_added = 0
        for chunk in partition(vectors, MAX_REQUEST_SIZE):
            await asyncio.to_thread(self.index.upsert, vectors=chunk, **self._namespace_kwargs())
            total_added += len(chunk)
        return total_added

    async def delete_all(self) -> None:
        await self.ensure_collection()
        await asyncio.to_thread(self.index.delete, delete_all=True, **self._namespace_kwargs())

    async def delete_by_ids(self, ids: list[str]) -> None:
        await self.ensure_collection()
        for chunk in partition(ids, MAX_REQUEST_SIZE):
            await asyncio.to_thread(self.index.delete, ids=chunk, **self._namespace_kwargs())

    async def health_check(self) -> bool:
        await asyncio.to_thread(self.pc.list_indexes)
        return True

    async def count(self) -> int:
        await self.ensure_collection()
        stats = await asyncio.to_thread(self.index.describe_index_stats)
        if self.namespace:
            namespace_stats = (stats.namespaces or {}).get(self.namespace)
            return namespace_stats.vector_count if namespace_stats else 0
        return stats.total_vector_count if hasattr(stats, "total_vector_count") else 0

    async def scan(self, page_size: int = 100) -> AsyncIterator[StoredVector]:
        await self.ensure_collection()
        id_pages = await asyncio.to_thread(
            lambda: list(self.index.list(limit=page_size, **self._namespace_kwargs()))
        )
        for ids in id_pages:
            if not ids:
                continue
            response = await asyncio.to_thread(
                self.index.fetch, ids=list(ids), **self._namespace_kwargs()
            )
            for vector_id, vector in response.vectors.items():
                yield StoredVector(id=vector_id, metadata=dict(vector.metadata or {}))
