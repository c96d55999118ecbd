"""Backend adapter contract.

Each vector database gets one adapter that translates the generic operations
into the store's own wire calls. Adapters never leak SDK types: raw matches
are only read back through the ``extract_*`` accessors.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from enum import StrEnum
from typing import Any

from loguru import logger

from vector_kb.models import StoredVector, VectorRecord

# Largest number of points sent in one physical upsert request
MAX_REQUEST_SIZE = 100


class CollectionState(StrEnum):
    ABSENT = "absent"
    CHECKED = "checked"
    CREATED = "created"
    READY = "ready"


class BackendAdapter(ABC):
    """Abstract base class for vector store adapters.

    Subclasses implement the primitives below plus three provisioning hooks
    (``_collection_exists``, ``_create_collection``, ``_is_already_exists_error``).
    ``ensure_collection`` drives them so the target collection is checked and,
    if needed, created exactly once per adapter.
    """

    name: str = "unknown"

    def __init__(self, dimensions: int):
        self.dimensions = dimensions
        self.state = CollectionState.ABSENT
        self._provision_lock = asyncio.Lock()

    async def ensure_collection(self) -> None:
        """Check that the collection exists and create it if it does not.

        A creation that fails because another process created the collection
        first counts as success.
        """
        if self.state is CollectionState.READY:
            return

        async with self._provision_lock:
            if self.state is CollectionState.READY:
                return

            exists = await self._collection_exists()
            self.state = CollectionState.CHECKED

            if exists:
                logger.debug(f"[{self.name}] Collection already exists")
            else:
                logger.info(
                    f"[{self.name}] Creating collection "
                    f"(dimensions={self.dimensions}, metric=cosine)"
                )
                try:
                    await self._create_collection()
                    self.state = CollectionState.CREATED
                except Exception as e:
                    if not self._is_already_exists_error(e):
                        raise
                    logger.info(f"[{self.name}] Collection was created concurrently: {e}")

            self.state = CollectionState.READY

    @abstractmethod
    async def _collection_exists(self) -> bool: ...

    @abstractmethod
    async def _create_collection(self) -> None: ...

    @abstractmethod
    def _is_already_exists_error(self, error: Exception) -> bool: ...

    @abstractmethod
    async def search(self, embedding: list[float], top_k: int) -> list[Any]:
        """Return raw backend matches, best first."""
        ...

    @abstractmethod
    def extract_text(self, match: Any) -> str | None: ...

    @abstractmethod
    def extract_score(self, match: Any) -> float | None: ...

    @abstractmethod
    def extract_metadata(self, match: Any) -> dict[str, Any] | None: ...

    @abstractmethod
    async def upsert(self, records: list[VectorRecord]) -> int:
        """Insert or overwrite records.

        Returns:
            Number of records written
        """
        ...

    @abstractmethod
    async def delete_all(self) -> None: ...

    @abstractmethod
    async def delete_by_ids(self, ids: list[str]) -> None: ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight read-only probe (list/describe collections)."""
        ...

    @abstractmethod
    async def count(self) -> int:
        """Number of vectors in the collection."""
        ...

    @abstractmethod
    def scan(self, page_size: int = 100) -> AsyncIterator[StoredVector]:
        """Iterate over every stored vector's id and metadata."""
        ...
