"""Knowledge base facade.

``KnowledgeBaseService`` is the single entry point used by the CLI: it wires
the selected backend adapter, the embedding client and the pipelines
together. Everything is built lazily on first use.
"""

import asyncio
from pathlib import Path

from loguru import logger

from vector_kb.clear import ClearOperationPipeline
from vector_kb.config import VectorKBConfig
from vector_kb.embedding import EmbeddingClient, create_embedding_client
from vector_kb.ingestion import BatchIngestionPipeline
from vector_kb.models import ClearCommand, ClearReport, HealthStatus, IngestionStats
from vector_kb.selector import BackendSelector
from vector_kb.store import VectorStore
from vector_kb.tokens import TokenCounter


class KnowledgeBaseService:
    """Upload, clear, query and health operations over the active backend."""

    def __init__(
        self,
        config: VectorKBConfig,
        embedding_client: EmbeddingClient | None = None,
        selector: BackendSelector | None = None,
        token_counter: TokenCounter | None = None,
    ):
        """Initialize the service.

        Args:
            config: Validated configuration
            embedding_client: Embedding client (built from config if None)
            selector: Backend selector (built from config if None)
            token_counter: Token estimator shared by uploads (tiktoken if None)
        """
        self.config = config
        self._embedding_client = embedding_client
        self.selector = selector or BackendSelector(config)
        self._store: VectorStore | None = None
        self._store_lock = asyncio.Lock()
        self._token_counter = token_counter

    @property
    def backend_name(self) -> str:
        return self.selector.backend_name

    @property
    def embedding_client(self) -> EmbeddingClient:
        if self._embedding_client is None:
            self._embedding_client = create_embedding_client(self.config.embedding)
        return self._embedding_client

    async def get_store(self) -> VectorStore:
        if self._store is not None:
            return self._store

        async with self._store_lock:
            if self._store is None:
                adapter = await self.selector.get_adapter()
                # Embedding client is built on first query; health and clear never need it
                self._store = VectorStore(
                    adapter,
                    self._embedding_client,
                    search=self.config.search,
                    timeouts=self.config.timeouts,
                    embedding_factory=lambda: self.embedding_client,
                )
            return self._store

    async def ingestion_pipeline(self) -> BatchIngestionPipeline:
        store = await self.get_store()
        if self._token_counter is None:
            self._token_counter = TokenCounter(self.config.ingestion.tokenizer)
        return BatchIngestionPipeline(
            store, self.embedding_client, self.config.ingestion, token_counter=self._token_counter
        )

    async def clear_pipeline(self) -> ClearOperationPipeline:
        return ClearOperationPipeline(await self.get_store())

    async def upload_data(
        self, file_path: str | Path | None = None, cancel_event: asyncio.Event | None = None
    ) -> IngestionStats:
        """Upload a knowledge file to the active backend."""
        pipeline = await self.ingestion_pipeline()
        return await pipeline.ingest(file_path, cancel_event)

    async def upload_avatar_data(
        self, file_path: str | Path | None = None, cancel_event: asyncio.Event | None = None
    ) -> IngestionStats:
        """Upload business avatar knowledge to the active backend."""
        pipeline = await self.ingestion_pipeline()
        return await pipeline.ingest_avatars(file_path, cancel_event)

    async def clear_data(self, command: ClearCommand | str = ClearCommand.CLEAR_ALL) -> ClearReport:
        pipeline = await self.clear_pipeline()
        return await pipeline.run(command)

    async def query_knowledge_base(self, text: str) -> list[str]:
        """Return the texts of relevant records. Never raises on backend failure."""
        try:
            store = await self.get_store()
        except Exception as e:
            logger.error(f"[{self.backend_name}] Could not initialize vector store: {e}")
            return []
        return await store.query(text)

    async def get_health_status(self) -> bool:
        return (await self.get_detailed_health_status()).is_healthy

    async def get_detailed_health_status(self) -> HealthStatus:
        """Probe the active backend. Never raises."""
        try:
            store = await self.get_store()
        except Exception as e:
            logger.error(f"[{self.backend_name}] Could not initialize vector store: {e}")
            return HealthStatus(
                backend_name=self.backend_name,
                is_healthy=False,
                message=f"Backend could not be initialized: {e}",
            )
        status = await store.detailed_health_check()
        logger.debug(f"[{status.backend_name}] {status.message}")
        return status
