"""Knowledge base vector store with interchangeable Qdrant and Pinecone backends.

Architecture:
    - config: Hydra/OmegaConf configuration validated by pydantic
    - embedding: OpenAI embedding client with retry
    - backends: One adapter per vector database (Qdrant, Pinecone)
    - store: Backend-agnostic query, write and health operations
    - selector: Memoized choice of the active backend
    - ingestion: Validated, token-checked batch uploads
    - clear: clear-all, preview and duplicate removal
    - service: Facade used by the CLI

Usage:
    >>> from vector_kb import KnowledgeBaseService, load_config
    >>> service = KnowledgeBaseService(load_config())
    >>> texts = await service.query_knowledge_base("refund policy")
"""

__version__ = "0.1.0"

from vector_kb.config import VectorKBConfig, load_config
from vector_kb.models import (
    ClearCommand,
    ClearReport,
    HealthStatus,
    IngestionStats,
    KnowledgeItem,
    VectorRecord,
)
from vector_kb.service import KnowledgeBaseService

__all__ = [
    "ClearCommand",
    "ClearReport",
    "HealthStatus",
    "IngestionStats",
    "KnowledgeBaseService",
    "KnowledgeItem",
    "VectorKBConfig",
    "VectorRecord",
    "load_config",
]
