"""Vector store adapters.

One adapter per backend; all share the ``BackendAdapter`` contract.
"""

from vector_kb.backends.base import MAX_REQUEST_SIZE, BackendAdapter, CollectionState
from vector_kb.backends.pinecone import PineconeAdapter
from vector_kb.backends.qdrant import QdrantAdapter

__all__ = [
    "MAX_REQUEST_SIZE",
    "BackendAdapter",
    "CollectionState",
    "PineconeAdapter",
    "QdrantAdapter",
]
