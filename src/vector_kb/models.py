"""Pydantic models for knowledge vector data structures.

All data flowing through the ingestion and query pipelines is validated
against these schemas, so malformed records fail before any network call.
"""

import hashlib
import math
import re
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_WHITESPACE = re.compile(r"\s+")


def content_hash(text: str) -> str:
    """SHA-256 of the text with surrounding whitespace stripped and runs collapsed.

    Two records whose text differs only in spacing hash identically.
    """
    normalized = _WHITESPACE.sub(" ", text).strip()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


class KnowledgeItem(BaseModel):
    """A raw knowledge record loaded from a knowledge file.

    Attributes:
        category: Classification of the record (e.g. "pricing")
        topic: Short topic line shown in logs and previews
        text: Content that gets embedded
        avatar_id: Optional avatar the record belongs to

    Extra fields in the file are kept and stored as metadata.
    """

    model_config = ConfigDict(extra="allow")

    category: str
    topic: str
    text: str
    avatar_id: str | None = None

    @field_validator("category", "topic", "text")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must be a non-empty string")
        return v

    @property
    def extra_fields(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class RecordMetadata(BaseModel):
    """Metadata stored next to every vector.

    Attributes:
        category: Knowledge category
        topic: Knowledge topic
        text: Original text (returned by queries)
        text_length: Character count of ``text``
        token_count: Estimated token count of ``text``
        avatar_id: Optional avatar the record belongs to
        content_hash: Hash used for duplicate detection
        created_at: ISO-8601 UTC creation timestamp
    """

    model_config = ConfigDict(extra="allow")

    category: str
    topic: str
    text: str
    text_length: int = Field(ge=0)
    token_count: int = Field(ge=0)
    avatar_id: str | None = None
    content_hash: str | None = None
    created_at: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Flat dict for the backend, without unset optional values."""
        return self.model_dump(exclude_none=True)


class VectorRecord(BaseModel):
    """A single embedded record ready for upsert.

    Attributes:
        id: Unique identifier (UUID4 string, accepted by every backend)
        embedding: Embedding vector
        metadata: Associated metadata
    """

    id: str = Field(min_length=1)
    embedding: list[float] = Field(min_length=1)
    metadata: RecordMetadata

    @field_validator("embedding")
    @classmethod
    def validate_vector_values(cls, v: list[float]) -> list[float]:
        """Ensure vector contains valid finite floats."""
        for i, val in enumerate(v):
            if not math.isfinite(val):
                raise ValueError(f"Vector contains non-finite value at index {i}: {val}")
        return v

    @classmethod
    def from_item(
        cls,
        record_id: str,
        item: KnowledgeItem,
        embedding: list[float],
        token_count: int,
        created_at: datetime | None = None,
    ) -> "VectorRecord":
        created = created_at or datetime.now(UTC)
        fields = {
            **item.extra_fields,
            "category": item.category,
            "topic": item.topic,
            "text": item.text,
            "text_length": len(item.text),
            "token_count": token_count,
            "avatar_id": item.avatar_id,
            "content_hash": content_hash(item.text),
            "created_at": created.isoformat(),
        }
        return cls(id=record_id, embedding=embedding, metadata=RecordMetadata(**fields))


class StoredVector(BaseModel):
    """A vector read back from a backend scan (values omitted)."""

    id: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class BatchResult(BaseModel):
    """Outcome of one ingestion batch."""

    index: int = Field(ge=0)
    size: int = Field(ge=0)
    written: int = Field(default=0, ge=0)
    attempts: int = Field(default=0, ge=0)
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class IngestionStats(BaseModel):
    """Accumulator for one ingestion run."""

    total_items: int = 0
    processed_items: int = 0
    successful_items: int = 0
    failed_items: int = 0
    batch_count: int = 0
    cancelled: bool = False
    batches: list[BatchResult] = Field(default_factory=list)

    @property
    def is_complete_success(self) -> bool:
        return (
            not self.cancelled
            and self.failed_items == 0
            and self.successful_items == self.total_items
        )


class HealthStatus(BaseModel):
    """Backend health snapshot, computed on demand."""

    backend_name: str
    is_healthy: bool
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ClearCommand(StrEnum):
    CLEAR_ALL = "clear-all"
    PREVIEW = "preview"
    DUPLICATES = "duplicates"


class ClearReport(BaseModel):
    """Result of a clear pipeline command."""

    command: ClearCommand
    success: bool
    message: str = ""
    total_vectors: int | None = None
    deleted_vectors: int = 0
    duplicate_vectors: int = 0
    duplicate_groups: int = 0
    storage_bytes: int | None = None
    categories: dict[str, int] = Field(default_factory=dict)
    elapsed_ms: float = 0.0
