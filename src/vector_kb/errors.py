"""Error taxonomy for the knowledge vector store.

The read path (queries, health checks) never lets these escape to callers;
the write path (ingestion, clearing) raises them so operators see failures.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


class VectorKBError(Exception):
    """Base class for all errors raised by vector_kb."""


class RecordValidationError(VectorKBError):
    """One or more knowledge items are malformed.

    All problems found in the input are collected in ``errors`` so a single
    run reports the complete list.
    """

    def __init__(self, errors: Sequence[str]):
        self.errors = list(errors)
        super().__init__(
            f"Invalid data structure in knowledge file. Found {len(self.errors)} errors."
        )


@dataclass(frozen=True)
class OversizedItem:
    """A knowledge item that exceeds the token budget."""

    index: int
    topic: str
    token_count: int
    max_tokens: int

    @property
    def tokens_over(self) -> int:
        return self.token_count - self.max_tokens


class SizeLimitError(VectorKBError):
    """At least one item exceeds the embeddable token budget."""

    def __init__(self, oversized: Sequence[OversizedItem], max_tokens: int):
        self.oversized = list(oversized)
        self.max_tokens = max_tokens
        super().__init__(
            f"{len(self.oversized)} item(s) exceed the limit of {max_tokens} tokens"
        )

    def guidance(self) -> list[str]:
        """Human-readable remediation, one line per entry."""
        lines = [
            f"item[{item.index}] '{item.topic}': {item.token_count} tokens "
            f"({item.tokens_over} over the limit)"
            for item in self.oversized
        ]
        lines += [
            f"Split long texts into smaller fragments (each below {self.max_tokens} tokens)",
            "Alternatively, shorten content while keeping essential information",
            f"Maximum tokens allowed: {self.max_tokens} "
            f"(approximately {round(self.max_tokens * 3.5)} characters)",
        ]
        return lines


class BackendUnavailableError(VectorKBError):
    """The vector backend failed its health check."""

    def __init__(self, backend_name: str, message: str = "Database is not responding"):
        self.backend_name = backend_name
        super().__init__(f"[{backend_name}] {message}")


class TransientIOError(VectorKBError):
    """A network call timed out or hit a rate limit."""


class UnknownBackendError(VectorKBError):
    """The configured backend name is not registered."""

    def __init__(self, name: str, available: Sequence[str]):
        self.name = name
        self.available = list(available)
        super().__init__(
            f"Unknown vector backend {name!r}. Expected one of: {', '.join(self.available)}"
        )


class EmbeddingProviderError(VectorKBError):
    """The embedding provider returned an error."""


class EmptyEmbeddingError(VectorKBError):
    """The embedding provider answered without producing a vector."""
