"""Batch ingestion of knowledge files into the active vector store.

Workflow:
1. Load the knowledge file (JSON array of items)
2. Validate structure, collecting every problem before failing
3. Validate token lengths (still no network I/O at this point)
4. Check backend health
5. Embed and upsert batch by batch, with retry and a pause between batches
"""

import asyncio
import json
from pathlib import Path
from typing import Any
from uuid import uuid4

from loguru import logger
from pydantic import ValidationError

from vector_kb.config import IngestionConfig
from vector_kb.embedding import EmbeddingClient
from vector_kb.errors import BackendUnavailableError, RecordValidationError, SizeLimitError
from vector_kb.models import BatchResult, IngestionStats, KnowledgeItem, VectorRecord
from vector_kb.retry import RetryExhaustedError, Sleeper, retry_async
from vector_kb.store import VectorStore
from vector_kb.tokens import TokenCounter, check_token_lengths
from vector_kb.utils import partition

# Raised for malformed records; another attempt cannot succeed.
NON_RETRYABLE_ERRORS: tuple[type[Exception], ...] = (ValueError, ValidationError)


def load_knowledge_file(path: Path) -> list[Any]:
    """Read a knowledge file and return its raw items.

    Raises:
        FileNotFoundError: If the file does not exist
        RecordValidationError: If the file is not a JSON array
    """
    if not path.exists():
        raise FileNotFoundError(f"Knowledge file not found: {path}")

    logger.info(f"Loading knowledge data from: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise RecordValidationError([f"{path}: invalid JSON ({e})"]) from e

    if not isinstance(data, list):
        raise RecordValidationError(
            [f"{path}: expected a JSON array of items, got {type(data).__name__}"]
        )
    return data


def load_avatar_knowledge(path: Path) -> list[Any]:
    """Read a business avatar knowledge file and flatten it into raw items.

    The file holds ``{"avatars": [{id, name, position, company, category,
    chunks: [{id, category, topic, text}]}]}``. Every chunk becomes one item
    in the ``business_avatar`` category tagged with its avatar.
    """
    if not path.exists():
        raise FileNotFoundError(f"Business avatars knowledge file not found: {path}")

    logger.info(f"Loading business avatars data from: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise RecordValidationError([f"{path}: invalid JSON ({e})"]) from e

    avatars = data.get("avatars") if isinstance(data, dict) else None
    if not isinstance(avatars, list):
        raise RecordValidationError([f"{path}: invalid business avatars data structure"])

    items: list[Any] = []
    errors = []
    for a_idx, avatar in enumerate(avatars):
        if not isinstance(avatar, dict) or not isinstance(avatar.get("chunks"), list):
            errors.append(f"avatars[{a_idx}]: expected an object with a 'chunks' list")
            continue
        for chunk in avatar["chunks"]:
            if not isinstance(chunk, dict):
                items.append(chunk)  # reported by validate_items
                continue
            items.append(
                {
                    "category": "business_avatar",
                    "topic": chunk.get("topic"),
                    "text": chunk.get("text"),
                    "avatar_id": avatar.get("id"),
                    "avatar_name": avatar.get("name"),
                    "avatar_position": avatar.get("position"),
                    "avatar_company": avatar.get("company"),
                    "avatar_category": avatar.get("category"),
                    "chunk_id": chunk.get("id"),
                    "chunk_category": chunk.get("category"),
                }
            )

    if errors:
        raise RecordValidationError(errors)

    logger.info(f"Loaded {len(avatars)} business avatars with {len(items)} knowledge chunks")
    return items


def validate_items(raw_items: list[Any]) -> list[KnowledgeItem]:
    """Validate every raw item and return them as KnowledgeItems.

    Raises:
        RecordValidationError: With one message per problem across the whole input
    """
    items = []
    errors = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            errors.append(f"item[{index}]: expected an object, got {type(raw).__name__}")
            continue
        try:
            items.append(KnowledgeItem.model_validate(raw))
        except ValidationError as e:
            for err in e.errors():
                field = ".".join(str(part) for part in err["loc"]) or "item"
                errors.append(f"item[{index}].{field}: {err['msg']}")

    if errors:
        raise RecordValidationError(errors)
    return items


def print_summary(stats: IngestionStats, backend_name: str) -> None:
    """Log per-batch and aggregate results of an ingestion run."""
    logger.info("=" * 60)
    logger.info(f"Upload summary for {backend_name}")
    logger.info("=" * 60)
    for batch in stats.batches:
        if batch.succeeded:
            logger.info(
                f"  Batch {batch.index + 1}: {batch.written}/{batch.size} vectors "
                f"({batch.attempts} attempt(s))"
            )
        else:
            logger.error(f"  Batch {batch.index + 1}: FAILED ({batch.size} items) - {batch.error}")
    logger.info(f"Total items:      {stats.total_items}")
    logger.info(f"Processed items:  {stats.processed_items}")
    logger.info(f"Successful items: {stats.successful_items}")
    logger.info(f"Failed items:     {stats.failed_items}")
    logger.info(f"Batches:          {stats.batch_count}")

    if stats.cancelled:
        logger.warning(
            f"Upload cancelled: {stats.total_items - stats.processed_items} items not processed"
        )
    elif stats.failed_items:
        logger.warning(f"Partial failure: {stats.failed_items} items were not uploaded")
    else:
        logger.success("All items uploaded successfully")


class BatchIngestionPipeline:
    """Loads, validates, embeds and upserts knowledge items.

    Batches are processed strictly one after another with a configurable
    pause in between, which keeps both the embedding provider and the
    vector backend under their rate limits.

    Precondition: do not run concurrently with a clear operation on the same
    collection.
    """

    def __init__(
        self,
        store: VectorStore,
        embedding_client: EmbeddingClient,
        config: IngestionConfig | None = None,
        token_counter: TokenCounter | None = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        """Initialize the pipeline.

        Args:
            store: Vector store wrapping the active backend
            embedding_client: Client used to embed each batch
            config: Batch size, token budget, delays and retry policy
            token_counter: Token estimator (built from config if None)
            sleep: Awaitable used for retry and inter-batch delays
        """
        self.store = store
        self.embedding_client = embedding_client
        self.config = config or IngestionConfig()
        self.token_counter = token_counter or TokenCounter(self.config.tokenizer)
        self._sleep = sleep

    async def ingest(
        self, file_path: str | Path | None = None, cancel_event: asyncio.Event | None = None
    ) -> IngestionStats:
        """Upload a knowledge file (the configured default when ``file_path`` is None)."""
        path = Path(file_path or self.config.knowledge_file)
        return await self.ingest_raw(load_knowledge_file(path), cancel_event)

    async def ingest_avatars(
        self, file_path: str | Path | None = None, cancel_event: asyncio.Event | None = None
    ) -> IngestionStats:
        """Upload a business avatar knowledge file."""
        path = Path(file_path or self.config.avatar_knowledge_file)
        return await self.ingest_raw(load_avatar_knowledge(path), cancel_event)

    async def ingest_raw(
        self, raw_items: list[Any], cancel_event: asyncio.Event | None = None
    ) -> IngestionStats:
        """Validate and upload already-loaded raw items.

        Raises:
            RecordValidationError: If any item is malformed
            SizeLimitError: If any item exceeds the token budget
            BackendUnavailableError: If the backend health check fails
        """
        backend_name = self.store.backend_name
        logger.info(f"Starting {backend_name} data upload process")

        items = validate_items(raw_items)
        logger.info(f"Loaded {len(items)} valid records from file")

        logger.info("Validating text lengths...")
        report = check_token_lengths(
            items, self.token_counter, self.config.max_tokens_per_item
        )
        if not report.is_valid:
            raise SizeLimitError(report.oversized, self.config.max_tokens_per_item)
        logger.info("All texts fit within token limit")

        stats = IngestionStats(total_items=len(items))
        if not items:
            logger.info("Knowledge file is empty, nothing to upload")
            print_summary(stats, backend_name)
            return stats

        if not await self.store.health_check():
            raise BackendUnavailableError(backend_name)

        batches = partition(list(zip(items, report.counts, strict=True)), self.config.batch_size)
        stats.batch_count = len(batches)

        for batch_index, batch in enumerate(batches):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Upload cancelled before batch {batch_index + 1}/{len(batches)}")
                stats.cancelled = True
                break

            result = await self._process_batch(batch_index, batch, len(batches))
            stats.batches.append(result)
            stats.processed_items += result.size
            stats.successful_items += result.written
            stats.failed_items += result.size - result.written

            if batch_index < len(batches) - 1 and self.config.batch_delay_seconds > 0:
                logger.debug(f"Waiting {self.config.batch_delay_seconds}s before next batch")
                await self._sleep(self.config.batch_delay_seconds)

        print_summary(stats, backend_name)
        return stats

    async def _process_batch(
        self, batch_index: int, batch: list[tuple[KnowledgeItem, int]], batch_total: int
    ) -> BatchResult:
        backend_name = self.store.backend_name
        label = f"batch {batch_index + 1}/{batch_total}"
        result = BatchResult(index=batch_index, size=len(batch))
        logger.info(f"Processing {label} ({len(batch)} items)")

        texts = [item.text for item, _ in batch]
        try:
            embeddings = await self.store.call_with_timeout(
                self.embedding_client.embed_batch(texts), "batch embedding"
            )
            records = [
                VectorRecord.from_item(str(uuid4()), item, embedding, tokens)
                for (item, tokens), embedding in zip(batch, embeddings, strict=True)
            ]
        except Exception as e:
            logger.error(f"  Failed to generate embeddings for {label}: {e}")
            result.error = f"embedding failed: {e}"
            return result

        async def upload() -> int:
            result.attempts += 1
            return await self.store.upsert(records)

        try:
            written = await retry_async(
                upload,
                self.config.retry,
                f"{label} upload to {backend_name}",
                give_up_on=NON_RETRYABLE_ERRORS,
                sleep=self._sleep,
            )
        except RetryExhaustedError as e:
            logger.error(f"  Failed to upload {label}: {e.last_error}")
            result.error = str(e.last_error)
            return result
        except NON_RETRYABLE_ERRORS as e:
            logger.error(f"  Rejected {label}: {e}")
            result.error = f"invalid records: {e}"
            return result

        result.written = min(written, len(batch))
        logger.info(f"  {label} sent to {backend_name} ({result.written} vectors)")
        return result
