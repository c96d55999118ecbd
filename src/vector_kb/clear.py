"""Destructive and maintenance commands for the active vector store.

Commands:
    clear-all   Delete every vector
    preview     Report statistics without deleting anything
    duplicates  Keep the newest vector per content hash, delete the rest

Every command is preceded by a backend health check and followed by the
``post_operation_cleanup`` hook. Precondition: do not run concurrently with
an ingestion on the same collection.
"""

import json
import time
from collections import Counter
from dataclasses import dataclass
from datetime import UTC, datetime

from loguru import logger

from vector_kb.models import ClearCommand, ClearReport, StoredVector, content_hash
from vector_kb.store import VectorStore

_OLDEST = datetime.min.replace(tzinfo=UTC)


def vector_hash(vector: StoredVector) -> str | None:
    """Content hash of a stored vector.

    Uses the stored ``content_hash`` when present, otherwise hashes the stored
    text. Vectors without either cannot be grouped and return None.
    """
    stored = vector.metadata.get("content_hash")
    if isinstance(stored, str) and stored:
        return stored
    text = vector.metadata.get("text")
    if isinstance(text, str) and text.strip():
        return content_hash(text)
    return None


def _created_at(vector: StoredVector) -> datetime:
    raw = vector.metadata.get("created_at")
    if not isinstance(raw, str):
        return _OLDEST
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return _OLDEST
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


@dataclass(frozen=True)
class DuplicateGroup:
    """Vectors sharing one content hash."""

    content_hash: str
    keep_id: str
    remove_ids: list[str]


def find_duplicates(vectors: list[StoredVector]) -> list[DuplicateGroup]:
    """Group vectors by content hash and pick the survivor of each group.

    The newest ``created_at`` wins; vectors without a timestamp count as
    oldest, and ties are broken by the larger id so the result is stable.
    Only groups with more than one vector are returned.
    """
    groups: dict[str, list[StoredVector]] = {}
    for vector in vectors:
        key = vector_hash(vector)
        if key is not None:
            groups.setdefault(key, []).append(vector)

    duplicates = []
    for key, members in groups.items():
        if len(members) < 2:
            continue
        ordered = sorted(members, key=lambda v: (_created_at(v), v.id), reverse=True)
        duplicates.append(
            DuplicateGroup(
                content_hash=key,
                keep_id=ordered[0].id,
                remove_ids=[v.id for v in ordered[1:]],
            )
        )
    return duplicates


class ClearOperationPipeline:
    """Runs clear commands against a vector store."""

    def __init__(self, store: VectorStore, scan_page_size: int = 100):
        self.store = store
        self.scan_page_size = scan_page_size

    async def run(self, command: ClearCommand | str) -> ClearReport:
        """Execute a clear command.

        Returns a failed report without touching data when the pre-check
        fails. Errors raised by the command itself propagate.
        """
        command = ClearCommand(command)
        backend_name = self.store.backend_name
        logger.info(f"Starting {backend_name} {command} operation")

        if not await self.pre_check():
            logger.error(f"{backend_name} database health check failed, aborting {command}")
            return ClearReport(
                command=command,
                success=False,
                message=f"{backend_name} database health check failed",
            )

        start = time.perf_counter()
        try:
            if command is ClearCommand.CLEAR_ALL:
                report = await self.clear_all()
            elif command is ClearCommand.PREVIEW:
                report = await self.preview()
            else:
                report = await self.remove_duplicates()
            report.elapsed_ms = (time.perf_counter() - start) * 1000
            logger.info(f"Operation completed in {report.elapsed_ms:.0f}ms")
            return report
        finally:
            await self.post_operation_cleanup(command)

    async def pre_check(self) -> bool:
        is_healthy = await self.store.health_check()
        if is_healthy:
            logger.info(f"{self.store.backend_name} database is healthy")
        return is_healthy

    async def post_operation_cleanup(self, command: ClearCommand) -> None:
        """Hook for backend-specific bookkeeping after a command."""
        logger.debug(f"{self.store.backend_name} cleanup after {command} completed")

    async def clear_all(self) -> ClearReport:
        logger.info("Deleting all vectors from collection...")
        success = await self.store.delete_all()
        if success:
            logger.success(f"Successfully cleared {self.store.backend_name} index.")
            logger.info("Index is now ready for new data loading.")
        return ClearReport(
            command=ClearCommand.CLEAR_ALL,
            success=success,
            message="All vectors deleted" if success else "Delete all reported failure",
        )

    async def _scan_all(self) -> list[StoredVector]:
        return [v async for v in self.store.scan(self.scan_page_size)]

    async def preview(self) -> ClearReport:
        """Collect statistics without deleting anything.

        Storage is estimated as 4 bytes per vector component plus the JSON
        size of each metadata payload.
        """
        logger.info("Preview mode - data will not be deleted")

        total = await self.store.count()
        vectors = await self._scan_all()

        categories = Counter(str(v.metadata.get("category", "unknown")) for v in vectors)
        metadata_bytes = sum(
            len(json.dumps(v.metadata, ensure_ascii=False, default=str).encode("utf-8"))
            for v in vectors
        )
        storage_bytes = total * self.store.adapter.dimensions * 4 + metadata_bytes
        duplicates = find_duplicates(vectors)
        duplicate_vectors = sum(len(g.remove_ids) for g in duplicates)

        logger.info(f"Total vectors:      {total}")
        logger.info(f"Estimated storage:  {storage_bytes / (1024 * 1024):.2f} MB")
        logger.info(
            f"Duplicate content:  {duplicate_vectors} redundant vectors "
            f"in {len(duplicates)} groups"
        )
        for category, count in categories.most_common():
            logger.info(f"  {category}: {count}")

        return ClearReport(
            command=ClearCommand.PREVIEW,
            success=True,
            message="Preview only, nothing deleted",
            total_vectors=total,
            duplicate_vectors=duplicate_vectors,
            duplicate_groups=len(duplicates),
            storage_bytes=storage_bytes,
            categories=dict(categories),
        )

    async def remove_duplicates(self) -> ClearReport:
        logger.info(f"Starting duplicate removal for {self.store.backend_name}")

        vectors = await self._scan_all()
        duplicates = find_duplicates(vectors)
        to_delete = [vector_id for group in duplicates for vector_id in group.remove_ids]

        if to_delete:
            await self.store.delete_by_ids(to_delete)
            logger.success(
                f"Removed {len(to_delete)} duplicate vectors from {len(duplicates)} groups"
            )
        else:
            logger.info("No duplicate content found")

        return ClearReport(
            command=ClearCommand.DUPLICATES,
            success=True,
            message=f"Removed {len(to_delete)} duplicate vectors",
            total_vectors=len(vectors),
            deleted_vectors=len(to_delete),
            duplicate_vectors=len(to_delete),
            duplicate_groups=len(duplicates),
        )
