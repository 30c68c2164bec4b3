"""
Indexing engine: turns note content into chunk vectors in the index.

Indexing a note replaces all of its rows. Old rows are deleted first,
then the body is chunked, each chunk embedded in order, and the new rows
written in a single add. An embedding failure part way through leaves the
note with no rows until its next successful index. A full reindex also
removes the rows of notes that are gone from disk.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable

from . import frontmatter
from .chunker import DEFAULT_OVERLAP, DEFAULT_SIZE, build_chunks
from .protocol import VectorStoreProtocol
from .providers.base import EmbeddingProvider
from .types import Note, VectorRecord, normalize_id

logger = logging.getLogger(__name__)


@dataclass
class ReindexStats:
    """Outcome of a full reindex."""
    processed: int = 0
    indexed: int = 0
    failed: int = 0
    chunks: int = 0
    removed: int = 0

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "indexed": self.indexed,
            "failed": self.failed,
            "chunks": self.chunks,
            "removed": self.removed,
        }


class NoteIndexer:
    """Writes note chunks into the vector store."""

    def __init__(
        self,
        runtime: EmbeddingProvider,
        store: VectorStoreProtocol,
        chunk_size: int = DEFAULT_SIZE,
        chunk_overlap: int = DEFAULT_OVERLAP,
    ):
        self._runtime = runtime
        self._store = store
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap

    async def index_note(self, note_id: str, raw_content: str) -> int:
        """
        Replace the index rows of one note with fresh ones.

        Returns:
            Number of chunks written

        Raises:
            ModelNotLoaded, EmbeddingError, StoreIOError, IndexNotReady
        """
        note_id = normalize_id(note_id)
        await asyncio.to_thread(self._store.delete_where, note_id)

        metadata, body = frontmatter.decode(raw_content)
        if not body.strip():
            logger.debug("Note %s has an empty body, nothing to index", note_id)
            return 0

        title = frontmatter.derive_title(metadata, body, note_id)
        chunks = build_chunks(note_id, body, title, self._chunk_size, self._chunk_overlap)

        records = []
        for chunk in chunks:
            vector = await asyncio.to_thread(self._runtime.create_embedding, chunk.text)
            records.append(VectorRecord.from_chunk(chunk, vector))

        await asyncio.to_thread(self._store.add, records)
        logger.debug("Indexed %s: %d chunks", note_id, len(records))
        return len(records)

    async def delete_note_index(self, note_id: str) -> None:
        """Remove every row of a note. Idempotent."""
        await asyncio.to_thread(self._store.delete_where, normalize_id(note_id))

    async def reindex_all(self, notes: Iterable[Note]) -> ReindexStats:
        """
        Index notes one at a time, in order.

        A failing note is logged and skipped; the rest still run. Rows of
        notes not in `notes` are removed afterwards.
        """
        stats = ReindexStats()
        seen: set[str] = set()
        for note in notes:
            stats.processed += 1
            seen.add(normalize_id(note.id))
            try:
                stats.chunks += await self.index_note(note.id, note.raw)
                stats.indexed += 1
            except Exception as e:
                stats.failed += 1
                logger.warning("Failed to index %s: %s", note.id, e)
        stats.removed = await self._remove_stale(seen)
        logger.info(
            "Reindex complete: %d notes, %d chunks, %d failed, %d stale removed",
            stats.indexed, stats.chunks, stats.failed, stats.removed,
        )
        return stats

    async def _remove_stale(self, keep: set[str]) -> int:
        """Delete rows of notes that are no longer on disk."""
        try:
            indexed = await asyncio.to_thread(self._store.list_note_ids)
        except Exception as e:
            logger.warning("Could not list indexed notes: %s", e)
            return 0
        removed = 0
        for note_id in sorted(indexed):
            if normalize_id(note_id) in keep:
                continue
            try:
                await asyncio.to_thread(self._store.delete_where, note_id)
                removed += 1
            except Exception as e:
                logger.warning("Failed to remove stale rows for %s: %s", note_id, e)
        return removed
