"""
Related-note retrieval over the chunk index.

A query is embedded once, the index is over-fetched so that per-note
deduplication and filtering can still fill the requested number of
results, and the rows are walked closest first:

1. rows of the excluded note are dropped (compared in NFC form)
2. rows whose note file no longer exists are dropped and remembered
3. only the closest row of each note is kept
4. near-duplicates at or above the similarity ceiling are dropped

Rows for missing notes ("ghosts") are purged in the background after the
query returns.
"""

import asyncio
import logging
import unicodedata
from typing import Awaitable, Callable

from .errors import GhostIndexDetected
from .protocol import NoteStoreProtocol, VectorStoreProtocol
from .providers.base import EmbeddingProvider
from .tasks import BackgroundTasks
from .types import SearchResult, normalize_id

logger = logging.getLogger(__name__)


class RetrievalService:
    """Answers similarity queries against the vector index."""

    def __init__(
        self,
        runtime: EmbeddingProvider,
        store: VectorStoreProtocol,
        note_store: NoteStoreProtocol,
        tasks: BackgroundTasks,
        purge: Callable[[str], Awaitable[None]],
        *,
        default_limit: int = 5,
        overfetch_factor: int = 5,
        similarity_ceiling: float = 0.995,
    ):
        self._runtime = runtime
        self._store = store
        self._note_store = note_store
        self._tasks = tasks
        self._purge = purge
        self.default_limit = default_limit
        self.overfetch_factor = overfetch_factor
        self.similarity_ceiling = similarity_ceiling

    async def search_similar_notes(
        self,
        query_text: str,
        exclude_id: str | None = None,
        limit: int | None = None,
    ) -> list[SearchResult]:
        """
        Find notes related to a text, best match first.

        Returns an empty list when the index is not open yet.

        Raises:
            ModelNotLoaded, EmbeddingError, StoreIOError
        """
        if not self._store.is_ready:
            return []
        target = self.default_limit if limit is None else limit
        if target <= 0:
            return []

        exclude = normalize_id(exclude_id) if exclude_id else None
        vector = await asyncio.to_thread(self._runtime.create_embedding, query_text)
        rows = await asyncio.to_thread(
            self._store.search, vector, target * self.overfetch_factor, exclude,
        )

        results: list[SearchResult] = []
        seen: set[str] = set()
        exists: dict[str, bool] = {}
        ghosts: set[str] = set()

        for row in rows:
            note_id = unicodedata.normalize("NFC", row.note_id)
            if not note_id or note_id == exclude:
                continue
            if note_id not in exists:
                exists[note_id] = await asyncio.to_thread(self._note_store.note_exists, note_id)
            if not exists[note_id]:
                ghosts.add(note_id)
                continue
            if note_id in seen:
                continue
            seen.add(note_id)
            similarity = row.similarity
            if similarity >= self.similarity_ceiling:
                continue
            results.append(SearchResult(
                id=note_id,
                snippet=row.text,
                title=row.title,
                similarity=round(similarity * 100),
            ))
            if len(results) >= target:
                break

        if ghosts:
            self._schedule_purge(ghosts)
        return results

    def _schedule_purge(self, ghosts: set[str]) -> None:
        signal = GhostIndexDetected(ghosts)
        logger.info("%s", signal)
        self._tasks.spawn(self._purge_ghosts(signal.note_ids), name="ghost-purge")

    async def _purge_ghosts(self, note_ids: list[str]) -> None:
        removed = 0
        for note_id in note_ids:
            # the note may have been restored and reindexed since the query
            if await asyncio.to_thread(self._note_store.note_exists, note_id):
                logger.debug("Note %s is back, keeping its rows", note_id)
                continue
            await self._purge(note_id)
            removed += 1
        logger.info("Removed index rows for %d missing notes", removed)
