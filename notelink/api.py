"""
Core API for the note index.

NoteIndex owns the embedding runtime, the vector store, the note store,
the change watcher and the background task supervisor for one
application data directory. It is the single object callers interact with.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from .config import IndexConfig, load_or_create_config, save_config
from .indexer import NoteIndexer, ReindexStats
from .notes import FileNoteStore
from .paths import get_app_dir
from .protocol import NoteStoreProtocol, VectorStoreProtocol
from .providers.base import EmbeddingProvider, get_registry
from .retrieval import RetrievalService
from .store import ChromaStore
from .tasks import BackgroundTasks
from .types import ModelStatus, SearchResult, normalize_id
from .watcher import ChangeEvent, ChangeKind, ChangeWatcher

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT = 10.0

RefreshListener = Callable[[Optional[str]], None]


class NoteIndex:
    """
    Semantic index over a directory of Markdown notes.

    Example:
        async with NoteIndex() as index:
            await index.start()
            related = await index.find_related("projects/roadmap.md")
    """

    def __init__(
        self,
        app_dir: Optional[str | Path] = None,
        *,
        config: Optional[IndexConfig] = None,
        runtime: Optional[EmbeddingProvider] = None,
        vector_store: Optional[VectorStoreProtocol] = None,
        note_store: Optional[NoteStoreProtocol] = None,
        observer_factory: Optional[Callable[[], object]] = None,
        ops_log: bool = True,
    ) -> None:
        """
        Open the index for an application data directory.

        Nothing heavy happens here: the model is loaded by initialize().

        Args:
            app_dir: Data directory. Defaults to NOTELINK_HOME or ~/.notelink.
            config: Pre-loaded IndexConfig (skips config file discovery).
            runtime: Injected embedding provider (skips registry lookup).
            vector_store: Injected vector store (skips ChromaDB).
            note_store: Injected note store (skips the file-backed store).
            observer_factory: Watchdog observer class or factory for the watcher.
            ops_log: Write the rotating operations log in the data directory.
        """
        if config is not None:
            self._config = config
        else:
            path = Path(app_dir).expanduser().resolve() if app_dir else get_app_dir()
            self._config = load_or_create_config(path)

        self._ops_log_handler = None
        if ops_log:
            from .logging_config import configure_ops_log
            self._ops_log_handler = configure_ops_log(self._config.path)

        if runtime is None:
            runtime = get_registry().create_embedding(
                self._config.embedding.name,
                self._config.embedding.params,
            )
        self._runtime = runtime
        self._store = vector_store if vector_store is not None else ChromaStore(self._config.store_path)
        self._note_store = note_store if note_store is not None else FileNoteStore(self._config.notes_dir)

        self._tasks = BackgroundTasks()
        self._indexer = NoteIndexer(
            self._runtime,
            self._store,
            chunk_size=self._config.chunk_size,
            chunk_overlap=self._config.chunk_overlap,
        )
        self._retrieval = RetrievalService(
            self._runtime,
            self._store,
            self._note_store,
            self._tasks,
            self.delete_note_index,
            default_limit=self._config.search_limit,
            overfetch_factor=self._config.overfetch_factor,
            similarity_ceiling=self._config.similarity_ceiling,
        )
        watcher_kwargs = {}
        if observer_factory is not None:
            watcher_kwargs["observer_factory"] = observer_factory
        self._watcher = ChangeWatcher(
            self._config.notes_dir,
            self._on_change,
            quiet_period=self._config.watch_quiet_period,
            poll_interval=self._config.watch_poll_interval,
            queue_size=self._config.watch_queue_size,
            **watcher_kwargs,
        )

        self._model_status = ModelStatus.NOT_LOADED
        self._refresh_listeners: list[RefreshListener] = []

    @property
    def config(self) -> IndexConfig:
        return self._config

    @property
    def model_status(self) -> ModelStatus:
        return self._model_status

    @property
    def notes_dir(self) -> Path:
        return self._config.notes_dir

    @property
    def note_store(self) -> NoteStoreProtocol:
        return self._note_store

    @property
    def watcher(self) -> ChangeWatcher:
        return self._watcher

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self, model_path: Optional[str | Path] = None) -> bool:
        """
        Load the embedding model and open the index table.

        Returns False, leaving search disabled, when the model does not
        exist on disk.

        Raises:
            ModelLoadError: If the model exists but cannot be loaded
            StoreIOError: If the index cannot be opened
        """
        path = self._config.resolve_model_path(model_path)
        if not path.exists():
            self._model_status = ModelStatus.NOT_FOUND
            logger.warning("Embedding model not found at %s; semantic search disabled", path)
            return False

        self._model_status = ModelStatus.LOADING
        try:
            await asyncio.to_thread(self._runtime.load, path)
            await asyncio.to_thread(
                self._store.ensure_table, self._config.table_name, self._runtime.dimension,
            )
        except Exception as e:
            self._model_status = ModelStatus.ERROR
            logger.error("Initialization failed: %s", e)
            raise
        self._model_status = ModelStatus.READY
        return True

    async def start(self, model_path: Optional[str | Path] = None) -> bool:
        """Initialize, reindex every note, then watch for changes."""
        if not await self.initialize(model_path):
            return False
        await self.reindex_all()
        await self.start_watching()
        return True

    async def start_watching(self) -> bool:
        return await self._watcher.start()

    async def drain(self) -> None:
        """Wait for background work such as ghost cleanup."""
        await self._tasks.drain()

    async def close(self, timeout: float = SHUTDOWN_TIMEOUT) -> None:
        """
        Stop watching, finish background work and release the model.

        Background work still running after `timeout` seconds is cancelled.
        """
        await self._watcher.stop()
        try:
            await asyncio.wait_for(self._tasks.drain(), timeout)
        except asyncio.TimeoutError:
            logger.warning("Cancelling %d background tasks still running at close", len(self._tasks))
            await self._tasks.cancel_all()
        self._runtime.dispose()
        self._store.close()
        self._model_status = ModelStatus.NOT_LOADED
        if self._ops_log_handler is not None:
            logging.getLogger("notelink").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    async def __aenter__(self) -> "NoteIndex":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Indexing
    # -------------------------------------------------------------------------

    async def index_note(self, note_id: str, raw_content: str) -> Optional[int]:
        """
        (Re)index one note.

        Failures are logged, not raised. Returns the number of chunks
        written, or None when indexing failed.
        """
        try:
            return await self._indexer.index_note(note_id, raw_content)
        except Exception as e:
            logger.warning("Failed to index %s: %s", note_id, e)
            return None

    async def delete_note_index(self, note_id: str) -> None:
        """Remove one note from the index. Failures are logged, not raised."""
        try:
            await self._indexer.delete_note_index(note_id)
        except Exception as e:
            logger.warning("Failed to remove %s from index: %s", note_id, e)

    async def reindex_all(self) -> ReindexStats:
        """Reindex every note under the current root, one at a time."""
        notes = await asyncio.to_thread(self._note_store.load_all_notes)
        logger.info("Reindexing %d notes from %s", len(notes), self._note_store.root)
        stats = await self._indexer.reindex_all(notes)
        self._notify_refresh(None)
        return stats

    async def set_note_root(self, notes_dir: str | Path, *, persist: bool = False) -> None:
        """
        Point the index at a different note root.

        The watcher on the old root is fully closed before anything else
        happens. When the model is ready the new root is reindexed and
        watched.
        """
        notes_dir = Path(notes_dir).expanduser()
        await self._watcher.stop()
        self._config.notes_dir = notes_dir
        self._note_store.root = notes_dir
        if persist:
            save_config(self._config)
        if self._model_status is ModelStatus.READY:
            await self.reindex_all()
            await self._watcher.restart(notes_dir)
        else:
            self._watcher.root = notes_dir

    async def _on_change(self, event: ChangeEvent) -> None:
        note_id = self._note_store.note_id_for(event.path)
        if note_id is None:
            return
        if event.kind is ChangeKind.REMOVED:
            await self.delete_note_index(note_id)
        else:
            try:
                raw = await asyncio.to_thread(event.path.read_text, encoding="utf-8")
            except FileNotFoundError:
                logger.debug("Note disappeared before indexing: %s", event.path)
                return
            await self.index_note(note_id, raw)
        self._notify_refresh(note_id)

    # -------------------------------------------------------------------------
    # Retrieval
    # -------------------------------------------------------------------------

    async def search_similar_notes(
        self,
        query_text: str,
        exclude_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[SearchResult]:
        """Notes related to a text, closest first. Errors propagate."""
        return await self._retrieval.search_similar_notes(query_text, exclude_id, limit)

    async def find_related(self, note_id: str, limit: Optional[int] = None) -> list[SearchResult]:
        """
        Notes related to an existing note, excluding the note itself.

        Raises:
            FileNotFoundError: If the note does not exist
        """
        note_id = normalize_id(note_id)
        note = await asyncio.to_thread(self._note_store.read_note, note_id)
        if note is None:
            raise FileNotFoundError(f"Note not found: {note_id}")
        if not note.body.strip():
            return []
        return await self.search_similar_notes(note.body, exclude_id=note.id, limit=limit)

    # -------------------------------------------------------------------------
    # Observers and status
    # -------------------------------------------------------------------------

    def add_refresh_listener(self, listener: RefreshListener) -> None:
        """Register a callable invoked with a note ID (None for bulk) after index changes."""
        self._refresh_listeners.append(listener)

    def _notify_refresh(self, note_id: Optional[str]) -> None:
        for listener in list(self._refresh_listeners):
            try:
                listener(note_id)
            except Exception as e:
                logger.warning("Refresh listener failed: %s", e)

    def status(self) -> dict:
        """Snapshot of model, index and watcher state."""
        rows = None
        if self._store.is_ready:
            try:
                rows = self._store.count()
            except Exception as e:
                logger.debug("Could not count index rows: %s", e)
        return {
            "model_status": self._model_status.value,
            "model_path": str(self._runtime.model_path) if self._runtime.model_path else None,
            "app_dir": str(self._config.path),
            "notes_dir": str(self._config.notes_dir),
            "table": self._config.table_name,
            "indexed_rows": rows,
            "watcher": self._watcher.state.value,
            "background_tasks": len(self._tasks),
        }
