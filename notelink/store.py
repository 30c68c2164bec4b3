"""
Vector index backed by ChromaDB.

One collection holds every chunk vector. Rows carry the note ID, chunk
position, chunk text and note title as metadata/document, and are
addressed as "{note_id}#{chunk_id}". The collection uses cosine space and
records its vector width in its metadata when created; the width never
changes afterwards.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from .errors import IndexNotReady, StoreIOError
from .types import VectorRecord

logger = logging.getLogger(__name__)

PLACEHOLDER_ID = "__init__"


@dataclass
class StoreResult:
    """One row returned by a vector search, closest first."""
    note_id: str
    chunk_id: int
    text: str
    title: str
    distance: float

    @property
    def similarity(self) -> float:
        """Cosine similarity clamped to [0, 1]."""
        return max(0.0, 1.0 - self.distance)


@contextmanager
def _wrap_errors(operation: str) -> Iterator[None]:
    """Translate backend failures into StoreIOError."""
    try:
        yield
    except (IndexNotReady, StoreIOError):
        raise
    except Exception as e:
        raise StoreIOError(f"Vector store {operation} failed: {e}") from e


class ChromaStore:
    """
    Persistent vector index in a local ChromaDB directory.

    Calls are serialized with a lock, so the store can be used from
    worker threads (asyncio.to_thread) without interleaving writes.
    """

    def __init__(self, store_path: Path):
        self._store_path = Path(store_path)
        self._client = None
        self._collection = None
        self._table_name: str | None = None
        self._dimension: int | None = None
        self._lock = threading.Lock()

    @property
    def store_path(self) -> Path:
        return self._store_path

    @property
    def is_ready(self) -> bool:
        return self._collection is not None

    @property
    def dimension(self) -> int | None:
        return self._dimension

    def open(self) -> None:
        """Create the storage directory and connect. Idempotent."""
        if self._client is not None:
            return
        with _wrap_errors("open"):
            import chromadb
            from chromadb.config import Settings

            self._store_path.mkdir(parents=True, exist_ok=True)
            self._client = chromadb.PersistentClient(
                path=str(self._store_path),
                settings=Settings(anonymized_telemetry=False, allow_reset=False),
            )
        logger.debug("Opened vector store at %s", self._store_path)

    def ensure_table(self, name: str, dimension: int) -> None:
        """
        Open the named table, creating it with the given vector width.

        A new table gets one placeholder row that is removed immediately,
        fixing its width before any real data arrives.

        Raises:
            StoreIOError: If the existing table has a different width
        """
        self.open()
        with self._lock, _wrap_errors("ensure_table"):
            existing = {getattr(c, "name", c) for c in self._client.list_collections()}
            if name in existing:
                collection = self._client.get_collection(name, embedding_function=None)
                stored = (collection.metadata or {}).get("dimension")
                if stored is None:
                    stored = self._probe_dimension(collection)
                if stored is not None and int(stored) != dimension:
                    raise StoreIOError(
                        f"Index table '{name}' holds {stored}-dimensional vectors, "
                        f"model produces {dimension}. Delete {self._store_path} to rebuild."
                    )
                logger.debug("Opened index table %s (%d rows)", name, collection.count())
            else:
                collection = self._client.create_collection(
                    name,
                    metadata={"hnsw:space": "cosine", "dimension": dimension},
                    embedding_function=None,
                )
                collection.add(
                    ids=[PLACEHOLDER_ID],
                    embeddings=[[0.0] * dimension],
                    metadatas=[{"note_id": PLACEHOLDER_ID, "chunk_id": -1, "title": ""}],
                    documents=[""],
                )
                collection.delete(ids=[PLACEHOLDER_ID])
                logger.info("Created index table %s (dimension %d)", name, dimension)
            self._collection = collection
            self._table_name = name
            self._dimension = dimension

    @staticmethod
    def _probe_dimension(collection) -> int | None:
        probe = collection.get(limit=1, include=["embeddings"])
        embeddings = probe.get("embeddings")
        if embeddings is None or len(embeddings) == 0:
            return None
        return len(embeddings[0])

    def _require_collection(self):
        if self._collection is None:
            raise IndexNotReady("Index table has not been opened")
        return self._collection

    # -- Writes --

    def add(self, records: list[VectorRecord]) -> None:
        """
        Write rows, replacing any with the same "{note_id}#{chunk_id}" id.

        The caller deletes a note's old rows first. When two writes of one
        note overlap, a reused chunk id always carries the newer text.
        """
        if not records:
            return
        collection = self._require_collection()
        for record in records:
            if len(record.vector) != self._dimension:
                raise StoreIOError(
                    f"Vector for {record.row_id} has width {len(record.vector)}, "
                    f"table expects {self._dimension}"
                )
        with self._lock, _wrap_errors("add"):
            collection.upsert(
                ids=[r.row_id for r in records],
                embeddings=[r.vector for r in records],
                metadatas=[
                    {"note_id": r.note_id, "chunk_id": r.chunk_id, "title": r.title}
                    for r in records
                ],
                documents=[r.text for r in records],
            )

    def delete_where(self, note_id: str) -> None:
        """Remove every row of a note. Deleting a note with no rows is fine."""
        collection = self._require_collection()
        with self._lock, _wrap_errors("delete"):
            collection.delete(where={"note_id": note_id})

    # -- Reads --

    def search(
        self,
        vector: list[float],
        limit: int,
        exclude_note_id: str | None = None,
    ) -> list[StoreResult]:
        """
        Nearest rows by cosine distance, closest first.

        The exclusion filter is applied by the backend but callers must
        not rely on it.
        """
        collection = self._require_collection()
        with self._lock, _wrap_errors("search"):
            total = collection.count()
            if total == 0 or limit <= 0:
                return []
            kwargs = {}
            if exclude_note_id is not None:
                kwargs["where"] = {"note_id": {"$ne": exclude_note_id}}
            response = collection.query(
                query_embeddings=[vector],
                n_results=min(limit, total),
                include=["documents", "metadatas", "distances"],
                **kwargs,
            )

        ids = response.get("ids") or [[]]
        metadatas = (response.get("metadatas") or [[]])[0] or []
        documents = (response.get("documents") or [[]])[0] or []
        distances = (response.get("distances") or [[]])[0] or []
        results = []
        for i in range(len(ids[0])):
            meta = metadatas[i] or {}
            results.append(StoreResult(
                note_id=meta.get("note_id", ""),
                chunk_id=int(meta.get("chunk_id", 0)),
                text=documents[i] or "",
                title=meta.get("title", ""),
                distance=float(distances[i]),
            ))
        return results

    def count(self) -> int:
        collection = self._require_collection()
        with self._lock, _wrap_errors("count"):
            return collection.count()

    def list_note_ids(self) -> set[str]:
        """All note IDs that have at least one row."""
        collection = self._require_collection()
        with self._lock, _wrap_errors("list"):
            response = collection.get(include=["metadatas"])
        return {
            meta["note_id"] for meta in (response.get("metadatas") or [])
            if meta and meta.get("note_id")
        }

    def close(self) -> None:
        """Drop the connection. The store can be reopened with ensure_table."""
        self._collection = None
        self._client = None
