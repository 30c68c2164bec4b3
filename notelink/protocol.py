"""
Protocol definitions for the index's storage collaborators.

- VectorStoreProtocol: the chunk vector index (ChromaDB locally)
- NoteStoreProtocol: read access to the notes themselves (files on disk)
"""

from pathlib import Path
from typing import Protocol, runtime_checkable

from .store import StoreResult
from .types import Note, VectorRecord


@runtime_checkable
class VectorStoreProtocol(Protocol):
    """
    Storage for chunk vectors.

    Implemented by:
    - ChromaStore (local ChromaDB directory)
    """

    @property
    def is_ready(self) -> bool: ...

    def ensure_table(self, name: str, dimension: int) -> None: ...

    # -- Write operations --

    def add(self, records: list[VectorRecord]) -> None: ...

    def delete_where(self, note_id: str) -> None: ...

    # -- Query operations --

    def search(
        self,
        vector: list[float],
        limit: int,
        exclude_note_id: str | None = None,
    ) -> list[StoreResult]: ...

    def count(self) -> int: ...

    def list_note_ids(self) -> set[str]: ...

    # -- Lifecycle --

    def close(self) -> None: ...


@runtime_checkable
class NoteStoreProtocol(Protocol):
    """
    Read access to notes under a root directory.

    Implemented by:
    - FileNoteStore (Markdown files on disk)
    """

    @property
    def root(self) -> Path: ...

    def load_all_notes(self) -> list[Note]: ...

    def read_note(self, note_id: str) -> Note | None: ...

    def read_raw(self, note_id: str) -> str: ...

    def note_exists(self, note_id: str) -> bool: ...

    def note_id_for(self, path: Path) -> str | None: ...

    def path_for(self, note_id: str) -> Path: ...
