"""
Data types for the note index.
"""

import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath, PurePosixPath


def normalize_id(note_id: str) -> str:
    """Normalize a note ID for storage and comparison.

    Note IDs are paths relative to the note root. They are compared in
    Unicode NFC form with forward slashes, so the same file produces the
    same ID whichever filesystem reported it (macOS reports NFD names).

    Raises ValueError for empty IDs.
    """
    if not note_id or not note_id.strip():
        raise ValueError("Note ID cannot be empty")
    note_id = note_id.replace("\\", "/")
    while note_id.startswith("./"):
        note_id = note_id[2:]
    return unicodedata.normalize("NFC", note_id)


def note_id_from_path(path: PurePath) -> str:
    """Build a note ID from a path relative to the note root."""
    return normalize_id(PurePosixPath(*path.parts).as_posix())


class ModelStatus(str, Enum):
    """Embedding model lifecycle, as reported by status()."""
    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    READY = "ready"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass
class Note:
    """
    A note read from the note store.

    Notes are owned by the external note store. The index only reads them.

    Attributes:
        id: Path relative to the note root (POSIX, NFC)
        title: Frontmatter title, first heading, or file stem
        tags: Frontmatter tags
        timestamp: ISO-8601 date from frontmatter, else file mtime
        body: Content after the frontmatter header
        raw: Full file content
    """
    id: str
    title: str
    tags: list[str] = field(default_factory=list)
    timestamp: str = ""
    body: str = ""
    raw: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "tags": list(self.tags),
            "timestamp": self.timestamp,
            "content": self.body,
        }


@dataclass(frozen=True)
class Chunk:
    """A contiguous slice of a note body. chunk_id is its zero-based position."""
    note_id: str
    chunk_id: int
    text: str
    title: str


@dataclass
class VectorRecord:
    """A chunk plus its embedding, one row of the index table."""
    vector: list[float]
    note_id: str
    chunk_id: int
    text: str
    title: str

    @classmethod
    def from_chunk(cls, chunk: Chunk, vector: list[float]) -> "VectorRecord":
        return cls(
            vector=vector,
            note_id=chunk.note_id,
            chunk_id=chunk.chunk_id,
            text=chunk.text,
            title=chunk.title,
        )

    @property
    def row_id(self) -> str:
        return f"{self.note_id}#{self.chunk_id}"


@dataclass
class SearchResult:
    """
    A related note returned by similarity search.

    Attributes:
        id: Note ID
        snippet: Text of the closest matching chunk
        title: Note title
        similarity: Integer percentage 0..100
    """
    id: str
    snippet: str
    title: str
    similarity: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "snippet": self.snippet,
            "title": self.title,
            "similarity": self.similarity,
        }

    def __str__(self) -> str:
        return f"{self.id} [{self.similarity}%]: {self.title}"
