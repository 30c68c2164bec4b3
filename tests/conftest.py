"""
Shared pytest fixtures for notelink tests.

Provides mock providers and an in-memory vector store so tests never load
an ML model or touch ChromaDB unless they ask for it.
"""

import hashlib
import math
import re
import threading
from pathlib import Path

import pytest

from notelink.config import IndexConfig
from notelink.errors import EmbeddingError, IndexNotReady, ModelNotLoaded, StoreIOError
from notelink.store import StoreResult
from notelink.types import VectorRecord

_WORD_RE = re.compile(r"\w+")


def bag_of_words_vector(text: str, dimension: int, vocab: dict[str, int] | None = None) -> list[float]:
    """Count words into buckets and L2-normalize.

    With a vocab, each new word takes the next free bucket, so texts with
    fewer distinct words than `dimension` never collide. Without one,
    words are hashed into buckets. Texts with the same words map to the
    same vector; texts sharing more words are closer in cosine distance.
    """
    vec = [0.0] * dimension
    for word in _WORD_RE.findall(text.lower()):
        if vocab is not None:
            bucket = vocab.setdefault(word, len(vocab)) % dimension
        else:
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % dimension
        vec[bucket] += 1.0
    norm = math.sqrt(sum(v * v for v in vec))
    if norm == 0:
        vec[0] = 1.0
        return vec
    return [v / norm for v in vec]


def cosine_distance(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    na = math.sqrt(sum(x * x for x in a))
    nb = math.sqrt(sum(y * y for y in b))
    if na == 0 or nb == 0:
        return 1.0
    return 1.0 - dot / (na * nb)


class MockEmbeddingProvider:
    """
    Deterministic mock embedding runtime for testing.

    Bag-of-words vectors, no model loading. Texts containing `fail_on`
    raise EmbeddingError.
    """

    def __init__(self, dimension: int = 64, fail_on: str | None = None):
        self._dimension = dimension
        self.fail_on = fail_on
        self._model_path: Path | None = None
        self.embed_calls = 0
        self.load_calls = 0
        self.dispose_calls = 0
        self.embedded: list[str] = []
        self._active = 0
        self.max_active = 0
        self._lock = threading.Lock()
        self._vocab: dict[str, int] = {}

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def is_loaded(self) -> bool:
        return self._model_path is not None

    @property
    def model_path(self) -> Path | None:
        return self._model_path

    def load(self, model_path) -> bool:
        self.load_calls += 1
        self._model_path = Path(model_path)
        return True

    def dispose(self) -> None:
        self.dispose_calls += 1
        self._model_path = None

    def create_embedding(self, text: str) -> list[float]:
        if self._model_path is None:
            raise ModelNotLoaded("No embedding model loaded")
        with self._lock:
            self._active += 1
            self.max_active = max(self.max_active, self._active)
        try:
            self.embed_calls += 1
            if self.fail_on is not None and self.fail_on in text:
                raise EmbeddingError(f"Embedding failed for {text[:20]!r}")
            self.embedded.append(text)
            return self.vector_for(text)
        finally:
            with self._lock:
                self._active -= 1

    def vector_for(self, text: str) -> list[float]:
        """The vector create_embedding would return, without counting a call."""
        return bag_of_words_vector(text, self._dimension, self._vocab)


class MemoryVectorStore:
    """
    In-memory stand-in for ChromaStore with real cosine distance.

    Set honor_filter=False to simulate a backend that ignores the
    exclusion filter.
    """

    def __init__(self, honor_filter: bool = True):
        self.honor_filter = honor_filter
        self.rows: list[VectorRecord] = []
        self.dimension: int | None = None
        self.table_name: str | None = None
        self.search_calls: list[tuple[int, str | None]] = []
        self.deleted: list[str] = []
        self.closed = False
        self.fail_search = False

    @property
    def is_ready(self) -> bool:
        return self.dimension is not None

    def ensure_table(self, name: str, dimension: int) -> None:
        if self.dimension is not None and self.dimension != dimension:
            raise StoreIOError(f"width mismatch: {self.dimension} != {dimension}")
        self.table_name = name
        self.dimension = dimension

    def _require(self):
        if self.dimension is None:
            raise IndexNotReady("Index table has not been opened")

    def add(self, records: list[VectorRecord]) -> None:
        self._require()
        for r in records:
            if len(r.vector) != self.dimension:
                raise StoreIOError("bad width")
        new_ids = {r.row_id for r in records}
        self.rows = [r for r in self.rows if r.row_id not in new_ids]
        self.rows.extend(records)

    def delete_where(self, note_id: str) -> None:
        self._require()
        self.deleted.append(note_id)
        self.rows = [r for r in self.rows if r.note_id != note_id]

    def search(self, vector, limit, exclude_note_id=None) -> list[StoreResult]:
        self._require()
        self.search_calls.append((limit, exclude_note_id))
        if self.fail_search:
            raise StoreIOError("search failed")
        candidates = self.rows
        if self.honor_filter and exclude_note_id is not None:
            candidates = [r for r in candidates if r.note_id != exclude_note_id]
        scored = sorted(
            (StoreResult(r.note_id, r.chunk_id, r.text, r.title, cosine_distance(vector, r.vector))
             for r in candidates),
            key=lambda s: s.distance,
        )
        return scored[:limit]

    def count(self) -> int:
        self._require()
        return len(self.rows)

    def list_note_ids(self) -> set[str]:
        return {r.note_id for r in self.rows}

    def chunks_for(self, note_id: str) -> list[VectorRecord]:
        return sorted((r for r in self.rows if r.note_id == note_id), key=lambda r: r.chunk_id)

    def close(self) -> None:
        self.closed = True


class FakeSentenceTransformer:
    """Stands in for sentence_transformers.SentenceTransformer."""

    instances: list["FakeSentenceTransformer"] = []

    def __init__(self, model_name_or_path: str, device: str | None = None):
        if "broken" in model_name_or_path:
            raise OSError(f"Cannot load {model_name_or_path}")
        self.path = model_name_or_path
        self.device = device
        self.encode_calls = 0
        self.fail = False
        FakeSentenceTransformer.instances.append(self)

    def get_sentence_embedding_dimension(self) -> int:
        return 8

    def encode(self, text, **kwargs):
        self.encode_calls += 1
        if self.fail:
            raise RuntimeError("native failure")
        return bag_of_words_vector(text, 8)


def write_note(root: Path, note_id: str, content: str) -> Path:
    """Create a note file under root, making parent folders."""
    path = root / note_id
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep config, logs and error logs out of the real home directory."""
    home = tmp_path / "home"
    monkeypatch.setenv("NOTELINK_HOME", str(home))
    monkeypatch.delenv("NOTELINK_NOTES_DIR", raising=False)
    return home


@pytest.fixture
def mock_embedding_provider():
    """Create a fresh MockEmbeddingProvider instance."""
    return MockEmbeddingProvider()


@pytest.fixture
def memory_store():
    return MemoryVectorStore()


@pytest.fixture
def notes_root(tmp_path):
    root = tmp_path / "notes"
    root.mkdir()
    return root


@pytest.fixture
def model_dir(tmp_path):
    """An existing directory standing in for an installed model."""
    path = tmp_path / "models" / "test-model"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def index_config(tmp_path, notes_root, model_dir):
    return IndexConfig(
        path=tmp_path / "app",
        notes_dir=notes_root,
        model_path=model_dir,
        watch_quiet_period=0.05,
        watch_poll_interval=0.02,
    )


@pytest.fixture
def fake_engine(monkeypatch):
    """Route the embedding runtime's engine import to FakeSentenceTransformer."""
    from notelink.providers import embeddings

    FakeSentenceTransformer.instances = []
    monkeypatch.setattr(embeddings, "_engine_class", lambda: FakeSentenceTransformer)
    return FakeSentenceTransformer


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (loading real ML models)"
    )
    config.addinivalue_line(
        "markers", "e2e: marks tests as end-to-end (require real providers)"
    )
