"""
Local embedding runtime backed by sentence-transformers.

The sentence-transformers engine is imported lazily, once per process, on
the first model load. At most one model is held at a time and every
embedding call runs inside a scoped context that serializes access to the
native model and always releases it.
"""

import functools
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from ..errors import EmbeddingError, ModelLoadError, ModelNotLoaded
from .base import get_registry

logger = logging.getLogger(__name__)

FALLBACK_DIMENSION = 384


@functools.lru_cache(maxsize=1)
def _engine_class():
    """Import the embedding engine on first use."""
    from sentence_transformers import SentenceTransformer
    return SentenceTransformer


class EmbeddingRuntime:
    """
    Holds a single sentence-transformers model and embeds text with it.

    Thread-safe: model swaps and embedding calls are serialized by a
    lock, so a background indexing thread and a query never touch the
    native model at the same time.
    """

    def __init__(self, device: str | None = None, normalize: bool = False):
        self._device = device
        self._normalize = normalize
        self._model: Any = None
        self._model_path: Path | None = None
        self._dimension: int | None = None
        self._lock = threading.RLock()

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    @property
    def model_path(self) -> Path | None:
        return self._model_path

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            raise ModelNotLoaded("No embedding model loaded")
        return self._dimension

    def load(self, model_path: Path | str) -> bool:
        """
        Load a model, replacing any other loaded model.

        Loading the path that is already loaded does nothing.

        Raises:
            ModelLoadError: If the engine cannot load the model
        """
        path = Path(model_path).expanduser()
        with self._lock:
            if self._model is not None and self._model_path == path:
                logger.debug("Model already loaded: %s", path)
                return True

            if self._model is not None:
                self.dispose()

            logger.info("Loading embedding model: %s", path)
            try:
                engine = _engine_class()
                kwargs = {"device": self._device} if self._device else {}
                model = engine(str(path), **kwargs)
            except ImportError as e:
                raise ModelLoadError(
                    f"sentence-transformers is required to load {path}: {e}"
                ) from e
            except Exception as e:
                raise ModelLoadError(f"Failed to load model {path}: {e}") from e

            dimension = None
            get_dim = getattr(model, "get_sentence_embedding_dimension", None)
            if get_dim is not None:
                try:
                    dimension = get_dim()
                except Exception as e:
                    logger.debug("Model did not report its dimension: %s", e)
            self._model = model
            self._model_path = path
            self._dimension = int(dimension) if dimension else FALLBACK_DIMENSION
            logger.info("Model ready: %s (dimension %d)", path.name, self._dimension)
            return True

    def dispose(self) -> None:
        """Release the loaded model."""
        with self._lock:
            if self._model is None:
                return
            logger.info("Releasing embedding model: %s", self._model_path)
            self._model = None
            self._model_path = None
            self._dimension = None

    @contextmanager
    def _context(self) -> Iterator[Any]:
        """Hold the model for one embedding call."""
        with self._lock:
            if self._model is None:
                raise ModelNotLoaded("No embedding model loaded")
            yield self._model

    def create_embedding(self, text: str) -> list[float]:
        """
        Embed one text with the loaded model.

        Raises:
            ModelNotLoaded: If no model is loaded
            EmbeddingError: If the engine fails
        """
        with self._context() as model:
            try:
                vector = model.encode(
                    text,
                    convert_to_numpy=True,
                    normalize_embeddings=self._normalize,
                    show_progress_bar=False,
                )
            except Exception as e:
                raise EmbeddingError(f"Embedding failed: {e}") from e
        return [float(x) for x in vector]


get_registry().register_embedding("sentence-transformers", EmbeddingRuntime)
