"""
Base provider protocols.

These define the interfaces that concrete providers must implement.
Using Protocol for structural subtyping - no explicit inheritance required.
"""

from pathlib import Path
from typing import Protocol, runtime_checkable


# -----------------------------------------------------------------------------
# Embedding Generation
# -----------------------------------------------------------------------------

@runtime_checkable
class EmbeddingProvider(Protocol):
    """
    Generates vector embeddings from text with a locally loaded model.

    At most one model is loaded at a time. Loading the path that is
    already loaded is a no-op; loading a different path releases the
    previous model first.

    Embeddings must be deterministic for the same model and text, and
    every vector has length `dimension`.
    """

    @property
    def dimension(self) -> int:
        """Dimensionality of the embedding vectors."""
        ...

    @property
    def is_loaded(self) -> bool:
        """Whether a model is ready to embed."""
        ...

    @property
    def model_path(self) -> Path | None:
        """Path of the currently loaded model, if any."""
        ...

    def load(self, model_path: Path | str) -> bool:
        """
        Load a model from disk.

        Raises:
            ModelLoadError: If the model cannot be loaded
        """
        ...

    def create_embedding(self, text: str) -> list[float]:
        """
        Embed a single text.

        Raises:
            ModelNotLoaded: If no model is loaded
            EmbeddingError: If the runtime fails
        """
        ...

    def dispose(self) -> None:
        """Release the loaded model. Safe to call when nothing is loaded."""
        ...


# -----------------------------------------------------------------------------
# Provider Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Registry for discovering and instantiating providers.

    Providers are registered by name so the TOML config can select one
    without code changes.

    Example:
        registry = ProviderRegistry()
        registry.register_embedding("sentence-transformers", EmbeddingRuntime)

        # Later, from config:
        provider = registry.create_embedding("sentence-transformers", {"device": "cpu"})
    """

    def __init__(self):
        self._embedding_providers: dict[str, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Lazily import provider modules so they register themselves."""
        if self._lazy_loaded:
            return
        self._lazy_loaded = True
        # Importing does not load any model
        from . import embeddings  # noqa: F401

    def register_embedding(self, name: str, provider_class: type) -> None:
        """Register an embedding provider class."""
        self._embedding_providers[name] = provider_class

    @staticmethod
    def _create_provider(kind: str, name: str, providers: dict, params: dict | None):
        """Shared factory logic for all provider types."""
        if name not in providers:
            available = ", ".join(providers.keys()) or "none"
            raise ValueError(
                f"Unknown {kind} provider: '{name}'. "
                f"Available providers: {available}. "
                f"Install missing dependencies or check provider name."
            )
        try:
            return providers[name](**(params or {}))
        except ImportError as e:
            raise RuntimeError(
                f"Failed to create {kind} provider '{name}': {e}\n"
                f"Install required dependencies."
            ) from e
        except Exception as e:
            raise RuntimeError(
                f"Failed to create {kind} provider '{name}': {e}"
            ) from e

    def create_embedding(self, name: str, params: dict | None = None) -> EmbeddingProvider:
        """Create an embedding provider instance."""
        self._ensure_providers_loaded()
        return self._create_provider("embedding", name, self._embedding_providers, params)


_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return _registry
