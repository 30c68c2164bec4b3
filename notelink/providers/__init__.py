"""
Embedding providers for notelink.

Providers register themselves with the global registry on import.
"""

from .base import EmbeddingProvider, ProviderRegistry, get_registry

__all__ = ["EmbeddingProvider", "ProviderRegistry", "get_registry"]
