"""
notelink

Semantic indexing and related-note retrieval for a local folder of
Markdown notes.

Quick Start:
    import asyncio
    from notelink import NoteIndex

    async def main():
        async with NoteIndex() as index:
            await index.start()
            for result in await index.search_similar_notes("quarterly planning"):
                print(result)

    asyncio.run(main())

CLI Usage:
    notelink reindex
    notelink search "query text"
    notelink related projects/roadmap.md
    notelink watch

Environment Variables:
    NOTELINK_HOME       - Application data directory (default ~/.notelink)
    NOTELINK_NOTES_DIR  - Default note root (default $NOTELINK_HOME/notes)
    NOTELINK_VERBOSE    - Set to 1 for debug logging and library output
"""

# Configure quiet mode early (before any library imports)
import os
if not os.environ.get("NOTELINK_VERBOSE"):
    os.environ.setdefault("HF_HUB_DISABLE_PROGRESS_BARS", "1")
    os.environ.setdefault("TRANSFORMERS_VERBOSITY", "error")
    os.environ.setdefault("TOKENIZERS_PARALLELISM", "false")
    os.environ.setdefault("HF_HUB_DISABLE_TELEMETRY", "1")
    os.environ.setdefault("ANONYMIZED_TELEMETRY", "False")

from .api import NoteIndex
from .config import IndexConfig, load_or_create_config
from .errors import (
    EmbeddingError,
    GhostIndexDetected,
    IndexNotReady,
    ModelLoadError,
    ModelNotLoaded,
    NoteLinkError,
    StoreIOError,
)
from .types import ModelStatus, Note, SearchResult

__version__ = "0.1.0"
__all__ = [
    "NoteIndex",
    "IndexConfig",
    "load_or_create_config",
    "Note",
    "SearchResult",
    "ModelStatus",
    "NoteLinkError",
    "ModelNotLoaded",
    "ModelLoadError",
    "EmbeddingError",
    "IndexNotReady",
    "StoreIOError",
    "GhostIndexDetected",
]
