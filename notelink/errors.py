"""
Error types and error logging for notelink.

The indexing engine distinguishes a handful of failure kinds so callers can
decide what to propagate and what to log and skip. Full stack traces go to
an error log file while the CLI shows clean messages.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class NoteLinkError(Exception):
    """Base class for all notelink errors."""


class ModelNotLoaded(NoteLinkError):
    """An embedding was requested before any model was loaded."""


class ModelLoadError(NoteLinkError):
    """The embedding model could not be loaded from its path."""


class EmbeddingError(NoteLinkError):
    """The embedding runtime failed while embedding text."""


class IndexNotReady(NoteLinkError):
    """The vector index was used before its table was opened."""


class StoreIOError(NoteLinkError):
    """The vector index backend failed to read or write."""


class GhostIndexDetected(NoteLinkError):
    """
    Search found index rows whose note file no longer exists.

    Used as a signal: the retrieval service logs it and schedules cleanup,
    it is never raised to callers.
    """

    def __init__(self, note_ids):
        self.note_ids = sorted(note_ids)
        super().__init__(f"Stale index entries for missing notes: {', '.join(self.note_ids)}")


def _error_log_path() -> Path:
    """Resolve error log path, respecting NOTELINK_HOME."""
    home = os.environ.get("NOTELINK_HOME")
    if home:
        return Path(home) / "notelink-errors.log"
    return Path.home() / ".notelink" / "notelink-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write(trace)
    except OSError:
        pass  # Can't write error log, don't crash over it
    return log_path
