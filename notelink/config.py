"""
Configuration management for the notelink index.

The configuration is stored as a TOML file in the application data
directory. It names the embedding provider and model, the note root, and
the chunking, search and watcher tuning values.
"""

import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import tomli_w

from .paths import get_default_notes_dir, get_models_dir


CONFIG_FILENAME = "notelink.toml"
CONFIG_VERSION = 1

DEFAULT_TABLE_NAME = "notes_vectors"
DEFAULT_MODEL_NAME = "all-MiniLM-L6-v2"
DEFAULT_CHUNK_SIZE = 500
DEFAULT_CHUNK_OVERLAP = 50
DEFAULT_SEARCH_LIMIT = 5
DEFAULT_OVERFETCH = 5
DEFAULT_SIMILARITY_CEILING = 0.995


@dataclass
class ProviderConfig:
    """Configuration for a single provider."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class IndexConfig:
    """Complete index configuration."""
    path: Path
    notes_dir: Path | None = None
    model_path: Path | None = None
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    table_name: str = DEFAULT_TABLE_NAME

    embedding: ProviderConfig = field(default_factory=lambda: ProviderConfig("sentence-transformers"))

    # Chunking
    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP

    # Retrieval
    search_limit: int = DEFAULT_SEARCH_LIMIT
    overfetch_factor: int = DEFAULT_OVERFETCH
    similarity_ceiling: float = DEFAULT_SIMILARITY_CEILING

    # Change watcher
    watch_quiet_period: float = 0.5
    watch_poll_interval: float = 0.1
    watch_queue_size: int = 256

    def __post_init__(self):
        self.path = Path(self.path)
        if self.notes_dir is None:
            self.notes_dir = get_default_notes_dir(self.path)
        self.notes_dir = Path(self.notes_dir).expanduser()
        if self.model_path is not None:
            self.model_path = Path(self.model_path).expanduser()
        validate_config(self)

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def store_path(self) -> Path:
        """Directory holding the vector index files."""
        return self.path / "chroma"

    def default_model_path(self) -> Path:
        return get_models_dir(self.path) / DEFAULT_MODEL_NAME

    def resolve_model_path(self, override: Path | str | None = None) -> Path:
        """Model path precedence: explicit argument, config, models dir default."""
        if override is not None:
            return Path(override).expanduser()
        if self.model_path is not None:
            return self.model_path
        return self.default_model_path()


def validate_config(config: IndexConfig) -> None:
    """
    Check tuning values for consistency.

    Raises:
        ValueError: If any value is out of range
    """
    if config.chunk_size <= 0:
        raise ValueError(f"chunk size must be positive, got {config.chunk_size}")
    if config.chunk_overlap < 0 or config.chunk_overlap >= config.chunk_size:
        raise ValueError(
            f"chunk overlap must be in [0, {config.chunk_size}), got {config.chunk_overlap}"
        )
    if config.search_limit <= 0:
        raise ValueError(f"search limit must be positive, got {config.search_limit}")
    if config.overfetch_factor < 1:
        raise ValueError(f"overfetch factor must be at least 1, got {config.overfetch_factor}")
    if not 0.0 < config.similarity_ceiling <= 1.0:
        raise ValueError(
            f"similarity ceiling must be in (0, 1], got {config.similarity_ceiling}"
        )
    if config.watch_quiet_period < 0 or config.watch_poll_interval <= 0:
        raise ValueError("watch timings must be positive")
    if config.watch_queue_size <= 0:
        raise ValueError(f"watch queue size must be positive, got {config.watch_queue_size}")


def create_default_config(app_dir: Path) -> IndexConfig:
    """Create a new config with default values for the given directory."""
    return IndexConfig(path=Path(app_dir))


def load_config(app_dir: Path) -> IndexConfig:
    """
    Load configuration from the application data directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    app_dir = Path(app_dir)
    config_path = app_dir / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    store = data.get("store", {})
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    embedding_section = dict(data.get("embedding", {"name": "sentence-transformers"}))
    model_path = embedding_section.pop("model_path", None)
    embedding = ProviderConfig(
        name=embedding_section.pop("name", "sentence-transformers"),
        params=embedding_section,
    )

    notes = data.get("notes", {})
    chunking = data.get("chunking", {})
    search = data.get("search", {})
    watch = data.get("watch", {})

    return IndexConfig(
        path=app_dir,
        notes_dir=Path(notes["dir"]) if notes.get("dir") else None,
        model_path=Path(model_path) if model_path else None,
        version=version,
        created=store.get("created", ""),
        table_name=store.get("table", DEFAULT_TABLE_NAME),
        embedding=embedding,
        chunk_size=chunking.get("size", DEFAULT_CHUNK_SIZE),
        chunk_overlap=chunking.get("overlap", DEFAULT_CHUNK_OVERLAP),
        search_limit=search.get("limit", DEFAULT_SEARCH_LIMIT),
        overfetch_factor=search.get("overfetch", DEFAULT_OVERFETCH),
        similarity_ceiling=search.get("similarity_ceiling", DEFAULT_SIMILARITY_CEILING),
        watch_quiet_period=watch.get("quiet_period", 0.5),
        watch_poll_interval=watch.get("poll_interval", 0.1),
        watch_queue_size=watch.get("queue_size", 256),
    )


def save_config(config: IndexConfig) -> None:
    """
    Save configuration to the application data directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    embedding = {"name": config.embedding.name}
    if config.model_path is not None:
        embedding["model_path"] = str(config.model_path)
    embedding.update(config.embedding.params)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
            "table": config.table_name,
        },
        "notes": {
            "dir": str(config.notes_dir),
        },
        "embedding": embedding,
        "chunking": {
            "size": config.chunk_size,
            "overlap": config.chunk_overlap,
        },
        "search": {
            "limit": config.search_limit,
            "overfetch": config.overfetch_factor,
            "similarity_ceiling": config.similarity_ceiling,
        },
        "watch": {
            "quiet_period": config.watch_quiet_period,
            "poll_interval": config.watch_poll_interval,
            "queue_size": config.watch_queue_size,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(app_dir: Path) -> IndexConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    app_dir = Path(app_dir)
    if (app_dir / CONFIG_FILENAME).exists():
        return load_config(app_dir)
    config = create_default_config(app_dir)
    save_config(config)
    return config
