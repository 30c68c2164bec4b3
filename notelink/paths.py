"""
Filesystem locations used by notelink.

The application data directory holds the vector index, the TOML config,
the operations log and locally installed embedding models.
"""

import os
from pathlib import Path

DEFAULT_APP_DIRNAME = ".notelink"
MODELS_DIRNAME = "models"


def get_app_dir() -> Path:
    """
    Get the application data directory.

    Priority:
    1. NOTELINK_HOME environment variable
    2. ~/.notelink/
    """
    env_path = os.environ.get("NOTELINK_HOME")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.home() / DEFAULT_APP_DIRNAME


def get_default_notes_dir(app_dir: Path | None = None) -> Path:
    """Default note root: NOTELINK_NOTES_DIR, else {app_dir}/notes."""
    env_path = os.environ.get("NOTELINK_NOTES_DIR")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return (app_dir or get_app_dir()) / "notes"


def get_models_dir(app_dir: Path | None = None) -> Path:
    """Directory holding locally installed embedding models."""
    return (app_dir or get_app_dir()) / MODELS_DIRNAME


def list_local_models(app_dir: Path | None = None) -> list[str]:
    """
    List locally installed model names.

    A model is any non-hidden entry of the models directory: a
    sentence-transformers model folder or a single model file.
    Returns an empty list when the directory does not exist.
    """
    models_dir = get_models_dir(app_dir)
    if not models_dir.is_dir():
        return []
    return sorted(
        entry.name for entry in models_dir.iterdir()
        if not entry.name.startswith(".")
    )
