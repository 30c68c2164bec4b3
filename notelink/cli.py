"""
CLI interface for the note index.

Usage:
    notelink init --notes-dir ~/Notes
    notelink reindex
    notelink search "query text"
    notelink related projects/roadmap.md
    notelink watch
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import typer
from typing_extensions import Annotated

from .api import NoteIndex
from .config import load_or_create_config, save_config
from .errors import NoteLinkError, log_exception
from .logging_config import configure_quiet_mode, enable_debug_mode
from .paths import get_app_dir, list_local_models
from .types import SearchResult

T = TypeVar("T")


# Configure quiet mode by default (suppress verbose library output)
# Set NOTELINK_VERBOSE=1 to enable debug mode via environment
if os.environ.get("NOTELINK_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


def _get_store_override() -> Optional[Path]:
    return _store_override


app = typer.Typer(
    name="notelink",
    help="Semantic search and related-note discovery for Markdown notes.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="NOTELINK_HOME",
        help="Application data directory (default: ~/.notelink/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Semantic search and related-note discovery for Markdown notes."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

LimitOption = Annotated[
    Optional[int],
    typer.Option(
        "--limit", "-n",
        min=1,
        help="Maximum results to return (default from config)"
    )
]

ModelOption = Annotated[
    Optional[Path],
    typer.Option(
        "--model", "-m",
        help="Embedding model directory (default from config)"
    )
]


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _app_dir() -> Path:
    store = _get_store_override()
    return Path(store).expanduser().resolve() if store else get_app_dir()


def _run(
    action: Callable[[NoteIndex], Awaitable[T]],
    *,
    context: str,
    model: Optional[Path] = None,
    require_model: bool = True,
) -> T:
    """Open the index, run an async action against it, always close it.

    Known failures print a one-line error (the traceback goes to the
    error log) and exit with status 1.
    """
    async def runner():
        index = NoteIndex(_app_dir())
        try:
            ready = await index.initialize(model)
            if require_model and not ready:
                path = index.config.resolve_model_path(model)
                typer.echo(f"Error: embedding model not found at {path}", err=True)
                typer.echo("Install a sentence-transformers model there or pass --model.", err=True)
                raise typer.Exit(1)
            return await action(index)
        finally:
            await index.close()

    try:
        return asyncio.run(runner())
    except (NoteLinkError, OSError, ValueError) as e:
        log_path = log_exception(e, context)
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details: {log_path}", err=True)
        raise typer.Exit(1)


def _format_results(results: list[SearchResult]) -> str:
    if _get_json_output():
        return json.dumps([r.to_dict() for r in results], indent=2, ensure_ascii=False)
    if not results:
        return "No related notes."
    width = max(len(r.id) for r in results)
    lines = []
    for r in results:
        snippet = " ".join(r.snippet.split())
        if len(snippet) > 80:
            snippet = snippet[:77] + "..."
        lines.append(f"{r.similarity:3d}%  {r.id:<{width}}  {r.title}")
        lines.append(f"      {snippet}")
    return "\n".join(lines)


def _echo_dict(data: dict) -> None:
    if _get_json_output():
        typer.echo(json.dumps(data, indent=2))
    else:
        for key, value in data.items():
            typer.echo(f"{key}: {value}")


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def init(
    notes_dir: Annotated[Optional[Path], typer.Option(
        "--notes-dir", "-d",
        help="Folder of Markdown notes to index"
    )] = None,
    model: ModelOption = None,
):
    """
    Create or update the configuration file.

    \b
    Examples:
        notelink init --notes-dir ~/Notes
        notelink init --model ~/.notelink/models/all-MiniLM-L6-v2
    """
    try:
        config = load_or_create_config(_app_dir())
        if notes_dir is not None:
            config.notes_dir = notes_dir.expanduser().resolve()
        if model is not None:
            config.model_path = model.expanduser().resolve()
        save_config(config)
    except (OSError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    _echo_dict({
        "config": str(config.config_path),
        "notes_dir": str(config.notes_dir),
        "model_path": str(config.resolve_model_path()),
    })


@app.command()
def reindex(model: ModelOption = None):
    """Rebuild the index from every note under the note root."""
    stats = _run(lambda index: index.reindex_all(), context="reindex", model=model)
    if _get_json_output():
        typer.echo(json.dumps(stats.to_dict(), indent=2))
    else:
        typer.echo(
            f"Indexed {stats.indexed} notes ({stats.chunks} chunks), {stats.failed} failed"
        )
    if stats.failed:
        raise typer.Exit(1)


@app.command()
def index(
    path: Annotated[Path, typer.Argument(help="Note file under the note root")],
    model: ModelOption = None,
):
    """Index a single note file."""
    async def action(nx: NoteIndex):
        note_id = nx.note_store.note_id_for(path.expanduser().resolve())
        if note_id is None:
            typer.echo(f"Error: {path} is not a note under {nx.notes_dir}", err=True)
            raise typer.Exit(1)
        raw = await asyncio.to_thread(nx.note_store.read_raw, note_id)
        return note_id, await nx.index_note(note_id, raw)

    note_id, chunks = _run(action, context="index", model=model)
    if chunks is None:
        typer.echo(f"Error: failed to index {note_id}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Indexed {note_id} ({chunks} chunks)")


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search query text")],
    exclude: Annotated[Optional[str], typer.Option(
        "--exclude", "-x",
        help="Note ID to leave out of the results"
    )] = None,
    limit: LimitOption = None,
    model: ModelOption = None,
):
    """
    Find notes related in meaning to a text.

    \b
    Examples:
        notelink search "authentication flow"
        notelink search "budget" --exclude finance/2024.md -n 10
    """
    results = _run(
        lambda nx: nx.search_similar_notes(query, exclude_id=exclude, limit=limit),
        context="search",
        model=model,
    )
    typer.echo(_format_results(results))


@app.command()
def related(
    note_id: Annotated[str, typer.Argument(help="Note ID (path relative to the note root)")],
    limit: LimitOption = None,
    model: ModelOption = None,
):
    """Find notes related to an existing note."""
    results = _run(
        lambda nx: nx.find_related(note_id, limit=limit),
        context="related",
        model=model,
    )
    typer.echo(_format_results(results))


@app.command()
def watch(model: ModelOption = None):
    """Reindex, then keep the index in sync with the note root until interrupted."""
    async def action(nx: NoteIndex):
        stats = await nx.reindex_all()
        typer.echo(f"Indexed {stats.indexed} notes ({stats.chunks} chunks)", err=True)
        nx.add_refresh_listener(
            lambda note_id: typer.echo(f"updated: {note_id}") if note_id else None
        )
        if not await nx.start_watching():
            typer.echo(f"Error: cannot watch {nx.notes_dir}", err=True)
            raise typer.Exit(1)
        typer.echo(f"Watching {nx.notes_dir} (Ctrl-C to stop)", err=True)
        await asyncio.Event().wait()

    try:
        _run(action, context="watch", model=model)
    except KeyboardInterrupt:
        typer.echo("Stopped.", err=True)


@app.command()
def status(model: ModelOption = None):
    """Show model, index and note root status."""
    async def action(nx: NoteIndex):
        return nx.status()

    _echo_dict(_run(action, context="status", model=model, require_model=False))


@app.command()
def models():
    """List embedding models installed in the models directory."""
    app_dir = _app_dir()
    names = list_local_models(app_dir)
    if _get_json_output():
        typer.echo(json.dumps(names))
        return
    if not names:
        typer.echo(f"No models in {app_dir / 'models'}")
        return
    for name in names:
        typer.echo(name)


def main():
    app()


if __name__ == "__main__":
    main()
