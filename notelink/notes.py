"""
File-backed note store.

Notes are Markdown files under a root directory. A note's ID is its path
relative to the root, with forward slashes, in NFC form. Hidden files and
anything inside hidden directories are not notes.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path

from . import frontmatter
from .types import Note, normalize_id, note_id_from_path

logger = logging.getLogger(__name__)

NOTE_SUFFIX = ".md"


def is_note_path(relative: Path) -> bool:
    """Whether a root-relative path names a note file."""
    if relative.suffix.lower() != NOTE_SUFFIX:
        return False
    return not any(part.startswith(".") for part in relative.parts)


class FileNoteStore:
    """Reads notes from a directory tree."""

    def __init__(self, root: Path):
        self._root = Path(root).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    @root.setter
    def root(self, value: Path) -> None:
        self._root = Path(value).expanduser()

    def note_id_for(self, path: Path) -> str | None:
        """Note ID for an absolute path, or None if it is not a note under the root."""
        path = Path(path)
        try:
            relative = path.relative_to(self._root)
        except ValueError:
            try:
                relative = path.resolve().relative_to(self._root.resolve())
            except (ValueError, OSError):
                return None
        if not is_note_path(relative):
            return None
        return note_id_from_path(relative)

    def path_for(self, note_id: str) -> Path:
        """
        Absolute path of a note.

        Raises:
            ValueError: If the ID escapes the note root
        """
        note_id = normalize_id(note_id)
        relative = Path(note_id)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Note ID escapes the note root: {note_id}")
        return self._root / relative

    def note_exists(self, note_id: str) -> bool:
        try:
            return self.path_for(note_id).is_file()
        except (ValueError, OSError):
            return False

    def read_raw(self, note_id: str) -> str:
        """Raw file content. Raises FileNotFoundError if missing."""
        return self.path_for(note_id).read_text(encoding="utf-8")

    def read_note(self, note_id: str) -> Note | None:
        """Parse one note, or None when the file does not exist."""
        path = self.path_for(note_id)
        try:
            raw = path.read_text(encoding="utf-8")
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            return None
        return self._parse(normalize_id(note_id), raw, mtime)

    def load_all_notes(self) -> list[Note]:
        """
        Every note under the root, newest first.

        Unreadable files are skipped and logged. A missing root gives an
        empty list.
        """
        if not self._root.is_dir():
            logger.warning("Note root does not exist: %s", self._root)
            return []

        notes = []
        for path in self._root.rglob(f"*{NOTE_SUFFIX}"):
            relative = path.relative_to(self._root)
            if not is_note_path(relative) or not path.is_file():
                continue
            try:
                raw = path.read_text(encoding="utf-8")
                mtime = path.stat().st_mtime
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Skipping unreadable note %s: %s", path, e)
                continue
            try:
                notes.append(self._parse(note_id_from_path(relative), raw, mtime))
            except Exception as e:
                logger.warning("Skipping note %s: %s", path, e)

        notes.sort(key=lambda n: n.timestamp, reverse=True)
        return notes

    @staticmethod
    def _parse(note_id: str, raw: str, mtime: float) -> Note:
        metadata, body = frontmatter.decode(raw)
        timestamp = metadata.get("date")
        if not timestamp:
            timestamp = datetime.fromtimestamp(mtime, tz=timezone.utc).isoformat()
        return Note(
            id=note_id,
            title=frontmatter.derive_title(metadata, body, note_id),
            tags=list(metadata.get("tags", [])),
            timestamp=str(timestamp),
            body=body,
            raw=raw,
        )
