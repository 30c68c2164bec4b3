"""
Fixed-size sliding window chunking of note bodies.

Windows are measured in characters. Each window starts size - overlap
characters after the previous one, so consecutive chunks share exactly
`overlap` characters. The scan stops at the first window that reaches
the end of the text.
"""

from .types import Chunk

DEFAULT_SIZE = 500
DEFAULT_OVERLAP = 50


def _check_window(size: int, overlap: int) -> None:
    if size <= 0:
        raise ValueError(f"chunk size must be positive, got {size}")
    if overlap < 0:
        raise ValueError(f"chunk overlap must not be negative, got {overlap}")
    if overlap >= size:
        raise ValueError(f"chunk overlap ({overlap}) must be smaller than size ({size})")


def chunk_text(body: str, size: int = DEFAULT_SIZE, overlap: int = DEFAULT_OVERLAP) -> list[str]:
    """
    Split text into overlapping windows.

    The body is trimmed first. Empty or whitespace-only input gives no
    chunks; text no longer than `size` gives exactly one.

    Raises:
        ValueError: If size <= 0, overlap < 0 or overlap >= size
    """
    _check_window(size, overlap)
    text = body.strip()
    if not text:
        return []

    step = size - overlap
    chunks = []
    start = 0
    while True:
        chunks.append(text[start:start + size])
        if start + size >= len(text):
            break
        start += step
    return chunks


def build_chunks(
    note_id: str,
    body: str,
    title: str,
    size: int = DEFAULT_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> list[Chunk]:
    """Chunk a note body, numbering chunks in scan order."""
    return [
        Chunk(note_id=note_id, chunk_id=i, text=text, title=title)
        for i, text in enumerate(chunk_text(body, size, overlap))
    ]
