"""
YAML frontmatter codec for Markdown notes.

A note may start with a header block:

    ---
    title: Meeting notes
    tags: [work, planning]
    date: 2024-03-01
    ---
    Body text...

Decoding never raises: a header that is not valid YAML, is not a mapping,
or has no closing fence is treated as part of the body.
"""

import logging
from datetime import date, datetime
from pathlib import PurePosixPath
from typing import Any

import yaml

logger = logging.getLogger(__name__)

FENCE = "---"


def _split_header(raw: str) -> tuple[str, str] | None:
    """Return (header_text, body) if raw starts with a fenced header."""
    if not raw.startswith(FENCE):
        return None
    lines = raw.split("\n")
    if lines[0].rstrip() != FENCE:
        return None
    for i in range(1, len(lines)):
        if lines[i].rstrip() == FENCE:
            header = "\n".join(lines[1:i])
            body = "\n".join(lines[i + 1:])
            return header, body
    return None


def _normalize_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def _normalize_tags(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value if v is not None and str(v).strip()]
    text = str(value).strip()
    return [text] if text else []


def decode(raw: str) -> tuple[dict[str, Any], str]:
    """
    Split a raw note into its frontmatter metadata and body.

    Returns:
        (metadata, body). Metadata is empty when there is no valid header,
        in which case body is the raw text unchanged.
    """
    if raw.startswith("\ufeff"):
        raw = raw[1:]
    parts = _split_header(raw.replace("\r\n", "\n"))
    if parts is None:
        return {}, raw
    header, body = parts

    try:
        data = yaml.safe_load(header) if header.strip() else {}
    except (yaml.YAMLError, ValueError, TypeError) as e:
        # impossible dates such as 2024-02-30 fail in the timestamp constructor
        logger.debug("Ignoring malformed frontmatter: %s", e)
        return {}, raw
    if data is None:
        data = {}
    if not isinstance(data, dict):
        logger.debug("Ignoring non-mapping frontmatter (%s)", type(data).__name__)
        return {}, raw

    metadata = {str(k): _normalize_value(v) for k, v in data.items()}
    if "tags" in metadata:
        metadata["tags"] = _normalize_tags(metadata["tags"])
    return metadata, body


def encode(body: str, metadata: dict[str, Any] | None = None) -> str:
    """
    Serialize metadata and body back into a note.

    Output is deterministic for identical inputs: keys are sorted.
    Without metadata the body is returned unchanged.
    """
    if not metadata:
        return body
    header = yaml.safe_dump(
        dict(metadata),
        sort_keys=True,
        allow_unicode=True,
        default_flow_style=False,
    )
    if not body.endswith("\n"):
        body = body + "\n"
    return f"{FENCE}\n{header}{FENCE}\n{body}"


def derive_title(metadata: dict[str, Any], body: str, note_id: str = "") -> str:
    """Note title: frontmatter title, else first '# ' heading, else file stem."""
    title = metadata.get("title")
    if title is not None and str(title).strip():
        return str(title).strip()
    for line in body.split("\n"):
        if line.startswith("# "):
            heading = line[2:].strip()
            if heading:
                return heading
    if note_id:
        return PurePosixPath(note_id).stem
    return ""
