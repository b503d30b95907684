"""Front matter splitting and decoding for source documents."""

from __future__ import annotations

import hashlib
import re
from datetime import UTC, date, datetime, time
from pathlib import Path
from typing import Any

from frontmatter import YAMLHandler
from pydantic import ValidationError
from yaml import YAMLError

from ..errors import InvalidDate, MalformedFrontMatter, MissingRequiredField
from ..models import Document, FileSignature, FrontMatter

OPEN_MARKER = "---"
CLOSE_MARKERS = ("---", "...")

# Keys decoded into FrontMatter fields; everything else lands in ``extra``
DATE_KEYS = ("date", "created")
CATEGORY_KEYS = ("category", "categories")
KNOWN_KEYS = {"title", "tags", "summary", "layout", "draft", *DATE_KEYS, *CATEGORY_KEYS}

# Jekyll-style timestamps that fromisoformat rejects: "2020-08-28 10:00:00 +0100"
_DATE_FORMATS = ("%Y-%m-%d %H:%M:%S %z", "%Y-%m-%d %H:%M %z", "%Y-%m-%d %H:%M:%S.%f %z")

_TAG_SEPARATOR = re.compile(r"\s*,\s*|\s+")

_handler = YAMLHandler()


def compute_signature(raw: bytes, *, mtime_ns: int = 0) -> FileSignature:
    """Return the content signature for raw file bytes."""
    return FileSignature(sha256=hashlib.sha256(raw).hexdigest(), size=len(raw), mtime_ns=mtime_ns)


def split_front_matter(path: str, text: str) -> tuple[str, str, int]:
    """Split a document into its front matter text and body.

    Leading blank lines are allowed before the opening marker.

    Returns:
        Tuple of (front_matter_text, body, body_first_line) where
        body_first_line is the 1-based line number of the body in the file.

    Raises:
        MalformedFrontMatter: If the block is missing or never closed.
    """
    lines = text.splitlines(keepends=True)

    start = 0
    while start < len(lines) and lines[start].strip() == "":
        start += 1

    if start >= len(lines) or lines[start].rstrip() != OPEN_MARKER:
        raise MalformedFrontMatter(
            path, "Missing front matter (a '---' block is required at the start of the file)"
        )

    for end in range(start + 1, len(lines)):
        if lines[end].rstrip() in CLOSE_MARKERS:
            front = "".join(lines[start + 1 : end])
            body = "".join(lines[end + 1 :])
            return front, body, end + 2

    raise MalformedFrontMatter(
        path, f"Front matter opened on line {start + 1} is never closed", line=start + 1
    )


def parse_date(path: str, value: Any) -> datetime:
    """Coerce a front matter date into a timezone-aware datetime.

    Naive values are interpreted as UTC.

    Raises:
        InvalidDate: If the value is not a recognizable timestamp.
    """
    parsed: datetime | None = None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str) and value.strip():
        candidate = value.strip()
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError:
            for fmt in _DATE_FORMATS:
                try:
                    parsed = datetime.strptime(candidate, fmt)
                    break
                except ValueError:
                    continue

    if parsed is None:
        raise InvalidDate(path, f"Cannot parse date {value!r}", target=str(value))

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _normalize_tags(path: str, value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        raw_tags = _TAG_SEPARATOR.split(value.strip())
    elif isinstance(value, list):
        raw_tags = []
        for item in value:
            if item is None:
                continue  # `- ~` or an empty list entry
            if isinstance(item, (dict, list)):
                raise MalformedFrontMatter(path, f"Tag entries must be scalars, got {item!r}")
            raw_tags.append(str(item))
    else:
        raise MalformedFrontMatter(path, f"tags must be a list or a string, got {type(value).__name__}")

    tags: list[str] = []
    for tag in raw_tags:
        tag = tag.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def _normalize_category(path: str, value: Any) -> str | None:
    if isinstance(value, list):
        if len(value) > 1:
            raise MalformedFrontMatter(path, f"Only one category is allowed, got {value!r}")
        value = value[0] if value else None
    if value is None:
        return None
    if isinstance(value, dict):
        raise MalformedFrontMatter(path, "category must be a string")
    category = str(value).strip()
    return category or None


def _first_present(metadata: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if metadata.get(key) is not None:
            return metadata[key]
    return None


def decode_front_matter(path: str, front: str) -> FrontMatter:
    """Decode and validate a front matter block.

    Raises:
        MalformedFrontMatter: For invalid YAML or wrongly typed fields.
        MissingRequiredField: If title or date is absent.
        InvalidDate: If the date does not parse.
    """
    try:
        metadata = _handler.load(front)
    except YAMLError as e:
        raise MalformedFrontMatter(path, f"Invalid YAML in front matter: {e}") from e
    except ValueError as e:
        # PyYAML raises ValueError for timestamps like 2020-13-45
        raise InvalidDate(path, f"Invalid timestamp in front matter: {e}") from e

    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise MalformedFrontMatter(path, "Front matter must be a mapping of 'key: value' pairs")

    title = metadata.get("title")
    if title is None or not str(title).strip():
        raise MissingRequiredField(path, "Missing required field 'title'", label="title")

    raw_date = _first_present(metadata, DATE_KEYS)
    if raw_date is None:
        raise MissingRequiredField(path, "Missing required field 'date'", label="date")

    fields: dict[str, Any] = {
        "title": str(title).strip(),
        "date": parse_date(path, raw_date),
        "category": _normalize_category(path, _first_present(metadata, CATEGORY_KEYS)),
        "tags": _normalize_tags(path, metadata.get("tags")),
        "extra": {str(k): v for k, v in metadata.items() if k not in KNOWN_KEYS},
    }
    for key in ("summary", "layout", "draft"):
        if metadata.get(key) is not None:
            fields[key] = metadata[key]

    try:
        return FrontMatter.model_validate(fields)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"  - {loc}: {error['msg']}")
        raise MalformedFrontMatter(path, "Invalid front matter:\n" + "\n".join(errors)) from e


def parse_document(path: str, raw: bytes, *, mtime_ns: int = 0) -> Document:
    """Parse raw file bytes into a Document.

    Pure function of its arguments; performs no I/O.

    Args:
        path: Source-root relative path, used for error attribution.
        raw: File contents.
        mtime_ns: Modification time recorded in the signature.

    Raises:
        MalformedFrontMatter, MissingRequiredField, InvalidDate: On invalid input.
    """
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise MalformedFrontMatter(path, f"File is not valid UTF-8: {e}") from e

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    front, body, body_line = split_front_matter(path, text)
    front_matter = decode_front_matter(path, front)

    document = Document(
        path=path,
        signature=compute_signature(raw, mtime_ns=mtime_ns),
        front_matter=front_matter,
        body=body,
        body_line=body_line,
    )
    return document


def load_document(source_root: Path, file_path: Path) -> Document:
    """Read a file below source_root and parse it."""
    rel_path = file_path.relative_to(source_root).as_posix()
    raw = file_path.read_bytes()
    return parse_document(rel_path, raw, mtime_ns=file_path.stat().st_mtime_ns)
