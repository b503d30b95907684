"""Persistent Build State for incremental rebuilds.

Maps each source path to its content signature and the parsed result of
the last successful build. The file is discarded wholesale when its schema
version or the config fingerprint differs from the current run.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from .config import STATE_SCHEMA_VERSION, BuildConfig
from .models import BuildState, FileSignature
from .parser import compute_signature

log = logging.getLogger(__name__)


def empty_state(config: BuildConfig) -> BuildState:
    return BuildState(schema_version=STATE_SCHEMA_VERSION, config_fingerprint=config.fingerprint())


def load_state(path: Path, config: BuildConfig) -> BuildState:
    """Load Build State, falling back to an empty state when unusable.

    Missing, unreadable, outdated or mismatched state files all yield an
    empty state so the next build parses everything.
    """
    if not path.exists():
        return empty_state(config)

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        log.warning("Ignoring unreadable build state %s: %s", path, e)
        return empty_state(config)

    if not isinstance(payload, dict) or payload.get("schema_version") != STATE_SCHEMA_VERSION:
        log.info("Build state schema changed, rebuilding from scratch")
        return empty_state(config)

    if payload.get("config_fingerprint") != config.fingerprint():
        log.info("Build configuration changed, rebuilding from scratch")
        return empty_state(config)

    try:
        return BuildState.model_validate(payload)
    except ValidationError as e:
        log.warning("Ignoring invalid build state %s: %s", path, e.error_count())
        return empty_state(config)


def save_state(path: Path, state: BuildState) -> None:
    """Write Build State atomically (temp file in the same directory, then replace)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = state.model_dump_json(indent=2)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def read_signature(file_path: Path, previous: FileSignature | None = None) -> tuple[FileSignature, bytes | None]:
    """Compute a file's signature, skipping the read when stat data is unchanged.

    Returns:
        Tuple of (signature, raw_bytes). raw_bytes is None when the previous
        signature was reused without reading the file.
    """
    stat = file_path.stat()
    if previous is not None and previous.size == stat.st_size and previous.mtime_ns == stat.st_mtime_ns:
        return previous, None

    raw = file_path.read_bytes()
    return compute_signature(raw, mtime_ns=stat.st_mtime_ns), raw
