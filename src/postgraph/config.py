"""Build settings and file locations for postgraph.

Pipeline defaults live here as named constants. Per-site overrides come
from a YAML file in the source root, then POSTGRAPH_* environment
variables, then CLI options; see load_config().
"""

import hashlib
import json
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigurationError


# =============================================================================
# Files and Locations
# =============================================================================

# Config file names looked up in the source root, first match wins
CONFIG_FILENAMES = ("postgraph.yaml", ".postgraph.yaml")

# Directory (inside the source root) holding build state and default output
STATE_DIRNAME = ".postgraph"

# Persisted Build State file name
STATE_FILENAME = "state.json"

# Bump whenever the Build State layout changes; older files are discarded.
STATE_SCHEMA_VERSION = 1

# Source documents are markdown files
SOURCE_SUFFIX = ".md"


# =============================================================================
# Pipeline Defaults
# =============================================================================

# Posts per page for chronological, tag and category listings
DEFAULT_PAGE_SIZE = 10

# Maximum number of related posts computed per post
DEFAULT_RELATED_LIMIT = 5

# Characters of rendered body text used when no summary is given
DEFAULT_EXCERPT_LENGTH = 200

# Permalink pattern; placeholders: {slug} {year} {month} {day} {name}
DEFAULT_PERMALINK = "/posts/{slug}/"

# Front matter layout used when a document does not declare one
DEFAULT_LAYOUT = "post"

# Upper bound for the per-document worker pool.
# Parsing is dominated by YAML decoding and regex scans on small files,
# so more threads than this rarely help.
MAX_WORKERS = 8


def _default_workers() -> int:
    return min(MAX_WORKERS, (os.cpu_count() or 1) + 2)


class BuildConfig(BaseModel):
    """Settings that shape the generated site model."""

    page_size: int = Field(default=DEFAULT_PAGE_SIZE, gt=0)
    related_limit: int = Field(default=DEFAULT_RELATED_LIMIT, ge=0)
    excerpt_length: int = Field(default=DEFAULT_EXCERPT_LENGTH, gt=0)
    include_drafts: bool = False
    base_url: str = ""
    permalink: str = DEFAULT_PERMALINK
    workers: int = Field(default_factory=_default_workers, gt=0)

    @field_validator("permalink")
    @classmethod
    def _check_permalink(cls, value: str) -> str:
        try:
            value.format(slug="s", year="y", month="m", day="d", name="n")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"unsupported placeholder in permalink pattern: {e}") from e
        if "{slug}" not in value and "{name}" not in value:
            raise ValueError("permalink pattern must contain {slug} or {name}")
        return value

    def fingerprint(self) -> str:
        """Return a stable hash of every setting that affects build output.

        ``workers`` is excluded: it changes scheduling, never results.
        """
        payload = self.model_dump(exclude={"workers"})
        encoded = json.dumps(payload, sort_keys=True).encode("utf-8")
        return hashlib.sha256(encoded).hexdigest()


# Environment overrides: variable name -> BuildConfig field
ENV_OVERRIDES = {
    "POSTGRAPH_PAGE_SIZE": "page_size",
    "POSTGRAPH_RELATED_LIMIT": "related_limit",
    "POSTGRAPH_EXCERPT_LENGTH": "excerpt_length",
    "POSTGRAPH_INCLUDE_DRAFTS": "include_drafts",
    "POSTGRAPH_BASE_URL": "base_url",
    "POSTGRAPH_PERMALINK": "permalink",
    "POSTGRAPH_WORKERS": "workers",
}


def get_source_root(explicit: str | Path | None = None) -> Path:
    """Get the directory holding source documents.

    Discovery order:
    1. Explicit path (CLI argument)
    2. POSTGRAPH_SOURCE_ROOT environment variable
    3. Current working directory

    Raises:
        ConfigurationError: If the resolved path is not a directory.
    """
    if explicit is not None:
        root = Path(explicit)
    elif os.environ.get("POSTGRAPH_SOURCE_ROOT"):
        root = Path(os.environ["POSTGRAPH_SOURCE_ROOT"])
    else:
        root = Path.cwd()

    if not root.is_dir():
        raise ConfigurationError(
            f"Source root is not a directory: {root}",
            details={"suggestion": "Pass a SOURCE directory or set POSTGRAPH_SOURCE_ROOT"},
        )
    return root


def get_state_path(source_root: Path, explicit: str | Path | None = None) -> Path:
    """Get the Build State file location.

    Discovery order:
    1. Explicit path (CLI --state option)
    2. POSTGRAPH_STATE_PATH environment variable
    3. {source_root}/.postgraph/state.json
    """
    if explicit is not None:
        return Path(explicit)
    env_path = os.environ.get("POSTGRAPH_STATE_PATH")
    if env_path:
        return Path(env_path)
    return source_root / STATE_DIRNAME / STATE_FILENAME


def find_config_file(source_root: Path) -> Path | None:
    """Return the first config file present in the source root."""
    for name in CONFIG_FILENAMES:
        candidate = source_root / name
        if candidate.is_file():
            return candidate
    return None


def load_config(source_root: Path, **overrides: object) -> BuildConfig:
    """Load build settings for a source root.

    Values come from the config file, then POSTGRAPH_* environment
    variables, then explicit keyword overrides (None values are ignored).

    Raises:
        ConfigurationError: If the file is not valid YAML or a value is invalid.
    """
    data: dict[str, object] = {}

    config_file = find_config_file(source_root)
    if config_file is not None:
        try:
            loaded = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read {config_file}: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"{config_file} must contain a mapping of settings")
        data.update(loaded)

    for env_name, field_name in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value is not None and value != "":
            data[field_name] = value

    data.update({key: value for key, value in overrides.items() if value is not None})

    unknown = sorted(set(data) - set(BuildConfig.model_fields))
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")

    try:
        return BuildConfig.model_validate(data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"  - {loc}: {error['msg']}")
        raise ConfigurationError("Invalid configuration:\n" + "\n".join(errors)) from e
