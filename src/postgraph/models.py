"""Pydantic models for the site model and build state."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .config import DEFAULT_LAYOUT
from .errors import BuildIssue


class FileSignature(BaseModel):
    """Content signature of a source file."""

    model_config = ConfigDict(frozen=True)

    sha256: str
    size: int
    mtime_ns: int

    def same_content(self, other: FileSignature | None) -> bool:
        return other is not None and other.sha256 == self.sha256


class FrontMatter(BaseModel):
    """Decoded front matter of a document."""

    model_config = ConfigDict(frozen=True)

    title: str
    date: datetime  # Always timezone aware
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    summary: str | None = None
    layout: str = DEFAULT_LAYOUT
    draft: bool = False
    extra: dict[str, Any] = Field(default_factory=dict)  # Unknown keys, verbatim


class Document(BaseModel):
    """One source file: identity, front matter and raw body."""

    model_config = ConfigDict(frozen=True)

    path: str  # POSIX path relative to the source root
    signature: FileSignature
    front_matter: FrontMatter
    body: str
    body_line: int = 1  # 1-based line of the body within the file


LinkKind = Literal["internal", "external"]
LinkStyle = Literal["full", "collapsed", "shortcut", "inline", "wikilink"]


class ReferenceDefinition(BaseModel):
    """A ``[label]: target`` definition."""

    label: str  # Normalized label
    target: str
    title: str | None = None
    line: int


class LinkUsage(BaseModel):
    """A link in the body, resolved to its target."""

    label: str | None = None  # Normalized label, None for inline links
    text: str
    line: int
    target: str
    kind: LinkKind
    style: LinkStyle
    slug: str | None = None  # Set for internal links


class ReferenceMap(BaseModel):
    """Per-document result of reference resolution."""

    definitions: dict[str, ReferenceDefinition] = Field(default_factory=dict)
    usages: list[LinkUsage] = Field(default_factory=list)
    issues: list[BuildIssue] = Field(default_factory=list)

    @property
    def errors(self) -> list[BuildIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def warnings(self) -> list[BuildIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]

    @property
    def internal_targets(self) -> list[str]:
        """Internal slugs in first-use order, without duplicates."""
        seen: dict[str, None] = {}
        for usage in self.usages:
            if usage.kind == "internal" and usage.slug:
                seen.setdefault(usage.slug, None)
        return list(seen)


class ParsedDocument(BaseModel):
    """Output of the per-document stage; the unit cached between builds."""

    document: Document
    references: ReferenceMap
    excerpt: str

    @property
    def path(self) -> str:
        return self.document.path


class Post(BaseModel):
    """A published document with its permalink and resolved links."""

    model_config = ConfigDict(frozen=True)

    slug: str
    permalink: str
    path: str
    title: str
    date: datetime
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    summary: str | None = None
    layout: str = DEFAULT_LAYOUT
    excerpt: str = ""
    body: str = ""
    links: list[LinkUsage] = Field(default_factory=list)
    internal_links: list[str] = Field(default_factory=list)  # Target slugs
    backlinks: list[str] = Field(default_factory=list)  # Slugs linking here
    extra: dict[str, Any] = Field(default_factory=dict)  # Unknown front matter keys


class CorpusGraph(BaseModel):
    """All posts keyed by slug. The only owner of Post records."""

    posts: dict[str, Post] = Field(default_factory=dict)

    def __contains__(self, slug: object) -> bool:
        return slug in self.posts

    def __len__(self) -> int:
        return len(self.posts)

    def get(self, slug: str) -> Post | None:
        return self.posts.get(slug)

    def slugs(self) -> list[str]:
        return list(self.posts)


class SiteIndex(BaseModel):
    """Chronological, tag, category and year indices (slugs only)."""

    chronological: list[str] = Field(default_factory=list)
    tags: dict[str, list[str]] = Field(default_factory=dict)
    categories: dict[str, list[str]] = Field(default_factory=dict)
    years: dict[str, list[str]] = Field(default_factory=dict)
    tag_counts: dict[str, int] = Field(default_factory=dict)


class Page(BaseModel):
    """A bounded slice of a chronological, tag or category sequence."""

    source: str  # "index", "tag:<name>" or "category:<name>"
    page_number: int  # 1-based
    total_pages: int
    items: list[str]
    has_next: bool
    has_prev: bool
    url: str


class PagePlan(BaseModel):
    """Every paginated listing of the site."""

    chronological: list[Page] = Field(default_factory=list)
    tags: dict[str, list[Page]] = Field(default_factory=dict)
    categories: dict[str, list[Page]] = Field(default_factory=dict)


class SiteModel(BaseModel):
    """Complete, validated output handed to a rendering collaborator."""

    graph: CorpusGraph
    index: SiteIndex
    pages: PagePlan
    related: dict[str, list[str]] = Field(default_factory=dict)

    def to_json(self) -> str:
        """Serialize deterministically: identical input gives identical bytes."""
        return json.dumps(self.model_dump(mode="json"), indent=2, ensure_ascii=False)


class StateEntry(BaseModel):
    """Build State record for one source file."""

    signature: FileSignature
    parsed: ParsedDocument


class BuildState(BaseModel):
    """Persisted between runs to skip unchanged documents."""

    schema_version: int
    config_fingerprint: str
    entries: dict[str, StateEntry] = Field(default_factory=dict)
    site: SiteModel | None = None
