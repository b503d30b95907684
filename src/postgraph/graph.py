"""Corpus graph assembly: slugs, permalinks and cross-post link validation."""

from __future__ import annotations

import logging
import re
import unicodedata
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from .config import BuildConfig
from .errors import BrokenInternalLink, BuildIssue, SlugCollision
from .models import CorpusGraph, LinkUsage, ParsedDocument, Post

log = logging.getLogger(__name__)


def slugify(title: str) -> str:
    """Convert title to URL-friendly slug (lowercase, hyphens, alphanumeric only)."""
    folded = unicodedata.normalize("NFKD", title).encode("ascii", "ignore").decode("ascii")
    slug = folded.lower()
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def compute_slug(date: datetime, title: str) -> str:
    """Return the permalink key for a post.

    Pure function of (date, title): ``YYYY-MM-DD-title-words``, or just the
    date when nothing of the title survives slugification.
    """
    name = slugify(title)
    prefix = date.strftime("%Y-%m-%d")
    return f"{prefix}-{name}" if name else prefix


def format_permalink(pattern: str, *, slug: str, date: datetime, title: str, base_url: str = "") -> str:
    """Expand a permalink pattern such as ``/posts/{slug}/``.

    Links between posts are recognized by the slug in their last path
    segment. A pattern without ``{slug}``, e.g. ``/{year}/{month}/{day}/{name}/``,
    is fine for output, but links written in that form are treated as
    external and never checked; write them as ``[[slug]]`` or with the slug.
    """
    path = pattern.format(
        slug=slug,
        year=date.strftime("%Y"),
        month=date.strftime("%m"),
        day=date.strftime("%d"),
        name=slugify(title) or slug,
    )
    return base_url.rstrip("/") + path


def build_title_index(owners: dict[str, ParsedDocument]) -> dict[str, str]:
    """Map lowercase titles to slugs; the first slug in order wins a shared title."""
    index: dict[str, str] = {}
    for slug in sorted(owners):
        key = owners[slug].document.front_matter.title.strip().lower()
        index.setdefault(key, slug)
    return index


def _internal_targets(links: list[LinkUsage], owners: dict[str, ParsedDocument]) -> list[str]:
    seen: dict[str, None] = {}
    for usage in links:
        if usage.kind == "internal" and usage.slug in owners:
            seen.setdefault(usage.slug, None)
    return list(seen)


@dataclass
class GraphBuildResult:
    """Assembled graph plus the broken links found while validating it."""

    graph: CorpusGraph
    issues: list[BuildIssue] = field(default_factory=list)
    drafts: list[str] = field(default_factory=list)  # Paths left out as drafts
    collisions: list[SlugCollision] = field(default_factory=list)  # Only when strict=False


def build_graph(
    parsed: Iterable[ParsedDocument], config: BuildConfig, *, strict: bool = True
) -> GraphBuildResult:
    """Assemble every parsed document into the slug-keyed post graph.

    Documents are visited in path order so collision reports and link
    issues come out the same way on every run.

    Args:
        parsed: Parsed documents of the whole corpus.
        config: Build settings (permalink pattern, drafts).
        strict: Raise on the first collision. Otherwise collisions are
            recorded on the result and the first document keeps the slug.

    Raises:
        SlugCollision: As soon as two documents produce the same slug.
    """
    owners: dict[str, ParsedDocument] = {}
    drafts: list[str] = []
    collisions: list[SlugCollision] = []

    for item in sorted(parsed, key=lambda p: p.path):
        front = item.document.front_matter
        if front.draft and not config.include_drafts:
            drafts.append(item.path)
            continue

        slug = compute_slug(front.date, front.title)
        if slug in owners:
            collision = SlugCollision(slug, [owners[slug].path, item.path])
            if strict:
                raise collision
            collisions.append(collision)
            continue
        owners[slug] = item

    if drafts:
        log.info("Skipping %d draft(s)", len(drafts))

    # Wikilinks may name a post by title instead of slug
    title_index = build_title_index(owners)

    # Validate internal links against the complete slug set, collecting all misses
    issues: list[BuildIssue] = []
    inbound: dict[str, set[str]] = {slug: set() for slug in owners}
    resolved_links: dict[str, list[LinkUsage]] = {}

    for slug, item in owners.items():
        links = resolved_links.setdefault(slug, [])
        for usage in item.references.usages:
            if usage.kind == "internal" and usage.style == "wikilink" and usage.slug not in owners:
                by_title = title_index.get(usage.target.strip().lower())
                if by_title is not None:
                    usage = usage.model_copy(update={"slug": by_title})
            links.append(usage)

            if usage.kind != "internal" or usage.slug is None:
                continue
            if usage.slug not in owners:
                issues.append(
                    BrokenInternalLink(
                        item.path,
                        f"Link [{usage.label or usage.text}] points to unknown post '{usage.slug}'",
                        label=usage.label or usage.text,
                        target=usage.slug,
                        line=usage.line,
                    ).to_issue()
                )
            elif usage.slug != slug:
                inbound[usage.slug].add(slug)

    posts: dict[str, Post] = {}
    for slug in sorted(owners):
        item = owners[slug]
        front = item.document.front_matter
        posts[slug] = Post(
            slug=slug,
            permalink=format_permalink(
                config.permalink, slug=slug, date=front.date, title=front.title, base_url=config.base_url
            ),
            path=item.path,
            title=front.title,
            date=front.date,
            category=front.category,
            tags=list(front.tags),
            summary=front.summary,
            layout=front.layout,
            excerpt=item.excerpt,
            body=item.document.body,
            links=resolved_links[slug],
            internal_links=_internal_targets(resolved_links[slug], owners),
            backlinks=sorted(inbound[slug]),
            extra=dict(front.extra),
        )

    log.debug("Assembled graph with %d post(s), %d broken link(s)", len(posts), len(issues))
    return GraphBuildResult(
        graph=CorpusGraph(posts=posts), issues=issues, drafts=drafts, collisions=collisions
    )
