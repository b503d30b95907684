"""Pagination of listings and related-post selection."""

from __future__ import annotations

import math
from collections.abc import Sequence

from .config import BuildConfig
from .graph import slugify
from .indexer import chronological_key
from .models import CorpusGraph, Page, PagePlan, SiteIndex


def page_url(base_path: str, page_number: int) -> str:
    """URL of a listing page: the base for page 1, ``base/page/N/`` after."""
    base = base_path.rstrip("/") + "/"
    if page_number == 1:
        return base
    return f"{base}page/{page_number}/"


def paginate(
    items: Sequence[str],
    page_size: int,
    *,
    source: str = "index",
    base_path: str = "/",
) -> list[Page]:
    """Split a sequence into consecutive pages of ``page_size`` items.

    Only the last page may be shorter. An empty sequence has no pages.

    Raises:
        ValueError: If page_size is not a positive integer.
    """
    if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size <= 0:
        raise ValueError(f"page_size must be a positive integer, got {page_size!r}")

    total = math.ceil(len(items) / page_size)
    pages: list[Page] = []
    for index in range(total):
        number = index + 1
        pages.append(
            Page(
                source=source,
                page_number=number,
                total_pages=total,
                items=list(items[index * page_size : number * page_size]),
                has_next=number < total,
                has_prev=number > 1,
                url=page_url(base_path, number),
            )
        )
    return pages


def plan_pages(index: SiteIndex, config: BuildConfig) -> PagePlan:
    """Paginate the chronological listing and every tag and category."""
    base = config.base_url.rstrip("/")
    return PagePlan(
        chronological=paginate(index.chronological, config.page_size, source="index", base_path=f"{base}/"),
        tags={
            tag: paginate(slugs, config.page_size, source=f"tag:{tag}", base_path=f"{base}/tags/{slugify(tag) or tag}/")
            for tag, slugs in index.tags.items()
        },
        categories={
            category: paginate(
                slugs,
                config.page_size,
                source=f"category:{category}",
                base_path=f"{base}/categories/{slugify(category) or category}/",
            )
            for category, slugs in index.categories.items()
        },
    )


def related_posts(graph: CorpusGraph, slug: str, limit: int) -> list[str]:
    """Posts sharing the most tags with ``slug``, most recent first on ties.

    Posts that share no tag are never related. Returns at most ``limit``
    slugs, and an empty list when nothing qualifies.

    Raises:
        KeyError: If slug is not in the graph.
    """
    post = graph.posts[slug]
    own_tags = set(post.tags)
    if not own_tags or limit <= 0:
        return []

    scored = []
    for other in graph.posts.values():
        if other.slug == slug:
            continue
        shared = len(own_tags.intersection(other.tags))
        if shared:
            scored.append((-shared, chronological_key(other), other.slug))

    scored.sort()
    return [other_slug for _, _, other_slug in scored[:limit]]


def plan_related(graph: CorpusGraph, limit: int) -> dict[str, list[str]]:
    """Related posts for every post in the graph, keyed by slug."""
    return {slug: related_posts(graph, slug, limit) for slug in graph.posts}
