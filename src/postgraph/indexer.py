"""Chronological, tag, category and year indices over the post graph.

Every index is a pure function of the post set and is rebuilt in full;
nothing here patches a previous index. Indices store slugs, never posts.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from .models import CorpusGraph, Post, SiteIndex


def chronological_key(post: Post) -> tuple[float, str]:
    """Sort key: newest first, ties broken by slug ascending."""
    return (-post.date.timestamp(), post.slug)


def chronological(graph: CorpusGraph) -> list[str]:
    """All slugs, date descending with slug as tie-breaker."""
    return [post.slug for post in sorted(graph.posts.values(), key=chronological_key)]


def group_by(
    graph: CorpusGraph,
    order: list[str],
    keys: Callable[[Post], Iterable[str]],
) -> dict[str, list[str]]:
    """Group slugs under each key, keeping ``order`` within every group.

    Keys come out sorted so the mapping itself is deterministic.
    """
    groups: dict[str, list[str]] = {}
    for slug in order:
        for key in keys(graph.posts[slug]):
            groups.setdefault(key, []).append(slug)
    return {key: groups[key] for key in sorted(groups)}


def build_index(graph: CorpusGraph) -> SiteIndex:
    """Derive every index from the post graph."""
    order = chronological(graph)

    tags = group_by(graph, order, lambda post: post.tags)
    categories = group_by(graph, order, lambda post: [post.category] if post.category else [])
    years = group_by(graph, order, lambda post: [post.date.strftime("%Y")])

    return SiteIndex(
        chronological=order,
        tags=tags,
        categories=categories,
        years={year: years[year] for year in sorted(years, reverse=True)},
        tag_counts={tag: len(slugs) for tag, slugs in tags.items()},
    )
