"""Shared test fixtures for the postgraph test suite.

Design:
- tmp_corpus: Isolated source root in a temp directory
- runner: CliRunner with proper isolation
- create_post: Helper that writes a post with front matter
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Generator

import pytest
from click.testing import CliRunner

from postgraph._logging import PACKAGE_LOGGER
from postgraph.builder import process_document
from postgraph.config import ENV_OVERRIDES
from postgraph.models import CorpusGraph, ParsedDocument, Post
from postgraph.renderer import MarkdownItRenderer

ENV_VARS = (*ENV_OVERRIDES, "POSTGRAPH_SOURCE_ROOT", "POSTGRAPH_STATE_PATH", "POSTGRAPH_LOG_LEVEL", "POSTGRAPH_QUIET")


# ─────────────────────────────────────────────────────────────────────────────
# Core Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Clear POSTGRAPH_* variables and reset package logging around each test."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)

    yield

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True


@pytest.fixture
def runner() -> CliRunner:
    """CLI runner with isolated environment."""
    return CliRunner()


@pytest.fixture
def tmp_corpus(tmp_path: Path) -> Path:
    """Create an empty source root.

    Usage:
        def test_something(tmp_corpus):
            create_post(tmp_corpus, "hello.md", "Hello", "2024-01-15", "Body")
    """
    root = tmp_path / "posts"
    root.mkdir()
    return root


@pytest.fixture
def blog_corpus(tmp_corpus: Path) -> Path:
    """Source root with a small linked blog.

    Creates:
    - go.md (2020-08-27, tags: development, go)
    - rust.md (2020-08-28, tags: development, rust), links to the Go post
    - notes.md (2020-09-01, tags: rust), links to the Rust post
    """
    create_post(
        tmp_corpus,
        "go.md",
        "Go Is Fine",
        "2020-08-27",
        "Short notes on Go.\n",
        tags=["development", "go"],
        category="programming",
    )
    create_post(
        tmp_corpus,
        "rust.md",
        "Back on Rust with defmt",
        "2020-08-28",
        "After [the Go detour][go] I am back.\n\n[go]: /posts/2020-08-27-go-is-fine/\n",
        tags=["development", "rust"],
        category="programming",
    )
    create_post(
        tmp_corpus,
        "notes.md",
        "Embedded Notes",
        "2020-09-01",
        "See [[2020-08-28-back-on-rust-with-defmt]] for setup.\n",
        tags=["rust"],
    )
    return tmp_corpus


# ─────────────────────────────────────────────────────────────────────────────
# Helper Functions (for test code, not fixtures)
# ─────────────────────────────────────────────────────────────────────────────


def post_text(
    title: str,
    date: str,
    body: str,
    tags: list[str] | None = None,
    category: str | None = None,
    extra: str = "",
) -> str:
    """Render a post file with front matter."""
    lines = ["---", f"title: {title}", f"date: {date}"]
    if tags:
        lines.append(f"tags: [{', '.join(tags)}]")
    if category:
        lines.append(f"category: {category}")
    if extra:
        lines.append(extra.rstrip("\n"))
    lines.append("---")
    return "\n".join(lines) + "\n" + body


def create_post(
    root: Path,
    path: str,
    title: str,
    date: str,
    body: str,
    tags: list[str] | None = None,
    category: str | None = None,
    extra: str = "",
) -> Path:
    """Helper to create a post file with front matter.

    Usage in tests:
        from conftest import create_post
        post = create_post(tmp_corpus, "hello.md", "Hello", "2024-01-15", "Body", ["tag1"])
    """
    post_path = root / path
    post_path.parent.mkdir(parents=True, exist_ok=True)
    post_path.write_text(post_text(title, date, body, tags, category, extra), encoding="utf-8")
    return post_path


def parsed(path: str, title: str, date: str, body: str = "Body.\n", **kwargs) -> ParsedDocument:
    """Run the per-document stage on an in-memory post."""
    raw = post_text(title, date, body, **kwargs).encode("utf-8")
    return process_document(path, raw, mtime_ns=0, renderer=MarkdownItRenderer(), excerpt_length=200)


def make_post(slug: str, date: datetime, tags: list[str] | None = None, category: str | None = None) -> Post:
    """Build a Post directly, skipping parsing."""
    return Post(
        slug=slug,
        permalink=f"/posts/{slug}/",
        path=f"{slug}.md",
        title=slug,
        date=date,
        tags=tags or [],
        category=category,
    )


def make_graph(*posts: Post) -> CorpusGraph:
    return CorpusGraph(posts={post.slug: post for post in posts})
