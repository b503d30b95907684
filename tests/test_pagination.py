"""Tests for pagination and related posts."""

import math
from datetime import UTC, datetime

import pytest

from postgraph.config import BuildConfig
from postgraph.indexer import build_index
from postgraph.pagination import page_url, paginate, plan_pages, plan_related, related_posts

from conftest import make_graph, make_post


class TestPaginate:
    """Tests for paginate()."""

    @pytest.mark.parametrize("length,size", [(0, 3), (1, 3), (3, 3), (7, 3), (9, 3), (10, 1), (4, 10)])
    def test_page_sizes_and_concatenation(self, length, size):
        items = [f"post-{i}" for i in range(length)]
        pages = paginate(items, size)

        assert len(pages) == math.ceil(length / size)
        for page in pages[:-1]:
            assert len(page.items) == size
        if pages:
            assert len(pages[-1].items) == (length % size or size)
        assert [slug for page in pages for slug in page.items] == items

    def test_navigation_flags(self):
        pages = paginate(["a", "b", "c", "d", "e"], 2, source="tag:rust", base_path="/tags/rust/")

        assert [p.page_number for p in pages] == [1, 2, 3]
        assert all(p.total_pages == 3 for p in pages)
        assert [(p.has_prev, p.has_next) for p in pages] == [(False, True), (True, True), (True, False)]
        assert [p.url for p in pages] == ["/tags/rust/", "/tags/rust/page/2/", "/tags/rust/page/3/"]
        assert pages[0].source == "tag:rust"

    def test_single_page(self):
        pages = paginate(["a"], 10)
        assert len(pages) == 1
        assert not pages[0].has_next and not pages[0].has_prev

    @pytest.mark.parametrize("size", [0, -1, True, 2.5, "3"])
    def test_invalid_page_size(self, size):
        with pytest.raises(ValueError):
            paginate(["a"], size)


class TestPageUrl:
    """Tests for page_url()."""

    def test_first_page_is_base(self):
        assert page_url("/", 1) == "/"
        assert page_url("/tags/go", 1) == "/tags/go/"

    def test_later_pages(self):
        assert page_url("/", 2) == "/page/2/"


class TestPlanPages:
    """Tests for plan_pages()."""

    def test_plans_every_listing(self):
        day = datetime(2024, 1, 1, tzinfo=UTC)
        graph = make_graph(
            make_post("2024-01-01-a", day, ["Rust Lang"], category="Notes"),
            make_post("2024-01-02-b", datetime(2024, 1, 2, tzinfo=UTC), ["Rust Lang"]),
            make_post("2024-01-03-c", datetime(2024, 1, 3, tzinfo=UTC)),
        )
        plan = plan_pages(build_index(graph), BuildConfig(page_size=2, base_url="https://blog.example/"))

        assert [p.items for p in plan.chronological] == [["2024-01-03-c", "2024-01-02-b"], ["2024-01-01-a"]]
        assert plan.chronological[1].url == "https://blog.example/page/2/"
        assert plan.tags["Rust Lang"][0].url == "https://blog.example/tags/rust-lang/"
        assert plan.categories["Notes"][0].items == ["2024-01-01-a"]
        assert plan.categories["Notes"][0].url == "https://blog.example/categories/notes/"

    def test_empty_index(self):
        plan = plan_pages(build_index(make_graph()), BuildConfig())
        assert plan.chronological == []
        assert plan.tags == {}


class TestRelatedPosts:
    """Tests for related_posts()."""

    @pytest.fixture
    def graph(self):
        return make_graph(
            make_post("2024-01-01-base", datetime(2024, 1, 1, tzinfo=UTC), ["rust", "embedded", "defmt"]),
            make_post("2024-01-02-two", datetime(2024, 1, 2, tzinfo=UTC), ["rust", "embedded"]),
            make_post("2024-01-03-one-new", datetime(2024, 1, 3, tzinfo=UTC), ["rust"]),
            make_post("2023-06-01-one-old", datetime(2023, 6, 1, tzinfo=UTC), ["defmt"]),
            make_post("2024-01-04-none", datetime(2024, 1, 4, tzinfo=UTC), ["go"]),
            make_post("2024-01-05-untagged", datetime(2024, 1, 5, tzinfo=UTC)),
        )

    def test_ranked_by_shared_tags_then_recency(self, graph):
        assert related_posts(graph, "2024-01-01-base", 5) == [
            "2024-01-02-two",
            "2024-01-03-one-new",
            "2023-06-01-one-old",
        ]

    def test_limit(self, graph):
        assert related_posts(graph, "2024-01-01-base", 1) == ["2024-01-02-two"]
        assert related_posts(graph, "2024-01-01-base", 0) == []

    def test_no_shared_tags(self, graph):
        assert related_posts(graph, "2024-01-04-none", 5) == []

    def test_untagged_post(self, graph):
        assert related_posts(graph, "2024-01-05-untagged", 5) == []

    def test_unknown_slug(self, graph):
        with pytest.raises(KeyError):
            related_posts(graph, "missing", 5)

    def test_plan_related_covers_every_post(self, graph):
        related = plan_related(graph, 2)
        assert set(related) == set(graph.posts)
        assert related["2024-01-02-two"] == ["2024-01-01-base", "2024-01-03-one-new"]
