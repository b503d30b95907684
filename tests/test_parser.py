"""Tests for front matter splitting and decoding."""

from datetime import UTC, date, datetime, timedelta
from pathlib import Path

import pytest

from postgraph.errors import InvalidDate, MalformedFrontMatter, MissingRequiredField
from postgraph.parser import compute_signature, load_document, parse_date, parse_document, split_front_matter

from conftest import create_post, post_text


def parse(text: str, path: str = "post.md"):
    return parse_document(path, text.encode("utf-8"))


class TestSplitFrontMatter:
    """Tests for locating the front matter block."""

    def test_splits_front_and_body(self):
        front, body, body_line = split_front_matter("a.md", "---\ntitle: A\n---\nBody\n")
        assert front == "title: A\n"
        assert body == "Body\n"
        assert body_line == 4

    def test_leading_blank_lines_allowed(self):
        front, body, body_line = split_front_matter("a.md", "\n\n---\ntitle: A\n---\nBody\n")
        assert front == "title: A\n"
        assert body_line == 6

    def test_dots_close_the_block(self):
        front, body, _ = split_front_matter("a.md", "---\ntitle: A\n...\nBody\n")
        assert front == "title: A\n"
        assert body == "Body\n"

    def test_missing_opening_marker(self):
        with pytest.raises(MalformedFrontMatter) as exc_info:
            split_front_matter("a.md", "title: A\n---\nBody\n")
        assert exc_info.value.path == "a.md"

    def test_empty_file(self):
        with pytest.raises(MalformedFrontMatter):
            split_front_matter("a.md", "")

    def test_unclosed_block_reports_opening_line(self):
        with pytest.raises(MalformedFrontMatter) as exc_info:
            split_front_matter("a.md", "\n---\ntitle: A\nBody\n")
        assert exc_info.value.line == 2


class TestParseDocument:
    """Tests for parse_document()."""

    def test_basic_post(self):
        doc = parse(post_text("Hello World", "2024-01-15", "Body text\n", tags=["a", "b"], category="misc"))

        assert doc.path == "post.md"
        assert doc.front_matter.title == "Hello World"
        assert doc.front_matter.date == datetime(2024, 1, 15, tzinfo=UTC)
        assert doc.front_matter.tags == ["a", "b"]
        assert doc.front_matter.category == "misc"
        assert doc.front_matter.layout == "post"
        assert doc.front_matter.draft is False
        assert doc.body == "Body text\n"

    def test_body_line_counts_front_matter(self):
        doc = parse("---\ntitle: A\ndate: 2024-01-15\n---\nfirst body line\n")
        assert doc.body_line == 5

    def test_signature_matches_raw_bytes(self):
        raw = post_text("A", "2024-01-15", "Body\n").encode("utf-8")
        doc = parse_document("a.md", raw, mtime_ns=42)
        assert doc.signature == compute_signature(raw, mtime_ns=42)
        assert doc.signature.size == len(raw)

    def test_crlf_and_bom_are_normalized(self):
        raw = "\ufeff---\r\ntitle: A\r\ndate: 2024-01-15\r\n---\r\nBody\r\n".encode("utf-8")
        doc = parse_document("a.md", raw)
        assert doc.front_matter.title == "A"
        assert doc.body == "Body\n"

    def test_invalid_utf8(self):
        with pytest.raises(MalformedFrontMatter):
            parse_document("a.md", b"---\ntitle: \xff\n---\n")

    def test_invalid_yaml(self):
        with pytest.raises(MalformedFrontMatter, match="Invalid YAML"):
            parse("---\ntitle: [unclosed\ndate: 2024-01-15\n---\n")

    def test_front_matter_not_a_mapping(self):
        with pytest.raises(MalformedFrontMatter, match="mapping"):
            parse("---\n- one\n- two\n---\nBody\n")

    def test_missing_title(self):
        with pytest.raises(MissingRequiredField) as exc_info:
            parse("---\ndate: 2024-01-15\n---\nBody\n")
        assert exc_info.value.label == "title"
        assert exc_info.value.to_issue().kind == "MissingRequiredField"

    def test_blank_title(self):
        with pytest.raises(MissingRequiredField):
            parse('---\ntitle: "  "\ndate: 2024-01-15\n---\n')

    def test_missing_date(self):
        with pytest.raises(MissingRequiredField) as exc_info:
            parse("---\ntitle: A\n---\nBody\n")
        assert exc_info.value.label == "date"

    def test_empty_front_matter_is_missing_title(self):
        with pytest.raises(MissingRequiredField):
            parse("---\n---\nBody\n")

    def test_created_is_accepted_as_date(self):
        doc = parse("---\ntitle: A\ncreated: 2024-01-15\n---\n")
        assert doc.front_matter.date.date() == date(2024, 1, 15)

    def test_unparseable_date(self):
        with pytest.raises(InvalidDate) as exc_info:
            parse("---\ntitle: A\ndate: next tuesday\n---\n")
        assert exc_info.value.to_issue().kind == "InvalidDate"

    def test_out_of_range_date(self):
        with pytest.raises(InvalidDate):
            parse("---\ntitle: A\ndate: 2020-13-45\n---\n")

    def test_wrongly_typed_field(self):
        with pytest.raises(MalformedFrontMatter, match="layout"):
            parse("---\ntitle: A\ndate: 2024-01-15\nlayout: [a, b]\n---\n")

    def test_unknown_keys_kept_in_extra(self):
        doc = parse("---\ntitle: A\ndate: 2024-01-15\nauthor: Ada\ncomments: true\n---\n")
        assert doc.front_matter.extra == {"author": "Ada", "comments": True}

    def test_draft_summary_layout(self):
        doc = parse("---\ntitle: A\ndate: 2024-01-15\ndraft: true\nsummary: Short\nlayout: page\n---\n")
        assert doc.front_matter.draft is True
        assert doc.front_matter.summary == "Short"
        assert doc.front_matter.layout == "page"


class TestTagsAndCategory:
    """Tests for tag and category normalization."""

    def test_tags_from_string(self):
        doc = parse("---\ntitle: A\ndate: 2024-01-15\ntags: rust, embedded go\n---\n")
        assert doc.front_matter.tags == ["rust", "embedded", "go"]

    def test_duplicate_tags_dropped_in_order(self):
        doc = parse("---\ntitle: A\ndate: 2024-01-15\ntags: [b, a, b]\n---\n")
        assert doc.front_matter.tags == ["b", "a"]

    def test_tags_keep_case(self):
        doc = parse("---\ntitle: A\ndate: 2024-01-15\ntags: [Rust, rust]\n---\n")
        assert doc.front_matter.tags == ["Rust", "rust"]

    def test_null_tag_entries_skipped(self):
        doc = parse("---\ntitle: A\ndate: 2024-01-15\ntags: [rust, ~]\n---\n")
        assert doc.front_matter.tags == ["rust"]

    def test_tags_mapping_rejected(self):
        with pytest.raises(MalformedFrontMatter):
            parse("---\ntitle: A\ndate: 2024-01-15\ntags:\n  a: 1\n---\n")

    def test_categories_single_item_list(self):
        doc = parse("---\ntitle: A\ndate: 2024-01-15\ncategories: [notes]\n---\n")
        assert doc.front_matter.category == "notes"

    def test_more_than_one_category_rejected(self):
        with pytest.raises(MalformedFrontMatter, match="one category"):
            parse("---\ntitle: A\ndate: 2024-01-15\ncategories: [a, b]\n---\n")

    def test_no_category(self):
        doc = parse(post_text("A", "2024-01-15", ""))
        assert doc.front_matter.category is None


class TestParseDate:
    """Tests for parse_date()."""

    def test_date_object_is_midnight_utc(self):
        assert parse_date("a.md", date(2020, 8, 28)) == datetime(2020, 8, 28, tzinfo=UTC)

    def test_naive_datetime_is_utc(self):
        assert parse_date("a.md", datetime(2020, 8, 28, 10, 30)).tzinfo == UTC

    def test_iso_string_with_offset(self):
        parsed = parse_date("a.md", "2020-08-28T10:00:00+02:00")
        assert parsed.utcoffset() == timedelta(hours=2)

    def test_jekyll_style_string(self):
        parsed = parse_date("a.md", "2020-08-28 10:00:00 +0100")
        assert parsed == datetime(2020, 8, 28, 9, 0, tzinfo=UTC)

    @pytest.mark.parametrize("value", [None, "", "yesterday", 12, ["2020-08-28"]])
    def test_rejects_non_dates(self, value):
        with pytest.raises(InvalidDate):
            parse_date("a.md", value)


class TestLoadDocument:
    """Tests for load_document()."""

    def test_uses_relative_posix_path(self, tmp_corpus: Path):
        file_path = create_post(tmp_corpus, "2020/hello.md", "Hello", "2020-08-28", "Body\n")
        doc = load_document(tmp_corpus, file_path)
        assert doc.path == "2020/hello.md"
        assert doc.signature.mtime_ns == file_path.stat().st_mtime_ns
