"""Reference-style link resolution.

Resolution runs in two explicit passes over a document body:

1. ``collect_definitions`` gathers every ``[label]: target`` definition.
2. ``collect_usages`` resolves each link usage against those definitions.

Because all definitions are known before any usage is looked at, a usage
may appear before its definition. Fenced and indented code blocks and
inline code spans are masked first so illustrative code never produces
links.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from ..errors import DocumentError, DuplicateLinkLabel, UnresolvedLinkLabel, UnusedLinkDefinition
from ..models import LinkStyle, LinkUsage, ReferenceDefinition, ReferenceMap

FENCE_PATTERN = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})")
CODE_SPAN_PATTERN = re.compile(r"(?<!`)(?P<ticks>`+)(?!`)(?P<code>.+?)(?<!`)(?P=ticks)(?!`)")
INDENTED_CODE_PATTERN = re.compile(r"^(?: {4}|\t)")
LIST_ITEM_PATTERN = re.compile(r"^ {0,3}(?:[-+*]|\d{1,9}[.)])(?:[ \t]|$)")

DEFINITION_PATTERN = re.compile(
    r"^ {0,3}\[(?P<label>[^\]\n]+)\]:[ \t]*"
    r"(?:<(?P<angle>[^>\n]*)>|(?P<target>\S+))"
    r"(?:[ \t]+(?:\"(?P<dq>[^\"\n]*)\"|'(?P<sq>[^'\n]*)'|\((?P<paren>[^)\n]*)\)))?"
    r"[ \t]*$",
    re.MULTILINE,
)

# Wikilink cross-post references: [[slug]] or [[slug|text]]
WIKILINK_PATTERN = re.compile(r"\[\[(?P<target>[^\]|\n]+)(?:\|(?P<text>[^\]\n]*))?\]\]")

# [text](target), [text][label], [label][] and [label]; text may hold one
# level of nested brackets (e.g. an image inside a link).
LINK_PATTERN = re.compile(
    r"(?<!\\)!?\[(?P<text>(?:[^\[\]\n]|\[[^\[\]\n]*\])*)\]"
    r"(?:\((?P<inline><[^>\n]*>|[^()\s]*)(?:[ \t]+(?:\"[^\"\n]*\"|'[^'\n]*'))?\)"
    r"|\[(?P<ref>[^\[\]\n]*)\])?"
)

# Lexical slug shape: YYYY-MM-DD[-words], optionally under path segments,
# with an optional trailing slash, .html suffix or #fragment.
INTERNAL_TARGET_PATTERN = re.compile(
    r"^(?:\.{1,2}/|/)?(?:[\w.-]+/)*"
    r"(?P<slug>\d{4}-\d{2}-\d{2}(?:-[a-z0-9]+)*)"
    r"/?(?:\.html)?(?:#\S*)?$"
)


def normalize_label(label: str) -> str:
    """Normalize a link label: case-folded with inner whitespace collapsed."""
    return " ".join(label.split()).casefold()


def internal_slug(target: str) -> str | None:
    """Return the slug a target points at if it looks like a post slug."""
    match = INTERNAL_TARGET_PATTERN.match(target.strip())
    return match.group("slug") if match else None


def mask_code(text: str) -> str:
    """Blank out code blocks and code spans, keeping offsets intact.

    Masks fenced blocks, inline code spans and indented blocks. An indented
    block is four spaces or a tab after a blank line; inside a list item
    the same indentation is continuation text and stays visible.
    """
    masked_lines: list[str] = []
    fence: str | None = None
    indented = False
    in_list = False
    after_blank = True

    for line in text.splitlines(keepends=True):
        newline = "\n" if line.endswith("\n") else ""
        content = line[: len(line) - len(newline)]
        blanked = " " * len(content) + newline
        match = FENCE_PATTERN.match(content)

        if fence is None and match:
            fence = match.group("fence")
            indented = False
            masked_lines.append(blanked)
        elif fence is not None:
            closing = match and match.group("fence")[0] == fence[0] and len(match.group("fence")) >= len(fence)
            if closing and content.strip() == match.group("fence"):
                fence = None
            masked_lines.append(blanked)
        elif not content.strip():
            masked_lines.append(line)
        elif (indented or after_blank) and not in_list and INDENTED_CODE_PATTERN.match(content):
            indented = True
            masked_lines.append(blanked)
        else:
            indented = False
            if LIST_ITEM_PATTERN.match(content):
                in_list = True
            elif after_blank and not content[0].isspace():
                in_list = False
            masked_lines.append(
                CODE_SPAN_PATTERN.sub(lambda m: " " * len(m.group(0)), content) + newline
            )
        after_blank = not content.strip()

    return "".join(masked_lines)


@dataclass
class _Scan:
    """Working state shared by the two passes for one document."""

    path: str
    text: str
    first_line: int
    definitions: dict[str, ReferenceDefinition] = field(default_factory=dict)
    errors: list[DocumentError] = field(default_factory=list)

    def line_at(self, offset: int) -> int:
        return self.first_line + self.text.count("\n", 0, offset)


def collect_definitions(scan: _Scan) -> str:
    """First pass: record every definition in the document.

    Returns:
        The text with definition lines blanked, for the usage pass.
    """
    for match in DEFINITION_PATTERN.finditer(scan.text):
        raw_label = match.group("label")
        if raw_label.startswith("^"):
            continue  # footnote definition

        label = normalize_label(raw_label)
        if not label:
            continue

        target = match.group("angle") if match.group("angle") is not None else match.group("target")
        title = match.group("dq") or match.group("sq") or match.group("paren")
        line = scan.line_at(match.start())

        existing = scan.definitions.get(label)
        if existing is not None:
            scan.errors.append(
                DuplicateLinkLabel(
                    scan.path,
                    f"Link label [{raw_label}] is already defined on line {existing.line}",
                    label=label,
                    target=target,
                    line=line,
                )
            )
            continue

        scan.definitions[label] = ReferenceDefinition(label=label, target=target, title=title, line=line)

    def blank(match: re.Match[str]) -> str:
        if match.group("label").startswith("^"):
            return match.group(0)
        return " " * len(match.group(0))

    return DEFINITION_PATTERN.sub(blank, scan.text)


def _usage(target: str, *, text: str, line: int, style: LinkStyle, label: str | None) -> LinkUsage:
    slug = internal_slug(target)
    return LinkUsage(
        label=label,
        text=text,
        line=line,
        target=target,
        kind="internal" if slug else "external",
        style=style,
        slug=slug,
    )


def _scan_links(scan: _Scan, text: str, base: int, usages: list[LinkUsage], unresolved: set[str]) -> None:
    for match in LINK_PATTERN.finditer(text):
        offset = base + match.start()
        link_text = match.group("text")
        inline = match.group("inline")
        ref = match.group("ref")

        if inline is not None:
            target = inline[1:-1] if inline.startswith("<") else inline
            if target:
                usages.append(_usage(target, text=link_text, line=scan.line_at(offset), style="inline", label=None))
        else:
            style: LinkStyle
            if ref is None:
                style, raw_label = "shortcut", link_text
            elif ref.strip() == "":
                style, raw_label = "collapsed", link_text
            else:
                style, raw_label = "full", ref

            label = normalize_label(raw_label)
            if label and not label.startswith("^"):
                definition = scan.definitions.get(label)
                if definition is not None:
                    usages.append(
                        _usage(
                            definition.target,
                            text=link_text,
                            line=scan.line_at(offset),
                            style=style,
                            label=label,
                        )
                    )
                elif style != "shortcut" and label not in unresolved:
                    # A bare [word] without a definition is literal text, not a link
                    unresolved.add(label)
                    scan.errors.append(
                        UnresolvedLinkLabel(
                            scan.path,
                            f"Link label [{raw_label}] is used but never defined",
                            label=label,
                            line=scan.line_at(offset),
                        )
                    )

        # Links nested inside the link text, e.g. [![logo][img]][home]
        if link_text and "[" in link_text:
            _scan_links(scan, link_text, offset + match.group(0).index("[") + 1, usages, unresolved)


def collect_usages(scan: _Scan, text: str) -> list[LinkUsage]:
    """Second pass: resolve every link usage against collected definitions."""
    usages: list[LinkUsage] = []
    unresolved: set[str] = set()

    def wikilink(match: re.Match[str]) -> str:
        raw = match.group("target").strip()
        target = raw[:-3] if raw.endswith(".md") else raw
        target = target.replace("\\", "/").strip("/")
        slug = internal_slug(target) or target
        usages.append(
            LinkUsage(
                label=None,
                text=(match.group("text") or raw).strip(),
                line=scan.line_at(match.start()),
                target=target,
                kind="internal",
                style="wikilink",
                slug=slug,
            )
        )
        return " " * len(match.group(0))

    text = WIKILINK_PATTERN.sub(wikilink, text)
    _scan_links(scan, text, 0, usages, unresolved)

    usages.sort(key=lambda u: u.line)
    return usages


def resolve_references(path: str, body: str, *, first_line: int = 1) -> ReferenceMap:
    """Resolve all reference-style and cross-post links of a document body.

    Errors are collected rather than raised so a single document reports
    every problem at once:

    - DuplicateLinkLabel for each repeated definition of a label
    - UnresolvedLinkLabel once per label used but never defined
    - UnusedLinkDefinition (warning) for definitions nothing refers to

    Internal targets are recognized by shape only; whether the slug exists
    is checked later against the whole corpus.

    Args:
        path: Document path for error attribution.
        body: Markdown body (front matter removed).
        first_line: File line number of the first body line.

    Returns:
        ReferenceMap with definitions, usages and issues.
    """
    scan = _Scan(path=path, text=mask_code(body), first_line=first_line)

    remaining = collect_definitions(scan)
    usages = collect_usages(scan, remaining)

    used_labels = {usage.label for usage in usages if usage.label}
    for label, definition in scan.definitions.items():
        if label not in used_labels:
            scan.errors.append(
                UnusedLinkDefinition(
                    path,
                    f"Link definition [{label}] is never used",
                    label=label,
                    target=definition.target,
                    line=definition.line,
                )
            )

    issues = sorted((error.to_issue() for error in scan.errors), key=lambda i: (i.line or 0, i.kind))
    return ReferenceMap(definitions=scan.definitions, usages=usages, issues=issues)
