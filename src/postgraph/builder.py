"""Incremental build coordinator.

Orchestrates the full pipeline:
1. Scan the source root and classify every document against Build State
2. Parse and resolve new or modified documents on a bounded worker pool
3. Barrier: assemble the post graph and validate cross-post links
4. Derive indices, page plans and related posts
5. Persist Build State, only when the run produced no errors
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Literal

from ._logging import get_logger
from .config import SOURCE_SUFFIX, BuildConfig, get_state_path, load_config
from .errors import BuildFailed, BuildIssue, DocumentError, group_issues
from .graph import build_graph
from .indexer import build_index
from .models import BuildState, CorpusGraph, FileSignature, ParsedDocument, SiteModel, StateEntry
from .pagination import plan_pages, plan_related
from .parser import internal_slug, parse_document, resolve_references
from .renderer import MarkdownItRenderer, Renderer, make_excerpt
from .state import empty_state, load_state, read_signature, save_state

log = get_logger(__name__)

ChangeKind = Literal["unchanged", "new", "modified", "removed"]


@dataclass
class PlannedDocument:
    """A source path and what happened to it since the last build."""

    path: str
    change: ChangeKind
    signature: FileSignature | None = None  # None for removed documents
    raw: bytes | None = None  # Set when the file had to be read


@dataclass
class BuildResult:
    """Outcome of one pipeline run."""

    site: SiteModel | None
    issues: list[BuildIssue] = field(default_factory=list)
    warnings: list[BuildIssue] = field(default_factory=list)
    changes: dict[str, ChangeKind] = field(default_factory=dict)
    reused: bool = False  # Site model taken from Build State unchanged
    state_saved: bool = False

    @property
    def ok(self) -> bool:
        return self.site is not None and not self.issues

    @property
    def changed(self) -> list[str]:
        return [path for path, change in self.changes.items() if change != "unchanged"]

    def grouped_issues(self) -> dict[str, list[BuildIssue]]:
        return group_issues(self.issues + self.warnings)

    def raise_for_issues(self) -> SiteModel:
        """Return the site model, or raise BuildFailed listing every issue."""
        if self.site is None or self.issues:
            raise BuildFailed(self.issues)
        return self.site


def process_document(
    path: str,
    raw: bytes,
    *,
    mtime_ns: int,
    renderer: Renderer,
    excerpt_length: int,
) -> ParsedDocument:
    """Per-document stage: parse front matter, resolve links, cut the excerpt.

    Touches nothing but its arguments, so it is safe to run in parallel.

    Raises:
        DocumentError: If the document cannot be parsed.
    """
    document = parse_document(path, raw, mtime_ns=mtime_ns)
    references = resolve_references(path, document.body, first_line=document.body_line)
    excerpt = make_excerpt(document.body, document.front_matter.summary, renderer, excerpt_length)
    return ParsedDocument(document=document, references=references, excerpt=excerpt)


def assemble_site(graph: CorpusGraph, config: BuildConfig) -> SiteModel:
    """Whole-corpus stages after the graph: indices, pages, related posts."""
    index = build_index(graph)
    return SiteModel(
        graph=graph,
        index=index,
        pages=plan_pages(index, config),
        related=plan_related(graph, config.related_limit),
    )


def _issue_order(issue: BuildIssue) -> tuple[str, int, str]:
    return (issue.path, issue.line or 0, issue.kind)


def _slug_from_path(path: str) -> str | None:
    """Slug named by a file such as ``2020-08-28-rust.md`` or ``2020-08-28-rust/index.md``."""
    file_path = PurePosixPath(path)
    name = file_path.parent.name if file_path.stem == "index" else file_path.stem
    return internal_slug(name)


class SiteBuilder:
    """Builds the site model for a source directory, reusing unchanged work."""

    def __init__(
        self,
        source_root: Path,
        config: BuildConfig | None = None,
        *,
        state_path: Path | None = None,
        renderer: Renderer | None = None,
    ) -> None:
        """Initialize builder.

        Args:
            source_root: Directory holding the markdown documents.
            config: Build settings (defaults to load_config(source_root)).
            state_path: Build State file (defaults to get_state_path()).
            renderer: Markdown renderer used for excerpts.
        """
        self.source_root = source_root
        self.config = config or load_config(source_root)
        self.state_path = state_path or get_state_path(source_root)
        self.renderer = renderer or MarkdownItRenderer()

    def scan(self) -> dict[str, Path]:
        """List source documents keyed by relative POSIX path.

        Files or directories starting with ``_`` or ``.`` are skipped.
        """
        files: dict[str, Path] = {}
        for file_path in sorted(self.source_root.rglob(f"*{SOURCE_SUFFIX}")):
            rel_path = file_path.relative_to(self.source_root)
            if any(part.startswith(("_", ".")) for part in rel_path.parts):
                continue
            if not file_path.is_file():
                continue
            files[rel_path.as_posix()] = file_path
        return files

    def plan_changes(self, state: BuildState) -> list[PlannedDocument]:
        """Classify every current and previously known document."""
        planned: list[PlannedDocument] = []
        files = self.scan()

        for path, file_path in files.items():
            entry = state.entries.get(path)
            previous = entry.signature if entry else None
            signature, raw = read_signature(file_path, previous)

            if entry is None:
                change: ChangeKind = "new"
            elif signature.same_content(previous):
                change = "unchanged"
            else:
                change = "modified"
            planned.append(PlannedDocument(path=path, change=change, signature=signature, raw=raw))

        for path in sorted(set(state.entries) - set(files)):
            planned.append(PlannedDocument(path=path, change="removed"))

        return planned

    def _process_changed(
        self, pending: list[PlannedDocument]
    ) -> tuple[dict[str, ParsedDocument], list[BuildIssue]]:
        """Parse and resolve documents in parallel, draining every future."""
        parsed: dict[str, ParsedDocument] = {}
        issues: list[BuildIssue] = []
        if not pending:
            return parsed, issues

        workers = min(self.config.workers, len(pending))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="postgraph") as pool:
            futures = {
                pool.submit(
                    process_document,
                    item.path,
                    item.raw,
                    mtime_ns=item.signature.mtime_ns,
                    renderer=self.renderer,
                    excerpt_length=self.config.excerpt_length,
                ): item.path
                for item in pending
                if item.raw is not None and item.signature is not None
            }
            for future in as_completed(futures):
                path = futures[future]
                try:
                    result = future.result()
                except DocumentError as e:
                    log.debug("Failed to parse %s: %s", path, e.message)
                    issues.append(e.to_issue())
                    continue
                issues.extend(result.references.errors)
                parsed[path] = result

        return parsed, issues

    def _corpus_issues(self, parsed: Iterable[ParsedDocument], failed: list[str]) -> list[BuildIssue]:
        """Collisions and broken links among the documents that did parse.

        A link is not reported when its target looks like the file name of
        a document that failed to parse, since that post may well exist.
        """
        graph_result = build_graph(parsed, self.config, strict=False)
        issues = [issue for collision in graph_result.collisions for issue in collision.to_issues()]

        unknown = {slug for slug in map(_slug_from_path, failed) if slug}
        for issue in graph_result.issues:
            if issue.target in unknown:
                log.info("%s: not checking link to '%s' until that document parses", issue.path, issue.target)
                continue
            issues.append(issue)
        return issues

    def build(self, *, force: bool = False, persist: bool = True) -> BuildResult:
        """Run the pipeline.

        Args:
            force: Ignore Build State and parse every document.
            persist: Save Build State after a successful run.

        Returns:
            BuildResult with the site model, or the complete issue list.

        Raises:
            SlugCollision: If two documents produce the same slug. In a run
                that already has per-document errors the collision is
                returned as issues instead.
        """
        state =empty_state(self.config) if force else load_state(self.state_path, self.config)
        planned = self.plan_changes(state)
        changes = {item.path: item.change for item in planned}

        pending = [item for item in planned if item.change in ("new", "modified")]
        parsed, issues = self._process_changed(pending)
        failed = [item.path for item in pending if item.path not in parsed]
        for item in planned:
            if item.change == "unchanged":
                parsed[item.path] = state.entries[item.path].parsed

        warnings = sorted(
            (warning for doc in parsed.values() for warning in doc.references.warnings),
            key=_issue_order,
        )
        for warning in warnings:
            log.warning("%s", warning.format())

        if issues:
            # The run fails either way; still report what the rest of the corpus gets wrong
            issues.extend(self._corpus_issues(parsed.values(), failed))
            issues.sort(key=_issue_order)
            log.error("Build failed: %d issue(s) in %d document(s)", len(issues), len(group_issues(issues)))
            return BuildResult(site=None, issues=issues, warnings=warnings, changes=changes)

        reused = False
        if state.site is not None and not any(item.change != "unchanged" for item in planned):
            site = state.site
            reused = True
            log.debug("No document changed, reusing site model from build state")
        else:
            graph_result = build_graph(parsed.values(), self.config)
            if graph_result.issues:
                issues = sorted(graph_result.issues, key=_issue_order)
                log.error("Build failed: %d broken internal link(s)", len(issues))
                return BuildResult(site=None, issues=issues, warnings=warnings, changes=changes)
            site = assemble_site(graph_result.graph, self.config)

        counts = Counter(changes.values())
        log.info(
            "Built %d post(s): %d new, %d modified, %d removed, %d unchanged",
            len(site.graph),
            counts["new"],
            counts["modified"],
            counts["removed"],
            counts["unchanged"],
        )

        result = BuildResult(site=site, warnings=warnings, changes=changes, reused=reused)
        if persist:
            entries = {}
            for item in planned:
                if item.change == "removed" or item.signature is None:
                    continue
                entries[item.path] = StateEntry(signature=item.signature, parsed=parsed[item.path])
            save_state(
                self.state_path,
                BuildState(
                    schema_version=state.schema_version,
                    config_fingerprint=self.config.fingerprint(),
                    entries=entries,
                    site=site,
                ),
            )
            result.state_saved = True
        return result
