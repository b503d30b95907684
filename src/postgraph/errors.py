"""Error kinds and structured build issues.

Per-document problems are raised (parser) or collected (resolver, graph
builder) as ``DocumentError`` subclasses and reported as ``BuildIssue``
records grouped by source path. ``SlugCollision`` is the only error that
aborts a build.
"""

from __future__ import annotations

import json
from typing import Any, ClassVar, Literal

from pydantic import BaseModel

IssueKind = Literal[
    "MalformedFrontMatter",
    "MissingRequiredField",
    "InvalidDate",
    "DuplicateLinkLabel",
    "UnresolvedLinkLabel",
    "BrokenInternalLink",
    "SlugCollision",
    "UnusedLinkDefinition",
]

Severity = Literal["error", "warning"]


class BuildIssue(BaseModel):
    """A single problem found during a build, attributed to a document."""

    path: str
    kind: IssueKind
    message: str
    severity: Severity = "error"
    label: str | None = None  # Link label for reference issues
    target: str | None = None  # Intended link target
    line: int | None = None  # 1-based line in the source file, front matter included

    def format(self) -> str:
        location = f"{self.path}:{self.line}" if self.line else self.path
        return f"{location}: {self.kind}: {self.message}"


class PostgraphError(Exception):
    """Base class for all postgraph errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": type(self).__name__, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class ConfigurationError(PostgraphError):
    """Raised when configuration is missing or invalid."""


class DocumentError(PostgraphError):
    """An error attributed to one source document."""

    kind: ClassVar[IssueKind]
    severity: ClassVar[Severity] = "error"

    def __init__(
        self,
        path: str,
        message: str,
        *,
        label: str | None = None,
        target: str | None = None,
        line: int | None = None,
    ) -> None:
        self.path = path
        self.label = label
        self.target = target
        self.line = line
        details = {k: v for k, v in (("label", label), ("target", target), ("line", line)) if v is not None}
        super().__init__(message, details={"path": path, **details})

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"

    def to_issue(self) -> BuildIssue:
        return BuildIssue(
            path=self.path,
            kind=self.kind,
            message=self.message,
            severity=self.severity,
            label=self.label,
            target=self.target,
            line=self.line,
        )


class MalformedFrontMatter(DocumentError):
    """Front matter block missing, unterminated, or not a valid mapping."""

    kind = "MalformedFrontMatter"


class MissingRequiredField(DocumentError):
    """A required front matter field (title, date) is absent or blank."""

    kind = "MissingRequiredField"


class InvalidDate(DocumentError):
    """The date field does not parse to a timestamp."""

    kind = "InvalidDate"


class DuplicateLinkLabel(DocumentError):
    """The same reference label is defined more than once in a document."""

    kind = "DuplicateLinkLabel"


class UnresolvedLinkLabel(DocumentError):
    """A reference label is used but never defined in the document."""

    kind = "UnresolvedLinkLabel"


class BrokenInternalLink(DocumentError):
    """An internal link points at a slug that is not in the corpus."""

    kind = "BrokenInternalLink"


class UnusedLinkDefinition(DocumentError):
    """A reference definition that no usage refers to."""

    kind = "UnusedLinkDefinition"
    severity = "warning"


class SlugCollision(PostgraphError):
    """Two documents compute the same slug. Fatal for the whole build."""

    kind: ClassVar[IssueKind] = "SlugCollision"

    def __init__(self, slug: str, paths: list[str]) -> None:
        self.slug = slug
        self.paths = list(paths)
        super().__init__(
            f"Slug '{slug}' is produced by more than one document: {', '.join(self.paths)}",
            details={"slug": slug, "paths": self.paths},
        )

    def to_issues(self) -> list[BuildIssue]:
        return [
            BuildIssue(path=path, kind=self.kind, message=self.message, target=self.slug)
            for path in self.paths
        ]


class BuildFailed(PostgraphError):
    """Raised by callers that want an exception instead of an issue list."""

    def __init__(self, issues: list[BuildIssue]) -> None:
        self.issues = list(issues)
        paths = sorted({issue.path for issue in self.issues})
        super().__init__(
            f"Build failed with {len(self.issues)} issue(s) in {len(paths)} document(s)",
            details={"paths": paths},
        )


def group_issues(issues: list[BuildIssue]) -> dict[str, list[BuildIssue]]:
    """Group issues by document path, paths sorted, issue order kept."""
    grouped: dict[str, list[BuildIssue]] = {}
    for issue in sorted(issues, key=lambda i: i.path):
        grouped.setdefault(issue.path, []).append(issue)
    return grouped
