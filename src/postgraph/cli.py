#!/usr/bin/env python3
"""
postgraph: build a validated site model from front-matter markdown posts

Usage:
    postgraph build posts/               # Incremental build, writes site.json
    postgraph check posts/               # Validate without touching build state
    postgraph tags posts/                # Tag counts
    postgraph related SLUG posts/        # Related posts for one post
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, NoReturn

import click

from . import __version__ as POSTGRAPH_VERSION
from .builder import BuildResult, SiteBuilder
from .config import STATE_DIRNAME, get_source_root, get_state_path, load_config
from .errors import PostgraphError, SlugCollision
from .pagination import related_posts

SITE_FILENAME = "site.json"


def output(data: Any, as_json: bool = False) -> None:
    """Output data as JSON or formatted text."""
    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
    else:
        click.echo(data)


def _handle_error(ctx: click.Context, error: PostgraphError, exit_code: int = 1) -> NoReturn:
    """Print an error (as JSON with --json-errors) and exit."""
    json_errors = ctx.obj.get("json_errors", False) if ctx.obj else False
    if json_errors:
        click.echo(error.to_json(), err=True)
    else:
        click.echo(f"Error: {error.message}", err=True)
        suggestion = error.details.get("suggestion")
        if suggestion:
            click.echo(f"Hint: {suggestion}", err=True)
    sys.exit(exit_code)


def _make_builder(
    ctx: click.Context,
    source: str | None,
    *,
    state: str | None = None,
    workers: int | None = None,
    page_size: int | None = None,
) -> SiteBuilder:
    try:
        source_root = get_source_root(source)
        config = load_config(source_root, workers=workers, page_size=page_size)
    except PostgraphError as e:
        _handle_error(ctx, e)
    return SiteBuilder(source_root, config, state_path=get_state_path(source_root, state))


def _run(ctx: click.Context, builder: SiteBuilder, *, force: bool, persist: bool) -> BuildResult:
    try:
        return builder.build(force=force, persist=persist)
    except SlugCollision as e:
        _handle_error(ctx, e)


def _report(result: BuildResult, as_json: bool) -> None:
    """Print issues grouped by document."""
    if as_json:
        output(
            {
                "ok": result.ok,
                "changes": result.changes,
                "issues": [issue.model_dump() for issue in result.issues],
                "warnings": [issue.model_dump() for issue in result.warnings],
            },
            as_json=True,
        )
        return

    for path, issues in result.grouped_issues().items():
        click.echo(path)
        for issue in issues:
            line = f"line {issue.line}: " if issue.line else ""
            marker = "warning" if issue.severity == "warning" else "error"
            click.echo(f"  {marker}: {line}{issue.kind}: {issue.message}")


# ─────────────────────────────────────────────────────────────────────────────
# Main CLI Group
# ─────────────────────────────────────────────────────────────────────────────


@click.group()
@click.version_option(version=POSTGRAPH_VERSION, prog_name="postgraph")
@click.option(
    "--json-errors",
    "json_errors",
    is_flag=True,
    help="Output fatal errors as JSON (for programmatic use)",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    envvar="POSTGRAPH_QUIET",
    help="Suppress warnings, show only errors and essential output",
)
@click.pass_context
def cli(ctx: click.Context, json_errors: bool, quiet: bool):
    """postgraph: turn a directory of markdown posts into a site model.

    \b
    Quick start:
      postgraph build posts/                # Build, reuse unchanged work
      postgraph build posts/ --full         # Ignore build state
      postgraph check posts/                # Report issues only
      postgraph tags posts/ --json          # Tag counts as JSON
    """
    from ._logging import configure_logging, set_quiet_mode

    configure_logging()
    ctx.ensure_object(dict)
    ctx.obj["json_errors"] = json_errors
    ctx.obj["quiet"] = quiet

    if quiet:
        set_quiet_mode(True)


@cli.command()
@click.argument("source", required=False, type=click.Path(file_okay=False))
@click.option("--state", "state", type=click.Path(dir_okay=False), help="Build state file")
@click.option(
    "--output",
    "-o",
    "output_path",
    type=click.Path(dir_okay=False),
    help=f"Site model JSON (default: SOURCE/{STATE_DIRNAME}/{SITE_FILENAME})",
)
@click.option("--full", is_flag=True, help="Ignore build state and parse every document")
@click.option("--workers", type=click.IntRange(min=1), help="Parallel parse workers")
@click.option("--page-size", type=click.IntRange(min=1), help="Posts per listing page")
@click.option("--json", "as_json", is_flag=True, help="Output report as JSON")
@click.pass_context
def build(
    ctx: click.Context,
    source: str | None,
    state: str | None,
    output_path: str | None,
    full: bool,
    workers: int | None,
    page_size: int | None,
    as_json: bool,
):
    """Build the site model and write it as JSON.

    Build state is saved only when the build has no errors.

    \b
    Examples:
      postgraph build posts/
      postgraph build posts/ -o dist/site.json --page-size 5
    """
    builder = _make_builder(ctx, source, state=state, workers=workers, page_size=page_size)
    result = _run(ctx, builder, force=full, persist=True)
    _report(result, as_json)

    if not result.ok:
        sys.exit(1)

    site = result.raise_for_issues()
    target = Path(output_path) if output_path else builder.source_root / STATE_DIRNAME / SITE_FILENAME
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(site.to_json(), encoding="utf-8")

    if not as_json and not ctx.obj.get("quiet"):
        changed = len(result.changed)
        summary = "reused previous site model" if result.reused else f"{changed} document(s) changed"
        click.echo(f"Built {len(site.graph)} post(s), {summary} -> {target}")


@cli.command()
@click.argument("source", required=False, type=click.Path(file_okay=False))
@click.option("--state", "state", type=click.Path(dir_okay=False), help="Build state file")
@click.option("--json", "as_json", is_flag=True, help="Output report as JSON")
@click.pass_context
def check(ctx: click.Context, source: str | None, state: str | None, as_json: bool):
    """Validate every document without saving build state.

    Exits with status 1 when any error is found.
    """
    builder = _make_builder(ctx, source, state=state)
    result = _run(ctx, builder, force=False, persist=False)
    _report(result, as_json)

    if not result.ok:
        sys.exit(1)
    if not as_json and not ctx.obj.get("quiet"):
        click.echo(f"OK: {len(result.site.graph)} post(s), {len(result.warnings)} warning(s)")


@cli.command()
@click.argument("source", required=False, type=click.Path(file_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def tags(ctx: click.Context, source: str | None, as_json: bool):
    """List tags with post counts, most used first."""
    builder = _make_builder(ctx, source)
    result = _run(ctx, builder, force=False, persist=False)
    if not result.ok:
        _report(result, as_json)
        sys.exit(1)

    counts = result.site.index.tag_counts
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    if as_json:
        output([{"tag": tag, "count": count} for tag, count in ordered], as_json=True)
        return
    for tag, count in ordered:
        click.echo(f"{count:4d}  {tag}")


@cli.command()
@click.argument("slug")
@click.argument("source", required=False, type=click.Path(file_okay=False))
@click.option("--limit", type=click.IntRange(min=0), help="Maximum related posts (default: related_limit)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def related(ctx: click.Context, slug: str, source: str | None, limit: int | None, as_json: bool):
    """Show posts related to SLUG by shared tags."""
    builder = _make_builder(ctx, source)
    result = _run(ctx, builder, force=False, persist=False)
    if not result.ok:
        _report(result, as_json)
        sys.exit(1)

    site = result.site
    if slug not in site.graph:
        raise click.ClickException(f"No post with slug '{slug}'")

    slugs = related_posts(site.graph, slug, limit) if limit is not None else site.related.get(slug, [])
    if as_json:
        output(slugs, as_json=True)
        return
    if not slugs:
        click.echo("No related posts")
    for other in slugs:
        post = site.graph.posts[other]
        click.echo(f"{other}  {post.title}")


if __name__ == "__main__":
    cli()
