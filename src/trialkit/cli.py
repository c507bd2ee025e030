"""Command-line interface for trialkit."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.tree import Tree

from trialkit.config import RunConfig
from trialkit.discovery import collect
from trialkit.errors import ConfigurationError
from trialkit.models.result import Status
from trialkit.planning import PlanNode, build_plan
from trialkit.reports import ConsoleReporter, JsonReporter, Reporter
from trialkit.runner import Runner
from trialkit.version import __version__


EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_CONFIGURATION_ERROR = 2

_LOG_LEVELS = {-1: logging.ERROR, 0: logging.WARNING, 1: logging.INFO}


def _configure_logging(verbosity: int) -> None:
    level = _LOG_LEVELS.get(verbosity, logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(ctx: click.Context, console: Console, **overrides: object) -> RunConfig:
    load_dotenv(Path.cwd() / ".env")
    try:
        return RunConfig.load(**overrides)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        ctx.exit(EXIT_CONFIGURATION_ERROR)


selection_options = [
    click.argument("paths", nargs=-1, type=click.Path(exists=True, path_type=Path)),
    click.option("-t", "--tag", "include_tags", multiple=True, help="Run only trials with this tag (repeatable)"),
    click.option("--exclude-tag", "exclude_tags", multiple=True, help="Skip trials with this tag (repeatable)"),
    click.option("-k", "--keyword", help="Run only trials whose identifier or name contains TEXT"),
]


def _with_selection(fn: Callable[..., Any]) -> Callable[..., Any]:
    for option in reversed(selection_options):
        fn = option(fn)
    return fn


@click.group()
@click.version_option(__version__, prog_name="trialkit")
def main() -> None:
    """Declare, discover and run trials."""


@main.command("run")
@_with_selection
@click.option("-j", "--concurrency", type=click.IntRange(min=0), help="Maximum concurrent trial bodies (0 = default)")
@click.option("--time-limit", type=click.FloatRange(min=0, min_open=True), help="Default time limit per invocation, in seconds")
@click.option("--no-threads", is_flag=True, help="Run synchronous bodies on the event loop thread")
@click.option("--trace", is_flag=True, help="Export OpenTelemetry spans")
@click.option("--trace-output", type=click.Path(dir_okay=False, path_type=Path), help="Span output file (JSONL)")
@click.option("--json-report", type=click.Path(dir_okay=False, path_type=Path), help="Write the run result as JSON")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (repeatable)")
@click.option("-q", "--quiet", is_flag=True, help="Only print failures and the summary")
@click.pass_context
def run_command(
    ctx: click.Context,
    paths: tuple[Path, ...],
    include_tags: tuple[str, ...],
    exclude_tags: tuple[str, ...],
    keyword: str | None,
    concurrency: int | None,
    time_limit: float | None,
    no_threads: bool,
    trace: bool,
    trace_output: Path | None,
    json_report: Path | None,
    verbose: int,
    quiet: bool,
) -> None:
    """Discover trial_*.py files under PATHS and run them.

    \b
    Exit codes:
      0  nothing failed
      1  at least one trial failed
      2  configuration error (nothing was run)
    """
    console = Console()
    config = _load_config(
        ctx,
        console,
        paths=list(paths) or None,
        include_tags=list(include_tags) or None,
        exclude_tags=list(exclude_tags) or None,
        keyword=keyword,
        concurrency=concurrency,
        time_limit=time_limit,
        threaded=False if no_threads else None,
        trace=trace or None,
        trace_output=trace_output,
        json_report=json_report,
        verbosity=-1 if quiet else (verbose or None),
    )
    _configure_logging(config.verbosity)

    try:
        registry = collect(config.paths)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        ctx.exit(EXIT_CONFIGURATION_ERROR)

    reporters: list[Reporter] = [ConsoleReporter(console, verbosity=config.verbosity)]
    if config.json_report is not None:
        reporters.append(JsonReporter(config.json_report))

    result = asyncio.run(Runner.from_config(config, reporters).run(registry))
    ctx.exit(EXIT_FAILURES if result.status is Status.FAILED else EXIT_OK)


def _add_to_tree(tree: Tree, node: PlanNode) -> None:
    unit = node.unit
    tags = f" [cyan]{escape(', '.join(sorted(node.traits.tags)))}[/cyan]" if node.traits.tags else ""
    if node.is_group:
        serial = " [dim](serialized)[/dim]" if node.traits.serialized else ""
        branch = tree.add(f"[bold]{escape(unit.label)}[/bold]{serial}{tags}")
        for child in node.children:
            _add_to_tree(branch, child)
        return
    cases = f" [dim]({len(unit.arguments)} cases)[/dim]" if unit.arguments is not None else ""
    tree.add(f"{escape(unit.label)}{cases}{tags}")


@main.command("list")
@_with_selection
@click.pass_context
def list_command(
    ctx: click.Context,
    paths: tuple[Path, ...],
    include_tags: tuple[str, ...],
    exclude_tags: tuple[str, ...],
    keyword: str | None,
) -> None:
    """Print the trials under PATHS without running them."""
    console = Console()
    config = _load_config(
        ctx,
        console,
        paths=list(paths) or None,
        include_tags=list(include_tags) or None,
        exclude_tags=list(exclude_tags) or None,
        keyword=keyword,
    )
    _configure_logging(config.verbosity)

    try:
        registry = collect(config.paths)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        ctx.exit(EXIT_CONFIGURATION_ERROR)

    plan = build_plan(
        registry,
        include_tags=config.include_tags,
        exclude_tags=config.exclude_tags,
        keyword=config.keyword,
    )
    if not plan.roots:
        console.print("[yellow]No trials found.[/yellow]")
        return

    tree = Tree("[bold]trials[/bold]")
    for node in plan:
        _add_to_tree(tree, node)
    console.print(tree)
    console.print(f"\n[bold]{plan.trial_count} trials[/bold]")


if __name__ == "__main__":
    main()
