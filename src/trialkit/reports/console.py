"""Console reporter for trial output using Rich."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console, Group, RenderableType
from rich.markup import escape
from rich.panel import Panel
from rich.traceback import Traceback

import trialkit
from trialkit.models.result import IssueKind, Status
from trialkit.reports.base import Reporter


if TYPE_CHECKING:
    from trialkit.models.result import ExecutionResult, Issue, RunResult, UnitReport
    from trialkit.models.run import RunEnvironment
    from trialkit.planning import Plan


_STATUS_CONFIG: dict[Status, tuple[str, str, str]] = {
    Status.PASSED: ("✓", "green", "PASSED"),
    Status.FAILED: ("✗", "red", "FAILED"),
    Status.SKIPPED: ("-", "yellow", "SKIPPED"),
}

_ISSUE_LABELS: dict[IssueKind, str] = {
    IssueKind.ASSERTION_FAILURE: "Expectation failed",
    IssueKind.REQUIRE_FAILURE: "Requirement failed",
    IssueKind.ERROR_MISMATCH: "Error mismatch",
    IssueKind.UNEXPECTED_ERROR: "Unexpected error",
    IssueKind.TIMEOUT: "Time limit exceeded",
    IssueKind.CONFIRMATION_MISMATCH: "Confirmation mismatch",
    IssueKind.KNOWN_ISSUE_NOT_RECORDED: "Known issue not recorded",
}


def _section_of(report: UnitReport) -> str:
    return report.identifier.split("::", 1)[0]


class ConsoleReporter(Reporter):
    """Reporter that outputs trial results to the console using Rich formatting.

    Verbosity: ``-1`` prints only failures and the summary, ``0`` prints one
    symbol per trial, ``1`` one line per trial and case, ``2`` also shows
    tracebacks of unexpected errors.
    """

    def __init__(self, console: Console | None = None, verbosity: int = 0) -> None:
        self.console = console or Console(file=sys.__stdout__)
        self.verbosity = verbosity
        self._failures: list[UnitReport] = []
        self._known: list[UnitReport] = []
        self._current_section: str | None = None

    def _status_symbol(self, status: Status) -> str:
        return _STATUS_CONFIG[status][0]

    def _status_color(self, status: Status) -> str:
        return _STATUS_CONFIG[status][1]

    def _status_label(self, status: Status) -> str:
        return _STATUS_CONFIG[status][2]

    def _print_section_header(self, title: str) -> None:
        width = self.console.width
        header_title = f" {title} "
        fill = max(width - len(header_title), 0)
        left = fill // 2
        right = fill - left
        self.console.print("=" * left + header_title + "=" * right)

    def _print_run_header(self, environment: RunEnvironment) -> None:
        self._print_section_header("TRIALKIT RUN STARTS")
        self.console.print(
            f"platform {environment.platform} -- python {environment.python_version} "
            f"-- trialkit {environment.trialkit_version}"
        )
        self.console.print(f"rootdir: {environment.working_directory}")
        self.console.print(f"run_id: {environment.run_id}")
        if environment.branch and environment.commit_hash:
            commit = environment.commit_hash[:8]
            dirty = " dirty" if environment.dirty else ""
            self.console.print(f"git: {environment.branch} ({commit}){dirty}")
        self.console.print()

    async def on_no_trials_found(self) -> None:
        self.console.print("[yellow]No trials found.[/yellow]")

    async def on_run_start(self, environment: RunEnvironment, plan: Plan) -> None:
        self._print_run_header(environment)
        if self.verbosity >= 0:
            self.console.print(f"[bold]Collected {plan.trial_count} trials[/bold]\n")

    async def on_trial_complete(self, report: UnitReport) -> None:
        if report.status is Status.FAILED:
            self._failures.append(report)
        if report.known_issues:
            self._known.append(report)

        if self.verbosity < 0:
            return
        if self.verbosity == 0:
            self._print_compact_trial(report)
            return
        self._print_verbose_trial(report)

    def _print_compact_trial(self, report: UnitReport) -> None:
        color = self._status_color(report.status)
        symbol = f"[{color}]{self._status_symbol(report.status)}[/{color}]"
        section = _section_of(report)
        if self._current_section != section:
            if self._current_section is not None:
                self.console.print()
            self.console.print(f" • {escape(section)} ", end="")
            self._current_section = section
        self.console.print(symbol, end="")

    def _print_verbose_trial(self, report: UnitReport) -> None:
        section = _section_of(report)
        if self._current_section != section:
            if self._current_section is not None:
                self.console.print()
            self.console.print(f"• {escape(section)}")
            self._current_section = section

        color = self._status_color(report.status)
        label = self._status_label(report.status)
        duration = f"[dim]({report.duration_ms:.1f}ms)[/dim]"
        extra = ""
        if report.skip_reason:
            extra = f"[dim]skipped ({escape(report.skip_reason)})[/dim] "
        elif len(report.results) > 1:
            passed = sum(1 for r in report.results if r.status is Status.PASSED)
            extra = f"[{color}]{passed}/{len(report.results)} passed[/{color}] "
        if report.known_issues:
            extra += f"[blue]{len(report.known_issues)} known issue(s)[/blue] "
        self.console.print(f"  • {escape(report.label)} {duration} {extra}[{color}]{label}[/{color}]")

        if len(report.results) > 1 or (report.results and report.results[0].label != report.label):
            for result in report.results:
                self._print_case_line(result)

    def _print_case_line(self, result: ExecutionResult) -> None:
        color = self._status_color(result.status)
        label = self._status_label(result.status)
        duration = f"[dim]({result.duration_ms:.1f}ms)[/dim]"
        self.console.print(f"    ↳ • {escape(result.label)} {duration} [{color}]{label}[/{color}]")

    def _format_issue(self, issue: Issue) -> list[RenderableType]:
        lines: list[RenderableType] = [f"[bold]{_ISSUE_LABELS[issue.kind]}:[/bold] {escape(issue.message)}"]
        if issue.location is not None:
            lines.append(f"[dim]at {escape(str(issue.location))}[/dim]")
        if issue.comment:
            lines.append(f"[dim]{escape(issue.comment)}[/dim]")
        error = issue.error
        if (
            self.verbosity >= 2
            and issue.kind is IssueKind.UNEXPECTED_ERROR
            and error is not None
            and error.__traceback__ is not None
        ):
            lines.append(
                Traceback.from_exception(
                    type(error),
                    error,
                    error.__traceback__,
                    suppress=[trialkit],
                    show_locals=self.verbosity >= 3,
                )
            )
        return lines

    def _build_issue_panel(self, title: str, issues: list[Issue], color: str) -> Panel:
        renderables: list[RenderableType] = []
        for index, issue in enumerate(issues):
            if index:
                renderables.append("")
            renderables.extend(self._format_issue(issue))
        return Panel(
            Group(*renderables) if renderables else " ",
            title=escape(title),
            title_align="left",
            border_style=color,
            expand=True,
            padding=(1, 1),
        )

    def _print_failures(self) -> None:
        self.console.print()
        self._print_section_header("FAILURES")

        for index, failure in enumerate(self._failures):
            if index:
                self.console.print()
            color = self._status_color(failure.status)
            failed_cases = [r for r in failure.results if r.status.is_failure]
            parameterized = len(failure.results) > 1 or any(r.label != failure.label for r in failure.results)

            if parameterized and failed_cases:
                nested = [
                    self._build_issue_panel(result.label, list(result.issues), self._status_color(result.status))
                    for result in failed_cases
                ]
                if failure.issues:
                    nested.insert(0, self._build_issue_panel(failure.label, failure.issues, color))
                self.console.print(
                    Panel(
                        Group(*nested),
                        title=escape(failure.identifier),
                        title_align="left",
                        border_style=color,
                        expand=True,
                        padding=(1, 1),
                    )
                )
            else:
                self.console.print(self._build_issue_panel(failure.identifier, failure.failures, color))

        self.console.print()

    def _print_known_issues(self) -> None:
        self.console.print()
        self._print_section_header("KNOWN ISSUES")
        for report in self._known:
            for issue in report.known_issues:
                comment = f" ({escape(issue.comment)})" if issue.comment else ""
                self.console.print(f" • {escape(report.identifier)}: {escape(issue.message)}{comment}")

    async def on_run_complete(self, run_result: RunResult) -> None:
        if self.verbosity >= 0 and self._current_section is not None:
            self.console.print()

        if self._failures:
            self._print_failures()
        if self._known and self.verbosity >= 1:
            self._print_known_issues()
        self._print_summary(run_result)

    def _print_summary(self, run_result: RunResult) -> None:
        parts = []
        if run_result.passed:
            parts.append(f"[green]{run_result.passed} passed[/green]")
        if run_result.failed:
            parts.append(f"[red]{run_result.failed} failed[/red]")
        if run_result.skipped:
            parts.append(f"[yellow]{run_result.skipped} skipped[/yellow]")
        if run_result.known_issues:
            parts.append(f"[blue]{run_result.known_issues} known issues[/blue]")

        summary = ", ".join(parts) if parts else "[dim]0 trials[/dim]"
        run_id = run_result.environment.run_id if run_result.environment else None
        summary_line = f"{summary} in {run_result.total_duration_ms:.0f}ms"
        if run_id:
            summary_line = f"run_id: {run_id}\n{summary_line}"
        self.console.print()
        self._print_section_header("SUMMARY")
        self.console.print(f"[bold]{summary_line}[/bold]", justify="center")
        self.console.print("=" * self.console.width)

    async def on_tracing_enabled(self, output_path: Path) -> None:
        if output_path.exists():
            self.console.print(
                f"[dim]Tracing written to {output_path} ({output_path.stat().st_size} bytes)[/dim]"
            )
