"""Runner executing a registry of trials."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from trialkit.arguments import expand
from trialkit.context import InvocationContext, invocation_scope
from trialkit.discovery import collect
from trialkit.errors import RequireFailure
from trialkit.execution import DefaultInvoker, InvocationTracer, Invoker
from trialkit.models.result import ExecutionResult, Issue, IssueKind, RunResult, Status, UnitReport
from trialkit.models.run import capture_environment
from trialkit.models.units import GroupUnit, Invocation, TestUnit
from trialkit.planning import Plan, PlanNode, build_plan
from trialkit.registry import Registry
from trialkit.reports.base import Reporter
from trialkit.reports.console import ConsoleReporter
from trialkit.tracing import init_tracing


if TYPE_CHECKING:
    from trialkit.config import RunConfig


logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _error_issue(error: BaseException) -> Issue:
    if isinstance(error, AssertionError):
        return Issue.from_error(error, IssueKind.ASSERTION_FAILURE)
    return Issue.from_error(error)


def _skipped_report(node: PlanNode, reason: str) -> UnitReport:
    """Report for a unit that never ran. Descendant conditions are not evaluated."""
    if node.is_group:
        children = [_skipped_report(child, reason) for child in node.children]
        report = UnitReport.for_group(node.unit, node.traits, children, 0.0)
    else:
        report = UnitReport.for_test(node.unit, node.traits, [], 0.0)  # type: ignore[arg-type]
    report.status = Status.SKIPPED
    report.skip_reason = reason
    return report


class Runner:
    """Executes the plan of a registry and reports the results.

    Unmarked suites run their children concurrently; serialized suites run
    their direct children one at a time. ``concurrency`` bounds how many
    trial bodies run at once across the whole run.

    Examples:
        # Concurrent execution, at most 10 bodies at a time (default)
        runner = Runner()
        result = await runner.run(registry)

        # Fully sequential execution
        runner = Runner(concurrency=1)
        result = await runner.run(registry)

        # Only trials tagged "smoke", each limited to 5 seconds
        runner = Runner(include_tags=["smoke"], time_limit=5)
        result = await runner.run(collect("trials/"))
    """

    DEFAULT_MAX_CONCURRENCY = 10

    def __init__(
        self,
        reporters: Sequence[Reporter] | None = None,
        *,
        concurrency: int = 0,
        time_limit: float | None = None,
        threaded: bool = True,
        include_tags: Iterable[str] = (),
        exclude_tags: Iterable[str] = (),
        keyword: str | None = None,
        enable_tracing: bool = False,
        trace_output: Path | str | None = None,
        invoker: Invoker | None = None,
    ) -> None:
        self.reporters: list[Reporter] = list(reporters) if reporters is not None else [ConsoleReporter()]
        # 0 = default cap, 1 = sequential, >1 = concurrent
        self.concurrency = concurrency if concurrency > 0 else self.DEFAULT_MAX_CONCURRENCY
        self.time_limit = time_limit if time_limit and time_limit > 0 else None
        self.include_tags = frozenset(include_tags)
        self.exclude_tags = frozenset(exclude_tags)
        self.keyword = keyword
        self.enable_tracing = enable_tracing
        self.trace_output = Path(trace_output) if trace_output else Path("traces.jsonl")
        self.invoker: Invoker = invoker or DefaultInvoker(threaded=threaded)
        self.tracer = InvocationTracer(enabled=enable_tracing)
        self._semaphore: asyncio.Semaphore | None = None

    @classmethod
    def from_config(cls, config: RunConfig, reporters: Sequence[Reporter] | None = None) -> Runner:
        """Build a runner from a ``RunConfig``."""
        if reporters is None:
            reporters = [ConsoleReporter(verbosity=config.verbosity)]
        return cls(
            reporters,
            concurrency=config.concurrency,
            time_limit=config.time_limit,
            threaded=config.threaded,
            include_tags=config.include_tags,
            exclude_tags=config.exclude_tags,
            keyword=config.keyword,
            enable_tracing=config.trace,
            trace_output=config.trace_output,
        )

    async def _notify(self, hook: str, *args: Any) -> None:
        for reporter in self.reporters:
            await getattr(reporter, hook)(*args)

    def plan(self, registry: Registry) -> Plan:
        """Build the plan this runner would execute, without running it."""
        return build_plan(
            registry,
            include_tags=self.include_tags,
            exclude_tags=self.exclude_tags,
            keyword=self.keyword,
        )

    async def run(self, registry: Registry) -> RunResult:
        """Run every selected unit of ``registry`` and return the results.

        The registry is frozen first; registering units afterwards raises
        ``ConfigurationError``.
        """
        registry.freeze()
        environment = capture_environment()
        run_result = RunResult(environment=environment)
        plan = self.plan(registry)

        if not plan.roots:
            await self._notify("on_no_trials_found")
            environment.end_time = datetime.now(UTC)
            return run_result

        if self.enable_tracing:
            init_tracing(output_path=self.trace_output)

        self._semaphore = asyncio.Semaphore(self.concurrency)
        await self._notify("on_run_start", environment, plan)

        start = time.perf_counter()
        try:
            run_result.reports = await self._run_children(plan.roots, serial=False)
        finally:
            self.invoker.shutdown()
        run_result.total_duration_ms = _elapsed_ms(start)
        environment.end_time = datetime.now(UTC)

        await self._notify("on_run_complete", run_result)
        if self.enable_tracing:
            await self._notify("on_tracing_enabled", self.trace_output)
        return run_result

    async def _run_children(self, nodes: list[PlanNode], *, serial: bool) -> list[UnitReport]:
        if serial:
            return [await self._run_node(node, serial_cases=True) for node in nodes]
        return list(await asyncio.gather(*(self._run_node(node) for node in nodes)))

    async def _run_node(self, node: PlanNode, *, serial_cases: bool = False) -> UnitReport:
        unit = node.unit
        start = time.perf_counter()
        try:
            reason = node.traits.evaluate()
        except Exception as error:
            logger.debug("Condition of %s raised", unit.identifier, exc_info=True)
            report = self._condition_error_report(node, error, _elapsed_ms(start))
            await self._report_trials(report)
            return report

        if reason is not None:
            logger.debug("Skipping %s: %s", unit.identifier, reason)
            report = _skipped_report(node, reason)
            await self._report_trials(report)
            return report

        if isinstance(unit, GroupUnit):
            children = await self._run_children(node.children, serial=node.traits.serialized)
            return UnitReport.for_group(unit, node.traits, children, _elapsed_ms(start))

        return await self._run_trial(node, serial=serial_cases or node.traits.serialized)

    def _condition_error_report(self, node: PlanNode, error: Exception, duration_ms: float) -> UnitReport:
        cause = _error_issue(error)
        issue = Issue(
            IssueKind.UNEXPECTED_ERROR,
            f"Evaluating the conditions of {node.unit.label} raised {cause.message}",
            cause.location,
            error=error,
        )
        report = _skipped_report(node, "condition raised an error")
        report.status = Status.FAILED
        report.skip_reason = None
        report.duration_ms = duration_ms
        report.issues.append(issue)
        return report

    async def _report_trials(self, report: UnitReport) -> None:
        for entry in report.walk():
            if not entry.is_group:
                await self._notify("on_trial_complete", entry)

    async def _run_trial(self, node: PlanNode, *, serial: bool) -> UnitReport:
        unit: TestUnit = node.unit  # type: ignore[assignment]
        start = time.perf_counter()
        invocations = expand(unit)
        results: list[ExecutionResult]
        if serial:
            results = [await self._run_invocation(invocation, node) for invocation in invocations]
        else:
            results = list(await asyncio.gather(*(self._run_invocation(inv, node) for inv in invocations)))

        report = UnitReport.for_test(unit, node.traits, results, _elapsed_ms(start))
        if not results:
            report.skip_reason = "argument source produced no cases"
        await self._notify("on_trial_complete", report)
        return report

    def _effective_limit(self, node: PlanNode) -> float | None:
        limits = [limit for limit in (node.traits.time_limit, self.time_limit) if limit is not None]
        return min(limits) if limits else None

    async def _run_invocation(self, invocation: Invocation, node: PlanNode) -> ExecutionResult:
        assert self._semaphore is not None
        ctx = InvocationContext(invocation)
        limit = self._effective_limit(node)

        async with self._semaphore:
            with self.tracer.span(invocation, node.traits.tags) as span:
                start = time.perf_counter()
                with invocation_scope(ctx):
                    await self._call(invocation, ctx, limit)
                result = ctx.finalize(_elapsed_ms(start))
                self.tracer.record(span, result)

        logger.debug("%s %s in %.1fms", invocation.identifier, result.status.value, result.duration_ms)
        return result

    async def _call(self, invocation: Invocation, ctx: InvocationContext, limit: float | None) -> None:
        """Invoke the body, turning every way it can fail into issues on ``ctx``."""
        deadline = asyncio.timeout(limit)
        start = time.perf_counter()
        try:
            async with deadline:
                await self.invoker.invoke(invocation)
        except TimeoutError as error:
            if not deadline.expired():
                ctx.add(_error_issue(error))
                return
            self._record_timeout(invocation, ctx, limit)
        except RequireFailure:
            # Recorded when it was raised.
            pass
        except (Exception, SystemExit) as error:
            ctx.add(_error_issue(error))
        else:
            # A body that never yields to the loop outruns the deadline unnoticed.
            if limit is not None and time.perf_counter() - start > limit:
                self._record_timeout(invocation, ctx, limit)

    def _record_timeout(self, invocation: Invocation, ctx: InvocationContext, limit: float) -> None:
        ctx.interrupt_confirmations(f"timed out after {limit:g}s")
        ctx.add(
            Issue(
                IssueKind.TIMEOUT,
                f"Time limit of {limit:g}s exceeded",
                invocation.unit.location,
            )
        )


def run(paths: Iterable[Path | str] | Path | str | None = None, **options: Any) -> RunResult:
    """Discover and run trials synchronously (convenience wrapper).

    Args:
        paths: Files or directories to discover trials from.
        **options: Keyword arguments for ``Runner``.

    Returns:
        RunResult with all trial outcomes.
    """
    registry = collect(paths)
    return asyncio.run(Runner(**options).run(registry))
