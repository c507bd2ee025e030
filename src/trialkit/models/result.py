"""Test result models."""

from __future__ import annotations

import traceback
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from trialkit.models.run import RunEnvironment
    from trialkit.models.units import TestUnit, Unit
    from trialkit.traits import TraitSet


class Status(Enum):
    """Terminal state of an invocation or unit."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_failure(self) -> bool:
        return self is Status.FAILED


class IssueKind(Enum):
    """What went wrong during an invocation."""

    ASSERTION_FAILURE = "assertion_failure"
    REQUIRE_FAILURE = "require_failure"
    ERROR_MISMATCH = "error_mismatch"
    UNEXPECTED_ERROR = "unexpected_error"
    TIMEOUT = "timeout"
    CONFIRMATION_MISMATCH = "confirmation_mismatch"
    KNOWN_ISSUE_NOT_RECORDED = "known_issue_not_recorded"


@dataclass(frozen=True)
class SourceLocation:
    """File and line a failure originated from."""

    path: str
    line: int | None = None
    function: str | None = None

    def __str__(self) -> str:
        return f"{self.path}:{self.line}" if self.line is not None else self.path


@dataclass(frozen=True)
class Issue:
    """A single recorded failure, or a known issue when ``known`` is set."""

    kind: IssueKind
    message: str
    location: SourceLocation | None = None
    error: BaseException | None = field(default=None, compare=False)
    known: bool = False
    comment: str | None = None

    @classmethod
    def from_error(cls, error: BaseException, kind: IssueKind = IssueKind.UNEXPECTED_ERROR) -> Issue:
        """Describe an error escaping a test body, located where it was raised."""
        location = None
        frames = traceback.extract_tb(error.__traceback__) if error.__traceback__ else []
        if frames:
            frame = frames[-1]
            location = SourceLocation(frame.filename, frame.lineno, frame.name)
        return cls(kind=kind, message=f"{type(error).__name__}: {error}", location=location, error=error)

    def describe(self) -> str:
        where = f" ({self.location})" if self.location else ""
        return f"{self.message}{where}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "location": str(self.location) if self.location else None,
            "known": self.known,
            "comment": self.comment,
        }


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one invocation of a trial body."""

    identifier: str
    label: str
    status: Status
    duration_ms: float
    issues: tuple[Issue, ...] = ()
    known_issues: tuple[Issue, ...] = ()
    skip_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "label": self.label,
            "status": self.status.value,
            "duration_ms": self.duration_ms,
            "issues": [issue.to_dict() for issue in self.issues],
            "known_issues": [issue.to_dict() for issue in self.known_issues],
            "skip_reason": self.skip_reason,
        }


def aggregate_status(statuses: Iterable[Status]) -> Status:
    """Failed if anything failed, skipped if everything (or nothing) was skipped."""
    collected = list(statuses)
    if any(s is Status.FAILED for s in collected):
        return Status.FAILED
    if all(s is Status.SKIPPED for s in collected):
        return Status.SKIPPED
    return Status.PASSED


@dataclass
class UnitReport:
    """Aggregated outcome of a trial or suite."""

    identifier: str
    label: str
    is_group: bool
    status: Status
    duration_ms: float
    results: list[ExecutionResult] = field(default_factory=list)
    children: list[UnitReport] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)
    skip_reason: str | None = None
    tags: frozenset[str] = frozenset()
    bugs: tuple[str, ...] = ()
    location: SourceLocation | None = None

    @classmethod
    def for_test(
        cls,
        unit: TestUnit,
        traits: TraitSet,
        results: list[ExecutionResult],
        duration_ms: float,
    ) -> UnitReport:
        return cls(
            identifier=unit.identifier,
            label=unit.label,
            is_group=False,
            status=aggregate_status(r.status for r in results),
            duration_ms=duration_ms,
            results=results,
            tags=traits.tags,
            bugs=tuple(str(b) for b in traits.bugs),
            location=unit.location,
        )

    @classmethod
    def for_group(
        cls,
        unit: Unit,
        traits: TraitSet,
        children: list[UnitReport],
        duration_ms: float,
    ) -> UnitReport:
        return cls(
            identifier=unit.identifier,
            label=unit.label,
            is_group=True,
            status=aggregate_status(c.status for c in children),
            duration_ms=duration_ms,
            children=children,
            tags=traits.tags,
            bugs=tuple(str(b) for b in traits.bugs),
            location=unit.location,
        )

    def walk(self) -> Iterator[UnitReport]:
        """Yield this report and every descendant, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    @property
    def failures(self) -> list[Issue]:
        found = list(self.issues)
        for result in self.results:
            found.extend(result.issues)
        return found

    @property
    def known_issues(self) -> list[Issue]:
        return [issue for result in self.results for issue in result.known_issues]

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "label": self.label,
            "kind": "suite" if self.is_group else "trial",
            "status": self.status.value,
            "duration_ms": self.duration_ms,
            "skip_reason": self.skip_reason,
            "tags": sorted(self.tags),
            "bugs": list(self.bugs),
            "location": str(self.location) if self.location else None,
            "issues": [issue.to_dict() for issue in self.issues],
            "results": [result.to_dict() for result in self.results],
            "children": [child.to_dict() for child in self.children],
        }


@dataclass
class RunResult:
    """Result of a complete run."""

    reports: list[UnitReport] = field(default_factory=list)
    total_duration_ms: float = 0
    environment: RunEnvironment | None = None

    def walk(self) -> Iterator[UnitReport]:
        for report in self.reports:
            yield from report.walk()

    def report_for(self, identifier: str) -> UnitReport:
        """Look up the report of a unit by identifier."""
        for report in self.walk():
            if report.identifier == identifier:
                return report
        raise KeyError(identifier)

    def _outcomes(self) -> Iterator[Status]:
        # Trials skipped before expansion have no invocation results.
        for report in self.walk():
            if report.is_group:
                continue
            if report.results:
                yield from (r.status for r in report.results)
            else:
                yield report.status

    @property
    def status(self) -> Status:
        return aggregate_status(r.status for r in self.reports)

    @property
    def passed(self) -> int:
        """Count of passed invocations."""
        return sum(1 for s in self._outcomes() if s is Status.PASSED)

    @property
    def failed(self) -> int:
        """Count of failed invocations."""
        return sum(1 for s in self._outcomes() if s is Status.FAILED)

    @property
    def skipped(self) -> int:
        """Count of skipped invocations."""
        return sum(1 for s in self._outcomes() if s is Status.SKIPPED)

    @property
    def known_issues(self) -> int:
        return sum(len(r.known_issues) for r in self.walk())

    @property
    def total(self) -> int:
        return sum(1 for _ in self._outcomes())

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "total_duration_ms": self.total_duration_ms,
            "counts": {
                "passed": self.passed,
                "failed": self.failed,
                "skipped": self.skipped,
                "known_issues": self.known_issues,
            },
            "environment": self.environment.to_dict() if self.environment else None,
            "reports": [report.to_dict() for report in self.reports],
        }
