"""Data model for units, invocations and results."""

from trialkit.models.result import (
    ExecutionResult,
    Issue,
    IssueKind,
    RunResult,
    SourceLocation,
    Status,
    UnitReport,
    aggregate_status,
)
from trialkit.models.run import RunEnvironment, capture_environment
from trialkit.models.units import GroupUnit, Invocation, TestUnit, Unit, location_of


__all__ = [
    "ExecutionResult",
    "GroupUnit",
    "Invocation",
    "Issue",
    "IssueKind",
    "RunEnvironment",
    "RunResult",
    "SourceLocation",
    "Status",
    "TestUnit",
    "Unit",
    "UnitReport",
    "aggregate_status",
    "capture_environment",
    "location_of",
]
