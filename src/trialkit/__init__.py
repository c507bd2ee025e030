"""trialkit - declare, discover and run trials with traits."""

from trialkit.arguments import ArgumentSource, product, zipped
from trialkit.confirmation import Confirmation, confirmation, confirming
from trialkit.declarations import suite, trial
from trialkit.discovery import collect
from trialkit.errors import (
    AssertionFailure,
    ConfigurationError,
    DuplicateIdentifierError,
    MalformedArgumentsError,
)
from trialkit.expectations import (
    check,
    expect_raises,
    fail,
    known_issue,
    record_issue,
    require,
    require_raises,
)
from trialkit.models import (
    ExecutionResult,
    GroupUnit,
    Invocation,
    Issue,
    IssueKind,
    RunResult,
    Status,
    TestUnit,
    UnitReport,
)
from trialkit.registry import Registry
from trialkit.runner import Runner, run
from trialkit.tracing import init_tracing, trace_step
from trialkit.traits import (
    bug,
    disabled,
    disabled_if,
    display_name,
    enabled_if,
    serialized,
    tag,
    time_limit,
)
from trialkit.version import __version__


__all__ = [
    # Declaration
    "trial",
    "suite",
    "Registry",
    "collect",
    # Traits
    "bug",
    "disabled",
    "disabled_if",
    "display_name",
    "enabled_if",
    "serialized",
    "tag",
    "time_limit",
    # Arguments
    "ArgumentSource",
    "product",
    "zipped",
    # Expectations
    "check",
    "require",
    "expect_raises",
    "require_raises",
    "record_issue",
    "fail",
    "known_issue",
    "Confirmation",
    "confirmation",
    "confirming",
    # Running
    "Runner",
    "run",
    "init_tracing",
    "trace_step",
    # Results
    "ExecutionResult",
    "GroupUnit",
    "Invocation",
    "Issue",
    "IssueKind",
    "RunResult",
    "Status",
    "TestUnit",
    "UnitReport",
    # Errors
    "AssertionFailure",
    "ConfigurationError",
    "DuplicateIdentifierError",
    "MalformedArgumentsError",
    "__version__",
]
