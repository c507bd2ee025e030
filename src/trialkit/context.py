"""Execution context for the invocation currently running.

Issues recorded by the expectation helpers are routed through context
variables: first through any active known-issue scopes, then into the
``InvocationContext`` of the running invocation. The invoker copies the
context into its worker threads, so synchronous bodies record into the
same context.
"""

from __future__ import annotations

import logging
import sys
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING

from trialkit.models.result import ExecutionResult, Issue, SourceLocation, Status


if TYPE_CHECKING:
    from trialkit.confirmation import Confirmation
    from trialkit.models.units import Invocation


logger = logging.getLogger(__name__)

_PACKAGE_DIR = str(Path(__file__).resolve().parent)


def caller_location() -> SourceLocation | None:
    """Location of the innermost frame outside of this package."""
    frame = sys._getframe(1)
    while frame is not None:
        filename = frame.f_code.co_filename
        if not str(Path(filename).resolve()).startswith(_PACKAGE_DIR):
            return SourceLocation(filename, frame.f_lineno, frame.f_code.co_name)
        frame = frame.f_back
    return None


class InvocationContext:
    """Collects issues for one invocation until it is finalized."""

    def __init__(self, invocation: Invocation) -> None:
        self.invocation = invocation
        self._issues: list[Issue] = []
        self._confirmations: list[Confirmation] = []
        self._lock = threading.Lock()
        self._finalized = False

    @property
    def issues(self) -> list[Issue]:
        with self._lock:
            return [i for i in self._issues if not i.known]

    @property
    def known_issues(self) -> list[Issue]:
        with self._lock:
            return [i for i in self._issues if i.known]

    @property
    def finalized(self) -> bool:
        return self._finalized

    def add(self, issue: Issue) -> None:
        with self._lock:
            if self._finalized:
                logger.warning(
                    "Dropping issue recorded after %s finished: %s",
                    self.invocation.identifier,
                    issue.message,
                )
                return
            self._issues.append(issue)

    def track(self, confirmation: Confirmation) -> None:
        with self._lock:
            self._confirmations.append(confirmation)

    def untrack(self, confirmation: Confirmation) -> None:
        with self._lock:
            if confirmation in self._confirmations:
                self._confirmations.remove(confirmation)

    def interrupt_confirmations(self, reason: str) -> None:
        """Force-finalize confirmations whose scope never closed."""
        with self._lock:
            pending, self._confirmations = self._confirmations, []
        for confirmation in pending:
            issue = confirmation.finalize(interrupted=reason)
            if issue is not None:
                self.add(issue)

    def finalize(self, duration_ms: float) -> ExecutionResult:
        """Freeze the context into an immutable result."""
        self.interrupt_confirmations("invocation ended before the confirmation scope closed")
        with self._lock:
            self._finalized = True
            issues = tuple(i for i in self._issues if not i.known)
            known = tuple(i for i in self._issues if i.known)
        return ExecutionResult(
            identifier=self.invocation.identifier,
            label=self.invocation.label,
            status=Status.FAILED if issues else Status.PASSED,
            duration_ms=duration_ms,
            issues=issues,
            known_issues=known,
        )


@dataclass(eq=False)
class KnownIssueScope:
    """An active ``known_issue`` block.

    Attributes
    ----------
    comment
        Annotation attached to every issue the scope claims.
    matching
        Optional filter; issues it rejects stay regular failures.
    parent
        Enclosing scope, consulted when this one does not claim an issue.
    """

    comment: str | None = None
    matching: Callable[[Issue], bool] | None = None
    parent: KnownIssueScope | None = None
    matched: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def claim(self, issue: Issue) -> Issue | None:
        if self.matching is not None:
            try:
                if not self.matching(issue):
                    return None
            except Exception:
                logger.exception("known_issue matcher raised; treating issue as unexpected")
                return None
        with self._lock:
            self.matched += 1
        return replace(issue, known=True, comment=self.comment)


INVOCATION_CONTEXT: ContextVar[InvocationContext | None] = ContextVar("invocation_context", default=None)
KNOWN_ISSUE_SCOPE: ContextVar[KnownIssueScope | None] = ContextVar("known_issue_scope", default=None)


def get_invocation_context() -> InvocationContext | None:
    """Get the current invocation context, or None outside a running trial."""
    return INVOCATION_CONTEXT.get()


@contextmanager
def invocation_scope(ctx: InvocationContext) -> Iterator[None]:
    """Temporarily set ``INVOCATION_CONTEXT`` for the duration of the ``with`` block."""
    token = INVOCATION_CONTEXT.set(ctx)
    try:
        yield
    finally:
        INVOCATION_CONTEXT.reset(token)


@contextmanager
def known_issue_scope(scope: KnownIssueScope) -> Iterator[KnownIssueScope]:
    token = KNOWN_ISSUE_SCOPE.set(scope)
    try:
        yield scope
    finally:
        KNOWN_ISSUE_SCOPE.reset(token)


def record(issue: Issue) -> Issue:
    """Route ``issue`` through active known-issue scopes into the current invocation.

    Returns the issue as recorded (possibly marked known). Raises
    ``LookupError`` when there is no invocation to record into and no
    known-issue scope claimed the issue.
    """
    if not issue.known:
        scope = KNOWN_ISSUE_SCOPE.get()
        while scope is not None:
            claimed = scope.claim(issue)
            if claimed is not None:
                issue = claimed
                break
            scope = scope.parent

    ctx = INVOCATION_CONTEXT.get()
    if ctx is None:
        if issue.known:
            logger.info("Known issue outside of a trial: %s", issue.message)
            return issue
        raise LookupError("no invocation is running")
    ctx.add(issue)
    return issue
