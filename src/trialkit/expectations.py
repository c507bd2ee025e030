"""Expectations used inside trial bodies.

``check`` records a failure and lets the body continue. ``require`` records
a failure and aborts the invocation by raising ``RequireFailure``.
``expect_raises`` and ``require_raises`` verify that code raises a matching
error. ``known_issue`` downgrades failures inside a block to annotations.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from types import TracebackType
from typing import Any, NoReturn, TypeVar, Union

from trialkit.context import KNOWN_ISSUE_SCOPE, KnownIssueScope, caller_location, record
from trialkit.errors import AssertionFailure, RequireFailure
from trialkit.models.result import Issue, IssueKind, SourceLocation


logger = logging.getLogger(__name__)

T = TypeVar("T")

ErrorMatcher = Union[type[BaseException], BaseException, Callable[[BaseException], bool]]


def _record_soft(issue: Issue) -> Issue:
    try:
        return record(issue)
    except LookupError:
        raise AssertionFailure(issue.message) from None


def _abort(issue: Issue) -> NoReturn:
    try:
        issue = record(issue)
    except LookupError:
        pass
    raise RequireFailure(issue)


def check(condition: Any, message: str | None = None) -> bool:
    """Record a failure when ``condition`` is false and keep going.

    Returns the truth value of ``condition``.
    """
    if condition:
        return True
    _record_soft(Issue(IssueKind.ASSERTION_FAILURE, message or "Expectation failed", caller_location()))
    return False


def require(value: T | None, message: str | None = None) -> T:
    """Abort the invocation unless ``value`` holds.

    A ``bool`` aborts when false. Any other value is treated as optional:
    ``None`` aborts, everything else (including ``0`` and ``""``) is
    returned unchanged.

    Examples
    --------
    >>> first = require(items[0] if items else None, "no items")
    """
    if isinstance(value, bool):
        if value:
            return value  # type: ignore[return-value]
        _abort(Issue(IssueKind.REQUIRE_FAILURE, message or "Requirement failed", caller_location()))
    if value is None:
        _abort(Issue(IssueKind.REQUIRE_FAILURE, message or "Required value was None", caller_location()))
    return value


def record_issue(message: str, *, error: BaseException | None = None) -> Issue:
    """Record a failure without a condition; the body keeps running."""
    return _record_soft(Issue(IssueKind.ASSERTION_FAILURE, message, caller_location(), error=error))


def fail(message: str = "") -> NoReturn:
    """Record a failure and abort the invocation."""
    _abort(Issue(IssueKind.REQUIRE_FAILURE, message or "Trial failed", caller_location()))


def _same_error(expected: BaseException, actual: BaseException) -> bool:
    if type(expected) is not type(actual):
        return False
    if type(expected).__eq__ is not BaseException.__eq__:
        return bool(expected == actual)
    return expected.args == actual.args


def _describe_matcher(matcher: ErrorMatcher) -> str:
    if isinstance(matcher, type):
        return matcher.__name__
    if isinstance(matcher, BaseException):
        return f"{type(matcher).__name__}{matcher.args!r}"
    return getattr(matcher, "__name__", "predicate")


def _validate_matcher(matcher: ErrorMatcher) -> None:
    if isinstance(matcher, type):
        if not issubclass(matcher, BaseException):
            raise TypeError(f"Error matcher must be an exception type, got {matcher!r}")
    elif not isinstance(matcher, BaseException) and not callable(matcher):
        raise TypeError(f"Error matcher must be an exception type, value or predicate, got {matcher!r}")


class RaisesScope:
    """Context manager verifying that its block raises a matching error.

    After the block, ``error`` holds the caught error (matching or not).
    """

    def __init__(
        self,
        matcher: ErrorMatcher,
        message: str | None,
        *,
        fatal: bool,
        location: SourceLocation | None,
    ) -> None:
        _validate_matcher(matcher)
        self.matcher = matcher
        self.message = message
        self.fatal = fatal
        self.location = location
        self.error: Exception | None = None

    def _matches(self, error: Exception) -> tuple[bool, str | None]:
        matcher = self.matcher
        if isinstance(matcher, type):
            return isinstance(error, matcher), None
        if isinstance(matcher, BaseException):
            return _same_error(matcher, error), None
        try:
            return bool(matcher(error)), None
        except Exception as predicate_error:
            return False, f"error predicate raised {type(predicate_error).__name__}: {predicate_error}"

    def _report(self, issue: Issue) -> None:
        if self.fatal:
            _abort(issue)
        _record_soft(issue)

    def conclude(self, error: Exception | None) -> None:
        """Evaluate the outcome of the block; records (and maybe aborts) on failure."""
        expected = _describe_matcher(self.matcher)
        if error is None:
            text = self.message or f"Expected an error matching {expected}, but no error was raised"
            self._report(Issue(IssueKind.ERROR_MISMATCH, text, self.location))
            return

        self.error = error
        matched, detail = self._matches(error)
        if matched:
            logger.debug("Expected error caught: %r", error)
            return
        text = self.message or f"Expected an error matching {expected}, but caught {type(error).__name__}: {error}"
        if detail:
            text = f"{text} ({detail})"
        self._report(Issue(IssueKind.ERROR_MISMATCH, text, self.location, error=error))

    def __enter__(self) -> RaisesScope:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if exc is not None and not isinstance(exc, Exception):
            return False
        if isinstance(exc, Exception):
            self.conclude(exc)
            return True
        self.conclude(None)
        return False

    async def __aenter__(self) -> RaisesScope:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        return self.__exit__(exc_type, exc, tb)


def _run_raises(scope: RaisesScope, body: Callable[[], Any] | None) -> RaisesScope | Exception | None:
    if body is None:
        return scope
    if inspect.iscoroutinefunction(body):
        raise TypeError("Asynchronous bodies need the context manager form: 'async with expect_raises(...)'")
    try:
        result = body()
    except Exception as error:
        scope.conclude(error)
        return scope.error
    if inspect.isawaitable(result):
        if inspect.iscoroutine(result):
            result.close()
        raise TypeError("Asynchronous bodies need the context manager form: 'async with expect_raises(...)'")
    scope.conclude(None)
    return None


def expect_raises(
    matcher: ErrorMatcher = Exception,
    body: Callable[[], Any] | None = None,
    message: str | None = None,
) -> Any:
    """Expect ``body`` to raise an error matching ``matcher``.

    ``matcher`` is an exception type, an exception value compared by type
    and arguments (or ``==`` when the type defines it), or a predicate
    taking the error. A matching error is consumed. A missing or
    non-matching error is recorded as a failure and the body continues.

    With ``body`` the caught error is returned; without it a context
    manager is returned.

    Examples
    --------
    >>> expect_raises(ZeroDivisionError, lambda: 1 / 0)
    >>> with expect_raises(CalculationError.DIVISION_BY_ZERO):
    ...     divide(1, 0)
    """
    scope = RaisesScope(matcher, message, fatal=False, location=caller_location())
    return _run_raises(scope, body)


def require_raises(
    matcher: ErrorMatcher = Exception,
    body: Callable[[], Any] | None = None,
    message: str | None = None,
) -> Any:
    """Like ``expect_raises`` but aborts the invocation when the expectation fails."""
    scope = RaisesScope(matcher, message, fatal=True, location=caller_location())
    return _run_raises(scope, body)


class KnownIssueBlock:
    """Context manager downgrading failures inside its block to known issues.

    Raised errors are consumed and recorded as known issues. When nothing
    was recorded and the issue is not ``intermittent``, a
    ``KNOWN_ISSUE_NOT_RECORDED`` failure is recorded instead.
    """

    def __init__(
        self,
        comment: str | None = None,
        *,
        intermittent: bool = False,
        when: Callable[[], bool] | None = None,
        matching: Callable[[Issue], bool] | None = None,
        location: SourceLocation | None = None,
    ) -> None:
        self.comment = comment
        self.intermittent = intermittent
        self.when = when
        self.matching = matching
        self.location = location
        self.scope: KnownIssueScope | None = None
        self._token: Any = None

    def __enter__(self) -> KnownIssueBlock:
        if self.when is not None and not self.when():
            return self
        self.scope = KnownIssueScope(self.comment, self.matching, KNOWN_ISSUE_SCOPE.get())
        self._token = KNOWN_ISSUE_SCOPE.set(self.scope)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        scope = self.scope
        if scope is None:
            return False
        KNOWN_ISSUE_SCOPE.reset(self._token)
        self.scope = None

        suppress = False
        if isinstance(exc, RequireFailure):
            # Already recorded when it was raised, known or not.
            suppress = True
        elif isinstance(exc, Exception):
            issue = Issue.from_error(exc)
            issue = scope.claim(issue) or issue
            _record_soft(issue)
            suppress = True

        if scope.matched == 0 and not self.intermittent:
            text = "Known issue was not recorded"
            if self.comment:
                text = f"{text}: {self.comment}"
            _record_soft(Issue(IssueKind.KNOWN_ISSUE_NOT_RECORDED, text, self.location))
        return suppress

    async def __aenter__(self) -> KnownIssueBlock:
        return self.__enter__()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        return self.__exit__(exc_type, exc, tb)


def known_issue(
    body: Callable[[], Any] | str | None = None,
    comment: str | None = None,
    *,
    intermittent: bool = False,
    when: Callable[[], bool] | None = None,
    matching: Callable[[Issue], bool] | None = None,
) -> Any:
    """Run ``body`` with its failures treated as a known issue.

    Called with a string (or no body) it returns a context manager instead.

    Examples
    --------
    >>> known_issue(lambda: divide(1, 0), "division by zero is unhandled")
    >>> with known_issue("flaky backend", intermittent=True):
    ...     check(fetch().ok)
    """
    if isinstance(body, str):
        body, comment = None, body
    block = KnownIssueBlock(
        comment,
        intermittent=intermittent,
        when=when,
        matching=matching,
        location=caller_location(),
    )
    if body is None:
        return block
    if inspect.iscoroutinefunction(body):
        raise TypeError("Asynchronous bodies need the context manager form: 'async with known_issue(...)'")
    with block:
        body()
    return None
