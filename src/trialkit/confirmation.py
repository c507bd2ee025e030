"""Confirmations: count events that must happen a given number of times."""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Any, TypeVar

from trialkit.context import caller_location, get_invocation_context, record
from trialkit.errors import AssertionFailure, RequireFailure
from trialkit.models.result import Issue, IssueKind, SourceLocation


logger = logging.getLogger(__name__)

T = TypeVar("T")


class Confirmation:
    """A thread-safe counter checked against an expected count at scope exit.

    Instances are callable: ``confirm()`` and ``confirm(count=3)`` both
    increment the counter.
    """

    def __init__(
        self,
        comment: str | None = None,
        expected_count: int | range = 1,
        location: SourceLocation | None = None,
    ) -> None:
        if isinstance(expected_count, range):
            if expected_count.step != 1 or expected_count.start < 0 or len(expected_count) == 0:
                raise ValueError(f"expected_count must be a non-empty ascending range of counts, got {expected_count!r}")
        elif isinstance(expected_count, bool) or not isinstance(expected_count, int) or expected_count < 0:
            raise ValueError(f"expected_count must be a non-negative integer, got {expected_count!r}")

        self.comment = comment
        self.expected_count = expected_count
        self.location = location
        self._count = 0
        self._finalized = False
        self._lock = threading.Lock()

    def __call__(self, count: int = 1) -> None:
        self.confirm(count)

    def confirm(self, count: int = 1) -> None:
        """Record that the event happened ``count`` times."""
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")
        with self._lock:
            if self._finalized:
                logger.warning("Confirmation %r received after its scope ended; ignoring", self.comment)
                return
            self._count += count

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    def _describe_expected(self) -> str:
        if isinstance(self.expected_count, range):
            return f"{self.expected_count.start}...{self.expected_count.stop - 1}"
        return str(self.expected_count)

    def _label(self) -> str:
        return f"Confirmation {self.comment!r}" if self.comment else "Confirmation"

    def finalize(self, *, interrupted: str | None = None) -> Issue | None:
        """Close the counter and return the mismatch issue, if any.

        Later calls return ``None``. An ``interrupted`` reason always
        produces an issue because the scope did not complete.
        """
        with self._lock:
            if self._finalized:
                return None
            self._finalized = True
            observed = self._count

        expected = self._describe_expected()
        if interrupted is not None:
            message = (
                f"{self._label()} was not resolved ({interrupted}): "
                f"expected {expected} confirmation(s), received {observed}"
            )
            return Issue(IssueKind.CONFIRMATION_MISMATCH, message, self.location)

        if isinstance(self.expected_count, range):
            satisfied = observed in self.expected_count
        else:
            satisfied = observed == self.expected_count
        if satisfied:
            return None

        message = f"{self._label()} expected {expected} confirmation(s) but received {observed}"
        return Issue(IssueKind.CONFIRMATION_MISMATCH, message, self.location)


class ConfirmationScope:
    """Context manager that owns a ``Confirmation`` for the duration of a block.

    Works with both ``with`` and ``async with``. The count is checked when
    the block exits, including when it exits with an error or is cancelled.
    A mismatch after a normal exit aborts the invocation like a failed
    ``require``.
    """

    def __init__(self, comment: str | None, expected_count: int | range, location: SourceLocation | None) -> None:
        self.confirmation = Confirmation(comment, expected_count, location)

    def __enter__(self) -> Confirmation:
        ctx = get_invocation_context()
        if ctx is not None:
            ctx.track(self.confirmation)
        return self.confirmation

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        ctx = get_invocation_context()
        if ctx is not None:
            ctx.untrack(self.confirmation)

        interrupted = "cancelled" if isinstance(exc, asyncio.CancelledError) else None
        issue = self.confirmation.finalize(interrupted=interrupted)
        if issue is None:
            return False

        try:
            issue = record(issue)
        except LookupError:
            if exc is None:
                raise AssertionFailure(issue.message) from None
            logger.error("%s", issue.message)
            return False
        if exc is None:
            raise RequireFailure(issue)
        return False

    async def __aenter__(self) -> Confirmation:
        return self.__enter__()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        return self.__exit__(exc_type, exc, tb)


def confirming(comment: str | None = None, expected_count: int | range = 1) -> ConfirmationScope:
    """Open a confirmation scope.

    Examples
    --------
    >>> with confirming("saved", expected_count=2) as confirm:
    ...     store.on_save = confirm
    ...     store.save_all()
    """
    return ConfirmationScope(comment, expected_count, caller_location())


async def confirmation(
    comment: str | None = None,
    expected_count: int | range = 1,
    body: Callable[[Confirmation], Awaitable[T] | T] | None = None,
) -> T:
    """Run ``body`` with a confirm callable and check the count when it returns.

    ``body`` may be synchronous or asynchronous; it is awaited to completion
    regardless of how many times it suspends. A count that differs from
    ``expected_count`` records a confirmation mismatch on the current trial
    and aborts it.

    Examples
    --------
    >>> async def trial_events():
    ...     await confirmation("Event times.", 10, lambda confirm: emitter.fire(10, confirm))
    """
    if body is None:
        raise TypeError("confirmation() requires a body")
    async with ConfirmationScope(comment, expected_count, caller_location()) as confirm:
        result: Any = body(confirm)
        if inspect.isawaitable(result):
            result = await result
    return result
