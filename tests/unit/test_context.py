import asyncio
import threading

import pytest

from trialkit.confirmation import Confirmation
from trialkit.context import (
    INVOCATION_CONTEXT,
    InvocationContext,
    KnownIssueScope,
    get_invocation_context,
    invocation_scope,
    known_issue_scope,
    record,
)
from trialkit.models import Invocation, Issue, IssueKind, Status, TestUnit


def _make_context(name: str = "trial_fn") -> InvocationContext:
    unit = TestUnit(identifier=f"trials::{name}", name=name, body=lambda: None)
    return InvocationContext(Invocation(unit))


def _issue(message: str = "failed") -> Issue:
    return Issue(IssueKind.ASSERTION_FAILURE, message)


def test_record_appends_to_current_invocation():
    ctx = _make_context()

    with invocation_scope(ctx):
        assert get_invocation_context() is ctx
        record(_issue())

    assert get_invocation_context() is None
    assert [i.message for i in ctx.issues] == ["failed"]


def test_record_outside_invocation_raises_lookup_error():
    with pytest.raises(LookupError):
        record(_issue())


def test_known_issue_scope_claims_before_recording():
    ctx = _make_context()
    scope = KnownIssueScope(comment="tracked upstream")

    with invocation_scope(ctx), known_issue_scope(scope):
        recorded = record(_issue())

    assert recorded.known and recorded.comment == "tracked upstream"
    assert scope.matched == 1
    assert ctx.issues == []
    assert ctx.known_issues == [recorded]


def test_finalize_builds_result_and_drops_late_issues():
    ctx = _make_context()
    ctx.add(_issue("first"))

    result = ctx.finalize(12.5)
    ctx.add(_issue("too late"))

    assert result.status is Status.FAILED
    assert result.duration_ms == 12.5
    assert [i.message for i in result.issues] == ["first"]
    assert ctx.finalized
    assert [i.message for i in ctx.issues] == ["first"]


def test_finalize_without_issues_passes():
    assert _make_context().finalize(1.0).status is Status.PASSED


def test_interrupt_confirmations_finalizes_open_counters():
    ctx = _make_context()
    confirmation = Confirmation("pending", expected_count=2)
    ctx.track(confirmation)
    confirmation()

    ctx.interrupt_confirmations("timed out after 1s")

    [issue] = ctx.issues
    assert issue.kind is IssueKind.CONFIRMATION_MISMATCH
    assert "timed out after 1s" in issue.message
    assert "received 1" in issue.message


def test_untracked_confirmations_are_not_interrupted():
    ctx = _make_context()
    confirmation = Confirmation("done", expected_count=0)
    ctx.track(confirmation)
    ctx.untrack(confirmation)

    ctx.interrupt_confirmations("ended")
    assert ctx.issues == []


@pytest.mark.asyncio
async def test_context_is_copied_into_worker_threads():
    ctx = _make_context()
    seen = []

    def body():
        seen.append(threading.get_ident())
        record(_issue("from thread"))

    with invocation_scope(ctx):
        await asyncio.to_thread(body)

    assert seen and seen[0] != threading.get_ident()
    assert [i.message for i in ctx.issues] == ["from thread"]


@pytest.mark.asyncio
async def test_concurrent_invocations_are_isolated():
    first, second = _make_context("first"), _make_context("second")

    async def run(ctx, message):
        with invocation_scope(ctx):
            await asyncio.sleep(0)
            record(_issue(message))
            assert INVOCATION_CONTEXT.get() is ctx

    await asyncio.gather(run(first, "a"), run(second, "b"))

    assert [i.message for i in first.issues] == ["a"]
    assert [i.message for i in second.issues] == ["b"]
