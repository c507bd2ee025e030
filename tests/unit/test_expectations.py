from collections.abc import Iterator
from contextlib import contextmanager

import pytest

from trialkit.context import InvocationContext, invocation_scope
from trialkit.errors import AssertionFailure, RequireFailure
from trialkit.expectations import (
    check,
    expect_raises,
    fail,
    known_issue,
    record_issue,
    require,
    require_raises,
)
from trialkit.models import Invocation, IssueKind, Status, TestUnit


class CalculationError(Exception):
    def __eq__(self, other):
        return type(self) is type(other) and self.args == other.args

    def __hash__(self):
        return hash((type(self), self.args))


def divide(a, b):
    if b == 0:
        raise CalculationError("division by zero")
    return a // b


@contextmanager
def recording() -> Iterator[InvocationContext]:
    unit = TestUnit(identifier="trials::body", name="body", body=lambda: None)
    ctx = InvocationContext(Invocation(unit))
    with invocation_scope(ctx):
        yield ctx


class TestCheck:
    def test_passing_check_records_nothing(self):
        with recording() as ctx:
            assert check(1 + 1 == 2) is True
        assert ctx.issues == []

    def test_failing_check_records_and_continues(self):
        reached = []
        with recording() as ctx:
            assert check(False, "values differ") is False
            reached.append(True)
        assert reached == [True]
        [issue] = ctx.issues
        assert issue.kind is IssueKind.ASSERTION_FAILURE
        assert issue.message == "values differ"
        assert issue.location is not None
        assert issue.location.path.endswith("test_expectations.py")

    def test_check_outside_invocation_raises_assertion_error(self):
        with pytest.raises(AssertionError, match="outside"):
            check(False, "outside")
        assert issubclass(AssertionFailure, AssertionError)

    def test_record_issue(self):
        with recording() as ctx:
            record_issue("unexpected state")
        assert [i.message for i in ctx.issues] == ["unexpected state"]


class TestRequire:
    def test_true_passes(self):
        with recording() as ctx:
            assert require(True) is True
        assert ctx.issues == []

    def test_false_aborts(self):
        with recording() as ctx:
            with pytest.raises(RequireFailure):
                require(False, "must hold")
        [issue] = ctx.issues
        assert issue.kind is IssueKind.REQUIRE_FAILURE
        assert issue.message == "must hold"

    def test_optional_values_are_unwrapped(self):
        with recording() as ctx:
            assert require(0) == 0
            assert require("") == ""
            assert require([1]) == [1]
        assert ctx.issues == []

    def test_none_aborts(self):
        items: list[int] = []
        with recording() as ctx:
            with pytest.raises(RequireFailure):
                require(items[0] if items else None)
        assert ctx.issues[0].kind is IssueKind.REQUIRE_FAILURE

    def test_require_failure_is_not_an_exception(self):
        with recording():
            with pytest.raises(RequireFailure):
                try:
                    require(False)
                except Exception:
                    pytest.fail("except Exception must not swallow a require failure")

    def test_fail_aborts(self):
        with recording() as ctx:
            with pytest.raises(RequireFailure):
                fail("stop here")
        assert ctx.issues[0].message == "stop here"


class TestExpectRaises:
    def test_matching_type_is_consumed(self):
        with recording() as ctx:
            error = expect_raises(CalculationError, lambda: divide(1, 0))
        assert isinstance(error, CalculationError)
        assert ctx.issues == []

    def test_matching_value_is_consumed(self):
        with recording() as ctx:
            expect_raises(CalculationError("division by zero"), lambda: divide(1, 0))
        assert ctx.issues == []

    def test_predicate_matcher(self):
        with recording() as ctx:
            expect_raises(lambda e: "zero" in str(e), lambda: divide(1, 0))
        assert ctx.issues == []

    def test_no_error_is_recorded(self):
        with recording() as ctx:
            assert expect_raises(CalculationError, lambda: divide(4, 2)) is None
        [issue] = ctx.issues
        assert issue.kind is IssueKind.ERROR_MISMATCH
        assert "no error was raised" in issue.message

    def test_non_matching_type_is_recorded(self):
        with recording() as ctx:
            expect_raises(KeyError, lambda: divide(1, 0))
        [issue] = ctx.issues
        assert issue.kind is IssueKind.ERROR_MISMATCH
        assert "CalculationError" in issue.message

    def test_non_matching_value_is_recorded(self):
        with recording() as ctx:
            expect_raises(CalculationError("overflow"), lambda: divide(1, 0))
        assert ctx.issues[0].kind is IssueKind.ERROR_MISMATCH

    def test_raising_predicate_is_a_mismatch(self):
        def predicate(error):
            raise ValueError("bad predicate")

        with recording() as ctx:
            expect_raises(predicate, lambda: divide(1, 0))
        assert "predicate raised ValueError" in ctx.issues[0].message

    def test_context_manager_form(self):
        with recording() as ctx:
            with expect_raises(CalculationError) as scope:
                divide(1, 0)
        assert isinstance(scope.error, CalculationError)
        assert ctx.issues == []

    @pytest.mark.asyncio
    async def test_async_context_manager_form(self):
        async def failing():
            raise CalculationError("division by zero")

        with recording() as ctx:
            async with expect_raises(CalculationError("division by zero")):
                await failing()
        assert ctx.issues == []

    def test_async_body_needs_context_manager(self):
        async def body():
            pass

        with recording():
            with pytest.raises(TypeError, match="context manager form"):
                expect_raises(Exception, body)

    def test_invalid_matcher(self):
        with pytest.raises(TypeError):
            expect_raises(int, lambda: None)  # type: ignore[arg-type]


class TestRequireRaises:
    def test_match_passes(self):
        with recording() as ctx:
            require_raises(CalculationError("division by zero"), lambda: divide(1, 0))
        assert ctx.issues == []

    def test_missing_error_aborts(self):
        with recording() as ctx:
            with pytest.raises(RequireFailure):
                require_raises(CalculationError, lambda: divide(4, 2))
        assert ctx.issues[0].kind is IssueKind.ERROR_MISMATCH

    def test_mismatch_aborts(self):
        with recording() as ctx:
            with pytest.raises(RequireFailure):
                with require_raises(KeyError):
                    divide(1, 0)
        assert ctx.issues[0].kind is IssueKind.ERROR_MISMATCH


class TestKnownIssue:
    def test_raised_error_becomes_known_issue(self):
        with recording() as ctx:
            known_issue(lambda: divide(1, 0), "division by zero is unhandled")
        result = ctx.finalize(1.0)
        assert result.status is Status.PASSED
        [known] = result.known_issues
        assert known.known is True
        assert known.comment == "division by zero is unhandled"
        assert known.kind is IssueKind.UNEXPECTED_ERROR

    def test_recorded_failures_become_known(self):
        with recording() as ctx:
            with known_issue("flaky comparison"):
                check(False)
                require(False)
                check(False, "never reached")
        result = ctx.finalize(1.0)
        assert result.status is Status.PASSED
        assert [i.kind for i in result.known_issues] == [IssueKind.ASSERTION_FAILURE, IssueKind.REQUIRE_FAILURE]

    def test_nothing_recorded_is_a_failure(self):
        with recording() as ctx:
            known_issue(lambda: divide(4, 2), "should have failed")
        [issue] = ctx.issues
        assert issue.kind is IssueKind.KNOWN_ISSUE_NOT_RECORDED
        assert "should have failed" in issue.message

    def test_intermittent_allows_nothing_recorded(self):
        with recording() as ctx:
            known_issue(lambda: None, "sometimes fails", intermittent=True)
        assert ctx.issues == []

    def test_when_false_disables_downgrade(self):
        with recording() as ctx:
            with known_issue("only on legacy", when=lambda: False):
                check(False)
        assert [i.kind for i in ctx.issues] == [IssueKind.ASSERTION_FAILURE]
        assert ctx.known_issues == []

    def test_matching_limits_known_issues(self):
        with recording() as ctx:
            with known_issue("only timeouts", matching=lambda issue: "timeout" in issue.message):
                check(False, "timeout while fetching")
                check(False, "wrong value")
        assert [i.message for i in ctx.known_issues] == ["timeout while fetching"]
        assert [i.message for i in ctx.issues] == ["wrong value"]

    def test_nested_scopes_claim_innermost_first(self):
        with recording() as ctx:
            with known_issue("outer", intermittent=True):
                with known_issue("inner", matching=lambda issue: issue.message == "inner"):
                    check(False, "inner")
                    check(False, "outer")
        assert sorted((i.message, i.comment) for i in ctx.known_issues) == [("inner", "inner"), ("outer", "outer")]
        assert ctx.issues == []

    def test_outside_invocation_known_issue_is_logged(self):
        known_issue(lambda: divide(1, 0), "tolerated")
