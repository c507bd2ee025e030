import io
import json

import pytest
from rich.console import Console

from trialkit import Registry, Runner, check, known_issue, tag
from trialkit.reports import ConsoleReporter, JsonReporter


def _console() -> tuple[Console, io.StringIO]:
    buffer = io.StringIO()
    return Console(file=buffer, width=100, force_terminal=False, color_system=None), buffer


@pytest.fixture
def registry():
    registry = Registry()
    group = registry.group("shop")

    @registry.trial(parent=group)
    def trial_passes(): ...

    @registry.trial(tag("math"), parent=group, arguments=[1, 2])
    def trial_even(value):
        check(value % 2 == 0, f"{value} is odd")

    @registry.trial(parent=group)
    def trial_known():
        known_issue(lambda: 1 / 0, "division is unhandled")

    return registry


class TestConsoleReporter:
    @pytest.mark.asyncio
    async def test_compact_output(self, registry):
        console, buffer = _console()
        await Runner(reporters=[ConsoleReporter(console=console)]).run(registry)
        output = buffer.getvalue()

        assert "TRIALKIT RUN STARTS" in output
        assert "Collected 3 trials" in output
        assert " • shop " in output
        assert "FAILURES" in output
        assert "1 is odd" in output
        assert "KNOWN ISSUES" not in output
        assert "3 passed, 1 failed, 1 known issues" in output

    @pytest.mark.asyncio
    async def test_verbose_output_lists_cases_and_known_issues(self, registry):
        console, buffer = _console()
        await Runner(reporters=[ConsoleReporter(console=console, verbosity=1)]).run(registry)
        output = buffer.getvalue()

        assert "trial_passes" in output
        assert "1/2 passed" in output
        assert "↳ • trial_even[value=2]" in output
        assert "KNOWN ISSUES" in output
        assert "division is unhandled" in output

    @pytest.mark.asyncio
    async def test_quiet_output_keeps_failures_and_summary(self, registry):
        console, buffer = _console()
        await Runner(reporters=[ConsoleReporter(console=console, verbosity=-1)]).run(registry)
        output = buffer.getvalue()

        assert "Collected" not in output
        assert "FAILURES" in output
        assert "SUMMARY" in output

    @pytest.mark.asyncio
    async def test_traceback_shown_at_high_verbosity(self):
        registry = Registry()

        @registry.trial
        def trial_raises():
            raise KeyError("missing")

        console, buffer = _console()
        await Runner(reporters=[ConsoleReporter(console=console, verbosity=2)]).run(registry)
        output = buffer.getvalue()

        assert "Unexpected error" in output
        assert "Traceback" in output

    @pytest.mark.asyncio
    async def test_no_trials_found(self):
        console, buffer = _console()
        await Runner(reporters=[ConsoleReporter(console=console)]).run(Registry())
        assert "No trials found." in buffer.getvalue()


class TestJsonReporter:
    @pytest.mark.asyncio
    async def test_writes_run_result(self, registry, tmp_path):
        output = tmp_path / "reports" / "run.json"
        await Runner(reporters=[JsonReporter(output)]).run(registry)

        data = json.loads(output.read_text())
        assert data["status"] == "failed"
        assert data["counts"] == {"passed": 3, "failed": 1, "skipped": 0, "known_issues": 1}
        [shop] = data["reports"]
        assert shop["kind"] == "suite"
        even = shop["children"][1]
        assert even["tags"] == ["math"]
        assert [r["status"] for r in even["results"]] == ["failed", "passed"]
        assert even["results"][0]["issues"][0]["kind"] == "assertion_failure"
        assert data["environment"]["run_id"]
