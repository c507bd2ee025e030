"""Integration tests running the bundled example trials end to end.

Run with: pytest tests/integration/ -v
"""

import io
from pathlib import Path

import pytest
from rich.console import Console

from trialkit import Runner, collect
from trialkit.models import Status
from trialkit.reports import ConsoleReporter


EXAMPLE = Path(__file__).parent.parent.parent / "examples" / "trial_traits.py"


@pytest.fixture
def registry(monkeypatch):
    monkeypatch.delenv("TRIALKIT_EXAMPLE_FEATURE", raising=False)
    return collect(EXAMPLE)


@pytest.mark.asyncio
async def test_example_trials_pass(registry):
    result = await Runner(reporters=[]).run(registry)

    assert result.status is Status.PASSED
    assert result.passed == 41
    assert result.skipped == 3
    assert result.failed == 0
    assert result.known_issues == 1


@pytest.mark.asyncio
async def test_example_suites_and_cases(registry):
    result = await Runner(reporters=[]).run(registry)

    reports = {report.label: report for report in result.walk()}
    assert len(reports["trial_does_not_contain_nuts"].results) == 5
    assert len(reports["trial_every_pairing"].results) == 16
    assert len(reports["trial_matching_pairs"].results) == 4
    assert reports["TrialTagged"].tags == {"new"}
    assert reports["Readable names replace the function name"].status is Status.PASSED
    assert reports["trial_with_bug"].bugs == ("https://github.com/example/",)
    assert reports["trial_always_skipped"].skip_reason == "Explain why the trial is skipped."
    assert reports["trial_sample"].identifier.endswith("TrialGroup::TrialSubgroup::trial_sample")


@pytest.mark.asyncio
async def test_example_tag_selection(registry):
    result = await Runner(reporters=[], include_tags=["formatting"]).run(registry)
    assert result.passed == 2


@pytest.mark.asyncio
async def test_example_console_output(registry):
    buffer = io.StringIO()
    console = Console(file=buffer, width=120, color_system=None)

    await Runner(reporters=[ConsoleReporter(console=console, verbosity=1)]).run(registry)

    output = buffer.getvalue()
    assert "41 passed, 3 skipped, 1 known issues" in output
    assert "division by zero is not handled yet" in output
