import json
import os
import textwrap

import pytest
from click.testing import CliRunner

from trialkit.cli import EXIT_CONFIGURATION_ERROR, EXIT_FAILURES, EXIT_OK, main


PASSING = """
from trialkit import check, tag, trial

@trial(tag("math"))
def trial_addition():
    check(1 + 1 == 2)

class TrialStrings:
    def trial_upper(self):
        check("a".upper() == "A")
"""

FAILING = """
from trialkit import check

def trial_broken():
    check(1 + 1 == 3, "arithmetic is off")
"""


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    # .env values loaded by the command must not leak into other tests
    environ = {k: v for k, v in os.environ.items() if not k.startswith("TRIALKIT_")}
    monkeypatch.setattr(os, "environ", environ)
    return CliRunner()


def _write(directory, name, source):
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(textwrap.dedent(source))
    return path


def test_run_passing_trials_exits_zero(runner, tmp_path):
    _write(tmp_path / "trials", "trial_passing.py", PASSING)

    result = runner.invoke(main, ["run", "trials"])

    assert result.exit_code == EXIT_OK, result.output
    assert "2 passed" in result.output


def test_run_with_failures_exits_one(runner, tmp_path):
    _write(tmp_path / "trials", "trial_failing.py", FAILING)

    result = runner.invoke(main, ["run", "trials"])

    assert result.exit_code == EXIT_FAILURES
    assert "arithmetic is off" in result.output
    assert "1 failed" in result.output


def test_tag_selection(runner, tmp_path):
    _write(tmp_path / "trials", "trial_passing.py", PASSING)
    _write(tmp_path / "trials", "trial_failing.py", FAILING)

    result = runner.invoke(main, ["run", "trials", "-t", "math", "-v"])

    assert result.exit_code == EXIT_OK, result.output
    assert "trial_addition" in result.output
    assert "trial_broken" not in result.output


def test_json_report(runner, tmp_path):
    _write(tmp_path / "trials", "trial_failing.py", FAILING)

    result = runner.invoke(main, ["run", "trials", "-q", "--json-report", "out/report.json"])

    assert result.exit_code == EXIT_FAILURES
    data = json.loads((tmp_path / "out" / "report.json").read_text())
    assert data["counts"]["failed"] == 1


def test_import_error_exits_two(runner, tmp_path):
    _write(tmp_path / "trials", "trial_broken.py", "raise RuntimeError('boom')\n")

    result = runner.invoke(main, ["run", "trials"])

    assert result.exit_code == EXIT_CONFIGURATION_ERROR
    assert "Configuration error" in result.output


def test_invalid_environment_exits_two(runner, tmp_path, monkeypatch):
    _write(tmp_path / "trials", "trial_passing.py", PASSING)
    monkeypatch.setenv("TRIALKIT_CONCURRENCY", "many")

    result = runner.invoke(main, ["run", "trials"])

    assert result.exit_code == EXIT_CONFIGURATION_ERROR
    assert "Invalid configuration" in result.output


def test_dotenv_is_loaded(runner, tmp_path, monkeypatch):
    _write(tmp_path / "trials", "trial_passing.py", PASSING)
    _write(tmp_path / "trials", "trial_failing.py", FAILING)
    (tmp_path / ".env").write_text("TRIALKIT_EXCLUDE_TAGS=math\nTRIALKIT_KEYWORD=upper\n")

    result = runner.invoke(main, ["run", "trials"])

    assert result.exit_code == EXIT_OK, result.output
    assert "1 passed" in result.output


def test_no_trials_found_exits_zero(runner, tmp_path):
    (tmp_path / "empty").mkdir()

    result = runner.invoke(main, ["run", "empty"])

    assert result.exit_code == EXIT_OK
    assert "No trials found." in result.output


def test_list_prints_tree(runner, tmp_path):
    _write(tmp_path / "trials", "trial_passing.py", PASSING)

    result = runner.invoke(main, ["list", "trials"])

    assert result.exit_code == EXIT_OK
    assert "trial_passing.py" in result.output
    assert "TrialStrings" in result.output
    assert "trial_upper" in result.output
    assert "2 trials" in result.output


def test_version(runner):
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "trialkit" in result.output
