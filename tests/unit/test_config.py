import os
from pathlib import Path

import pytest

from trialkit.config import RunConfig
from trialkit.errors import ConfigurationError


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for key in list(os.environ):
        if key.startswith("TRIALKIT_"):
            monkeypatch.delenv(key)


def test_defaults():
    config = RunConfig.load()
    assert config.paths == [Path(".")]
    assert config.concurrency == 0
    assert config.time_limit is None
    assert config.threaded is True
    assert config.verbosity == 0
    assert config.trace is False
    assert config.trace_output == Path("traces.jsonl")


def test_environment_values_are_parsed(monkeypatch):
    monkeypatch.setenv("TRIALKIT_PATHS", os.pathsep.join(["trials", "more_trials"]))
    monkeypatch.setenv("TRIALKIT_INCLUDE_TAGS", "networking, formatting")
    monkeypatch.setenv("TRIALKIT_CONCURRENCY", "4")
    monkeypatch.setenv("TRIALKIT_TIME_LIMIT", "2.5")
    monkeypatch.setenv("TRIALKIT_THREADED", "false")
    monkeypatch.setenv("TRIALKIT_TRACE", "1")
    monkeypatch.setenv("TRIALKIT_KEYWORD", "  ")
    monkeypatch.setenv("UNRELATED", "ignored")

    config = RunConfig.load()
    assert config.paths == [Path("trials"), Path("more_trials")]
    assert config.include_tags == ["networking", "formatting"]
    assert config.concurrency == 4
    assert config.time_limit == 2.5
    assert config.threaded is False
    assert config.trace is True
    assert config.keyword is None


def test_overrides_win_and_none_is_ignored(monkeypatch):
    monkeypatch.setenv("TRIALKIT_CONCURRENCY", "4")
    monkeypatch.setenv("TRIALKIT_VERBOSITY", "1")

    config = RunConfig.load(concurrency=1, verbosity=None)
    assert config.concurrency == 1
    assert config.verbosity == 1


def test_empty_environment_values_are_ignored(monkeypatch):
    monkeypatch.setenv("TRIALKIT_TIME_LIMIT", "")
    assert RunConfig.load().time_limit is None


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("TRIALKIT_CONCURRENCY", "-1"),
        ("TRIALKIT_CONCURRENCY", "many"),
        ("TRIALKIT_TIME_LIMIT", "0"),
        ("TRIALKIT_VERBOSITY", "9"),
    ],
)
def test_invalid_values_raise_configuration_error(monkeypatch, key, value):
    monkeypatch.setenv(key, value)
    with pytest.raises(ConfigurationError, match="Invalid configuration"):
        RunConfig.load()


def test_invalid_override_raises_configuration_error():
    with pytest.raises(ConfigurationError):
        RunConfig.load(concurrency=-2)
