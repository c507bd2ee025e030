"""Declarative metadata attached to trials and suites.

Traits are plain immutable values. Attaching one has no side effect; the
runner interprets them while building and executing the plan:

- ``Tags`` and ``Bug`` are reported and accumulate down the suite tree.
- ``EnabledIf``, ``DisabledIf`` and ``Disabled`` decide whether a unit runs.
  Predicates are evaluated immediately before the unit is scheduled, never
  at declaration time.
- ``TimeLimit`` bounds the wall-clock time of a single invocation. When a
  unit and its ancestors declare several limits, the shortest applies.
- ``Serialized`` makes a suite run its direct children one at a time.
- ``DisplayName`` overrides the name shown in reports.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import ClassVar

from trialkit.errors import ConfigurationError


class Trait:
    """Base class for all traits."""

    inheritable: ClassVar[bool] = False


@dataclass(frozen=True)
class Tags(Trait):
    """Labels used for filtering and reporting."""

    names: frozenset[str]

    inheritable: ClassVar[bool] = True


@dataclass(frozen=True)
class Bug(Trait):
    """Reference to a bug tracker entry related to the unit."""

    url: str | None = None
    identifier: str | None = None
    title: str | None = None

    inheritable: ClassVar[bool] = True

    def __str__(self) -> str:
        ref = self.url or f"#{self.identifier}"
        return f"{ref} ({self.title})" if self.title else ref


class ConditionTrait(Trait):
    """A trait that decides whether its unit runs."""

    def is_enabled(self) -> bool:
        raise NotImplementedError

    def skip_reason(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class EnabledIf(ConditionTrait):
    """Run the unit only when ``predicate()`` is true."""

    predicate: Callable[[], bool]
    comment: str | None = None

    def is_enabled(self) -> bool:
        return bool(self.predicate())

    def skip_reason(self) -> str:
        return self.comment or "enabling condition not met"


@dataclass(frozen=True)
class DisabledIf(ConditionTrait):
    """Skip the unit when ``predicate()`` is true."""

    predicate: Callable[[], bool]
    comment: str | None = None

    def is_enabled(self) -> bool:
        return not self.predicate()

    def skip_reason(self) -> str:
        return self.comment or "disabling condition met"


@dataclass(frozen=True)
class Disabled(ConditionTrait):
    """Always skip the unit."""

    reason: str | None = None

    def is_enabled(self) -> bool:
        return False

    def skip_reason(self) -> str:
        return self.reason or "disabled"


@dataclass(frozen=True)
class TimeLimit(Trait):
    """Maximum wall-clock duration of a single invocation, in seconds."""

    seconds: float

    inheritable: ClassVar[bool] = True


@dataclass(frozen=True)
class Serialized(Trait):
    """Run the direct children of a suite, or the cases of a trial, one at a time."""


@dataclass(frozen=True)
class DisplayName(Trait):
    """Human readable name shown instead of the function or class name."""

    text: str


serialized = Serialized()


def tag(*names: str) -> Tags:
    """Attach one or more tags.

    Examples
    --------
    >>> @trial(tag("networking", "formatting"))
    ... def trial_fetch(): ...
    """
    if not names:
        raise ConfigurationError("tag() requires at least one name")
    for name in names:
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError(f"Tag names must be non-empty strings, got {name!r}")
    return Tags(frozenset(name.strip() for name in names))


def bug(url: str | None = None, title: str | None = None, *, identifier: str | int | None = None) -> Bug:
    """Reference a bug by URL, by tracker identifier, or both."""
    if url is None and identifier is None:
        raise ConfigurationError("bug() requires a url or an identifier")
    return Bug(url=url, identifier=None if identifier is None else str(identifier), title=title)


def _as_predicate(condition: bool | Callable[[], bool]) -> Callable[[], bool]:
    if isinstance(condition, bool):
        return lambda: condition
    if not callable(condition):
        raise ConfigurationError(f"Condition must be a bool or a zero-argument callable, got {condition!r}")
    return condition


def enabled_if(condition: bool | Callable[[], bool], comment: str | None = None) -> EnabledIf:
    """Run only when ``condition`` holds. Callables are evaluated lazily."""
    return EnabledIf(_as_predicate(condition), comment)


def disabled_if(condition: bool | Callable[[], bool], comment: str | None = None) -> DisabledIf:
    """Skip when ``condition`` holds. Callables are evaluated lazily."""
    return DisabledIf(_as_predicate(condition), comment)


def disabled(reason: str | None = None) -> Disabled:
    """Always skip, recording ``reason``."""
    return Disabled(reason)


def time_limit(duration: float | timedelta) -> TimeLimit:
    """Fail an invocation that runs longer than ``duration`` (seconds or timedelta)."""
    seconds = duration.total_seconds() if isinstance(duration, timedelta) else float(duration)
    if seconds <= 0:
        raise ConfigurationError(f"Time limit must be positive, got {duration!r}")
    return TimeLimit(seconds)


def display_name(text: str) -> DisplayName:
    if not isinstance(text, str) or not text.strip():
        raise ConfigurationError("display_name() requires a non-empty string")
    return DisplayName(text)


@dataclass(frozen=True)
class TraitSet:
    """Traits in effect for one unit: its own plus those inherited from ancestors.

    Conditions, ``Serialized`` and ``DisplayName`` are read from ``own`` only.
    Tags, bugs and time limits are read from both.
    """

    own: tuple[Trait, ...] = ()
    inherited: tuple[Trait, ...] = field(default=())

    def child(self, traits: Iterable[Trait]) -> TraitSet:
        """Effective traits for a child declaring ``traits``."""
        passed_down = self.inherited + tuple(t for t in self.own if t.inheritable)
        return TraitSet(own=tuple(traits), inherited=passed_down)

    def _all(self) -> tuple[Trait, ...]:
        return self.inherited + self.own

    @property
    def tags(self) -> frozenset[str]:
        names: set[str] = set()
        for trait in self._all():
            if isinstance(trait, Tags):
                names |= trait.names
        return frozenset(names)

    @property
    def bugs(self) -> tuple[Bug, ...]:
        seen: list[Bug] = []
        for trait in self._all():
            if isinstance(trait, Bug) and trait not in seen:
                seen.append(trait)
        return tuple(seen)

    @property
    def time_limit(self) -> float | None:
        limits = [t.seconds for t in self._all() if isinstance(t, TimeLimit)]
        return min(limits) if limits else None

    @property
    def serialized(self) -> bool:
        return any(isinstance(t, Serialized) for t in self.own)

    @property
    def display_name(self) -> str | None:
        for trait in reversed(self.own):
            if isinstance(trait, DisplayName):
                return trait.text
        return None

    @property
    def conditions(self) -> tuple[ConditionTrait, ...]:
        return tuple(t for t in self.own if isinstance(t, ConditionTrait))

    def evaluate(self) -> str | None:
        """Evaluate the unit's own conditions in declaration order.

        Returns the skip reason of the first condition that disables the
        unit, or ``None`` when it should run. Exceptions raised by a
        predicate propagate to the caller.
        """
        for condition in self.conditions:
            if not condition.is_enabled():
                return condition.skip_reason()
        return None
