"""Declared units: trials, suites and their concrete invocations."""

from __future__ import annotations

import inspect
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

from trialkit.models.result import SourceLocation
from trialkit.traits import DisplayName, Serialized, Trait


if TYPE_CHECKING:
    from trialkit.arguments import ArgumentSource


def location_of(obj: Any) -> SourceLocation | None:
    """Source location of a function or class, if it can be determined."""
    code = getattr(obj, "__code__", None)
    if code is not None:
        return SourceLocation(code.co_filename, code.co_firstlineno, getattr(obj, "__qualname__", None))
    module = sys.modules.get(getattr(obj, "__module__", ""), None)
    path = getattr(module, "__file__", None)
    if path is None:
        return None
    try:
        _, line = inspect.findsource(obj)
    except (OSError, TypeError):
        return SourceLocation(path, None, getattr(obj, "__qualname__", None))
    return SourceLocation(path, line + 1, getattr(obj, "__qualname__", None))


@dataclass(frozen=True)
class TestUnit:
    """A declared trial. Immutable once registered.

    Attributes
    ----------
    identifier
        Unique key in the registry, e.g. ``trial_math.py::TrialDivision::by_zero``.
    name
        Function name.
    body
        The callable to invoke. For methods, ``owner`` is instantiated per invocation
        and passed as the first argument.
    traits
        Traits declared on the trial itself.
    arguments
        Argument source for parameterized trials.
    display_name
        Optional name shown in reports instead of ``name``.
    parent_id
        Identifier of the enclosing suite. A lookup key, not a reference.
    """

    __test__ = False  # Prevent pytest from collecting this as a test class

    identifier: str
    name: str
    body: Callable[..., Any]
    traits: tuple[Trait, ...] = ()
    arguments: ArgumentSource | None = None
    display_name: str | None = None
    parent_id: str | None = None
    owner: type | None = None
    location: SourceLocation | None = None

    @property
    def label(self) -> str:
        for trait in reversed(self.traits):
            if isinstance(trait, DisplayName):
                return trait.text
        return self.display_name or self.name

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.body)

    @property
    def is_parameterized(self) -> bool:
        return self.arguments is not None

    @property
    def is_serialized(self) -> bool:
        return any(isinstance(t, Serialized) for t in self.traits)


@dataclass(eq=False)
class GroupUnit:
    """A declared suite with ordered children.

    Only the registry appends to ``children``.
    """

    __test__ = False  # Prevent pytest from collecting this as a test class

    identifier: str
    name: str
    traits: tuple[Trait, ...] = ()
    display_name: str | None = None
    parent_id: str | None = None
    location: SourceLocation | None = None
    children: list[Unit] = field(default_factory=list)

    @property
    def label(self) -> str:
        for trait in reversed(self.traits):
            if isinstance(trait, DisplayName):
                return trait.text
        return self.display_name or self.name

    @property
    def is_serialized(self) -> bool:
        return any(isinstance(t, Serialized) for t in self.traits)


Unit = Union[TestUnit, GroupUnit]


@dataclass(frozen=True)
class Invocation:
    """One concrete call of a trial body with one argument tuple."""

    unit: TestUnit
    arguments: tuple[Any, ...] = ()
    index: int | None = None
    id_suffix: str | None = None

    @property
    def identifier(self) -> str:
        if self.index is None:
            return self.unit.identifier
        return f"{self.unit.identifier}[{self.index}]"

    @property
    def label(self) -> str:
        if self.id_suffix is None:
            return self.unit.label
        return f"{self.unit.label}[{self.id_suffix}]"

    @property
    def traits(self) -> tuple[Trait, ...]:
        return self.unit.traits
