"""Marker decorators that declare trials and suites.

The markers only attach a ``Declaration`` to the decorated object. Nothing
is registered until a ``Registry`` adds the object, either explicitly or
through discovery.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

from trialkit.arguments import ArgumentSource, as_argument_source
from trialkit.errors import ConfigurationError
from trialkit.traits import Trait


DECLARATION_ATTR = "__trialkit_declaration__"

F = TypeVar("F", bound=Callable[..., Any])


@dataclass(frozen=True)
class Declaration:
    """Everything a marker decorator captured about a trial or suite."""

    kind: str  # "trial" or "suite"
    traits: tuple[Trait, ...] = ()
    display_name: str | None = None
    arguments: ArgumentSource | None = None
    identifier: str | None = None


def _split(args: tuple[Any, ...], name: str | None) -> tuple[str | None, tuple[Trait, ...]]:
    display = name
    traits: list[Trait] = []
    for position, arg in enumerate(args):
        if isinstance(arg, str) and position == 0 and display is None:
            display = arg
        elif isinstance(arg, Trait):
            traits.append(arg)
        elif isinstance(arg, (list, tuple)) and all(isinstance(t, Trait) for t in arg):
            traits.extend(arg)
        else:
            raise ConfigurationError(f"Expected a display name or traits, got {arg!r}")
    return display, tuple(traits)


def is_bare_call(args: tuple[Any, ...], *options: Any) -> bool:
    """True when a marker was applied without parentheses, as in ``@trial``."""
    if len(args) != 1 or any(option is not None for option in options):
        return False
    return callable(args[0]) and not isinstance(args[0], (Trait, str))


def get_declaration(obj: Any) -> Declaration | None:
    """Return the declaration attached to ``obj``, if any.

    Classes are only considered declared by their own marker, not one
    inherited from a base class.
    """
    if isinstance(obj, type):
        return vars(obj).get(DECLARATION_ATTR)
    declaration = getattr(obj, DECLARATION_ATTR, None)
    if declaration is None and isinstance(obj, (staticmethod, classmethod)):
        declaration = getattr(obj.__func__, DECLARATION_ATTR, None)
    return declaration


def _attach(obj: Any, declaration: Declaration) -> Any:
    target = obj.__func__ if isinstance(obj, (staticmethod, classmethod)) else obj
    setattr(target, DECLARATION_ATTR, declaration)
    return obj


def trial(
    *args: Any,
    name: str | None = None,
    arguments: ArgumentSource | Iterable[Any] | None = None,
    identifier: str | None = None,
) -> Any:
    """Declare a trial.

    Accepts an optional display name followed by traits, and an optional
    argument source for parameterized trials. Can be used bare.

    Examples
    --------
    >>> @trial
    ... def trial_addition(): ...

    >>> @trial("Rename the trial", tag("formatting"))
    ... def trial_renamed(): ...

    >>> @trial(arguments=[Flavor.VANILLA, Flavor.MINT])
    ... def trial_no_nuts(flavor): ...
    """
    if is_bare_call(args, name, arguments, identifier):
        return _attach(args[0], Declaration(kind="trial"))

    display, traits = _split(args, name)
    source = as_argument_source(arguments) if arguments is not None else None
    declaration = Declaration(
        kind="trial",
        traits=traits,
        display_name=display,
        arguments=source,
        identifier=identifier,
    )

    def decorator(fn: F) -> F:
        if not callable(fn) and not isinstance(fn, (staticmethod, classmethod)):
            raise ConfigurationError(f"@trial can only decorate callables, got {fn!r}")
        return _attach(fn, declaration)

    return decorator


def suite(*args: Any, name: str | None = None, identifier: str | None = None) -> Any:
    """Declare a class as a suite; its traits apply to every trial inside.

    Examples
    --------
    >>> @suite(serialized)
    ... class TrialCheckout:
    ...     def trial_pay(self): ...
    """
    if is_bare_call(args, name, identifier):
        return _attach(args[0], Declaration(kind="suite"))

    display, traits = _split(args, name)
    declaration = Declaration(kind="suite", traits=traits, display_name=display, identifier=identifier)

    def decorator(cls: type) -> type:
        if not isinstance(cls, type):
            raise ConfigurationError(f"@suite can only decorate classes, got {cls!r}")
        return _attach(cls, declaration)

    return decorator
