"""Registry of declared trials and suites."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Iterator
from typing import Any

from trialkit import declarations
from trialkit.arguments import ArgumentSource, validate_arguments
from trialkit.declarations import Declaration, get_declaration, is_bare_call
from trialkit.errors import ConfigurationError, DuplicateIdentifierError
from trialkit.models.units import GroupUnit, TestUnit, Unit, location_of
from trialkit.traits import Trait


logger = logging.getLogger(__name__)

TRIAL_PREFIX = "trial_"


def _default_identifier(obj: Any) -> str:
    qualname = getattr(obj, "__qualname__", getattr(obj, "__name__", repr(obj)))
    parts = [part for part in qualname.split(".") if part != "<locals>"]
    return "::".join([getattr(obj, "__module__", "__main__"), *parts])


def _unwrap(member: Any) -> Any:
    if isinstance(member, (staticmethod, classmethod)):
        return member.__func__
    return member


def is_trial_member(name: str, member: Any) -> bool:
    declaration = get_declaration(member)
    if declaration is not None:
        return declaration.kind == "trial"
    return name.startswith(TRIAL_PREFIX) and inspect.isfunction(_unwrap(member))


def contains_trials(cls: type) -> bool:
    for name, member in vars(cls).items():
        if isinstance(member, type):
            if get_declaration(member) is not None or contains_trials(member):
                return True
        elif is_trial_member(name, member):
            return True
    return False


def _check_owner(cls: type) -> None:
    try:
        signature = inspect.signature(cls)
    except (TypeError, ValueError):
        return
    required = [
        p.name
        for p in signature.parameters.values()
        if p.default is inspect.Parameter.empty and p.kind not in {p.VAR_POSITIONAL, p.VAR_KEYWORD}
    ]
    if required:
        msg = f"Suite {cls.__qualname__} must be constructible without arguments, but requires {required}"
        raise ConfigurationError(msg)


class Registry:
    """Holds every declared unit, keyed by identifier, in registration order.

    Units are registered while modules are imported or collected. The
    runner freezes the registry before scheduling; later registrations
    raise ``ConfigurationError``.

    Examples
    --------
    >>> registry = Registry()
    >>> @registry.trial(tag("math"))
    ... def trial_addition():
    ...     check(1 + 1 == 2)
    """

    def __init__(self) -> None:
        self._units: dict[str, Unit] = {}
        self._roots: list[Unit] = []
        self._frozen = False

    def register(self, unit: Unit) -> Unit:
        """Add a unit and attach it to its parent.

        Raises
        ------
        DuplicateIdentifierError
            If a unit with the same identifier is already registered.
        ConfigurationError
            If the registry is frozen, the parent is unknown or not a group,
            or a trial's body cannot take its declared arguments.
        """
        if self._frozen:
            raise ConfigurationError(f"Cannot register {unit.identifier!r}: the registry is frozen")
        if not unit.identifier:
            raise ConfigurationError("Units need a non-empty identifier")
        if unit.identifier in self._units:
            raise DuplicateIdentifierError(unit.identifier)

        if isinstance(unit, TestUnit):
            if not callable(unit.body):
                raise ConfigurationError(f"Trial {unit.identifier!r} has a body that is not callable")
            validate_arguments(unit.body, unit.arguments, bound=unit.owner is not None)
        elif unit.children:
            raise ConfigurationError(f"Suite {unit.identifier!r} must be registered before its children")

        parent: GroupUnit | None = None
        if unit.parent_id is not None:
            found = self._units.get(unit.parent_id)
            if found is None:
                raise ConfigurationError(f"Unknown parent {unit.parent_id!r} for {unit.identifier!r}")
            if not isinstance(found, GroupUnit):
                raise ConfigurationError(f"Parent {unit.parent_id!r} of {unit.identifier!r} is not a suite")
            parent = found

        self._units[unit.identifier] = unit
        if parent is None:
            self._roots.append(unit)
        else:
            parent.children.append(unit)
        logger.debug("Registered %s %s", "suite" if isinstance(unit, GroupUnit) else "trial", unit.identifier)
        return unit

    def _resolve_parent(self, parent: GroupUnit | str | None) -> GroupUnit | None:
        if parent is None or isinstance(parent, GroupUnit):
            return parent
        found = self._units.get(parent)
        if not isinstance(found, GroupUnit):
            raise ConfigurationError(f"Unknown suite {parent!r}")
        return found

    def _identifier(self, declared: str | None, name: str, obj: Any, parent: GroupUnit | None) -> str:
        if declared:
            return declared
        if parent is not None:
            return f"{parent.identifier}::{name}"
        return _default_identifier(obj)

    def add(self, obj: Any, parent: GroupUnit | str | None = None) -> Unit:
        """Register a function as a trial or a class as a suite.

        Within a class, methods marked with ``trial`` or named ``trial_*``
        become trials run on a fresh instance of the class, and nested
        classes that contain trials become nested suites.
        """
        group = self._resolve_parent(parent)
        if isinstance(obj, type):
            return self._add_class(obj, group)
        body = _unwrap(obj)
        if not callable(body):
            raise ConfigurationError(f"Cannot register {obj!r}: expected a function or a class")
        return self._add_function(body.__name__, obj, group)

    def _add_function(
        self,
        name: str,
        member: Any,
        parent: GroupUnit | None,
        *,
        body: Callable[..., Any] | None = None,
        owner: type | None = None,
    ) -> TestUnit:
        declaration = get_declaration(member) or Declaration(kind="trial")
        if declaration.kind != "trial":
            raise ConfigurationError(f"{name} is declared as a {declaration.kind}, not a trial")
        if body is None:
            body = _unwrap(member)
        unit = TestUnit(
            identifier=self._identifier(declaration.identifier, name, body, parent),
            name=name,
            body=body,
            traits=declaration.traits,
            arguments=declaration.arguments,
            display_name=declaration.display_name,
            parent_id=parent.identifier if parent else None,
            owner=owner,
            location=location_of(body),
        )
        self.register(unit)
        return unit

    def _add_class(self, cls: type, parent: GroupUnit | None) -> GroupUnit:
        declaration = get_declaration(cls) or Declaration(kind="suite")
        if declaration.kind != "suite":
            raise ConfigurationError(f"{cls.__qualname__} is declared as a {declaration.kind}, not a suite")
        group = GroupUnit(
            identifier=self._identifier(declaration.identifier, cls.__name__, cls, parent),
            name=cls.__name__,
            traits=declaration.traits,
            display_name=declaration.display_name,
            parent_id=parent.identifier if parent else None,
            location=location_of(cls),
        )
        self.register(group)

        owner_checked = False
        for name, member in vars(cls).items():
            if isinstance(member, type):
                if get_declaration(member) is not None or contains_trials(member):
                    self._add_class(member, group)
                continue
            if not is_trial_member(name, member):
                continue
            if isinstance(member, classmethod):
                self._add_function(name, member, group, body=getattr(cls, name))
            elif isinstance(member, staticmethod):
                self._add_function(name, member, group)
            else:
                if not owner_checked:
                    _check_owner(cls)
                    owner_checked = True
                self._add_function(name, member, group, owner=cls)
        return group

    def group(
        self,
        name: str,
        *traits: Trait,
        parent: GroupUnit | str | None = None,
        display_name: str | None = None,
        identifier: str | None = None,
    ) -> GroupUnit:
        """Create and register an empty suite that units can be added to."""
        parent_group = self._resolve_parent(parent)
        for trait in traits:
            if not isinstance(trait, Trait):
                raise ConfigurationError(f"Expected traits, got {trait!r}")
        if identifier is None:
            identifier = f"{parent_group.identifier}::{name}" if parent_group else name
        group = GroupUnit(
            identifier=identifier,
            name=name,
            traits=tuple(traits),
            display_name=display_name,
            parent_id=parent_group.identifier if parent_group else None,
        )
        self.register(group)
        return group

    def trial(
        self,
        *args: Any,
        parent: GroupUnit | str | None = None,
        name: str | None = None,
        arguments: ArgumentSource | Any = None,
        identifier: str | None = None,
    ) -> Any:
        """Declare and register a trial in one step. Usable bare."""

        def register(fn: Callable[..., Any]) -> Callable[..., Any]:
            self.add(fn, parent=parent)
            return fn

        if is_bare_call(args, name, arguments, identifier):
            return register(declarations.trial(args[0]))
        mark = declarations.trial(*args, name=name, arguments=arguments, identifier=identifier)
        return lambda fn: register(mark(fn))

    def suite(
        self,
        *args: Any,
        parent: GroupUnit | str | None = None,
        name: str | None = None,
        identifier: str | None = None,
    ) -> Any:
        """Declare and register a suite class in one step. Usable bare."""

        def register(cls: type) -> type:
            self.add(cls, parent=parent)
            return cls

        if is_bare_call(args, name, identifier):
            return register(declarations.suite(args[0]))
        mark = declarations.suite(*args, name=name, identifier=identifier)
        return lambda cls: register(mark(cls))

    def get(self, identifier: str) -> Unit | None:
        return self._units.get(identifier)

    def __getitem__(self, identifier: str) -> Unit:
        return self._units[identifier]

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._units

    def __len__(self) -> int:
        return len(self._units)

    def __iter__(self) -> Iterator[Unit]:
        return iter(self._units.values())

    @property
    def roots(self) -> list[Unit]:
        """Units without a parent, in registration order."""
        return list(self._roots)

    def walk(self) -> Iterator[Unit]:
        """Yield every unit depth first, parents before children."""

        def visit(unit: Unit) -> Iterator[Unit]:
            yield unit
            if isinstance(unit, GroupUnit):
                for child in unit.children:
                    yield from visit(child)

        for root in self._roots:
            yield from visit(root)

    def tests(self) -> Iterator[TestUnit]:
        return (unit for unit in self.walk() if isinstance(unit, TestUnit))

    def freeze(self) -> None:
        if not self._frozen:
            logger.debug("Registry frozen with %d units", len(self._units))
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

