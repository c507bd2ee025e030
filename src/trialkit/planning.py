"""Turn a registry into an execution plan with effective traits and selection applied."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from trialkit.models.units import GroupUnit, TestUnit, Unit
from trialkit.registry import Registry
from trialkit.traits import TraitSet


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    """Which trials a run includes.

    A trial is selected when it carries at least one of ``include_tags``
    (if any are given), none of ``exclude_tags``, and ``keyword`` occurs in
    its identifier or display name (case-insensitive). Suites are kept when
    any of their trials is selected.
    """

    include_tags: frozenset[str] = frozenset()
    exclude_tags: frozenset[str] = frozenset()
    keyword: str | None = None

    @property
    def active(self) -> bool:
        return bool(self.include_tags or self.exclude_tags or self.keyword)

    def matches(self, unit: TestUnit, traits: TraitSet) -> bool:
        tags = traits.tags
        if self.include_tags and not tags & self.include_tags:
            return False
        if tags & self.exclude_tags:
            return False
        if self.keyword:
            needle = self.keyword.lower()
            return needle in unit.identifier.lower() or needle in unit.label.lower()
        return True


@dataclass
class PlanNode:
    """A unit scheduled for execution along with its effective traits."""

    unit: Unit
    traits: TraitSet
    children: list[PlanNode] = field(default_factory=list)

    @property
    def is_group(self) -> bool:
        return isinstance(self.unit, GroupUnit)

    def walk(self) -> Iterator[PlanNode]:
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class Plan:
    """Ordered root nodes of a run."""

    roots: list[PlanNode] = field(default_factory=list)

    def __iter__(self) -> Iterator[PlanNode]:
        return iter(self.roots)

    def __len__(self) -> int:
        return len(self.roots)

    def walk(self) -> Iterator[PlanNode]:
        for root in self.roots:
            yield from root.walk()

    @property
    def trial_count(self) -> int:
        """Number of trials, before parameterized trials are expanded."""
        return sum(1 for node in self.walk() if not node.is_group)


def _plan_unit(unit: Unit, parent: TraitSet, selection: Selection) -> PlanNode | None:
    traits = parent.child(unit.traits)
    if isinstance(unit, TestUnit):
        return PlanNode(unit, traits) if selection.matches(unit, traits) else None

    node = PlanNode(unit, traits)
    for child in unit.children:
        planned = _plan_unit(child, traits, selection)
        if planned is not None:
            node.children.append(planned)
    if selection.active and not node.children:
        return None
    return node


def build_plan(
    registry: Registry,
    *,
    include_tags: Iterable[str] = (),
    exclude_tags: Iterable[str] = (),
    keyword: str | None = None,
) -> Plan:
    """Build the execution plan of ``registry``.

    Unselected trials, and suites left without selected trials, are
    omitted. Conditions are not evaluated here; the runner evaluates them
    right before each unit starts.
    """
    selection = Selection(frozenset(include_tags), frozenset(exclude_tags), keyword or None)
    plan = Plan()
    root_traits = TraitSet()
    for unit in registry.roots:
        node = _plan_unit(unit, root_traits, selection)
        if node is not None:
            plan.roots.append(node)
    logger.debug("Planned %d trials across %d root units", plan.trial_count, len(plan))
    return plan
