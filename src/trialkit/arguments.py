"""Argument sources for parameterized trials and their expansion into invocations."""

from __future__ import annotations

import inspect
import itertools
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from trialkit.errors import MalformedArgumentsError
from trialkit.models.units import Invocation


if TYPE_CHECKING:
    from trialkit.models.units import TestUnit


class Strategy(Enum):
    """How several argument sequences are combined."""

    PRODUCT = "product"  # every combination, first source varies slowest
    ZIP = "zip"  # element-wise, truncated to the shortest source


@dataclass(frozen=True)
class ArgumentSource:
    """Materialized argument sequences plus a combination strategy."""

    sources: tuple[tuple[Any, ...], ...]
    strategy: Strategy = Strategy.PRODUCT

    @property
    def width(self) -> int:
        """Number of values each combination supplies."""
        return len(self.sources)

    def __len__(self) -> int:
        sizes = [len(s) for s in self.sources]
        if self.strategy is Strategy.ZIP:
            return min(sizes)
        count = 1
        for size in sizes:
            count *= size
        return count

    def combinations(self) -> Iterator[tuple[Any, ...]]:
        if self.strategy is Strategy.ZIP:
            return zip(*self.sources)
        return itertools.product(*self.sources)


def _materialize(source: Any) -> tuple[Any, ...]:
    if isinstance(source, (str, bytes)):
        msg = f"Argument source must be a collection of values, got the string {source!r}"
        raise MalformedArgumentsError(msg)
    if isinstance(source, Mapping):
        return tuple(source.items())
    if not isinstance(source, Iterable):
        msg = f"Argument source must be iterable, got {type(source).__name__}"
        raise MalformedArgumentsError(msg)
    return tuple(source)


def _build(sources: tuple[Any, ...], strategy: Strategy) -> ArgumentSource:
    if not sources:
        msg = f"{strategy.value}() requires at least one argument source"
        raise MalformedArgumentsError(msg)
    return ArgumentSource(tuple(_materialize(s) for s in sources), strategy)


def product(*sources: Iterable[Any]) -> ArgumentSource:
    """Combine sources into every possible combination.

    Examples
    --------
    >>> len(product(["rice", "egg"], ["onigiri", "omelette"]))
    4
    """
    return _build(sources, Strategy.PRODUCT)


def zipped(*sources: Iterable[Any]) -> ArgumentSource:
    """Pair sources by position. Trailing values of longer sources are dropped."""
    return _build(sources, Strategy.ZIP)


def as_argument_source(value: ArgumentSource | Iterable[Any]) -> ArgumentSource:
    """Normalize the ``arguments=`` of a declaration. A plain iterable is one source."""
    if isinstance(value, ArgumentSource):
        return value
    return ArgumentSource((_materialize(value),))


@dataclass(frozen=True)
class _Signature:
    names: tuple[str, ...]
    required: int
    variadic: bool

    def accepts(self, count: int) -> bool:
        return self.required <= count and (self.variadic or count <= len(self.names))


def _positional_signature(fn: Callable[..., Any], *, bound: bool) -> _Signature:
    params = list(inspect.signature(fn).parameters.values())
    if bound and params:
        params = params[1:]
    names: list[str] = []
    required = 0
    variadic = False
    for param in params:
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            variadic = True
        elif param.kind in {inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD}:
            names.append(param.name)
            if param.default is inspect.Parameter.empty:
                required += 1
        elif param.kind is inspect.Parameter.KEYWORD_ONLY and param.default is inspect.Parameter.empty:
            msg = f"{fn.__qualname__}() has a required keyword-only parameter {param.name!r}"
            raise MalformedArgumentsError(msg)
    return _Signature(tuple(names), required, variadic)


def _unpacks(signature: _Signature, source: ArgumentSource) -> bool:
    # One source feeding a multi-parameter body: every value is a tuple to unpack.
    return source.width == 1 and signature.required > 1


def validate_arguments(
    body: Callable[..., Any],
    source: ArgumentSource | None,
    *,
    bound: bool = False,
) -> None:
    """Check at registration that ``source`` fits the parameters of ``body``.

    Raises
    ------
    MalformedArgumentsError
        If the body needs arguments it will not get, or the source supplies
        values it cannot accept.
    """
    signature = _positional_signature(body, bound=bound)
    name = getattr(body, "__qualname__", repr(body))

    if source is None:
        if signature.required:
            msg = f"{name}() takes {signature.required} argument(s) but no arguments were declared"
            raise MalformedArgumentsError(msg)
        return

    if not signature.names and not signature.variadic:
        msg = f"{name}() takes no parameters but arguments were declared"
        raise MalformedArgumentsError(msg)

    if _unpacks(signature, source):
        for value in source.sources[0]:
            if not isinstance(value, (tuple, list)) or not signature.accepts(len(value)):
                msg = f"{name}() expects tuples of {signature.required} values, got {value!r}"
                raise MalformedArgumentsError(msg)
        return

    if not signature.accepts(source.width):
        msg = f"{name}() cannot accept {source.width} argument(s) per invocation"
        raise MalformedArgumentsError(msg)


def _describe(value: Any) -> str:
    if isinstance(value, Enum):
        return f"{type(value).__name__}.{value.name}"
    if isinstance(value, (int, float, str, bool)) or value is None:
        return repr(value) if isinstance(value, str) else str(value)
    if isinstance(value, tuple):
        return "(" + ", ".join(_describe(v) for v in value) + ")"
    return value.__class__.__name__


def _format_id(names: tuple[str, ...], values: tuple[Any, ...]) -> str:
    formatted = []
    for position, value in enumerate(values):
        label = names[position] if position < len(names) else f"arg{position}"
        formatted.append(f"{label}={_describe(value)}")
    return ", ".join(formatted)


def expand(unit: TestUnit) -> Iterator[Invocation]:
    """Lazily produce the invocations of a trial.

    A trial without arguments yields exactly one invocation. A parameterized
    trial yields one invocation per combination of its argument source, in
    enumeration order, each inheriting the trial's traits.
    """
    if unit.arguments is None:
        yield Invocation(unit)
        return

    signature = _positional_signature(unit.body, bound=unit.owner is not None)
    unpack = _unpacks(signature, unit.arguments)

    for index, combination in enumerate(unit.arguments.combinations()):
        values = tuple(combination[0]) if unpack else tuple(combination)
        yield Invocation(
            unit=unit,
            arguments=values,
            index=index,
            id_suffix=_format_id(signature.names, values),
        )
