"""A tour of trialkit traits, expectations and confirmations.

Run with:

    trialkit run examples/ -v
"""

import asyncio
import os
from enum import Enum

from trialkit import (
    bug,
    check,
    confirmation,
    disabled,
    disabled_if,
    enabled_if,
    expect_raises,
    known_issue,
    product,
    require,
    require_raises,
    serialized,
    suite,
    tag,
    time_limit,
    trial,
    zipped,
)


# Expectations


class CalculationError(Exception):
    def __eq__(self, other):
        return type(self) is type(other) and self.args == other.args

    def __hash__(self):
        return hash((type(self), self.args))


DIVISION_BY_ZERO = CalculationError("division by zero")


def divide(a: int, b: int) -> int:
    if b == 0:
        raise CalculationError("division by zero")
    return a // b


class TrialExpectations:
    def trial_require_value(self):
        is_valid = True
        require(is_valid)
        check(is_valid is True)

    def trial_require_optional(self):
        optional_value: int | None = 0
        value = require(optional_value)
        check(value == 0)

    def trial_division_errors(self):
        expect_raises(Exception, lambda: divide(1, 0))
        expect_raises(DIVISION_BY_ZERO, lambda: divide(1, 0))
        expect_raises(lambda error: isinstance(error, CalculationError), lambda: divide(1, 0))
        require_raises(Exception, lambda: divide(1, 0))

    def trial_known_division_issue(self):
        known_issue(lambda: divide(1, 0), "division by zero is not handled yet")


# Display names, bugs and tags


@trial("Readable names replace the function name")
def trial_rename():
    flag = False
    check(not flag)
    flag = True
    check(flag)


@trial(bug("https://github.com/example/"))
def trial_with_bug():
    pass


@trial(tag("formatting"))
def trial_formatting():
    check(2 < 3)


@trial(tag("networking", "formatting"))
def trial_networking_and_formatting():
    require(2 < 3)


@suite(tag("new"))
class TrialTagged:
    def trial_first(self):
        require(2 < 3)

    def trial_second(self):
        require(2 < 3)


# Enabled and disabled


FEATURE_ENABLED = os.environ.get("TRIALKIT_EXAMPLE_FEATURE") == "1"


@trial(enabled_if(lambda: FEATURE_ENABLED, "set TRIALKIT_EXAMPLE_FEATURE=1"))
def trial_enabled_by_flag():
    pass


@trial(disabled_if(lambda: not FEATURE_ENABLED, "feature flag is off"))
def trial_disabled_by_flag():
    pass


@trial(disabled("Explain why the trial is skipped."))
def trial_always_skipped():
    items: list[int] = []
    check(items[0] == 0)


# Time limits


@trial(time_limit(60))
async def trial_within_time_limit():
    await asyncio.sleep(0.01)


# Serialized suites


@suite(serialized)
class TrialSerialized:
    def trial_first(self):
        require(2 < 3)

    def trial_second(self):
        require(2 < 3)

    def trial_third(self):
        require(2 < 3)


# Parameterized trials


class Flavor(Enum):
    VANILLA = "vanilla"
    CHOCOLATE = "chocolate"
    STRAWBERRY = "strawberry"
    MINT = "mint"
    BANANA = "banana"
    PISTACHIO = "pistachio"
    PEANUT = "peanut"

    @property
    def contains_nuts(self) -> bool:
        return self in {Flavor.PEANUT, Flavor.PISTACHIO}


@trial(arguments=[Flavor.VANILLA, Flavor.CHOCOLATE, Flavor.STRAWBERRY, Flavor.MINT, Flavor.BANANA])
def trial_does_not_contain_nuts(flavor: Flavor):
    require(not flavor.contains_nuts)


INGREDIENTS = ["rice", "potato", "lettuce", "egg"]
DISHES = ["onigiri", "fries", "salad", "omelette"]


@trial(arguments=product(INGREDIENTS, DISHES))
def trial_every_pairing(ingredient: str, dish: str):
    check(ingredient in INGREDIENTS and dish in DISHES)


@trial(arguments=zipped(INGREDIENTS, DISHES))
def trial_matching_pairs(ingredient: str, dish: str):
    check(INGREDIENTS.index(ingredient) == DISHES.index(dish))


# Confirmations


class EventSource:
    def __init__(self):
        self.handler = None

    async def fire(self, count: int) -> None:
        for _ in range(count):
            if self.handler is not None:
                self.handler()
            await asyncio.sleep(0)


async def trial_confirmation():
    source = EventSource()
    n = 10

    async def body(confirm):
        source.handler = confirm
        await source.fire(n)

    await confirmation("Event times.", n, body)


# Nested suites


class TrialGroup:
    class TrialSubgroup:
        def trial_sample(self):
            require(2 < 3)
