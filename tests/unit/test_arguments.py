from enum import Enum

import pytest

from trialkit.arguments import (
    ArgumentSource,
    Strategy,
    as_argument_source,
    expand,
    product,
    validate_arguments,
    zipped,
)
from trialkit.errors import MalformedArgumentsError
from trialkit.models import TestUnit
from trialkit.traits import tag


class Flavor(Enum):
    VANILLA = "vanilla"
    MINT = "mint"


def _unit(body, arguments=None, owner=None, traits=()):
    return TestUnit(
        identifier=f"trials::{body.__name__}",
        name=body.__name__,
        body=body,
        arguments=arguments,
        owner=owner,
        traits=traits,
    )


class TestSources:
    def test_product_size_is_product_of_sizes(self):
        assert len(product([1, 2, 3, 4, 5], ["x"])) == 5
        assert len(product(range(4), range(4))) == 16

    def test_zip_truncates_to_shortest(self):
        assert len(zipped([1, 2, 3, 4, 5], ["x"])) == 1
        assert list(zipped([1, 2, 3], ["a", "b"]).combinations()) == [(1, "a"), (2, "b")]

    def test_product_first_source_varies_slowest(self):
        assert list(product([1, 2], ["a", "b"]).combinations()) == [(1, "a"), (1, "b"), (2, "a"), (2, "b")]

    def test_plain_iterable_is_a_single_source(self):
        source = as_argument_source(iter([1, 2, 3]))
        assert source == ArgumentSource(((1, 2, 3),), Strategy.PRODUCT)

    def test_mapping_contributes_items(self):
        source = as_argument_source({"a": 1, "b": 2})
        assert source.sources == ((("a", 1), ("b", 2)),)

    @pytest.mark.parametrize("bad", ["abc", b"abc", 42])
    def test_strings_and_non_iterables_are_malformed(self, bad):
        with pytest.raises(MalformedArgumentsError):
            as_argument_source(bad)

    def test_combinators_need_a_source(self):
        with pytest.raises(MalformedArgumentsError):
            product()
        with pytest.raises(MalformedArgumentsError):
            zipped()

    def test_generators_are_materialized_once(self):
        source = product(x for x in range(3))
        assert len(source) == 3
        assert len(list(source.combinations())) == 3
        assert len(list(source.combinations())) == 3


class TestValidation:
    def test_missing_arguments_are_malformed(self):
        def body(flavor): ...

        with pytest.raises(MalformedArgumentsError, match="no arguments were declared"):
            validate_arguments(body, None)

    def test_arguments_for_parameterless_body_are_malformed(self):
        def body(): ...

        with pytest.raises(MalformedArgumentsError, match="takes no parameters"):
            validate_arguments(body, as_argument_source([1]))

    def test_width_must_fit_parameters(self):
        def body(a): ...

        with pytest.raises(MalformedArgumentsError):
            validate_arguments(body, product([1], [2]))

    def test_single_source_of_tuples_unpacks(self):
        def body(a, b): ...

        validate_arguments(body, as_argument_source([(1, 2), (3, 4)]))
        with pytest.raises(MalformedArgumentsError, match="expects tuples"):
            validate_arguments(body, as_argument_source([(1, 2), 3]))

    def test_bound_methods_skip_self(self):
        class Suite:
            def body(self, flavor): ...

        validate_arguments(Suite.body, as_argument_source([Flavor.MINT]), bound=True)

    def test_required_keyword_only_parameter_is_malformed(self):
        def body(a, *, b): ...

        with pytest.raises(MalformedArgumentsError, match="keyword-only"):
            validate_arguments(body, as_argument_source([1]))

    def test_defaults_and_varargs_are_accepted(self):
        def with_default(a, b=2): ...

        def variadic(*values): ...

        validate_arguments(with_default, as_argument_source([1]))
        validate_arguments(variadic, product([1], [2], [3]))


class TestExpand:
    def test_unparameterized_unit_yields_one_invocation(self):
        def body(): ...

        invocations = list(expand(_unit(body)))
        assert len(invocations) == 1
        assert invocations[0].identifier == "trials::body"
        assert invocations[0].arguments == ()

    def test_product_of_five_and_one_yields_five(self):
        def body(flavor, size): ...

        assert len(list(expand(_unit(body, product(range(5), ["large"]))))) == 5

    def test_zip_of_five_and_one_yields_one(self):
        def body(flavor, size): ...

        assert len(list(expand(_unit(body, zipped(range(5), ["large"]))))) == 1

    def test_invocations_have_readable_ids(self):
        def body(flavor): ...

        invocations = list(expand(_unit(body, as_argument_source([Flavor.VANILLA, Flavor.MINT]))))
        assert [i.identifier for i in invocations] == ["trials::body[0]", "trials::body[1]"]
        assert [i.id_suffix for i in invocations] == ["flavor=Flavor.VANILLA", "flavor=Flavor.MINT"]
        assert invocations[1].label == "body[flavor=Flavor.MINT]"

    def test_tuple_values_are_unpacked(self):
        def body(ingredient, dish): ...

        invocations = list(expand(_unit(body, as_argument_source([("rice", "onigiri")]))))
        assert invocations[0].arguments == ("rice", "onigiri")
        assert invocations[0].id_suffix == "ingredient='rice', dish='onigiri'"

    def test_expansion_is_lazy(self):
        def body(value): ...

        generator = expand(_unit(body, as_argument_source(range(1000))))
        assert next(generator).arguments == (0,)

    def test_invocations_inherit_traits(self):
        def body(value): ...

        unit = _unit(body, as_argument_source([1, 2]), traits=(tag("math"),))
        assert all(i.traits == (tag("math"),) for i in expand(unit))

    def test_empty_source_yields_nothing(self):
        def body(value): ...

        assert list(expand(_unit(body, as_argument_source([])))) == []
