from __future__ import annotations

from typing import Annotated

import pytest

from dagwire._internal.decomposer import Decomposer, describe_fields
from dagwire.container import Container
from dagwire.exceptions import ValidationError
from dagwire.graph import GroupView, Key, Param, Result
from dagwire.markers import Group, In, Maybe, Name, Out
from tests.helpers import T1, T2, T3, T4, Buffer, Plugin, Reader, Writer

P1 = Param(Key(T1))
P2 = Param(Key(T2))
P3 = Param(Key(T3))
P4 = Param(Key(T4))

R1 = Result(Key(T1))
R2 = Result(Key(T2))
R3 = Result(Key(T3))
R4 = Result(Key(T4))


class _ParamsIn(In):
    a: T1
    b: T2


class _ResultsOut(Out):
    c: T3
    d: T4


class _DeepestIn(In):
    c: T3


class _MiddleIn(In):
    b: T2
    nest: _DeepestIn


class _NestedIn(In):
    a: T1
    nest: _MiddleIn


class _Nested1Out(Out):
    d: T4


class _Nested2Out(Out):
    c: T3
    nest: _Nested1Out


class _NestedOut(Out):
    b: T2
    nest: _Nested2Out


class _GroupIn(In):
    d: Annotated[list[T1], Group("foo")]


class _GroupOut1(Out):
    a: Annotated[T1, Group("foo")]


class _GroupOut2(Out):
    a: Annotated[T1, Group("foo")]


class _NamedIn(In):
    a: Annotated[T1, Name("A")]


class _NamedOut(Out):
    b: Annotated[T2, Name("B")]


class _OptionalIn(In):
    a: Maybe[Annotated[T1, Name("A")]]
    b: Annotated[T2, Name("B")]
    c: Maybe[T3]


class _OptionalGroupIn(In):
    handlers: Maybe[Annotated[list[T1], Group("g")]]


class _NamedGroupIn(In):
    handlers: Annotated[list[T1], Name("a"), Group("g")]


class _PrivateIn(In):
    _secret: T1


class _PrivateWithDefaultIn(In):
    a: T1
    _secret: int = 0


class _OptionalOut(Out):
    a: Maybe[T1]


class _GroupThenInvalidOut(Out):
    a: Annotated[T1, Group("foo")]
    b: Maybe[T2]


class _FlattenOut(Out):
    plugins: Annotated[list[Plugin], Group("plugins", flatten=True)]


class _BadFlattenOut(Out):
    plugins: Annotated[Plugin, Group("plugins", flatten=True)]


class TestCreateGraph:
    def test_one_constructor(self, container: Container) -> None:
        def build(a: T1) -> T2:
            return T2()

        container.provide(build)

        [ctor] = container.create_graph().ctors
        assert ctor.params == (P1,)
        assert ctor.results == (R2,)
        assert ctor.name.endswith("build")
        assert ctor.line > 0

    def test_interface_projection_replaces_concrete_type(self, container: Container) -> None:
        def build(a: T1) -> Buffer:
            return Buffer()

        container.provide(build, as_=[Reader, Writer])

        [ctor] = container.create_graph().ctors
        assert ctor.params == (P1,)
        assert ctor.results == (Result(Key(Reader)), Result(Key(Writer)))

    def test_multiple_constructors_keep_registration_order(self, container: Container) -> None:
        def build_t2(a: T1) -> T2:
            return T2()

        def build_t3(a: T1) -> T3:
            return T3()

        def build_t4(b: T2) -> T4:
            return T4()

        container.provide(build_t2)
        container.provide(build_t3)
        container.provide(build_t4)

        ctors = container.create_graph().ctors
        assert [ctor.id for ctor in ctors] == [0, 1, 2]
        assert [(ctor.params, ctor.results) for ctor in ctors] == [
            ((P1,), (R2,)),
            ((P1,), (R3,)),
            ((P2,), (R4,)),
        ]

    def test_param_and_result_objects(self, container: Container) -> None:
        def build(params: _ParamsIn) -> _ResultsOut:
            return _ResultsOut(c=T3(), d=T4())

        container.provide(build)

        [ctor] = container.create_graph().ctors
        assert ctor.params == (P1, P2)
        assert ctor.results == (R3, R4)

    def test_nested_param_object_is_flattened_in_declaration_order(
        self,
        container: Container,
    ) -> None:
        def build(params: _NestedIn) -> T4:
            return T4()

        container.provide(build)

        [ctor] = container.create_graph().ctors
        assert ctor.params == (P1, P2, P3)
        assert ctor.results == (R4,)

    def test_nested_result_object_is_flattened_in_declaration_order(
        self,
        container: Container,
    ) -> None:
        def build(a: T1) -> _NestedOut:
            return _NestedOut(b=T2(), nest=_Nested2Out(c=T3(), nest=_Nested1Out(d=T4())))

        container.provide(build)

        [ctor] = container.create_graph().ctors
        assert ctor.params == (P1,)
        assert ctor.results == (R2, R3, R4)

    def test_value_groups(self, container: Container) -> None:
        def build_first(b: T2) -> _GroupOut1:
            return _GroupOut1(a=T1())

        def build_second(b: T4) -> _GroupOut2:
            return _GroupOut2(a=T1())

        def consume(params: _GroupIn) -> T3:
            return T3()

        container.provide(build_first)
        container.provide(build_second)
        container.provide(consume)

        first, second, consumer = container.create_graph().ctors
        res0 = Result(Key(T1, group="foo"), 0)
        res1 = Result(Key(T1, group="foo"), 1)
        assert first.params == (P2,)
        assert first.results == (res0,)
        assert second.params == (P4,)
        assert second.results == (res1,)
        assert consumer.params == ()
        assert consumer.group_params == (GroupView(type=T1, name="foo", results=(res0, res1)),)
        assert consumer.results == (R3,)

    def test_value_groups_with_interface_projection(self, container: Container) -> None:
        def build_foo() -> Buffer:
            return Buffer()

        def build_bar() -> Buffer:
            return Buffer()

        container.provide(build_foo, as_=[Reader, Writer], group="buffs")
        container.provide(build_bar, as_=[Reader, Writer], group="buffs")

        foo, bar = container.create_graph().ctors
        assert foo.results == (
            Result(Key(Reader, group="buffs"), 0),
            Result(Key(Writer, group="buffs"), 0),
        )
        assert bar.results == (
            Result(Key(Reader, group="buffs"), 1),
            Result(Key(Writer, group="buffs"), 1),
        )

    def test_named_values(self, container: Container) -> None:
        def build(params: _NamedIn) -> _NamedOut:
            return _NamedOut(b=T2())

        container.provide(build)

        [ctor] = container.create_graph().ctors
        assert ctor.params == (Param(Key(T1, name="A")),)
        assert ctor.results == (Result(Key(T2, name="B")),)

    def test_optional_dependencies(self, container: Container) -> None:
        def build(params: _OptionalIn) -> T4:
            return T4()

        container.provide(build)

        [ctor] = container.create_graph().ctors
        assert ctor.params == (
            Param(Key(T1, name="A"), optional=True),
            Param(Key(T2, name="B"), optional=False),
            Param(Key(T3), optional=True),
        )
        assert ctor.results == (R4,)

    def test_plain_parameters_with_annotations_and_defaults(self, container: Container) -> None:
        def build(
            a: Annotated[T1, Name("primary")],
            plugins: Annotated[tuple[Plugin, ...], Group("plugins")],
            d: Maybe[T4],
            c: T3 = T3(),  # noqa: B008
            e=1,  # noqa: ANN001
        ) -> T2:
            return T2()

        container.provide(build)

        [ctor] = container.create_graph().ctors
        assert ctor.params == (
            Param(Key(T1, name="primary")),
            Param(Key(T4), optional=True),
            Param(Key(T3), optional=True),
        )
        assert [group.key for group in ctor.group_params] == [Key(Plugin, group="plugins")]

    def test_flattened_group_result_uses_element_type(self, container: Container) -> None:
        def build() -> _FlattenOut:
            return _FlattenOut(plugins=[])

        container.provide(build)

        [ctor] = container.create_graph().ctors
        assert ctor.results == (Result(Key(Plugin, group="plugins"), 0),)

    def test_class_constructor_uses_init_params(self, container: Container) -> None:
        container.provide(Plugin, as_=())

        [ctor] = container.create_graph().ctors
        assert ctor.params == (Param(Key(str)),)
        assert ctor.results == (Result(Key(Plugin)),)

    def test_private_field_with_default_is_not_injected(self, container: Container) -> None:
        def build(params: _PrivateWithDefaultIn) -> T2:
            return T2()

        container.provide(build)

        [ctor] = container.create_graph().ctors
        assert ctor.params == (P1,)


class TestValidation:
    def test_rejects_name_and_group_options(self, container: Container) -> None:
        def build() -> T1:
            return T1()

        with pytest.raises(ValidationError, match="both name and group"):
            container.provide(build, name="a", group="g")

    def test_rejects_optional_group_field(self, container: Container) -> None:
        def build(params: _OptionalGroupIn) -> T2:
            return T2()

        with pytest.raises(ValidationError, match="cannot be optional"):
            container.provide(build)

    def test_rejects_named_group_field(self, container: Container) -> None:
        def build(params: _NamedGroupIn) -> T2:
            return T2()

        with pytest.raises(ValidationError, match="both Name and Group"):
            container.provide(build)

    def test_rejects_private_field_without_default(self, container: Container) -> None:
        def build(params: _PrivateIn) -> T2:
            return T2()

        with pytest.raises(ValidationError, match="private fields"):
            container.provide(build)

    def test_rejects_optional_result_field(self, container: Container) -> None:
        def build() -> _OptionalOut:
            return _OptionalOut(a=T1())

        with pytest.raises(ValidationError, match="cannot be optional"):
            container.provide(build)

    def test_rejects_flatten_on_non_collection(self, container: Container) -> None:
        def build() -> _BadFlattenOut:
            return _BadFlattenOut(plugins=Plugin("a"))

        with pytest.raises(ValidationError, match="flattened groups"):
            container.provide(build)

    def test_rejects_interfaces_on_result_objects(self, container: Container) -> None:
        def build() -> _ResultsOut:
            return _ResultsOut(c=T3(), d=T4())

        with pytest.raises(ValidationError, match="result objects cannot"):
            container.provide(build, as_=[Reader])

    def test_rejects_interface_not_implemented(self, container: Container) -> None:
        def build() -> T1:
            return T1()

        with pytest.raises(ValidationError, match="does not implement"):
            container.provide(build, as_=[Reader])

    def test_rejects_group_input_that_is_not_a_collection(self, container: Container) -> None:
        def build(a: Annotated[T1, Group("g")]) -> T2:
            return T2()

        with pytest.raises(ValidationError, match="list"):
            container.provide(build)

    def test_rejects_missing_return_annotation(self, container: Container) -> None:
        def build():  # noqa: ANN202
            return T1()

        with pytest.raises(ValidationError, match="return annotation"):
            container.provide(build)

    def test_rejects_none_result(self, container: Container) -> None:
        def build() -> None:
            return None

        with pytest.raises(ValidationError, match="at least one value"):
            container.provide(build)

    def test_rejects_unannotated_required_parameter(self, container: Container) -> None:
        def build(a) -> T1:  # noqa: ANN001
            return T1()

        with pytest.raises(ValidationError, match="type annotation"):
            container.provide(build)

    def test_rejects_non_callable(self, container: Container) -> None:
        with pytest.raises(ValidationError, match="must be callable"):
            container.provide(42)  # type: ignore[arg-type]

    def test_rejects_duplicate_binding(self, container: Container) -> None:
        def build() -> T1:
            return T1()

        def build_again() -> T1:
            return T1()

        container.provide(build)

        with pytest.raises(ValidationError, match="already provided"):
            container.provide(build_again)
        assert len(container) == 1

    def test_failed_registration_releases_group_indices(self, container: Container) -> None:
        def build_invalid() -> _GroupThenInvalidOut:
            return _GroupThenInvalidOut(a=T1(), b=T2())

        def build_valid() -> _GroupOut1:
            return _GroupOut1(a=T1())

        with pytest.raises(ValidationError):
            container.provide(build_invalid)
        container.provide(build_valid)

        [ctor] = container.create_graph().ctors
        assert ctor.id == 0
        assert ctor.results == (Result(Key(T1, group="foo"), 0),)


def test_describe_fields_preserves_declaration_order_and_defaults() -> None:
    descriptors = describe_fields(_PrivateWithDefaultIn)

    assert [(item.name, item.annotation, item.has_default) for item in descriptors] == [
        ("a", T1, False),
        ("_secret", int, True),
    ]


def test_decompose_params_skips_variadic_parameters() -> None:
    def target(a: T1, *args: T2, **kwargs: T3) -> None:
        return None

    param_list = Decomposer().decompose_params(target)

    assert tuple(param_list.leaves()) == (P1,)
