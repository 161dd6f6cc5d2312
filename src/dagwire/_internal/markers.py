from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Annotated, Any, NamedTuple, TypeVar, get_args, get_origin

from dagwire._internal.type_checks import is_runtime_class

T = TypeVar("T")
_ANNOTATED_MARKER_MIN_ARGS = 2


class Name(NamedTuple):
    """Differentiate multiple providers for the same type.

    Attach ``Name`` metadata to ``typing.Annotated`` on a parameter, a
    parameter object field or a result object field. Each named key is a
    distinct binding.

    Examples:
        .. code-block:: python

            ReadOnlyDb: TypeAlias = Annotated[Database, Name("ro")]


            def build_report(db: ReadOnlyDb) -> Report: ...

    """

    value: str


class Group(NamedTuple):
    """Route a binding into a value group.

    On an input, the annotated type must be ``list[T]`` or ``tuple[T, ...]``
    and resolves to every ``T`` contributed to the group, in registration
    order. On an output, the value is contributed to the group. With
    ``flatten=True`` an output of type ``list[T]`` contributes each element
    individually.

    Examples:
        .. code-block:: python

            class Handlers(In):
                handlers: Annotated[list[Handler], Group("http")]


            class Routes(Out):
                users: Annotated[Handler, Group("http")]
                admin: Annotated[list[Handler], Group("http", flatten=True)]

    """

    value: str
    flatten: bool = False


class MaybeMarker:
    """Marker that indicates dependency is optional and may resolve to ``None``."""


class In:
    """Base class for parameter objects.

    Subclasses are turned into keyword-only dataclasses. Each field is a
    separate input of the constructor that accepts the object; fields may be
    annotated with ``Name``, ``Group`` or ``Maybe`` and may themselves be
    parameter objects, which are flattened into the parent.

    Private fields (leading underscore) are never injected and must declare a
    default.
    """

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        dataclasses.dataclass(cls, kw_only=True)


class Out:
    """Base class for result objects.

    Subclasses are turned into keyword-only dataclasses. Each field is a
    separate output of the constructor that returns the object; fields may be
    annotated with ``Name`` or ``Group`` and may themselves be result objects,
    which are flattened into the parent.
    """

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        dataclasses.dataclass(cls, kw_only=True)


if TYPE_CHECKING:
    Maybe = T | None  # type: ignore[misc]
    """Mark a dependency as explicitly optional.

    At runtime ``Maybe[T]`` becomes ``Annotated[T, MaybeMarker()]``.
    """

else:

    class Maybe:
        """Mark a dependency as explicitly optional.

        At runtime ``Maybe[T]`` resolves to ``Annotated[T, MaybeMarker()]``.
        An optional dependency without a provider resolves to the parameter
        default when one is declared and to ``None`` otherwise.
        """

        def __class_getitem__(cls, item: T) -> Annotated[T, MaybeMarker]:
            return Annotated[item, MaybeMarker()]


def split_annotated(annotation: Any) -> tuple[Any, tuple[Any, ...]]:
    """Return the inner type and metadata of ``Annotated[...]``.

    Non-annotated values are returned unchanged with empty metadata.
    """
    if get_origin(annotation) is not Annotated:
        return annotation, ()
    annotation_args = get_args(annotation)
    if len(annotation_args) < _ANNOTATED_MARKER_MIN_ARGS:
        return annotation_args[0], ()
    return annotation_args[0], tuple(annotation_args[1:])


def find_marker(metadata: tuple[Any, ...], marker_type: type[T]) -> T | None:
    """Return the first metadata item of ``marker_type``, if any."""
    return next((item for item in metadata if isinstance(item, marker_type)), None)


def is_maybe_annotation(annotation: Any) -> bool:
    """Return True when annotation is Annotated[..., MaybeMarker()]."""
    _, metadata = split_annotated(annotation)
    return find_marker(metadata, MaybeMarker) is not None


def is_param_object(candidate: Any) -> bool:
    """Return True for subclasses of ``In``."""
    return is_runtime_class(candidate) and issubclass(candidate, In) and candidate is not In


def is_result_object(candidate: Any) -> bool:
    """Return True for subclasses of ``Out``."""
    return is_runtime_class(candidate) and issubclass(candidate, Out) and candidate is not Out


def group_element_type(annotation: Any) -> tuple[Any, type[Any]] | None:
    """Return ``(element type, collection type)`` for ``list[T]``/``tuple[T, ...]``."""
    origin = get_origin(annotation)
    args = get_args(annotation)
    if origin is list and len(args) == 1:
        return args[0], list
    if origin is tuple and len(args) == 2 and args[1] is Ellipsis:  # noqa: PLR2004
        return args[0], tuple
    return None

