from __future__ import annotations

import dataclasses
import inspect
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from inspect import Parameter
from typing import Any, Protocol, TypeAlias, get_type_hints

from dagwire._internal.ctor import Ctor
from dagwire._internal.markers import (
    Group,
    MaybeMarker,
    Name,
    find_marker,
    group_element_type,
    is_maybe_annotation,
    is_param_object,
    is_result_object,
    split_annotated,
)
from dagwire._internal.nodes import Key, Param, Result, SourceLocation
from dagwire._internal.type_checks import implements, is_runtime_class
from dagwire.exceptions import ValidationError

ABSENT: Any = object()
"""Value of an optional param that has no provider."""

GroupIndexAllocator: TypeAlias = Callable[[tuple[Key, ...]], int]
"""Reserve one shared group index for the given grouped keys."""

_MISSING_ANNOTATION: Any = object()


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    """Describe one declared field of a parameter or result object."""

    name: str
    annotation: Any
    has_default: bool


def describe_fields(composite: type[Any]) -> list[FieldDescriptor]:
    """Return the declared fields of a composite object in declaration order.

    Args:
        composite: ``In`` or ``Out`` subclass to describe.

    Raises:
        ValidationError: If field annotations cannot be resolved.

    """
    try:
        hints = get_type_hints(composite, include_extras=True)
    except (AttributeError, NameError, TypeError) as error:
        msg = f"Unable to resolve field annotations of '{composite.__qualname__}': {error}"
        raise ValidationError(msg) from error

    return [
        FieldDescriptor(
            name=field.name,
            annotation=hints.get(field.name, field.type),
            has_default=(
                field.default is not dataclasses.MISSING
                or field.default_factory is not dataclasses.MISSING
            ),
        )
        for field in dataclasses.fields(composite)
    ]


class ParamNode(Protocol):
    def leaves(self) -> Iterator[Param]: ...

    def build(self, values: Iterator[Any]) -> Any: ...


class ResultNode(Protocol):
    def leaves(self) -> Iterator[Result]: ...

    def extract(self, value: Any) -> Iterator[tuple[Result, Any, bool]]: ...


@dataclass(frozen=True, slots=True)
class LeafParam:
    param: Param
    collection: type[Any] | None = None

    def leaves(self) -> Iterator[Param]:
        yield self.param

    def build(self, values: Iterator[Any]) -> Any:
        value = next(values)
        if self.collection is not None:
            return self.collection(value)
        return value


@dataclass(frozen=True, slots=True)
class ObjectParam:
    composite: type[Any]
    fields: tuple[tuple[FieldDescriptor, ParamNode], ...]

    def leaves(self) -> Iterator[Param]:
        for _, node in self.fields:
            yield from node.leaves()

    def build(self, values: Iterator[Any]) -> Any:
        kwargs: dict[str, Any] = {}
        for descriptor, node in self.fields:
            value = node.build(values)
            if value is ABSENT:
                if descriptor.has_default:
                    continue
                value = None
            kwargs[descriptor.name] = value
        return self.composite(**kwargs)


@dataclass(frozen=True, slots=True)
class ParamList:
    """Map a callable's signature to flattened params and back to call arguments."""

    entries: tuple[tuple[Parameter, ParamNode | None], ...]

    def leaves(self) -> Iterator[Param]:
        for _, node in self.entries:
            if node is not None:
                yield from node.leaves()

    def build(self, values: Sequence[Any]) -> tuple[list[Any], dict[str, Any]]:
        """Return call arguments from resolved values aligned with ``leaves()``."""
        remaining = iter(values)
        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        for parameter, node in self.entries:
            value = ABSENT if node is None else node.build(remaining)
            if value is ABSENT:
                if parameter.default is Parameter.empty:
                    value = None
                elif parameter.kind is Parameter.POSITIONAL_ONLY:
                    value = parameter.default
                else:
                    continue
            if parameter.kind is Parameter.POSITIONAL_ONLY:
                args.append(value)
            else:
                kwargs[parameter.name] = value
        return args, kwargs


@dataclass(frozen=True, slots=True)
class LeafResult:
    results: tuple[Result, ...]
    flatten: bool = False

    def leaves(self) -> Iterator[Result]:
        yield from self.results

    def extract(self, value: Any) -> Iterator[tuple[Result, Any, bool]]:
        if self.flatten:
            value = list(value)
        for result in self.results:
            yield result, value, self.flatten


@dataclass(frozen=True, slots=True)
class ObjectResult:
    composite: type[Any]
    fields: tuple[tuple[str, ResultNode], ...]

    def leaves(self) -> Iterator[Result]:
        for _, node in self.fields:
            yield from node.leaves()

    def extract(self, value: Any) -> Iterator[tuple[Result, Any, bool]]:
        if not isinstance(value, self.composite):
            msg = (
                f"Expected an instance of '{self.composite.__qualname__}', "
                f"got {type(value).__qualname__}."
            )
            raise TypeError(msg)
        for field_name, node in self.fields:
            yield from node.extract(getattr(value, field_name))


class Decomposer:
    """Turn constructors into flattened ``Ctor`` descriptors.

    Inputs come from the constructor signature. A parameter annotated with an
    ``In`` subclass is expanded into one input per field, recursively. The
    output comes from the return annotation (or the class itself for class
    constructors); an ``Out`` subclass is expanded into one output per field,
    recursively. Every validation problem is reported as ``ValidationError``
    before anything is registered.
    """

    def decompose(
        self,
        constructor: Callable[..., Any],
        *,
        ctor_id: int,
        allocate_group_index: GroupIndexAllocator,
        name: str | None = None,
        group: str | None = None,
        as_: Sequence[Any] = (),
    ) -> Ctor:
        """Build the descriptor of a constructor.

        Args:
            constructor: Function or class to register.
            ctor_id: Identifier assigned by the registry.
            allocate_group_index: Reserves group indices for grouped outputs.
            name: Name for the single output of the constructor.
            group: Group for the single output of the constructor.
            as_: Interfaces the single output is bound to instead of its type.

        Raises:
            ValidationError: If the constructor shape or options are invalid.

        """
        if not callable(constructor):
            msg = f"Constructor must be callable, got {constructor!r}."
            raise ValidationError(msg)

        location = source_location(constructor)
        param_list = self.decompose_params(constructor)
        result_node = self._decompose_output(
            constructor,
            owner=location.name,
            name=name,
            group=group,
            as_=tuple(as_),
            allocate_group_index=allocate_group_index,
        )
        return Ctor(
            id=ctor_id,
            constructor=constructor,
            location=location,
            param_list=param_list,
            result_node=result_node,
        )

    def decompose_params(self, target: Callable[..., Any]) -> ParamList:
        """Return the flattened inputs of a constructor or invoke target.

        Args:
            target: Callable whose signature is decomposed.

        Raises:
            ValidationError: If a parameter cannot be turned into a binding.

        """
        owner = _callable_name(target)
        try:
            parameters = tuple(inspect.signature(target).parameters.values())
        except (TypeError, ValueError) as error:
            msg = f"Unable to inspect the signature of '{owner}': {error}"
            raise ValidationError(msg) from error
        annotations, annotation_error = _resolved_type_hints(target)

        entries: list[tuple[Parameter, ParamNode | None]] = []
        for parameter in parameters:
            if parameter.kind in (Parameter.VAR_POSITIONAL, Parameter.VAR_KEYWORD):
                continue
            annotation = annotations.get(parameter.name, _MISSING_ANNOTATION)
            if annotation is _MISSING_ANNOTATION:
                raw_annotation = parameter.annotation
                if raw_annotation is not Parameter.empty and not isinstance(raw_annotation, str):
                    annotation = raw_annotation
            if annotation is _MISSING_ANNOTATION:
                if parameter.default is not Parameter.empty:
                    entries.append((parameter, None))
                    continue
                msg = (
                    f"Unable to infer dependency for required parameter '{parameter.name}' "
                    f"of '{owner}'. Add a type annotation."
                )
                if annotation_error is not None:
                    msg = f"{msg} Original annotation error: {annotation_error}"
                raise ValidationError(msg)

            node = self._param_node(
                annotation,
                owner=f"{owner}({parameter.name})",
                has_default=parameter.default is not Parameter.empty,
                visiting=(),
            )
            entries.append((parameter, node))
        return ParamList(entries=tuple(entries))

    def _param_node(
        self,
        annotation: Any,
        *,
        owner: str,
        has_default: bool,
        visiting: tuple[type[Any], ...],
    ) -> ParamNode:
        inner, metadata = split_annotated(annotation)
        name = find_marker(metadata, Name)
        group = find_marker(metadata, Group)
        optional = find_marker(metadata, MaybeMarker) is not None

        if is_param_object(inner):
            if name is not None or group is not None or optional:
                msg = f"{owner}: parameter objects cannot be named, grouped or optional."
                raise ValidationError(msg)
            return self._object_param(inner, owner=owner, visiting=visiting)
        if is_result_object(inner):
            msg = f"{owner}: cannot depend on result object '{inner.__qualname__}'."
            raise ValidationError(msg)
        if name is not None and group is not None:
            msg = f"{owner}: cannot use both Name and Group on the same input."
            raise ValidationError(msg)

        if group is not None:
            if optional:
                msg = f"{owner}: value groups cannot be optional."
                raise ValidationError(msg)
            if group.flatten:
                msg = f"{owner}: flatten can only be used on outputs."
                raise ValidationError(msg)
            element = group_element_type(inner)
            if element is None:
                msg = f"{owner}: value group inputs must be list[T] or tuple[T, ...], got {inner!r}."
                raise ValidationError(msg)
            element_type, collection = element
            return LeafParam(Param(Key(element_type, group=group.value)), collection)

        return LeafParam(
            Param(
                Key(inner, name=name.value if name is not None else None),
                optional=optional or has_default,
            ),
        )

    def _object_param(
        self,
        composite: type[Any],
        *,
        owner: str,
        visiting: tuple[type[Any], ...],
    ) -> ObjectParam:
        if composite in visiting:
            msg = f"{owner}: parameter object '{composite.__qualname__}' contains itself."
            raise ValidationError(msg)
        fields: list[tuple[FieldDescriptor, ParamNode]] = []
        for descriptor in describe_fields(composite):
            field_owner = f"{composite.__qualname__}.{descriptor.name}"
            if descriptor.name.startswith("_"):
                if not descriptor.has_default:
                    msg = f"{field_owner}: private fields cannot be injected; declare a default."
                    raise ValidationError(msg)
                continue
            node = self._param_node(
                descriptor.annotation,
                owner=field_owner,
                has_default=descriptor.has_default,
                visiting=(*visiting, composite),
            )
            fields.append((descriptor, node))
        return ObjectParam(composite=composite, fields=tuple(fields))

    def _decompose_output(
        self,
        constructor: Callable[..., Any],
        *,
        owner: str,
        name: str | None,
        group: str | None,
        as_: tuple[Any, ...],
        allocate_group_index: GroupIndexAllocator,
    ) -> ResultNode:
        produced = _produced_type(constructor, owner=owner)
        inner, metadata = split_annotated(produced)

        if is_result_object(inner):
            if name is not None or group is not None or as_ or metadata:
                msg = f"{owner}: result objects cannot be named, grouped or bound to interfaces."
                raise ValidationError(msg)
            return self._object_result(
                inner,
                allocate_group_index=allocate_group_index,
                visiting=(),
            )
        if is_param_object(inner):
            msg = f"{owner}: cannot return parameter object '{inner.__qualname__}'."
            raise ValidationError(msg)
        if inner is None or inner is type(None):
            msg = f"{owner}: must provide at least one value."
            raise ValidationError(msg)
        if is_maybe_annotation(produced):
            msg = f"{owner}: outputs cannot be optional."
            raise ValidationError(msg)

        annotated_name = find_marker(metadata, Name)
        annotated_group = find_marker(metadata, Group)
        if annotated_name is not None:
            if name is not None:
                msg = f"{owner}: name given both as option and annotation."
                raise ValidationError(msg)
            name = annotated_name.value
        if annotated_group is not None:
            if group is not None:
                msg = f"{owner}: group given both as option and annotation."
                raise ValidationError(msg)
            if annotated_group.flatten:
                msg = f"{owner}: flatten can only be used on result object fields."
                raise ValidationError(msg)
            group = annotated_group.value
        if name is not None and group is not None:
            msg = f"{owner}: cannot use both name and group for the same output."
            raise ValidationError(msg)

        for interface in as_:
            if not is_runtime_class(interface):
                msg = f"{owner}: interface {interface!r} must be a class."
                raise ValidationError(msg)
            if not implements(inner, interface):
                msg = (
                    f"{owner}: {inner.__qualname__} does not implement "
                    f"{interface.__qualname__}."
                )
                raise ValidationError(msg)

        identities = as_ or (inner,)
        keys = tuple(Key(identity, name=name, group=group) for identity in identities)
        if len(set(keys)) != len(keys):
            msg = f"{owner}: interfaces must be unique, got {', '.join(map(str, keys))}."
            raise ValidationError(msg)
        group_index = allocate_group_index(keys) if group is not None else 0
        return LeafResult(tuple(Result(key, group_index) for key in keys))

    def _object_result(
        self,
        composite: type[Any],
        *,
        allocate_group_index: GroupIndexAllocator,
        visiting: tuple[type[Any], ...],
    ) -> ObjectResult:
        if composite in visiting:
            msg = f"Result object '{composite.__qualname__}' contains itself."
            raise ValidationError(msg)
        fields: list[tuple[str, ResultNode]] = []
        for descriptor in describe_fields(composite):
            owner = f"{composite.__qualname__}.{descriptor.name}"
            if descriptor.name.startswith("_"):
                if not descriptor.has_default:
                    msg = f"{owner}: private fields cannot be provided; declare a default."
                    raise ValidationError(msg)
                continue
            fields.append(
                (
                    descriptor.name,
                    self._result_field_node(
                        descriptor.annotation,
                        owner=owner,
                        allocate_group_index=allocate_group_index,
                        visiting=(*visiting, composite),
                    ),
                ),
            )
        return ObjectResult(composite=composite, fields=tuple(fields))

    def _result_field_node(
        self,
        annotation: Any,
        *,
        owner: str,
        allocate_group_index: GroupIndexAllocator,
        visiting: tuple[type[Any], ...],
    ) -> ResultNode:
        inner, metadata = split_annotated(annotation)
        name = find_marker(metadata, Name)
        group = find_marker(metadata, Group)

        if is_result_object(inner):
            if metadata:
                msg = f"{owner}: result objects cannot be named or grouped."
                raise ValidationError(msg)
            return self._object_result(
                inner,
                allocate_group_index=allocate_group_index,
                visiting=visiting,
            )
        if is_param_object(inner):
            msg = f"{owner}: cannot provide parameter object '{inner.__qualname__}'."
            raise ValidationError(msg)
        if find_marker(metadata, MaybeMarker) is not None:
            msg = f"{owner}: result fields cannot be optional."
            raise ValidationError(msg)
        if name is not None and group is not None:
            msg = f"{owner}: cannot use both Name and Group on the same output."
            raise ValidationError(msg)

        if group is None:
            key = Key(inner, name=name.value if name is not None else None)
            return LeafResult((Result(key),))

        element_type = inner
        if group.flatten:
            element = group_element_type(inner)
            if element is None:
                msg = f"{owner}: flattened groups must be list[T] or tuple[T, ...], got {inner!r}."
                raise ValidationError(msg)
            element_type, _ = element
        key = Key(element_type, group=group.value)
        return LeafResult((Result(key, allocate_group_index((key,))),), flatten=group.flatten)


def source_location(constructor: Callable[..., Any]) -> SourceLocation:
    """Return where a constructor was defined, with best-effort file and line."""
    target = inspect.unwrap(constructor)
    file = "<unknown>"
    line = 0
    try:
        file = inspect.getsourcefile(target) or file
        _, line = inspect.getsourcelines(target)
    except (OSError, TypeError):
        code = getattr(target, "__code__", None)
        if code is not None:
            file = code.co_filename
            line = code.co_firstlineno
    return SourceLocation(
        name=_callable_name(constructor),
        module=getattr(target, "__module__", None) or "<unknown>",
        file=file,
        line=line,
    )


def _produced_type(constructor: Callable[..., Any], *, owner: str) -> Any:
    if inspect.isclass(constructor):
        return constructor
    annotations, annotation_error = _resolved_type_hints(constructor)
    produced = annotations.get("return", _MISSING_ANNOTATION)
    if produced is _MISSING_ANNOTATION:
        try:
            raw_annotation = inspect.signature(constructor).return_annotation
        except (TypeError, ValueError):
            raw_annotation = Parameter.empty
        if raw_annotation is not Parameter.empty and not isinstance(raw_annotation, str):
            produced = raw_annotation
    if produced is _MISSING_ANNOTATION:
        msg = f"{owner}: unable to infer the provided type. Add a return annotation."
        if annotation_error is not None:
            msg = f"{msg} Original annotation error: {annotation_error}"
        raise ValidationError(msg)
    return produced


def _resolved_type_hints(target: Callable[..., Any]) -> tuple[dict[str, Any], Exception | None]:
    annotations: dict[str, Any] = {}
    annotation_error: Exception | None = None

    members: list[Any] = [target]
    if inspect.isclass(target):
        members = [target.__init__, target]
    elif not inspect.isfunction(target) and not inspect.ismethod(target):
        call = getattr(type(target), "__call__", None)
        if call is not None:
            members.append(call)

    for member in members:
        try:
            member_annotations = get_type_hints(member, include_extras=True)
        except (AttributeError, NameError, TypeError) as error:
            if annotation_error is None:
                annotation_error = error
            continue
        for parameter_name, parameter_annotation in member_annotations.items():
            annotations.setdefault(parameter_name, parameter_annotation)
    return annotations, annotation_error


def _callable_name(target: Callable[..., Any]) -> str:
    return getattr(target, "__qualname__", None) or repr(target)
