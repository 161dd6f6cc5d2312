from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

from dagwire._internal.nodes import Key, Param, Result, SourceLocation

if TYPE_CHECKING:
    from dagwire._internal.decomposer import ParamList, ResultNode
    from dagwire.exceptions import ResolutionError


class CtorState(Enum):
    """Invocation state of a registered constructor."""

    PENDING = auto()
    """Not invoked yet."""

    INVOKED = auto()
    """Invoked once; every result value is cached."""

    FAILED = auto()
    """Resolution or invocation failed; the error is cached."""


@dataclass(eq=False)
class Ctor:
    """Describe a registered constructor and its invocation state.

    ``params`` and ``results`` are the flattened inputs and outputs in
    declaration order. Grouped inputs are part of ``params``; see
    ``group_params`` for the grouped subset.
    """

    id: int
    constructor: Callable[..., Any]
    location: SourceLocation
    param_list: ParamList
    result_node: ResultNode

    params: tuple[Param, ...] = field(init=False)
    results: tuple[Result, ...] = field(init=False)

    state: CtorState = field(default=CtorState.PENDING, init=False)
    error: ResolutionError | None = field(default=None, init=False)
    failure_chain: tuple[Key, ...] = field(default=(), init=False)
    failure_transitive_ids: tuple[int, ...] = field(default=(), init=False)
    values: dict[Key, Any] = field(default_factory=dict, init=False)
    group_values: dict[Key, list[Any]] = field(default_factory=dict, init=False)

    def __post_init__(self) -> None:
        self.params = tuple(self.param_list.leaves())
        self.results = tuple(self.result_node.leaves())

    @property
    def name(self) -> str:
        return self.location.name

    @property
    def single_params(self) -> tuple[Param, ...]:
        return tuple(param for param in self.params if not param.key.is_grouped)

    @property
    def group_params(self) -> tuple[Param, ...]:
        return tuple(param for param in self.params if param.key.is_grouped)

    def mark_invoked(self, produced: Iterable[tuple[Result, Any, bool]]) -> None:
        """Cache every produced value.

        Args:
            produced: ``(result, value, flatten)`` triples. Flattened grouped
                values contribute each element separately.

        """
        for result, value, flatten in produced:
            if result.key.is_grouped:
                contributions = self.group_values.setdefault(result.key, [])
                if flatten:
                    contributions.extend(value)
                else:
                    contributions.append(value)
            else:
                self.values[result.key] = value
        self.state = CtorState.INVOKED

    def mark_failed(
        self,
        error: ResolutionError,
        *,
        chain: tuple[Key, ...] = (),
        transitive_ids: tuple[int, ...] = (),
    ) -> None:
        """Cache a resolution failure. The first failure wins.

        Args:
            error: Error raised while resolving this constructor.
            chain: Part of the error chain starting at the key that requested
                this constructor.
            transitive_ids: Failing constructors from this one down to the
                root cause, excluding root causes.

        """
        if self.state is CtorState.FAILED:
            return
        self.error = error
        self.failure_chain = chain
        self.failure_transitive_ids = transitive_ids
        self.state = CtorState.FAILED

    def reset(self) -> None:
        """Return a failed constructor to the pending state."""
        self.state = CtorState.PENDING
        self.error = None
        self.failure_chain = ()
        self.failure_transitive_ids = ()
        self.values.clear()
        self.group_values.clear()

    def __repr__(self) -> str:
        return f"Ctor(id={self.id}, name={self.location.name!r}, state={self.state.name})"
