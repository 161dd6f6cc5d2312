from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Literal, TypeAlias

from dagwire._internal.nodes import Key, Param, Result, type_label
from dagwire._internal.registry import CtorRegistry
from dagwire.exceptions import MissingDependencyError, ResolutionError

Failure: TypeAlias = Literal["root_cause", "transitive"]


@dataclass(frozen=True, slots=True)
class GroupView:
    """Aggregation of every result contributed to one group."""

    type: Any
    name: str
    results: tuple[Result, ...]
    failure: Failure | None = None

    @property
    def key(self) -> Key:
        return Key(self.type, group=self.name)

    @property
    def node_id(self) -> str:
        return f"group:{self.key}"

    def __str__(self) -> str:
        return f'{type_label(self.type)}[group="{self.name}"]'


@dataclass(frozen=True, slots=True)
class CtorView:
    """Read-only view of a registered constructor."""

    id: int
    name: str
    module: str
    file: str
    line: int
    params: tuple[Param, ...]
    group_params: tuple[GroupView, ...]
    results: tuple[Result, ...]
    failure: Failure | None = None

    @property
    def node_id(self) -> str:
        return f"ctor:{self.id}"


@dataclass(frozen=True, slots=True)
class Graph:
    """Immutable snapshot of every registered constructor, in registration order."""

    ctors: tuple[CtorView, ...]
    groups: tuple[GroupView, ...]

    def ctor(self, ctor_id: int) -> CtorView:
        """Return the constructor view with the given id.

        Args:
            ctor_id: Id assigned at registration.

        Raises:
            KeyError: If no constructor has the id.

        """
        view = next((view for view in self.ctors if view.id == ctor_id), None)
        if view is None:
            msg = f"No constructor with id {ctor_id}."
            raise KeyError(msg)
        return view


@dataclass(frozen=True, slots=True)
class Edge:
    """Directed diagram edge between two node ids."""

    source: str
    target: str


@dataclass(frozen=True, slots=True)
class Diagram:
    """Structural description of a (possibly pruned) dependency graph.

    Result and param nodes are identified by their key (``str(key)``, suffixed
    with ``#index`` for grouped results), constructors by ``ctor:<id>`` and
    groups by ``group:<key>``. Serializing the diagram into a textual or
    graphical format is left to the caller.
    """

    ctors: tuple[CtorView, ...]
    groups: tuple[GroupView, ...]
    unmet_params: tuple[Param, ...]
    edges: tuple[Edge, ...]
    failed: bool = False

    @property
    def ctor_ids(self) -> tuple[int, ...]:
        return tuple(ctor.id for ctor in self.ctors)


@dataclass(frozen=True, slots=True)
class VisualizeError:
    """Rendering option that prunes the diagram down to a resolution failure."""

    error: BaseException | None

    def __str__(self) -> str:
        return f"VisualizeError({self.error})"


def build_graph(registry: CtorRegistry) -> Graph:
    """Snapshot the registry into an immutable ``Graph``.

    Args:
        registry: Registry to snapshot.

    """
    groups = {
        key: GroupView(type=key.type, name=key.group, results=tuple(registry.group_results(key)))  # type: ignore[arg-type]
        for key in registry.group_keys()
    }
    ctors = tuple(
        CtorView(
            id=ctor.id,
            name=ctor.location.name,
            module=ctor.location.module,
            file=ctor.location.file,
            line=ctor.location.line,
            params=ctor.single_params,
            group_params=_unique(groups[param.key] for param in ctor.group_params),
            results=ctor.results,
        )
        for ctor in registry.values()
    )
    return Graph(ctors=ctors, groups=tuple(groups.values()))


def render(graph: Graph, failure: BaseException | None = None) -> Diagram:
    """Render the diagram model of a graph.

    Without a failure every constructor and group is kept. With a resolution
    failure only the constructors that caused it, the constructors between them
    and the invoked target, and the target's unmet params are kept. Failures
    that did not come from dependency resolution render the full graph.

    Args:
        graph: Snapshot produced by ``build_graph``.
        failure: Error raised by ``Container.invoke``, if any.

    """
    if not isinstance(failure, ResolutionError):
        return Diagram(
            ctors=graph.ctors,
            groups=graph.groups,
            unmet_params=(),
            edges=_edges(graph.ctors, graph.groups, unmet_params=()),
        )

    root_ids = set(failure.root_ctor_ids)
    transitive_ids = set(failure.transitive_ctor_ids) - root_ids
    ctors = tuple(
        dataclasses.replace(view, failure="root_cause" if view.id in root_ids else "transitive")
        for view in graph.ctors
        if view.id in root_ids or view.id in transitive_ids
    )

    retained_results = {result for view in ctors for result in view.results}
    root_results = {
        result for view in ctors if view.failure == "root_cause" for result in view.results
    }
    consumed = {group.key for view in ctors for group in view.group_params}
    groups: list[GroupView] = []
    for group in graph.groups:
        results = tuple(result for result in group.results if result in retained_results)
        if group.key not in consumed or not results:
            continue
        group_failure: Failure = (
            "root_cause" if any(result in root_results for result in results) else "transitive"
        )
        groups.append(dataclasses.replace(group, results=results, failure=group_failure))
    retained_groups = {group.key: group for group in groups}
    ctors = tuple(
        dataclasses.replace(
            view,
            group_params=tuple(
                retained_groups[group.key] for group in view.group_params if group.key in retained_groups
            ),
        )
        for view in ctors
    )

    unmet: list[Param] = []
    if failure.chain and (root_ids or transitive_ids):
        unmet.append(Param(failure.chain[0]))
    if isinstance(failure, MissingDependencyError):
        unmet.extend(Param(key) for key in failure.missing)
    unmet_params = _unique(unmet)

    return Diagram(
        ctors=ctors,
        groups=tuple(groups),
        unmet_params=unmet_params,
        edges=_edges(ctors, tuple(groups), unmet_params=unmet_params),
        failed=True,
    )


def result_node_id(result: Result) -> str:
    """Return the diagram node id of a result."""
    return str(result)


def _edges(
    ctors: tuple[CtorView, ...],
    groups: tuple[GroupView, ...],
    *,
    unmet_params: tuple[Param, ...],
) -> tuple[Edge, ...]:
    provided = {result.key for view in ctors for result in view.results}
    unmet_keys = {param.key for param in unmet_params}
    edges: list[Edge] = []
    for view in ctors:
        edges.extend(Edge(view.node_id, result_node_id(result)) for result in view.results)
    for group in groups:
        edges.extend(Edge(result_node_id(result), group.node_id) for result in group.results)
    for view in ctors:
        for param in view.params:
            if param.key in provided or param.key in unmet_keys:
                edges.append(Edge(str(param.key), view.node_id))
        edges.extend(Edge(group.node_id, view.node_id) for group in view.group_params)
    return tuple(_unique(edges))


def _unique(items: Any) -> tuple[Any, ...]:
    return tuple(dict.fromkeys(items))
