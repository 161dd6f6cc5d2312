from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, cast

from dagwire._internal.ctor import Ctor, CtorState
from dagwire._internal.decomposer import ABSENT
from dagwire._internal.nodes import Key, Param
from dagwire._internal.registry import CtorRegistry
from dagwire.exceptions import (
    ConstructorError,
    CycleError,
    MissingDependencyError,
    ResolutionError,
)

logger = logging.getLogger(__name__)


class Resolver:
    """Resolve params by invoking constructors in dependency order.

    A resolver serves one ``invoke`` call. It keeps the keys requested on the
    current path and the constructors being built, which gives both the
    dependency chain attached to errors and cycle detection. Invocation state is
    cached on the constructors themselves, so it outlives the resolver.
    """

    def __init__(self, registry: CtorRegistry, *, dry_run: bool = False) -> None:
        self._registry = registry
        self._dry_run = dry_run
        self._keys: list[Key] = []
        self._building: list[tuple[Ctor, int]] = []

    def resolve_params(self, owner: Ctor | None, params: Sequence[Param]) -> list[Any]:
        """Resolve every param of ``owner`` in declaration order.

        Required single bindings are checked up front so that one error lists
        every missing key.

        Args:
            owner: Constructor the params belong to, ``None`` for an invoke target.
            params: Flattened params to resolve.

        Raises:
            MissingDependencyError: If required bindings have no provider.
            CycleError: If resolution loops back to a constructor being built.
            ConstructorError: If a constructor raises.

        """
        missing = tuple(
            param.key
            for param in params
            if not param.key.is_grouped
            and not param.optional
            and self._registry.find_provider(param.key) is None
        )
        if missing:
            raise self._missing_error(owner, missing)
        return [self.resolve(param) for param in params]

    def resolve(self, param: Param) -> Any:
        """Resolve a single param.

        Returns ``ABSENT`` for an optional binding without provider and a list of
        values for a group.

        Args:
            param: Param to resolve.

        """
        self._keys.append(param.key)
        try:
            if param.key.is_grouped:
                return self._resolve_group(param.key)
            provider = self._registry.find_provider(param.key)
            if provider is None:
                if param.optional:
                    return ABSENT
                raise self._missing_error(None, (param.key,))
            self._ensure_invoked(provider)
            return provider.values[param.key]
        finally:
            self._keys.pop()

    def _resolve_group(self, key: Key) -> list[Any]:
        values: list[Any] = []
        for contributor in self._registry.group_contributors(key):
            self._ensure_invoked(contributor)
            values.extend(contributor.group_values.get(key, ()))
        return values

    def _ensure_invoked(self, ctor: Ctor) -> None:
        if ctor.state is CtorState.INVOKED:
            return
        if ctor.state is CtorState.FAILED:
            cached = cast("ResolutionError", ctor.error)
            error = self._cached_failure(ctor, cached)
            if error is cached:
                raise cached
            raise error from cached
        for index, (building, entered_at) in enumerate(self._building):
            if building is ctor:
                raise self._cycle_error(index, entered_at)

        self._building.append((ctor, len(self._keys)))
        try:
            values = self.resolve_params(ctor, ctor.params)
            if self._dry_run:
                logger.debug("Skipping constructor '%s' in dry run", ctor.name)
                ctor.mark_invoked((result, None, False) for result in ctor.results)
                return
            logger.debug("Invoking constructor '%s'", ctor.name)
            try:
                args, kwargs = ctor.param_list.build(values)
                produced = ctor.constructor(*args, **kwargs)
                ctor.mark_invoked(list(ctor.result_node.extract(produced)))
            except Exception as exc:
                logger.info("Constructor '%s' failed: %r", ctor.name, exc)
                raise ConstructorError(
                    f"Constructor {ctor.location} failed: {exc!r}",
                    chain=self._chain(),
                    root_ctor_ids=(ctor.id,),
                    transitive_ctor_ids=self._transitive_ids(exclude=(ctor,)),
                ) from exc
        except ResolutionError as error:
            self._mark_failed(ctor, error)
            raise
        finally:
            self._building.pop()

    def _mark_failed(self, ctor: Ctor, error: ResolutionError) -> None:
        # ``ctor`` is the innermost constructor being built; everything under
        # it has already been popped.
        entered_at = self._building[-1][1]
        above = {building.id for building, _ in self._building[:-1]}
        ctor.mark_failed(
            error,
            chain=error.chain[entered_at - 1 :],
            transitive_ids=tuple(
                ctor_id for ctor_id in error.transitive_ctor_ids if ctor_id not in above
            ),
        )

    def _cached_failure(self, ctor: Ctor, cached: ResolutionError) -> ResolutionError:
        """Return the cached error of ``ctor`` as seen from the current path.

        The cached error itself is returned when the current path is the one
        that first hit the failure.
        """
        chain = (*self._keys, *ctor.failure_chain[1:])
        transitive_ids = (
            *(
                building.id
                for building, _ in self._building
                if building.id not in cached.root_ctor_ids
            ),
            *ctor.failure_transitive_ids,
        )
        if chain == cached.chain and transitive_ids == cached.transitive_ctor_ids:
            return cached
        return cached.with_chain(chain, transitive_ids)

    def _missing_error(self, owner: Ctor | None, missing: tuple[Key, ...]) -> MissingDependencyError:
        target = f"constructor {owner.location}" if owner is not None else "invoked function"
        missing_text = ", ".join(str(key) for key in missing)
        return MissingDependencyError(
            f"Missing dependencies for {target}: {missing_text}",
            missing=missing,
            chain=self._chain(),
            root_ctor_ids=(owner.id,) if owner is not None else (),
            transitive_ctor_ids=self._transitive_ids(exclude=(owner,) if owner else ()),
        )

    def _cycle_error(self, index: int, entered_at: int) -> CycleError:
        cycle = tuple(self._keys[entered_at - 1 :]) if entered_at else tuple(self._keys)
        in_cycle = tuple(ctor for ctor, _ in self._building[index:])
        msg = f"Cycle detected in dependency graph: {_format_chain(cycle)}"
        return CycleError(
            msg,
            cycle=cycle,
            chain=self._chain(),
            root_ctor_ids=tuple(ctor.id for ctor in in_cycle),
            transitive_ctor_ids=self._transitive_ids(exclude=in_cycle),
        )

    def _chain(self) -> tuple[Key, ...]:
        return tuple(self._keys)

    def _transitive_ids(self, *, exclude: tuple[Ctor, ...]) -> tuple[int, ...]:
        return tuple(ctor.id for ctor, _ in self._building if ctor not in exclude)


def find_cycle(registry: CtorRegistry, start: Ctor) -> CycleError | None:
    """Return a cycle reachable from ``start`` without invoking anything.

    Args:
        registry: Registry whose edges are followed.
        start: Constructor the search starts from.

    """
    done: set[int] = set()
    path: list[Ctor] = []
    path_keys: list[Key] = []

    def visit(ctor: Ctor) -> CycleError | None:
        if ctor.id in done:
            return None
        for index, visited in enumerate(path):
            if visited is ctor:
                cycle = (*path_keys[index:], path_keys[index])
                return CycleError(
                    f"Cycle detected in dependency graph: {_format_chain(cycle)}",
                    cycle=cycle,
                    root_ctor_ids=tuple(item.id for item in path[index:]),
                )
        path.append(ctor)
        try:
            for key, provider in registry.dependencies(ctor):
                path_keys.append(key)
                try:
                    if error := visit(provider):
                        return error
                finally:
                    path_keys.pop()
        finally:
            path.pop()
        done.add(ctor.id)
        return None

    return visit(start)


def _format_chain(keys: Sequence[Key]) -> str:
    return " -> ".join(str(key) for key in keys)
