from __future__ import annotations

from dataclasses import dataclass

from dagwire._internal.ctor import Ctor, CtorState
from dagwire._internal.nodes import Key, Result
from dagwire.exceptions import CycleError, MissingDependencyError, ValidationError


class CtorRegistry:
    """Store constructors in registration order with their lookup indices.

    Single bindings are indexed by key and must be unique. Grouped results are
    indexed by group key; the order in which constructors are appended to a
    group is the order of the group value and the source of group indices.
    """

    def __init__(self) -> None:
        self._ctors: list[Ctor] = []
        self._providers: dict[Key, Ctor] = {}
        self._group_contributors: dict[Key, list[Ctor]] = {}
        self._group_results: dict[Key, list[Result]] = {}
        self._group_counters: dict[Key, int] = {}

    @dataclass(frozen=True, slots=True)
    class Snapshot:
        """Capture registry state for transactional rollback."""

        ctors: list[Ctor]
        providers: dict[Key, Ctor]
        group_contributors: dict[Key, list[Ctor]]
        group_results: dict[Key, list[Result]]
        group_counters: dict[Key, int]

    def snapshot(self) -> Snapshot:
        """Capture current registrations for rollback."""
        return self.Snapshot(
            ctors=list(self._ctors),
            providers=dict(self._providers),
            group_contributors={key: list(ctors) for key, ctors in self._group_contributors.items()},
            group_results={key: list(results) for key, results in self._group_results.items()},
            group_counters=dict(self._group_counters),
        )

    def restore(self, snapshot: Snapshot) -> None:
        """Restore registrations from a previous snapshot.

        Args:
            snapshot: Previously captured snapshot state to restore into the registry.

        """
        self._ctors = list(snapshot.ctors)
        self._providers = dict(snapshot.providers)
        self._group_contributors = {
            key: list(ctors) for key, ctors in snapshot.group_contributors.items()
        }
        self._group_results = {
            key: list(results) for key, results in snapshot.group_results.items()
        }
        self._group_counters = dict(snapshot.group_counters)

    def next_id(self) -> int:
        """Return the id the next registered constructor receives."""
        return len(self._ctors)

    def allocate_group_index(self, keys: tuple[Key, ...]) -> int:
        """Reserve one group index shared by every key.

        The index is the highest running counter among ``keys`` so a value
        projected onto several interfaces keeps a single index; every counter
        then moves past it.

        Args:
            keys: Grouped keys the produced value is bound to.

        """
        index = max(self._group_counters.get(key, 0) for key in keys)
        for key in keys:
            self._group_counters[key] = index + 1
        return index

    def add(self, ctor: Ctor) -> None:
        """Add a constructor and index its results.

        Args:
            ctor: Constructor descriptor produced by the decomposer.

        Raises:
            ValidationError: If a single result is already provided.

        """
        seen: set[Key] = set()
        for result in ctor.results:
            if result.key.is_grouped:
                continue
            if result.key in seen:
                msg = f"Cannot provide {result.key} twice from '{ctor.name}'."
                raise ValidationError(msg)
            seen.add(result.key)
            if existing := self._providers.get(result.key):
                msg = (
                    f"Cannot provide {result.key} from {ctor.location}: already provided by "
                    f"{existing.location}."
                )
                raise ValidationError(msg)

        self._ctors.append(ctor)
        for result in ctor.results:
            if not result.key.is_grouped:
                self._providers[result.key] = ctor
                continue
            contributors = self._group_contributors.setdefault(result.key, [])
            if not contributors or contributors[-1] is not ctor:
                contributors.append(ctor)
            self._group_results.setdefault(result.key, []).append(result)

    def find_provider(self, key: Key) -> Ctor | None:
        """Return the constructor providing a single binding, if any.

        Args:
            key: Non-grouped binding key to look up.

        """
        return self._providers.get(key)

    def group_contributors(self, key: Key) -> list[Ctor]:
        """Return constructors contributing to a group, in registration order.

        Args:
            key: Grouped binding key to look up.

        """
        return list(self._group_contributors.get(key, ()))

    def group_results(self, key: Key) -> list[Result]:
        """Return results contributed to a group, in registration order.

        Args:
            key: Grouped binding key to look up.

        """
        return list(self._group_results.get(key, ()))

    def group_keys(self) -> list[Key]:
        """Return every group key that has contributors or consumers."""
        keys = list(self._group_results)
        for ctor in self._ctors:
            for param in ctor.group_params:
                if param.key not in keys:
                    keys.append(param.key)
        return keys

    def dependencies(self, ctor: Ctor) -> list[tuple[Key, Ctor]]:
        """Return ``(key, provider)`` pairs for every registered input of ``ctor``.

        Args:
            ctor: Constructor whose inputs are followed.

        """
        edges: list[tuple[Key, Ctor]] = []
        for param in ctor.params:
            if param.key.is_grouped:
                edges.extend((param.key, provider) for provider in self.group_contributors(param.key))
            elif provider := self.find_provider(param.key):
                edges.append((param.key, provider))
        return edges

    def reset_structural_failures(self) -> None:
        """Forget cached failures that a new registration may fix."""
        for ctor in self._ctors:
            if ctor.state is CtorState.FAILED and isinstance(
                ctor.error,
                (MissingDependencyError, CycleError),
            ):
                ctor.reset()

    def values(self) -> list[Ctor]:
        """Get all constructors in registration order."""
        return list(self._ctors)

    def __len__(self) -> int:
        return len(self._ctors)
