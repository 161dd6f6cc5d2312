from __future__ import annotations

from typing import TYPE_CHECKING, Any, Self

if TYPE_CHECKING:
    from dagwire._internal.nodes import Key


class DagwireError(Exception):
    """Represent a base class for all dagwire-specific failures.

    Catch this type when you want to handle any dagwire error path without
    matching each concrete exception class individually.
    """


class ValidationError(DagwireError):
    """Signal an invalid registration or invocation target.

    Raised by ``Container.provide`` when a constructor shape is malformed, when
    annotations conflict (for example a field both named and grouped, or both
    optional and grouped), or when a binding is already provided. Also raised
    by ``Container.invoke`` when the target's parameters cannot be decomposed.

    A failed registration has no effect on the container.
    """


class ResolutionError(DagwireError):
    """Signal a failure while resolving dependencies for ``Container.invoke``.

    Resolution errors are cached on the constructor responsible for them, so
    later attempts to resolve that constructor fail without invoking anything.
    Retrying along the same dependency path raises the identical error object;
    reaching the constructor along another path raises a copy carrying that
    path, with the cached error as ``__cause__``.

    Attributes:
        reason: Description of the failure without the dependency chain.
        chain: Keys traversed from the invoked target down to the failing
            binding, in resolution order.
        root_ctor_ids: Ids of the constructors that caused the failure.
        transitive_ctor_ids: Ids of the constructors that failed because one of
            their dependencies failed.

    """

    def __init__(
        self,
        reason: str,
        *,
        chain: tuple[Key, ...] = (),
        root_ctor_ids: tuple[int, ...] = (),
        transitive_ctor_ids: tuple[int, ...] = (),
    ) -> None:
        message = reason
        if chain:
            message = f"{reason} (while resolving {' -> '.join(str(key) for key in chain)})"
        super().__init__(message)
        self.reason = reason
        self.chain = chain
        self.root_ctor_ids = root_ctor_ids
        self.transitive_ctor_ids = transitive_ctor_ids

    def with_chain(
        self,
        chain: tuple[Key, ...],
        transitive_ctor_ids: tuple[int, ...],
    ) -> Self:
        """Return a copy of this error reached along another dependency path.

        Args:
            chain: Keys traversed by the current resolution.
            transitive_ctor_ids: Constructors failing on the current path.

        """
        return type(self)(
            self.reason,
            chain=chain,
            root_ctor_ids=self.root_ctor_ids,
            transitive_ctor_ids=transitive_ctor_ids,
            **self._copy_kwargs(),
        )

    def _copy_kwargs(self) -> dict[str, Any]:
        return {}


class MissingDependencyError(ResolutionError):
    """Signal that a required binding has no provider.

    ``missing`` lists every unmet required key of the constructor (or invoke
    target) being resolved. Typical fixes are providing the binding or marking
    the parameter as ``Maybe[...]``.
    """

    def __init__(
        self,
        reason: str,
        *,
        missing: tuple[Key, ...],
        chain: tuple[Key, ...] = (),
        root_ctor_ids: tuple[int, ...] = (),
        transitive_ctor_ids: tuple[int, ...] = (),
    ) -> None:
        super().__init__(
            reason,
            chain=chain,
            root_ctor_ids=root_ctor_ids,
            transitive_ctor_ids=transitive_ctor_ids,
        )
        self.missing = missing

    def _copy_kwargs(self) -> dict[str, Any]:
        return {"missing": self.missing}


class CycleError(ResolutionError):
    """Signal that a binding transitively depends on itself.

    ``cycle`` holds the ordered keys of the loop, starting and ending with the
    same key. Raised by ``Container.provide`` when acyclic verification runs at
    registration time, otherwise by ``Container.invoke``.
    """

    def __init__(
        self,
        reason: str,
        *,
        cycle: tuple[Key, ...],
        chain: tuple[Key, ...] = (),
        root_ctor_ids: tuple[int, ...] = (),
        transitive_ctor_ids: tuple[int, ...] = (),
    ) -> None:
        super().__init__(
            reason,
            chain=chain,
            root_ctor_ids=root_ctor_ids,
            transitive_ctor_ids=transitive_ctor_ids,
        )
        self.cycle = cycle

    def _copy_kwargs(self) -> dict[str, Any]:
        return {"cycle": self.cycle}


class ConstructorError(ResolutionError):
    """Signal that a user constructor raised while being invoked.

    The original exception is available as ``__cause__``. Constructors are
    never retried: the error stays cached on the constructor.
    """


__all__ = [
    "ConstructorError",
    "CycleError",
    "DagwireError",
    "MissingDependencyError",
    "ResolutionError",
    "ValidationError",
]
