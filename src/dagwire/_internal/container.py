from __future__ import annotations

import logging
from collections.abc import Callable, Generator, Sequence
from contextlib import contextmanager
from typing import Any, Literal, TypeVar, cast, overload

from dagwire._internal.decomposer import Decomposer
from dagwire._internal.registry import CtorRegistry
from dagwire._internal.resolver import Resolver, find_cycle
from dagwire._internal.visualize import Diagram, Graph, VisualizeError, build_graph, render
from dagwire.exceptions import DagwireError
from dagwire.settings import ContainerSettings

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])

logger = logging.getLogger(__name__)


class Container:
    """Register constructors and invoke functions with their dependencies.

    Constructors declare what they need through their parameters and what they
    produce through their return annotation. Inputs and outputs may be bundled
    into ``In``/``Out`` objects whose fields carry ``Name``, ``Group`` and
    ``Maybe`` annotations.

    Each constructor runs at most once per container, the first time one of its
    outputs is needed; every output is cached. Failures are cached too, so a
    failing constructor is never retried.

    The container performs no locking. Serialize concurrent ``invoke`` calls
    from several threads externally.
    """

    def __init__(
        self,
        settings: ContainerSettings | None = None,
        *,
        dry_run: bool | Literal["from_settings"] = "from_settings",
        defer_acyclic_verification: bool | Literal["from_settings"] = "from_settings",
    ) -> None:
        """Initialize an empty container.

        Args:
            settings: Defaults for options left as ``"from_settings"``. Loaded
                from ``DAGWIRE_*`` environment variables when omitted.
            dry_run: Resolve dependencies without calling constructors or the
                invoke target.
            defer_acyclic_verification: Skip the cycle check on every
                ``provide``; cycles are then reported by ``invoke`` when
                resolution reaches them.

        """
        resolved_settings = settings if settings is not None else ContainerSettings()
        self._dry_run = resolved_settings.dry_run if dry_run == "from_settings" else dry_run
        self._defer_acyclic_verification = (
            resolved_settings.defer_acyclic_verification
            if defer_acyclic_verification == "from_settings"
            else defer_acyclic_verification
        )
        self._registry = CtorRegistry()
        self._decomposer = Decomposer()

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    @property
    def defer_acyclic_verification(self) -> bool:
        return self._defer_acyclic_verification

    @overload
    def provide(
        self,
        constructor: Callable[..., Any],
        *,
        name: str | None = None,
        group: str | None = None,
        as_: Sequence[Any] = (),
    ) -> None: ...

    @overload
    def provide(
        self,
        constructor: Literal["from_decorator"] = "from_decorator",
        *,
        name: str | None = None,
        group: str | None = None,
        as_: Sequence[Any] = (),
    ) -> Callable[[F], F]: ...

    def provide(
        self,
        constructor: Callable[..., Any] | Literal["from_decorator"] = "from_decorator",
        *,
        name: str | None = None,
        group: str | None = None,
        as_: Sequence[Any] = (),
    ) -> None | Callable[[F], F]:
        """Register a constructor.

        Supports direct calls and decorator form. Inputs are taken from the
        constructor's parameters, the output from its return annotation (or
        the class itself).

        Args:
            constructor: Function or class, or ``"from_decorator"``.
            name: Name of the single output.
            group: Group that receives the single output.
            as_: Interfaces the single output is bound to instead of its own
                type. One invocation satisfies every interface.

        Returns:
            ``None`` in direct mode or a decorator in decorator mode.

        Raises:
            ValidationError: If the constructor shape or options are invalid, or
                an output is already provided. The container is left unchanged.
            CycleError: If the registration would introduce a dependency cycle
                and acyclic verification is not deferred.

        Examples:
            .. code-block:: python

                container.provide(open_database, name="ro")


                @container.provide(group="handlers", as_=[Handler])
                def users_handler(db: Database) -> UsersHandler: ...

        """
        if constructor == "from_decorator":

            def decorator(func: F) -> F:
                self.provide(func, name=name, group=group, as_=as_)
                return func

            return decorator

        with self._registration_mutation():
            ctor = self._decomposer.decompose(
                cast("Callable[..., Any]", constructor),
                ctor_id=self._registry.next_id(),
                allocate_group_index=self._registry.allocate_group_index,
                name=name,
                group=group,
                as_=as_,
            )
            self._registry.add(ctor)
            if not self._defer_acyclic_verification and (
                error := find_cycle(self._registry, ctor)
            ):
                raise error
        self._registry.reset_structural_failures()
        logger.debug(
            "Provided %s from %s",
            ", ".join(str(result) for result in ctor.results),
            ctor.location,
        )
        return None

    def invoke(self, target: Callable[..., T]) -> T | None:
        """Call ``target`` with its parameters resolved from the container.

        Parameters are decomposed exactly like constructor parameters, so
        ``In`` objects, ``Name``/``Group`` annotations and ``Maybe`` work the
        same way.

        Args:
            target: Callable to invoke.

        Returns:
            The target's return value, or ``None`` in dry-run mode.

        Raises:
            ValidationError: If the target's parameters cannot be decomposed.
            MissingDependencyError: If a required binding has no provider.
            CycleError: If a binding transitively depends on itself.
            ConstructorError: If a constructor raised. Cached: a repeated
                ``invoke`` raises the same error object.

        """
        param_list = self._decomposer.decompose_params(target)
        resolver = Resolver(self._registry, dry_run=self._dry_run)
        values = resolver.resolve_params(None, tuple(param_list.leaves()))
        if self._dry_run:
            return None
        args, kwargs = param_list.build(values)
        return target(*args, **kwargs)

    def create_graph(self) -> Graph:
        """Return an immutable snapshot of every registered constructor."""
        return build_graph(self._registry)

    def render(self, option: VisualizeError | None = None) -> Diagram:
        """Render the diagram model of the container.

        Args:
            option: ``VisualizeError(error)`` to prune the diagram down to the
                part of the graph responsible for ``error``.

        Examples:
            .. code-block:: python

                try:
                    container.invoke(run)
                except ResolutionError as error:
                    diagram = container.render(VisualizeError(error))

        """
        return render(self.create_graph(), option.error if option is not None else None)

    @contextmanager
    def _registration_mutation(self) -> Generator[None, None, None]:
        snapshot = self._registry.snapshot()
        try:
            yield
        except DagwireError:
            self._registry.restore(snapshot)
            raise

    def __len__(self) -> int:
        return len(self._registry)

    def __repr__(self) -> str:
        return f"Container(ctors={len(self._registry)}, dry_run={self._dry_run})"
