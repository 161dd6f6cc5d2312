from __future__ import annotations

import types
from typing import Any, TypeGuard


def is_runtime_class(candidate: object) -> TypeGuard[type[Any]]:
    """Return true when candidate is a runtime class safe for class-only operations.

    Args:
        candidate: Value being checked for eligibility or runtime type constraints.

    """
    return isinstance(candidate, type) and not isinstance(candidate, types.GenericAlias)


def implements(concrete: Any, interface: type[Any]) -> bool:
    """Return whether ``concrete`` can be bound to ``interface``.

    Non-class concrete types and protocols that are not runtime checkable cannot
    be verified and are accepted.

    Args:
        concrete: Type produced by a constructor.
        interface: Type the produced value is bound to.

    """
    if not is_runtime_class(concrete):
        return True
    try:
        return issubclass(concrete, interface)
    except TypeError:
        return True


__all__ = ["implements", "is_runtime_class"]
