from __future__ import annotations

from dataclasses import dataclass
from typing import Any


def type_label(dependency_type: Any) -> str:
    """Return a short human readable label for a dependency type."""
    if isinstance(dependency_type, type):
        return dependency_type.__qualname__
    return repr(dependency_type)


@dataclass(frozen=True, slots=True)
class Key:
    """Identify a binding by type identity, name and group.

    ``name`` and ``group`` are mutually exclusive. A key with neither refers to
    the default binding of ``type``. The same key value is used for every
    registry index and every diagram node.
    """

    type: Any
    name: str | None = None
    group: str | None = None

    @property
    def is_grouped(self) -> bool:
        return self.group is not None

    def __str__(self) -> str:
        label = type_label(self.type)
        if self.name is not None:
            return f'{label}[name="{self.name}"]'
        if self.group is not None:
            return f'{label}[group="{self.group}"]'
        return label


@dataclass(frozen=True, slots=True)
class Param:
    """Describe a single flattened input of a constructor."""

    key: Key
    optional: bool = False
    """Resolve to the absent value instead of failing when no provider exists.

    Ignored for grouped params: groups always resolve, possibly to an empty
    collection.
    """

    def __str__(self) -> str:
        if self.optional and not self.key.is_grouped:
            return f"{self.key}[optional]"
        return str(self.key)


@dataclass(frozen=True, slots=True)
class Result:
    """Describe a single flattened output of a constructor."""

    key: Key
    group_index: int = 0
    """Position among all results of the same group key, in registration order."""

    def __str__(self) -> str:
        if self.key.is_grouped:
            return f"{self.key}#{self.group_index}"
        return str(self.key)


@dataclass(frozen=True, slots=True)
class SourceLocation:
    """Where a constructor was defined."""

    name: str
    module: str
    file: str
    line: int

    def __str__(self) -> str:
        return f"{self.module}.{self.name} ({self.file}:{self.line})"
