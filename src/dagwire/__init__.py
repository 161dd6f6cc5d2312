from dagwire.container import Container
from dagwire.exceptions import (
    ConstructorError,
    CycleError,
    DagwireError,
    MissingDependencyError,
    ResolutionError,
    ValidationError,
)
from dagwire.graph import Diagram, Graph, Key, VisualizeError
from dagwire.markers import Group, In, Maybe, Name, Out
from dagwire.settings import ContainerSettings

__all__ = [
    "ConstructorError",
    "Container",
    "ContainerSettings",
    "CycleError",
    "DagwireError",
    "Diagram",
    "Graph",
    "Group",
    "In",
    "Key",
    "Maybe",
    "MissingDependencyError",
    "Name",
    "Out",
    "ResolutionError",
    "ValidationError",
    "VisualizeError",
]
