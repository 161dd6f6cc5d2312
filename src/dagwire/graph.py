from dagwire._internal.nodes import Key, Param, Result, SourceLocation
from dagwire._internal.visualize import (
    CtorView,
    Diagram,
    Edge,
    Graph,
    GroupView,
    VisualizeError,
    render,
)

__all__ = [
    "CtorView",
    "Diagram",
    "Edge",
    "Graph",
    "GroupView",
    "Key",
    "Param",
    "Result",
    "SourceLocation",
    "VisualizeError",
    "render",
]
