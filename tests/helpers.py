"""Dependency types shared by the test suite."""

from __future__ import annotations

from abc import ABC


class T1:
    pass


class T2:
    pass


class T3:
    pass


class T4:
    pass


class Reader(ABC):  # noqa: B024
    pass


class Writer(ABC):  # noqa: B024
    pass


class Buffer(Reader, Writer):
    pass


class Plugin:
    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"Plugin({self.name!r})"
