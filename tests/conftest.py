"""Shared pytest fixtures for dagwire tests."""

import pytest

from dagwire.container import Container
from dagwire.settings import ContainerSettings


@pytest.fixture()
def container() -> Container:
    """Container with provide-time cycle verification."""
    return Container(ContainerSettings())


@pytest.fixture()
def container_deferred() -> Container:
    """Container that reports cycles only when invoke reaches them."""
    return Container(ContainerSettings(), defer_acyclic_verification=True)
