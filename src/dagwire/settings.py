from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ContainerSettings(BaseSettings):
    """Container defaults loaded from ``DAGWIRE_*`` environment variables.

    Explicit ``Container`` keyword arguments take precedence over these values.

    Examples:
        .. code-block:: bash

            DAGWIRE_DRY_RUN=true python -m app

    """

    model_config = SettingsConfigDict(env_prefix="DAGWIRE_", frozen=True)

    dry_run: bool = Field(default=False)
    """Resolve the graph without calling constructors or the invoke target."""

    defer_acyclic_verification: bool = Field(default=False)
    """Report cycles when ``invoke`` reaches them instead of on every ``provide``."""


__all__ = ["ContainerSettings"]
