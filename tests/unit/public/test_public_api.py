from __future__ import annotations

from typing import Annotated

import dagwire
from dagwire import Container, ContainerSettings, Group, In, Name, Out, VisualizeError


class Config:
    def __init__(self, dsn: str) -> None:
        self.dsn = dsn


class Database:
    def __init__(self, config: Config) -> None:
        self.config = config


class Handler:
    pass


class UsersHandler(Handler):
    pass


class AdminHandler(Handler):
    pass


class Handlers(In):
    handlers: Annotated[list[Handler], Group("http")]


class Routes(Out):
    users: Annotated[Handler, Group("http")]
    admin: Annotated[Handler, Group("http")]


def test_public_exports() -> None:
    assert set(dagwire.__all__) >= {
        "Container",
        "ContainerSettings",
        "Group",
        "In",
        "Maybe",
        "Name",
        "Out",
        "VisualizeError",
    }


def test_end_to_end_wiring() -> None:
    container = Container(ContainerSettings())

    @container.provide(name="primary")
    def config() -> Config:
        return Config("sqlite://")

    def database(config: Annotated[Config, Name("primary")]) -> Database:
        return Database(config)

    def routes(db: Database) -> Routes:
        return Routes(users=UsersHandler(), admin=AdminHandler())

    def serve(params: Handlers, db: Database) -> tuple[list[str], str]:
        return [type(handler).__name__ for handler in params.handlers], db.config.dsn

    container.provide(database)
    container.provide(routes)

    assert container.invoke(serve) == (["UsersHandler", "AdminHandler"], "sqlite://")
    assert len(container) == 3
    assert container.render(VisualizeError(None)).ctor_ids == (0, 1, 2)
