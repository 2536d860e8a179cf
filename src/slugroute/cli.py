"""slugroute command-line interface powered by Typer."""

import logging
from enum import Enum
from pathlib import Path
from typing import Annotated

import typer

from slugroute.config import load_config
from slugroute.errors import ConfigurationError
from slugroute.resolver import SQLiteResolver
from slugroute.router import Router

app = typer.Typer(name="slugroute", add_completion=False, no_args_is_help=True)

ConfigArg = Annotated[Path, typer.Argument(help="Route configuration file (.json or .toml).")]
DbOption = Annotated[str, typer.Option("--db", help="SQLite database holding the entities.")]


class LogLevel(str, Enum):
    debug = "debug"
    info = "info"
    warning = "warning"
    error = "error"
    critical = "critical"


LogLevelOption = Annotated[LogLevel, typer.Option("--log-level", case_sensitive=False, help="Logging level.")]


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _build_router(config_path: Path, db: str, log_level: LogLevel) -> Router:
    logging.basicConfig(level=log_level.value.upper(), format="%(levelname)s %(name)s: %(message)s")
    try:
        config = load_config(config_path)
        resolver = SQLiteResolver(db, models=config.models, extended_scripts=config.extended_scripts)
        router = Router(resolver, config=config)
        router.routes  # noqa: B018
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc
    return router


def _pairs(items: list[str] | None, option: str) -> dict[str, str]:
    """Parse repeated ``key=value`` options."""
    result: dict[str, str] = {}
    for item in items or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            typer.echo(f"Error: {option} expects key=value, got {item!r}", err=True)
            raise typer.Exit(1)
        result[key] = value
    return result


def _coerce_id(value: str | None) -> int | str | None:
    if value is None:
        return None
    return int(value) if value.isdigit() else value


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------


@app.command()
def routes(
    config: ConfigArg,
    db: DbOption = ":memory:",
    log_level: LogLevelOption = LogLevel.warning,
) -> None:
    """List routes in the order they are tried."""
    router = _build_router(config, db, log_level)
    for route in router.routes:
        tags = ",".join(f"{k}={v}" for k, v in sorted(route.tags.items()))
        entity = route.entity.table if route.entity else "-"
        typer.echo(f"{route.pattern}\t{route.controller}\t{entity}\t{tags}".rstrip())


@app.command()
def match(
    config: ConfigArg,
    url: Annotated[str, typer.Argument(help="URL path to match.")],
    db: DbOption = ":memory:",
    log_level: LogLevelOption = LogLevel.warning,
) -> None:
    """Match a URL and print the controller and entity id."""
    router = _build_router(config, db, log_level)
    try:
        found = router.match(url)
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc

    if found is None:
        typer.echo(f"No route matches {url!r}", err=True)
        raise typer.Exit(1)
    typer.echo(f"controller: {found.controller}")
    typer.echo(f"id: {found.id}")


@app.command()
def generate(
    config: ConfigArg,
    controller: Annotated[str, typer.Argument(help="Controller to generate a URL for.")],
    id: Annotated[str | None, typer.Option("--id", help="Entity identifier.")] = None,  # noqa: A002
    attr: Annotated[list[str] | None, typer.Option("--attr", help="Field value as key=value.")] = None,
    tag: Annotated[list[str] | None, typer.Option("--tag", help="Required route tag as key=value.")] = None,
    db: DbOption = ":memory:",
    log_level: LogLevelOption = LogLevel.warning,
) -> None:
    """Generate the URL for a controller and entity."""
    router = _build_router(config, db, log_level)
    attributes = _pairs(attr, "--attr")
    identifier = _coerce_id(id)
    element: dict[str, str] | int | str | None = identifier
    if attributes:
        element = attributes
        if identifier is not None:
            primaries = {r.entity.primary for r in router.get_routes_for_controller(controller) if r.entity}
            for primary in primaries:
                element[primary] = identifier

    try:
        url = router.generate(controller, element, _pairs(tag, "--tag"))
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc

    if url is None:
        typer.echo(f"Cannot generate a URL for {controller!r}", err=True)
        raise typer.Exit(1)
    typer.echo(url)
