"""Command line interface for querygate."""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Callable

import click
import uvicorn
from loguru import logger

from querygate import __version__
from querygate.asgi import QueryGateApp
from querygate.config import ENGINES, ServerSettings, load_settings
from querygate.dispatch import QueryDispatcher
from querygate.engines import create_engine
from querygate.errors import ConfigurationError, QueryGateError
from querygate.query import QueryRegistry, load_queries
from querygate.serializers import encode_rows

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} - {message}\n"

UVICORN_LOG_LEVELS = ("critical", "error", "warning", "info", "debug", "trace")

SOURCE_OPTIONS = [
    click.option(
        "--config",
        "config_file",
        type=click.Path(dir_okay=False),
        help="YAML or JSON settings file.",
    ),
    click.option("--queries", help="YAML file with queries.  [default: queries.yaml]"),
    click.option("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR).  [default: INFO]"),
]

ENGINE_OPTIONS = [
    click.option(
        "--engine",
        type=click.Choice(ENGINES, case_sensitive=False),
        help="Query engine.  [default: duckdb]",
    ),
    click.option("--database", help="DuckDB database file.  [default: :memory:]"),
    click.option("--project", help="Google Cloud Project to query BigQuery as."),
]

SERVER_OPTIONS = [
    click.option("--url-path", help="URL path prefix for all queries, example: /query/."),
    click.option("--host", help="Interface to bind.  [default: 0.0.0.0]"),
    click.option("--port", type=int, help="Port to serve on.  [default: 8080]"),
]


def with_options(options: list[Callable]) -> Callable:
    """Apply a list of click options to a command."""

    def decorator(func: Callable) -> Callable:
        for option in reversed(options):
            func = option(func)
        return func

    return decorator


def configure(config_file: str | None, **overrides: Any) -> ServerSettings:
    """Load settings and set up logging.

    Raises:
        click.ClickException: Settings are invalid
    """
    try:
        settings = load_settings(config_file, overrides)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    logger.remove()
    try:
        logger.add(_echo_stderr, level=settings.log_level, format=LOG_FORMAT)
    except ValueError as e:
        raise click.ClickException(f"Invalid log level: {settings.log_level}") from e
    logger.enable("querygate")
    return settings


def _echo_stderr(message: str) -> None:
    click.echo(message, err=True, nl=False)


def registry_from(settings: ServerSettings) -> QueryRegistry:
    """Load the query registry named by the settings."""
    try:
        return load_queries(settings.queries)
    except ConfigurationError as e:
        raise click.ClickException(f"Error loading queries from {settings.queries}: {e}") from e


@click.group()
@click.version_option(__version__, prog_name="querygate")
def main() -> None:
    """Serve parameterized SQL queries as JSON over HTTP."""


@main.command()
@with_options(SOURCE_OPTIONS + ENGINE_OPTIONS + SERVER_OPTIONS)
def serve(config_file: str | None, **overrides: Any) -> None:
    """Serve the configured queries over HTTP."""
    settings = configure(config_file, **overrides)
    registry = registry_from(settings)

    app = QueryGateApp(
        registry,
        engine_factory=functools.partial(
            create_engine, settings.engine, **settings.engine_config()
        ),
        url_path=settings.url_path,
    )

    level = settings.log_level.lower()
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=level if level in UVICORN_LOG_LEVELS else "info",
    )


@main.command("list")
@with_options(SOURCE_OPTIONS)
def list_queries(config_file: str | None, **overrides: Any) -> None:
    """List the configured queries and their parameters."""
    settings = configure(config_file, **overrides)
    registry = registry_from(settings)

    for name in sorted(registry):
        query = registry[name]
        params = ", ".join(f"{p}: {t}" for p, t in sorted(query.parameters.items()))
        click.echo(f"{name}({params})")


@main.command()
@click.argument("name")
@click.option(
    "-p",
    "--param",
    "params",
    multiple=True,
    metavar="KEY=VALUE",
    help="Query parameter; may be repeated.",
)
@with_options(SOURCE_OPTIONS + ENGINE_OPTIONS)
def run(name: str, params: tuple[str, ...], config_file: str | None, **overrides: Any) -> None:
    """Run one query and print its rows as JSON."""
    settings = configure(config_file, **overrides)
    registry = registry_from(settings)

    raw_values: dict[str, list[str]] = {}
    for param in params:
        key, sep, value = param.partition("=")
        if not sep:
            raise click.BadParameter(f"expected KEY=VALUE, got {param!r}", param_hint="--param")
        raw_values.setdefault(key, []).append(value)

    try:
        content = asyncio.run(_run_once(settings, registry, name, raw_values))
    except QueryGateError as e:
        raise click.ClickException(str(e)) from e
    except (TypeError, ValueError) as e:
        raise click.ClickException(f"Cannot encode results of {name!r} as JSON: {e}") from e

    click.echo(content.decode("utf-8"))


async def _run_once(
    settings: ServerSettings,
    registry: QueryRegistry,
    name: str,
    raw_values: dict[str, list[str]],
) -> bytes:
    registry.lookup(name)
    async with await create_engine(settings.engine, **settings.engine_config()) as engine:
        rows = await QueryDispatcher(registry, engine).dispatch(name, raw_values)
    return encode_rows(rows)


if __name__ == "__main__":
    main()
