"""Dispatch layer: name lookup, binding, execution and projection."""

from __future__ import annotations

from contextlib import aclosing

from loguru import logger

from querygate.binder import bind
from querygate.engines.base import QueryEngine
from querygate.errors import EngineExecutionError, InvalidParameterError, ProjectionError
from querygate.projector import project
from querygate.query import QueryRegistry
from querygate.types import ProjectedRow, RawValues


class QueryDispatcher:
    """Runs registered queries on an engine.

    The registry is fixed at construction and only read afterwards, so a
    single dispatcher serves any number of concurrent requests.

    Examples:
        >>> dispatcher = QueryDispatcher(registry, engine)
        >>> rows = await dispatcher.dispatch("param", {"name": ["bravo"], "id": ["1.5"]})
    """

    def __init__(self, registry: QueryRegistry, engine: QueryEngine):
        """Initialize dispatcher.

        Args:
            registry: Read-only query registry
            engine: Engine the queries run on
        """
        self.registry = registry
        self.engine = engine

    async def dispatch(self, name: str, raw_values: RawValues) -> list[ProjectedRow]:
        """Run a named query with raw request parameters.

        Args:
            name: Registered query name
            raw_values: Parameter name to raw string value(s)

        Returns:
            Projected rows in engine order

        Raises:
            UnknownQueryError: No query has the name; nothing else runs
            InvalidParameterError: A parameter failed to bind; the engine is not called
            EngineExecutionError: The engine failed to run or read the query
            ProjectionError: A result value did not match its column type
        """
        query = self.registry.lookup(name)
        logger.debug(f"Dispatching query {name!r}")

        try:
            bindings = bind(query.parameters, raw_values)
        except InvalidParameterError as e:
            logger.warning(f"Error parsing params for {name!r}: {e}")
            raise

        try:
            result = await self.engine.execute(query, bindings)
            rows = []
            async with aclosing(result.rows()) as stream:
                async for raw_row in stream:
                    rows.append(project(result.schema, raw_row))
        except EngineExecutionError as e:
            logger.error(f"{self.engine.dialect} error for {name!r}: {e}")
            raise
        except ProjectionError as e:
            logger.error(f"Projection error for {name!r}: {e}")
            raise

        logger.debug(f"Query {name!r} returned {len(rows)} rows")
        return rows
