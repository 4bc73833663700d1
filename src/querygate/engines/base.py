"""Query engine interface and result set shared by every backend."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from typing import Any, Callable

from querygate.errors import EngineExecutionError
from querygate.query import QueryDefinition
from querygate.types import Column, ParameterBinding, RawRow


class ResultSet:
    """Column schema plus a lazy, single-pass stream of rows.

    Rows are pulled from the engine in batches on a worker thread; an empty
    batch marks the end of results.

    Examples:
        >>> result = await engine.execute(query, bindings)
        >>> async with aclosing(result.rows()) as rows:
        ...     async for row in rows:
        ...         print(row)
    """

    def __init__(
        self,
        schema: Sequence[Column],
        fetch: Callable[[], Sequence[RawRow]],
        *,
        close: Callable[[], None] | None = None,
        query: str | None = None,
        params: Any = None,
    ):
        """Initialize result set.

        Args:
            schema: Ordered columns of the result
            fetch: Blocking callable returning the next batch of rows
            close: Blocking callable releasing engine resources
            query: SQL text, kept for error reporting
            params: Submitted parameters, kept for error reporting
        """
        self.schema = list(schema)
        self._fetch = fetch
        self._close = close
        self.query = query
        self.params = params
        self._consumed = False
        self._closed = False

    async def rows(self) -> AsyncIterator[RawRow]:
        """Yield rows until the engine reports the end of results."""
        if self._consumed:
            raise RuntimeError("ResultSet rows can only be iterated once")
        self._consumed = True

        try:
            while True:
                try:
                    batch = await asyncio.to_thread(self._fetch)
                except Exception as e:
                    raise EngineExecutionError(
                        f"Failed to read results: {e}", self.query, self.params
                    ) from e

                if not batch:
                    break

                for row in batch:
                    yield row
        finally:
            await self.close()

    async def close(self) -> None:
        """Release the engine resources held by this result."""
        if self._closed:
            return
        self._closed = True
        if self._close is not None:
            await asyncio.to_thread(self._close)


class QueryEngine:
    """Executes query definitions with bound parameters.

    Implementations live in ``querygate.engines.<name>`` and are created
    through ``querygate.engines.create_engine``.
    """

    dialect: str = "generic"

    async def execute(
        self, query: QueryDefinition, bindings: Sequence[ParameterBinding]
    ) -> ResultSet:
        """Run a query.

        Args:
            query: The query definition to run
            bindings: Typed parameters, one per declared parameter

        Returns:
            Result set with the column schema and a lazy row stream

        Raises:
            EngineExecutionError: The engine rejected or failed the query
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release engine connections."""
        pass

    async def __aenter__(self) -> QueryEngine:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
