"""DuckDB engine with async support via asyncio.to_thread."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

try:
    import duckdb
except ImportError as e:
    raise ImportError(
        "duckdb is required for DuckDB support. Install with: pip install duckdb"
    ) from e

from loguru import logger

from querygate.engines.base import QueryEngine, ResultSet
from querygate.errors import ConfigurationError, EngineExecutionError
from querygate.query import PLACEHOLDER_PATTERN, QueryDefinition
from querygate.types import Column, ParameterBinding, ScalarType


async def create_engine(**config) -> DuckDBEngine:
    """Create a connected DuckDB engine.

    Args:
        **config: Engine configuration (``database``, ``read_only``,
            ``fetch_size``, ``duckdb_config``)

    Returns:
        DuckDB engine instance
    """
    database = config.get("database") or ":memory:"

    # Accept duckdb:// URLs as well as bare paths
    if database.startswith("duckdb://"):
        database = database[len("duckdb://"):] or ":memory:"

    engine = DuckDBEngine(
        database,
        read_only=config.get("read_only", False),
        fetch_size=config.get("fetch_size", 1000),
        duckdb_config=config.get("duckdb_config"),
    )
    await engine.connect()
    return engine


class DuckDBEngine(QueryEngine):
    """DuckDB-backed query engine.

    One connection is opened per engine; every execution runs on its own
    cursor so concurrent requests do not share statement state.
    """

    dialect = "duckdb"

    def __init__(
        self,
        database: str = ":memory:",
        *,
        read_only: bool = False,
        fetch_size: int = 1000,
        duckdb_config: dict[str, Any] | None = None,
    ):
        """Initialize DuckDB engine.

        Args:
            database: Path to database file or ":memory:"
            read_only: Whether to open in read-only mode
            fetch_size: Rows fetched per batch
            duckdb_config: Additional DuckDB configuration
        """
        self.database = database
        self.read_only = read_only
        self.fetch_size = fetch_size
        self.duckdb_config = duckdb_config or {}
        self._conn: duckdb.DuckDBPyConnection | None = None

    async def connect(self) -> None:
        """Open the connection."""
        await asyncio.to_thread(self._connect)
        logger.info(f"DuckDB engine connected: {self.database}")

    def _connect(self) -> None:
        try:
            self._conn = duckdb.connect(
                database=self.database,
                read_only=self.read_only,
                config=self.duckdb_config,
            )
        except Exception as e:
            raise ConfigurationError(f"Failed to open DuckDB database {self.database}: {e}") from e

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        """The underlying DuckDB connection."""
        if self._conn is None:
            raise RuntimeError("Engine is not connected")
        return self._conn

    def convert_placeholders(
        self, query: QueryDefinition, bindings: Sequence[ParameterBinding]
    ) -> tuple[str, list[Any]]:
        """Convert ``@name`` placeholders to positional parameters.

        DuckDB uses $1, $2 syntax for parameters.

        Args:
            query: Query definition with @name placeholders
            bindings: Bound parameter values

        Returns:
            Query with $1, $2 placeholders and parameter list

        Raises:
            EngineExecutionError: The SQL references a parameter with no binding
        """
        values = dict(bindings)
        param_names: list[str] = []

        def replacer(match):
            param_name = match.group(1)
            if param_name is None:
                # Quoted literal or identifier
                return match.group(0)
            if param_name not in values:
                raise EngineExecutionError(
                    f"Query {query.name!r} references unbound parameter @{param_name}",
                    query.sql,
                    values,
                )
            if param_name not in param_names:
                param_names.append(param_name)
            return f"${param_names.index(param_name) + 1}"

        query_str = PLACEHOLDER_PATTERN.sub(replacer, query.sql)
        return query_str, [values[name] for name in param_names]

    async def execute(
        self, query: QueryDefinition, bindings: Sequence[ParameterBinding]
    ) -> ResultSet:
        """Execute a query and return its lazy result set."""
        query_str, query_params = self.convert_placeholders(query, bindings)

        try:
            cursor, relation = await asyncio.to_thread(self._run, query_str, query_params)
        except Exception as e:
            raise EngineExecutionError(f"Query failed: {e}", query_str, query_params) from e

        if relation is None:
            # Statement without a result set
            return ResultSet([], list, close=cursor.close, query=query_str, params=query_params)

        columns = list(relation.columns)
        duplicates = sorted({name for name in columns if columns.count(name) > 1})
        if duplicates:
            await asyncio.to_thread(cursor.close)
            raise EngineExecutionError(
                f"Query {query.name!r} returns duplicate column names: {', '.join(duplicates)}",
                query_str,
                query_params,
            )

        schema = [column_for(name, str(type_)) for name, type_ in zip(columns, relation.types)]

        def fetch() -> list[dict[str, Any]]:
            return [dict(zip(columns, row)) for row in relation.fetchmany(self.fetch_size)]

        return ResultSet(schema, fetch, close=cursor.close, query=query_str, params=query_params)

    def _run(self, query_str: str, query_params: list[Any]) -> tuple[Any, Any]:
        cursor = self.connection.cursor()
        try:
            relation = cursor.sql(query_str, params=query_params or None)
        except Exception:
            cursor.close()
            raise
        return cursor, relation

    async def close(self) -> None:
        """Close the connection."""
        if self._conn is not None:
            await asyncio.to_thread(self._conn.close)
            self._conn = None
            logger.info(f"DuckDB engine closed: {self.database}")


def column_for(name: str, type_name: str) -> Column:
    """Map a DuckDB column type onto the scalar set.

    DECIMAL, temporal and nested types keep their DuckDB name and pass
    through projection unchanged.
    """
    return Column(name, ScalarType.from_name(type_name) or type_name)
