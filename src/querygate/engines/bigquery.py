"""BigQuery engine with async support via asyncio.to_thread."""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Sequence
from typing import Any

try:
    from google.cloud import bigquery
except ImportError as e:
    raise ImportError(
        "google-cloud-bigquery is required for BigQuery support. "
        "Install with: pip install querygate[bigquery]"
    ) from e

from loguru import logger

from querygate.engines.base import QueryEngine, ResultSet
from querygate.errors import ConfigurationError, EngineExecutionError
from querygate.query import QueryDefinition
from querygate.types import Column, ParameterBinding, ScalarType

# Standard SQL parameter type names
PARAMETER_TYPES = {
    ScalarType.INTEGER: "INT64",
    ScalarType.FLOAT: "FLOAT64",
    ScalarType.BOOLEAN: "BOOL",
    ScalarType.STRING: "STRING",
}


async def create_engine(**config) -> BigQueryEngine:
    """Create a BigQuery engine for a Google Cloud project.

    Args:
        **config: Engine configuration (``project``, ``fetch_size``)

    Returns:
        BigQuery engine instance
    """
    project = config.get("project")
    if not project:
        raise ConfigurationError("Empty project flag.")

    try:
        client = await asyncio.to_thread(bigquery.Client, project=project)
    except Exception as e:
        raise ConfigurationError(f"Error connecting to BigQuery: {e}") from e

    logger.info(f"BigQuery engine connected: project {project}")
    return BigQueryEngine(client, fetch_size=config.get("fetch_size", 1000))


class BigQueryEngine(QueryEngine):
    """BigQuery-backed query engine.

    Placeholders use BigQuery's native ``@name`` syntax, so the SQL is
    submitted unchanged with typed scalar query parameters.
    """

    dialect = "bigquery"

    def __init__(self, client: Any, *, fetch_size: int = 1000):
        """Initialize BigQuery engine.

        Args:
            client: ``google.cloud.bigquery.Client`` instance
            fetch_size: Rows requested per result page
        """
        self.client = client
        self.fetch_size = fetch_size

    def query_parameters(
        self, query: QueryDefinition, bindings: Sequence[ParameterBinding]
    ) -> list[bigquery.ScalarQueryParameter]:
        """Build typed BigQuery parameters from bindings."""
        return [
            bigquery.ScalarQueryParameter(
                name, PARAMETER_TYPES[query.parameters.get(name, ScalarType.STRING)], value
            )
            for name, value in bindings
        ]

    async def execute(
        self, query: QueryDefinition, bindings: Sequence[ParameterBinding]
    ) -> ResultSet:
        """Execute a query and return its lazy result set."""
        job_config = bigquery.QueryJobConfig(
            query_parameters=self.query_parameters(query, bindings)
        )
        params = dict(bindings)

        try:
            rows = await asyncio.to_thread(self._run, query.sql, job_config)
        except Exception as e:
            raise EngineExecutionError(f"BigQuery error: {e}", query.sql, params) from e

        schema = [
            Column(field.name, ScalarType.from_name(field.field_type) or field.field_type)
            for field in rows.schema
        ]
        iterator = iter(rows)

        def fetch() -> list[dict[str, Any]]:
            return [dict(row.items()) for row in itertools.islice(iterator, self.fetch_size)]

        return ResultSet(schema, fetch, query=query.sql, params=params)

    def _run(self, sql: str, job_config: Any) -> Any:
        job = self.client.query(sql, job_config=job_config)
        return job.result(page_size=self.fetch_size)

    async def close(self) -> None:
        """Close the client's transport."""
        await asyncio.to_thread(self.client.close)
        logger.info("BigQuery engine closed")
