"""Query engine implementations."""

from querygate.engines.base import QueryEngine, ResultSet
from querygate.errors import ConfigurationError


async def create_engine(engine: str = "duckdb", **config) -> QueryEngine:
    """Create a connected query engine by name.

    Args:
        engine: Engine name (duckdb, bigquery)
        **config: Engine configuration

    Returns:
        Query engine ready to execute queries

    Raises:
        ConfigurationError: If the engine is not supported
    """
    name = engine.lower()

    if name == "duckdb":
        from querygate.engines.duckdb import create_engine as create_duckdb

        return await create_duckdb(**config)

    elif name == "bigquery":
        from querygate.engines.bigquery import create_engine as create_bigquery

        return await create_bigquery(**config)

    else:
        raise ConfigurationError(f"Unsupported engine: {engine}. Supported: duckdb, bigquery")


__all__ = ["QueryEngine", "ResultSet", "create_engine"]
