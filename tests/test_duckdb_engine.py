"""Tests for the DuckDB engine."""

import datetime
from contextlib import aclosing

import pytest

from querygate.binder import bind
from querygate.engines import create_engine
from querygate.engines.duckdb import DuckDBEngine, column_for
from querygate.errors import ConfigurationError, EngineExecutionError
from querygate.query import QueryDefinition
from querygate.types import Column, ScalarType


async def fetch_all(result):
    """Drain a result set."""
    async with aclosing(result.rows()) as rows:
        return [row async for row in rows]


async def run(engine, query, raw_values=None):
    """Bind, execute and drain a query."""
    result = await engine.execute(query, bind(query.parameters, raw_values or {}))
    return result.schema, await fetch_all(result)


class TestDuckDBConnection:
    """Test DuckDB connection handling."""

    async def test_connect_memory(self):
        """Test connecting to an in-memory database."""
        engine = await create_engine("duckdb")

        assert isinstance(engine, DuckDBEngine)
        assert engine.dialect == "duckdb"
        assert engine.database == ":memory:"

        await engine.close()

    async def test_connect_file(self, temp_dir):
        """Test a file database keeps its data across engines."""
        path = temp_dir / "test.duckdb"

        engine = await create_engine("duckdb", database=f"duckdb://{path}")
        engine.connection.execute("CREATE TABLE t (id INTEGER)")
        engine.connection.execute("INSERT INTO t VALUES (1)")
        await engine.close()

        engine = await create_engine("duckdb", database=str(path), read_only=True)
        schema, rows = await run(engine, QueryDefinition("q", "SELECT id FROM t"))
        await engine.close()

        assert schema == [Column("id", ScalarType.INTEGER)]
        assert rows == [{"id": 1}]

    async def test_connect_failure(self, temp_dir):
        """Test an unopenable database is a configuration error."""
        with pytest.raises(ConfigurationError, match="Failed to open DuckDB database"):
            await create_engine("duckdb", database=str(temp_dir / "missing.duckdb"), read_only=True)

    async def test_close_twice(self):
        """Test closing is idempotent."""
        engine = await create_engine("duckdb")
        await engine.close()
        await engine.close()

        with pytest.raises(RuntimeError, match="not connected"):
            engine.connection

    async def test_unknown_engine(self):
        """Test unknown engine names are rejected."""
        with pytest.raises(ConfigurationError, match="Unsupported engine: postgres"):
            await create_engine("postgres")


class TestPlaceholders:
    """Test @name to positional placeholder conversion."""

    def test_convert(self):
        """Test repeated names share one position."""
        engine = DuckDBEngine()
        query = QueryDefinition(
            "q",
            "SELECT @b, @a WHERE @b > 0",
            {"a": ScalarType.STRING, "b": ScalarType.INTEGER},
        )

        sql, params = engine.convert_placeholders(query, [("a", "x"), ("b", 2)])

        assert sql == "SELECT $1, $2 WHERE $1 > 0"
        assert params == [2, "x"]

    def test_no_placeholders(self):
        """Test SQL without placeholders is unchanged."""
        engine = DuckDBEngine()
        sql, params = engine.convert_placeholders(QueryDefinition("q", "SELECT 1"), [])

        assert sql == "SELECT 1"
        assert params == []

    def test_quoted_text_untouched(self):
        """Test @ inside string literals and quoted identifiers is left alone."""
        engine = DuckDBEngine()
        query = QueryDefinition(
            "q",
            """SELECT 'mail @home' AS "@s", 'it''s @id' AS t, @id AS id""",
            {"id": ScalarType.INTEGER},
        )

        sql, params = engine.convert_placeholders(query, [("id", 7)])

        assert sql == """SELECT 'mail @home' AS "@s", 'it''s @id' AS t, $1 AS id"""
        assert params == [7]

    def test_unbound(self):
        """Test undeclared placeholders fail before execution."""
        engine = DuckDBEngine()
        query = QueryDefinition("q", "SELECT @missing")

        with pytest.raises(EngineExecutionError, match="unbound parameter @missing"):
            engine.convert_placeholders(query, [])


class TestDuckDBQueries:
    """Test DuckDB query execution."""

    async def test_param_query(self, engine, registry):
        """Test the example query round-trips its parameters."""
        schema, rows = await run(engine, registry["param"], {"name": ["bravo"], "id": ["1.5"]})

        assert schema == [Column("name", ScalarType.STRING), Column("id", ScalarType.FLOAT)]
        assert rows == [{"name": "bravo", "id": 1.5}]

    async def test_table_query(self, engine, registry):
        """Test typed columns and nulls from a table."""
        schema, rows = await run(engine, registry["users_by_age"], {"min_age": ["30"]})

        assert [column.type for column in schema] == [
            ScalarType.INTEGER,
            ScalarType.STRING,
            ScalarType.BOOLEAN,
            ScalarType.FLOAT,
        ]
        assert rows == [
            {"id": 1, "name": "alpha", "active": True, "score": 1.5},
            {"id": 3, "name": "charlie", "active": True, "score": 2.25},
        ]

    async def test_boolean_parameter(self, engine, registry):
        """Test boolean parameters filter rows."""
        _, rows = await run(engine, registry["active_users"], {"active": ["false"]})
        assert rows == [{"name": "bravo"}]

    async def test_non_scalar_columns(self, engine, registry):
        """Test non-scalar columns keep their DuckDB type name."""
        schema, rows = await run(engine, registry["user_by_name"], {"name": ["alpha"]})

        assert schema[2] == Column("joined", "DATE")
        assert rows == [{"id": 1, "name": "alpha", "joined": datetime.date(2024, 1, 2)}]

    async def test_empty_result(self, engine, registry):
        """Test queries matching nothing keep their schema."""
        schema, rows = await run(engine, registry["user_by_name"], {"name": ["nobody"]})

        assert len(schema) == 3
        assert rows == []

    async def test_batched_fetch(self, engine):
        """Test rows are streamed in fetch_size batches."""
        engine.fetch_size = 1
        _, rows = await run(engine, QueryDefinition("q", "SELECT id FROM users ORDER BY id"))
        assert rows == [{"id": 1}, {"id": 2}, {"id": 3}]

    async def test_statement_without_results(self, engine):
        """Test statements without a result set yield no rows."""
        schema, rows = await run(engine, QueryDefinition("q", "CREATE TABLE empty (id INTEGER)"))

        assert schema == []
        assert rows == []

    async def test_query_error(self, engine, registry):
        """Test engine failures carry the SQL."""
        with pytest.raises(EngineExecutionError, match="Query failed") as exc_info:
            await run(engine, registry["broken"])

        assert exc_info.value.query == "SELECT * FROM missing_table"
        assert exc_info.value.status_code == 500

    async def test_quoted_at_sign(self, engine):
        """Test a static query with @ in a literal runs unchanged."""
        schema, rows = await run(engine, QueryDefinition("q", "SELECT 'mail @home' AS s"))

        assert schema == [Column("s", ScalarType.STRING)]
        assert rows == [{"s": "mail @home"}]

    async def test_duplicate_column_names(self, engine):
        """Test results with repeated column names are rejected."""
        query = QueryDefinition("q", "SELECT 1 AS a, 'x' AS a, 2 AS b")

        with pytest.raises(EngineExecutionError, match="duplicate column names: a"):
            await engine.execute(query, [])

    async def test_rows_single_pass(self, engine, registry):
        """Test a result set can only be iterated once."""
        result = await engine.execute(registry["totals"], [])
        assert await fetch_all(result) == [{"total": 3}]

        with pytest.raises(RuntimeError, match="only be iterated once"):
            await fetch_all(result)


class TestColumnFor:
    """Test DuckDB type mapping."""

    @pytest.mark.parametrize(
        "type_name,expected",
        [
            ("INTEGER", ScalarType.INTEGER),
            ("BIGINT", ScalarType.INTEGER),
            ("DOUBLE", ScalarType.FLOAT),
            ("BOOLEAN", ScalarType.BOOLEAN),
            ("VARCHAR", ScalarType.STRING),
            ("DECIMAL(18,3)", "DECIMAL(18,3)"),
            ("TIMESTAMP", "TIMESTAMP"),
        ],
    )
    def test_mapping(self, type_name, expected):
        """Test scalar names map to ScalarType, others pass through."""
        assert column_for("c", type_name) == Column("c", expected)
