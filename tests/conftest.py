"""Shared test fixtures and utilities."""

import tempfile
from pathlib import Path

import pytest
from loguru import logger

from querygate.engines import QueryEngine, ResultSet, create_engine
from querygate.query import load_queries

QUERIES_YAML = """
- name: param
  query: SELECT CAST(@name AS VARCHAR) AS name, CAST(@id AS DOUBLE) AS id;
  parameters:
    name: STRING
    id: FLOAT

- name: users_by_age
  query: SELECT id, name, active, score FROM users WHERE age >= @min_age ORDER BY id
  parameters:
    min_age: INTEGER

- name: user_by_name
  query: SELECT id, name, joined FROM users WHERE name = @name
  parameters:
    name: STRING

- name: active_users
  query: SELECT name FROM users WHERE active = @active ORDER BY id
  parameters:
    active: BOOLEAN

- name: totals
  query: SELECT count(*) AS total FROM users

- name: broken
  query: SELECT * FROM missing_table
"""


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def queries_file(temp_dir):
    """Create a queries file covering every parameter type."""
    path = temp_dir / "queries.yaml"
    path.write_text(QUERIES_YAML)
    return path


@pytest.fixture
def registry(queries_file):
    """Registry loaded from the test queries file."""
    return load_queries(queries_file)


@pytest.fixture
async def engine():
    """In-memory DuckDB engine with a populated users table."""
    engine = await create_engine("duckdb")

    engine.connection.execute("""
        CREATE TABLE users (
            id INTEGER PRIMARY KEY,
            name VARCHAR NOT NULL,
            age INTEGER,
            active BOOLEAN,
            score DOUBLE,
            joined DATE
        )
    """)
    engine.connection.execute("""
        INSERT INTO users VALUES
            (1, 'alpha', 30, true, 1.5, DATE '2024-01-02'),
            (2, 'bravo', 25, false, NULL, DATE '2024-02-03'),
            (3, 'charlie', 35, true, 2.25, NULL)
    """)

    yield engine

    await engine.close()


@pytest.fixture
def log_messages():
    """Capture querygate log messages."""
    messages = []
    logger.enable("querygate")
    handler_id = logger.add(messages.append, level="DEBUG", format="{level} {message}")
    yield messages
    logger.remove(handler_id)
    logger.disable("querygate")


class FakeEngine(QueryEngine):
    """Engine returning canned results and recording every call."""

    dialect = "fake"

    def __init__(self, schema=(), rows=(), error=None):
        self.schema = list(schema)
        self.rows = list(rows)
        self.error = error
        self.calls = []
        self.closed = False

    async def execute(self, query, bindings):
        self.calls.append((query.name, list(bindings)))
        if self.error is not None:
            raise self.error

        batches = [self.rows]

        def fetch():
            return batches.pop() if batches else []

        return ResultSet(self.schema, fetch)

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_engine():
    """Factory for canned-result engines."""
    return FakeEngine
