"""Query definitions and the read-only registry they are served from."""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from loguru import logger

from querygate.config import read_document
from querygate.errors import ConfigurationError, UnknownQueryError
from querygate.types import ScalarType

# Quoted literals and identifiers are consumed whole so an @ inside them is
# text; group 1 is set only for @param_name (never @@system_variables)
PLACEHOLDER_PATTERN = re.compile(
    r"'(?:[^'\\]|\\.|'')*'"
    r'|"(?:[^"\\]|\\.|"")*"'
    r"|`[^`]*`"
    r"|(?<![@\w])@([a-zA-Z_][a-zA-Z0-9_]*)\b"
)


@dataclass(frozen=True)
class QueryDefinition:
    """A named SQL query with typed parameter declarations.

    Examples:
        >>> QueryDefinition(
        ...     name="param",
        ...     sql="SELECT * FROM UNNEST([(@name, @id)]);",
        ...     parameters={"name": ScalarType.STRING, "id": ScalarType.FLOAT},
        ... )
    """

    name: str
    sql: str
    parameters: Mapping[str, ScalarType] = field(default_factory=dict)

    def __post_init__(self):
        """Freeze the parameter mapping."""
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))

    @property
    def placeholders(self) -> list[str]:
        """Placeholder names in the SQL, in order of first appearance."""
        names: list[str] = []
        for match in PLACEHOLDER_PATTERN.finditer(self.sql):
            name = match.group(1)
            if name and name not in names:
                names.append(name)
        return names

    @property
    def unused_parameters(self) -> list[str]:
        """Declared parameters the SQL never references."""
        referenced = set(self.placeholders)
        return sorted(name for name in self.parameters if name not in referenced)

    @property
    def undeclared_placeholders(self) -> list[str]:
        """Placeholders the SQL references without a declaration."""
        return [name for name in self.placeholders if name not in self.parameters]

    def __repr__(self) -> str:
        preview = self.sql[:50] + "..." if len(self.sql) > 50 else self.sql
        return f"QueryDefinition(name={self.name!r}, sql={preview!r})"


class QueryRegistry(Mapping[str, QueryDefinition]):
    """Immutable mapping of query name to definition.

    Built once at startup and shared read-only by every request.
    """

    def __init__(self, definitions: Iterable[QueryDefinition] = ()):
        """Build the registry.

        Args:
            definitions: Query definitions; a later duplicate name replaces
                an earlier one
        """
        queries: dict[str, QueryDefinition] = {}
        for definition in definitions:
            if definition.name in queries:
                logger.warning(f"Duplicate query name {definition.name!r}; last definition wins")
            queries[definition.name] = definition
        self._queries = MappingProxyType(queries)

    def __getitem__(self, name: str) -> QueryDefinition:
        return self._queries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._queries)

    def __len__(self) -> int:
        return len(self._queries)

    def lookup(self, name: str) -> QueryDefinition:
        """Get a query by name.

        Raises:
            UnknownQueryError: No query is registered under the name
        """
        try:
            return self._queries[name]
        except KeyError:
            raise UnknownQueryError(name) from None

    def __repr__(self) -> str:
        return f"QueryRegistry({sorted(self._queries)!r})"


def load_queries(path: str | Path) -> QueryRegistry:
    """Load query definitions from a YAML or JSON file.

    The document is a list of records::

        - name: param
          query: SELECT * FROM UNNEST([(@name, @id)]);
          parameters:
            name: STRING
            id: FLOAT

    Args:
        path: Path to the queries file

    Returns:
        Registry of the loaded queries

    Raises:
        ConfigurationError: The file is missing, unparsable or malformed
    """
    path = Path(path)
    records = read_document(path, what="Queries file")
    if records is None:
        records = []
    if not isinstance(records, list):
        raise ConfigurationError(
            f"{path}: expected a list of queries, got {type(records).__name__}"
        )

    definitions = [parse_definition(record, f"{path}[{i}]") for i, record in enumerate(records)]
    registry = QueryRegistry(definitions)
    logger.info(f"Loaded {len(registry)} queries from {path}")
    return registry


def parse_definition(record: Any, where: str = "query") -> QueryDefinition:
    """Build a QueryDefinition from one decoded config record.

    Args:
        record: Mapping with ``name``, ``query`` (or ``sql``) and ``parameters``
        where: Location used in error messages

    Raises:
        ConfigurationError: The record is malformed
    """
    if not isinstance(record, Mapping):
        raise ConfigurationError(f"{where}: expected a mapping, got {type(record).__name__}")

    name = record.get("name")
    if not isinstance(name, str) or not name:
        raise ConfigurationError(f"{where}: 'name' is required")

    sql = record.get("query", record.get("sql"))
    if not isinstance(sql, str) or not sql.strip():
        raise ConfigurationError(f"{where}: query {name!r} has no 'query' text")

    raw_parameters = record.get("parameters") or {}
    if not isinstance(raw_parameters, Mapping):
        raise ConfigurationError(
            f"{where}: 'parameters' of query {name!r} must be a mapping of name to type"
        )

    parameters = {}
    for param_name, type_name in raw_parameters.items():
        scalar = ScalarType.from_name(type_name)
        if scalar is None:
            logger.warning(
                f"Query {name!r}: unknown type {type_name!r} for parameter "
                f"{param_name!r}, treating it as STRING"
            )
            scalar = ScalarType.STRING
        parameters[str(param_name)] = scalar

    definition = QueryDefinition(name=name, sql=sql.strip(), parameters=parameters)
    if definition.unused_parameters:
        logger.warning(
            f"Query {name!r}: declared parameters never used by the SQL: "
            f"{', '.join(definition.unused_parameters)}"
        )
    if definition.undeclared_placeholders:
        logger.warning(
            f"Query {name!r}: placeholders without a declared type: "
            f"{', '.join(definition.undeclared_placeholders)}"
        )
    return definition
