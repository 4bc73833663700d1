"""Type definitions for querygate.

The scalar type vocabulary is shared by both directions of the coercion
layer: it decides how a query-string value is parsed into a parameter and
how an engine value is checked on its way back out as JSON.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any, NamedTuple, Union

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


class ScalarType(Enum):
    """Closed set of scalar kinds a parameter or column can declare."""

    INTEGER = "INTEGER"
    FLOAT = "FLOAT"
    BOOLEAN = "BOOLEAN"
    STRING = "STRING"

    @classmethod
    def from_name(cls, name: Any) -> ScalarType | None:
        """Resolve an engine or config type name.

        Args:
            name: A ScalarType, or a type name such as ``"INT64"`` or ``"varchar"``

        Returns:
            The matching ScalarType, None if the name is not a known scalar
        """
        if isinstance(name, ScalarType):
            return name
        if not isinstance(name, str):
            return None
        return _ALIASES.get(name.strip().upper())

    def __str__(self) -> str:
        return self.value


_ALIASES: dict[str, ScalarType] = {
    # Integers
    "INTEGER": ScalarType.INTEGER,
    "INT": ScalarType.INTEGER,
    "INT64": ScalarType.INTEGER,
    "BIGINT": ScalarType.INTEGER,
    "SMALLINT": ScalarType.INTEGER,
    "TINYINT": ScalarType.INTEGER,
    "HUGEINT": ScalarType.INTEGER,
    "UTINYINT": ScalarType.INTEGER,
    "USMALLINT": ScalarType.INTEGER,
    "UINTEGER": ScalarType.INTEGER,
    "UBIGINT": ScalarType.INTEGER,
    # Floats
    "FLOAT": ScalarType.FLOAT,
    "FLOAT64": ScalarType.FLOAT,
    "DOUBLE": ScalarType.FLOAT,
    "REAL": ScalarType.FLOAT,
    # Booleans
    "BOOLEAN": ScalarType.BOOLEAN,
    "BOOL": ScalarType.BOOLEAN,
    # Strings
    "STRING": ScalarType.STRING,
    "VARCHAR": ScalarType.STRING,
    "TEXT": ScalarType.STRING,
}


class ParameterBinding(NamedTuple):
    """A named, typed value ready to be submitted as a query parameter."""

    name: str
    value: Any


class Column(NamedTuple):
    """One entry of a result schema.

    ``type`` is a ScalarType, or the engine's own type name when the engine
    reports a type outside the scalar set.
    """

    name: str
    type: Union[ScalarType, str]


# Ordered column schema; plain (name, type) pairs are accepted as well
ColumnSchema = Sequence[Union[Column, tuple]]

# Engine row before projection
RawRow = Mapping[str, Any]

# JSON-safe row, keys in schema order
ProjectedRow = dict[str, Any]

# Raw query-string values keyed by parameter name
RawValues = Mapping[str, Union[Sequence[str], str]]
