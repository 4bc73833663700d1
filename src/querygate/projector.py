"""Row projection: typed engine rows to JSON-safe mappings."""

from __future__ import annotations

import math
from typing import Any, Callable

from querygate.errors import ProjectionError
from querygate.types import INT64_MAX, INT64_MIN, ColumnSchema, ProjectedRow, RawRow, ScalarType


def project(schema: ColumnSchema, row: RawRow) -> ProjectedRow:
    """Project one engine row onto its column schema.

    The result holds exactly the schema's columns, in schema order. Columns
    missing from the row, or null in it, project to None. Columns whose type
    is outside the scalar set pass their value through unchanged.

    Args:
        schema: Ordered (name, type) columns reported by the engine
        row: Column name to engine value

    Returns:
        Column name to JSON-safe value

    Raises:
        ProjectionError: A value does not match its declared column type
    """
    projected: ProjectedRow = {}
    for name, column_type in schema:
        value = row.get(name)
        if value is None:
            projected[name] = None
            continue

        scalar = ScalarType.from_name(column_type)
        if scalar is None:
            projected[name] = value
        else:
            projected[name] = _CHECKS[scalar](name, value)
    return projected


def _check_integer(name: str, value: Any) -> int:
    # bool is an int subclass; a boolean in an integer column is a mismatch
    if not isinstance(value, int) or isinstance(value, bool):
        raise ProjectionError(name, ScalarType.INTEGER, value)
    if not INT64_MIN <= value <= INT64_MAX:
        raise ProjectionError(
            name, ScalarType.INTEGER, value, reason=f"{value} is out of the 64-bit integer range"
        )
    return value


def _check_float(name: str, value: Any) -> float:
    if not isinstance(value, float):
        raise ProjectionError(name, ScalarType.FLOAT, value)
    if not math.isfinite(value):
        raise ProjectionError(
            name, ScalarType.FLOAT, value, reason=f"{value} is not representable in JSON"
        )
    return value


def _check_boolean(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ProjectionError(name, ScalarType.BOOLEAN, value)
    return value


def _check_string(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ProjectionError(name, ScalarType.STRING, value)
    return value


_CHECKS: dict[ScalarType, Callable[[str, Any], Any]] = {
    ScalarType.INTEGER: _check_integer,
    ScalarType.FLOAT: _check_float,
    ScalarType.BOOLEAN: _check_boolean,
    ScalarType.STRING: _check_string,
}
