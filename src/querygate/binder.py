"""Parameter binding: query-string text to typed query parameters."""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from typing import Any, Callable

from querygate.errors import InvalidParameterError
from querygate.types import INT64_MAX, INT64_MIN, ParameterBinding, RawValues, ScalarType

_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")
_FLOAT_SPECIALS = frozenset({"inf", "+inf", "-inf", "infinity", "+infinity", "-infinity", "nan"})


def bind(param_types: Mapping[str, Any], raw_values: RawValues) -> list[ParameterBinding]:
    """Convert raw request values into typed parameter bindings.

    Every declared parameter produces exactly one binding, sorted by name.
    Values supplied for undeclared names are ignored. When a name was given
    several times, the first value wins.

    Args:
        param_types: Declared parameter name to ScalarType (or type name)
        raw_values: Parameter name to the raw string value(s) from the request

    Returns:
        Bindings sorted by parameter name

    Raises:
        InvalidParameterError: An INTEGER or FLOAT value failed to parse

    Examples:
        >>> bind({"name": ScalarType.STRING, "id": ScalarType.FLOAT},
        ...      {"name": ["bravo"], "id": ["1.5"]})
        [ParameterBinding(name='id', value=1.5), ParameterBinding(name='name', value='bravo')]
    """
    bindings = []
    for name in sorted(param_types):
        scalar = ScalarType.from_name(param_types[name]) or ScalarType.STRING
        raw = _first_value(raw_values, name)
        bindings.append(ParameterBinding(name, _CONVERTERS[scalar](name, raw)))
    return bindings


def _first_value(raw_values: RawValues, name: str) -> str:
    """Return the first raw value for a name, empty string when absent."""
    values = raw_values.get(name)
    if values is None:
        return ""
    if isinstance(values, str):
        return values
    for value in values:
        return value
    return ""


def _parse_integer(name: str, raw: str) -> int:
    if not raw:
        raise InvalidParameterError(name, "empty value is not an integer")
    if not _INTEGER_PATTERN.fullmatch(raw):
        raise InvalidParameterError(name, f"{raw!r} is not a base-10 integer")
    value = int(raw)
    if not INT64_MIN <= value <= INT64_MAX:
        raise InvalidParameterError(name, f"{raw!r} is out of the 64-bit integer range")
    return value


def _parse_float(name: str, raw: str) -> float:
    if not raw:
        raise InvalidParameterError(name, "empty value is not a number")
    # float() tolerates padding and digit separators the wire format does not
    if raw != raw.strip() or "_" in raw:
        raise InvalidParameterError(name, f"{raw!r} is not a number")
    try:
        value = float(raw)
    except ValueError:
        raise InvalidParameterError(name, f"{raw!r} is not a number") from None
    if math.isinf(value) and raw.lower() not in _FLOAT_SPECIALS:
        raise InvalidParameterError(name, f"{raw!r} is out of the 64-bit float range")
    return value


def _parse_boolean(name: str, raw: str) -> bool:
    return raw == "true"


def _parse_string(name: str, raw: str) -> str:
    return raw


_CONVERTERS: dict[ScalarType, Callable[[str, str], Any]] = {
    ScalarType.INTEGER: _parse_integer,
    ScalarType.FLOAT: _parse_float,
    ScalarType.BOOLEAN: _parse_boolean,
    ScalarType.STRING: _parse_string,
}
