"""Exception hierarchy for querygate.

Every exception carries the HTTP status code the ASGI layer answers with,
so the dispatch path can raise and let the surface translate.

Exception Hierarchy:
    QueryGateError: Base exception for all querygate errors
    ├── ConfigurationError: Invalid query file, settings or engine config
    ├── UnknownQueryError: Requested query name is not registered (404)
    ├── InvalidParameterError: A parameter failed to parse (400)
    ├── EngineExecutionError: The query engine rejected or failed the query
    └── ProjectionError: A result value did not match its column type

Example:
    >>> try:
    ...     bindings = bind(query.parameters, {"id": ["abc"]})
    ... except InvalidParameterError as e:
    ...     print(f"{e.name}: {e.reason}")
"""

from __future__ import annotations

from typing import Any


class QueryGateError(Exception):
    """Base exception for all querygate errors."""

    status_code = 500


class ConfigurationError(QueryGateError):
    """Raised when the query registry, settings or engine config is invalid."""

    pass


class UnknownQueryError(QueryGateError):
    """Raised when no query is registered under the requested name."""

    status_code = 404

    def __init__(self, name: str):
        super().__init__(f"Unknown query: {name!r}")
        self.name = name


class InvalidParameterError(QueryGateError):
    """Raised when a declared parameter's raw value cannot be parsed.

    Binding stops at the first failure, so no engine call is made with a
    partial parameter set.
    """

    status_code = 400

    def __init__(self, name: str, reason: str):
        super().__init__(f"Invalid value for parameter {name!r}: {reason}")
        self.name = name
        self.reason = reason


class EngineExecutionError(QueryGateError):
    """Raised when the query engine fails to execute or read a query."""

    def __init__(
        self,
        message: str,
        query: str | None = None,
        params: list[Any] | dict[str, Any] | None = None,
    ):
        """Initialize engine error.

        Args:
            message: Error message
            query: The SQL text that failed
            params: Parameters submitted with it
        """
        super().__init__(message)
        self.query = query
        self.params = params


class ProjectionError(QueryGateError):
    """Raised when a result value does not match its declared column type."""

    def __init__(self, column: str, expected: Any, value: Any, reason: str | None = None):
        detail = reason or f"got {type(value).__name__} {value!r}"
        super().__init__(f"Column {column!r} declared {expected}: {detail}")
        self.column = column
        self.expected = expected
        self.value = value
