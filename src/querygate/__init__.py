"""querygate - serve administrator-defined SQL queries as JSON over HTTP."""

from loguru import logger

__version__ = "0.1.0"

from querygate.asgi import QueryGateApp
from querygate.binder import bind
from querygate.config import ServerSettings, load_settings
from querygate.dispatch import QueryDispatcher
from querygate.engines import QueryEngine, ResultSet, create_engine
from querygate.errors import (
    ConfigurationError,
    EngineExecutionError,
    InvalidParameterError,
    ProjectionError,
    QueryGateError,
    UnknownQueryError,
)
from querygate.projector import project
from querygate.query import QueryDefinition, QueryRegistry, load_queries
from querygate.types import Column, ParameterBinding, ScalarType

__all__ = [
    # Core
    "bind",
    "project",
    "ScalarType",
    "ParameterBinding",
    "Column",
    # Queries
    "QueryDefinition",
    "QueryRegistry",
    "load_queries",
    # Serving
    "QueryDispatcher",
    "QueryGateApp",
    "QueryEngine",
    "ResultSet",
    "create_engine",
    # Settings
    "ServerSettings",
    "load_settings",
    # Exceptions
    "QueryGateError",
    "ConfigurationError",
    "UnknownQueryError",
    "InvalidParameterError",
    "EngineExecutionError",
    "ProjectionError",
]

# Disabled by default, users can enable with logger.enable("querygate")
logger.disable("querygate")
