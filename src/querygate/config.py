"""Server settings and configuration file handling.

Settings are layered, later sources overriding earlier ones:

1. ``ServerSettings`` defaults
2. An optional settings file (YAML or JSON mapping)
3. ``QUERYGATE_*`` environment variables
4. Explicit overrides (command line flags)
"""

from __future__ import annotations

import dataclasses
import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar, get_type_hints

import yaml

from querygate.errors import ConfigurationError

T = TypeVar("T")

ENV_PREFIX = "QUERYGATE_"

ENGINES = ("duckdb", "bigquery")


@dataclass
class ServerSettings:
    """Settings for serving a query registry over HTTP."""

    queries: str = "queries.yaml"
    url_path: str = "/"
    host: str = "0.0.0.0"
    port: int = 8080
    engine: str = "duckdb"
    database: str = ":memory:"
    project: str = ""
    read_only: bool = False
    fetch_size: int = 1000
    log_level: str = "INFO"

    def validate(self) -> ServerSettings:
        """Check and normalize settings in place.

        Returns:
            The same settings object

        Raises:
            ConfigurationError: A setting is out of range or inconsistent
        """
        self.url_path = "/" + self.url_path.strip("/") + "/" if self.url_path.strip("/") else "/"
        self.engine = self.engine.lower()
        self.log_level = self.log_level.upper()

        if not 0 < self.port < 65536:
            raise ConfigurationError(f"Port must be between 1 and 65535, got {self.port}")
        if self.fetch_size < 1:
            raise ConfigurationError(f"fetch_size must be positive, got {self.fetch_size}")
        if self.engine not in ENGINES:
            raise ConfigurationError(
                f"Unsupported engine: {self.engine}. Supported: {', '.join(ENGINES)}"
            )
        if self.engine == "bigquery" and not self.project:
            raise ConfigurationError("Empty project flag.")
        return self

    def engine_config(self) -> dict[str, Any]:
        """Keyword arguments for ``create_engine``."""
        if self.engine == "bigquery":
            return {"project": self.project, "fetch_size": self.fetch_size}
        return {
            "database": self.database,
            "read_only": self.read_only,
            "fetch_size": self.fetch_size,
        }


def load_settings(
    config_file: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ServerSettings:
    """Build validated settings from every configuration source.

    Args:
        config_file: Optional YAML or JSON settings file
        overrides: Explicit values; None entries are ignored
        environ: Environment to read (defaults to ``os.environ``)

    Returns:
        Validated server settings

    Raises:
        ConfigurationError: A source is unreadable or a value is invalid
    """
    data: dict[str, Any] = {}

    if config_file is not None:
        document = read_document(Path(config_file), what="Settings file") or {}
        if not isinstance(document, Mapping):
            raise ConfigurationError(f"{config_file}: expected a mapping of settings")
        data = merge_configs(data, dict(document))

    data = merge_configs(data, environment_settings(environ))

    if overrides:
        data = merge_configs(data, {k: v for k, v in overrides.items() if v is not None})

    return create_dataclass_from_dict(ServerSettings, data).validate()


def environment_settings(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Collect ``QUERYGATE_*`` variables as lower-case setting names."""
    if environ is None:
        environ = os.environ

    known = {f.name for f in dataclasses.fields(ServerSettings)}
    settings = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX):].lower()
        if name in known:
            settings[name] = value
    return settings


def read_document(path: Path, what: str = "Configuration file") -> Any:
    """Read and decode a YAML or JSON file.

    Args:
        path: File to read; the format is taken from its extension
        what: Description used in error messages

    Raises:
        ConfigurationError: The file is missing, of unknown format or unparsable
    """
    if not path.exists():
        raise ConfigurationError(f"{what} not found: {path}")

    suffix = path.suffix.lower()
    if suffix not in (".json", ".yaml", ".yml"):
        raise ConfigurationError(f"Unknown file format for {path}")

    content = path.read_text(encoding="utf-8")
    try:
        if suffix == ".json":
            return json.loads(content)
        return yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot parse {path}: {e}") from e


def convert_value(value: Any, target_type: type[T], path: str = "") -> T:
    """Convert a raw setting to the field's type.

    Raises:
        ConfigurationError: If conversion fails
    """
    if value is None:
        return None

    if isinstance(value, target_type) and not (target_type is int and isinstance(value, bool)):
        return value

    try:
        if target_type is bool:
            if isinstance(value, str):
                normalized = value.strip().lower()
                if normalized in ("true", "yes", "1", "on"):
                    return True
                if normalized in ("false", "no", "0", "off", ""):
                    return False
                raise ValueError(f"not a boolean: {value!r}")
            return bool(value)

        elif target_type is int:
            if isinstance(value, (bool, float)):
                raise ValueError(f"not an integer: {value!r}")
            return int(value)

        elif target_type is str:
            if isinstance(value, (dict, list)):
                raise ValueError(f"not a string: {value!r}")
            return str(value)

        return target_type(value)

    except (ValueError, TypeError) as e:
        raise ConfigurationError(
            f"Cannot convert {value!r} to {target_type.__name__} at {path}: {e}"
        ) from e


def create_dataclass_from_dict(dataclass_type: type[T], data: Mapping[str, Any]) -> T:
    """Create a dataclass instance from a dictionary.

    Raises:
        ConfigurationError: Unknown keys or unconvertible values
    """
    type_hints = get_type_hints(dataclass_type)
    fields = {f.name: f for f in dataclasses.fields(dataclass_type)}

    unknown = sorted(set(data) - set(fields))
    if unknown:
        raise ConfigurationError(f"Unknown settings: {', '.join(unknown)}")

    # None means unset; the field default applies
    kwargs = {
        name: convert_value(value, type_hints.get(name, fields[name].type), name)
        for name, value in data.items()
        if value is not None
    }
    return dataclass_type(**kwargs)


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two configuration dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result
