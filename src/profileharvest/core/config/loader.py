"""
YAML configuration loading.

``configs/app.yaml`` holds application settings; run parameters come from
CLI options or a separate input file. String values may reference the
environment as ``${VAR}`` or ``${VAR:-default}``.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .models import AppConfig, RunConfig

DEFAULT_APP_CONFIG_PATH = Path("configs/app.yaml")

_ENV_REFERENCE = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


class ConfigError(Exception):
    """Settings could not be read or did not validate."""

    def __init__(self, message: str, path: Path | None = None, details: str | None = None):
        super().__init__(message)
        self.path = path
        self.details = details

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base}: {self.details}" if self.details else base


def _read_yaml(path: Path) -> dict[str, Any]:
    """Parse a YAML mapping; an empty file is an empty mapping.

    Raises:
        ConfigError: If the file is missing, unreadable or not YAML
    """
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}", path=path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}", path=path, details=str(e)) from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}", path=path, details=str(e)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping at the top of {path}", path=path)
    return data


def _substitute_env(value: Any) -> Any:
    """Replace environment references in every string, recursively."""
    if isinstance(value, str):
        return _ENV_REFERENCE.sub(
            lambda m: os.environ.get(m.group(1), m.group(2) or ""),
            value,
        )
    if isinstance(value, dict):
        return {key: _substitute_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_substitute_env(item) for item in value]
    return value


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    )


def load_app_config(path: Path | str | None = None, expand_env: bool = True) -> AppConfig:
    """Load ``app.yaml``; a missing file yields the defaults.

    Raises:
        ConfigError: If the file exists but is invalid
    """
    path = DEFAULT_APP_CONFIG_PATH if path is None else Path(path)
    if not path.exists():
        return AppConfig()

    data = _read_yaml(path)
    if expand_env:
        data = _substitute_env(data)

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid app configuration in {path}",
            path=path,
            details=_describe(e),
        ) from e


def build_run_config(**values: Any) -> RunConfig:
    """Validate run parameters before any work starts.

    Raises:
        ConfigError: If a parameter is missing or out of range
    """
    try:
        return RunConfig.model_validate(values)
    except ValidationError as e:
        raise ConfigError("Invalid run configuration", details=_describe(e)) from e


def load_run_config(path: Path | str) -> RunConfig:
    """Read run parameters from a YAML input file."""
    return build_run_config(**_substitute_env(_read_yaml(Path(path))))
