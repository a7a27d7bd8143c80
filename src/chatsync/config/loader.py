"""Configuration loader with environment variable expansion."""

import os
import re
from pathlib import Path
from typing import Any

import yaml

from chatsync.config.models import AppConfig

# Matches a whole value of the form ${VAR_NAME} or ${VAR_NAME:-default}
ENV_VAR_PATTERN = re.compile(r"^\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-(.*))?\}$")


class ConfigError(Exception):
    """Base exception for configuration errors."""


class ConfigFileNotFoundError(ConfigError):
    """Raised when the configuration file is not found."""


class ConfigParseError(ConfigError):
    """Raised when the YAML file or an override cannot be parsed."""


class EnvVarNotFoundError(ConfigError):
    """Raised when an environment variable is not found and has no default."""


def expand_env_vars(data: Any) -> Any:
    """Expand environment variables in the configuration data.

    Only complete string values are expanded: ``${VAR}`` or
    ``${VAR:-default}``. Partial matches like "prefix${VAR}suffix" are kept
    as they are.

    Args:
        data: Configuration data (dict, list, or scalar value).

    Returns:
        Data with environment variables expanded.

    Raises:
        EnvVarNotFoundError: If a variable is undefined and has no default.
    """
    if isinstance(data, dict):
        return {key: expand_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [expand_env_vars(item) for item in data]
    if isinstance(data, str):
        match = ENV_VAR_PATTERN.match(data)
        if not match:
            return data
        var_name, default = match.group(1), match.group(2)
        value = os.environ.get(var_name)
        if value is not None:
            return value
        if default is not None:
            return default
        raise EnvVarNotFoundError(f"Environment variable '{var_name}' not found")
    return data


def apply_overrides(data: dict[str, Any], overrides: list[str]) -> dict[str, Any]:
    """Apply dotted ``section.key=value`` overrides to raw configuration.

    Values are parsed as YAML scalars, so ``vectorization.min_threshold=5``
    yields an integer.

    Args:
        data: Raw configuration mapping. Not modified.
        overrides: Override expressions.

    Returns:
        A new mapping with the overrides applied.

    Raises:
        ConfigParseError: If an override is not of the form ``key=value``.
    """
    result: dict[str, Any] = dict(data)
    for override in overrides:
        path, sep, raw_value = override.partition("=")
        if not sep or not path:
            raise ConfigParseError(f"Invalid override (expected key=value): {override}")
        try:
            value = yaml.safe_load(raw_value)
        except yaml.YAMLError as e:
            raise ConfigParseError(f"Invalid override value: {override}") from e

        keys = path.split(".")
        node = result
        for key in keys[:-1]:
            child = node.get(key)
            child = dict(child) if isinstance(child, dict) else {}
            node[key] = child
            node = child
        node[keys[-1]] = value
    return result


def load_config(path: Path, overrides: list[str] | None = None) -> AppConfig:
    """Load and validate configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
        overrides: Optional dotted ``key=value`` overrides applied after
            environment expansion.

    Returns:
        Validated AppConfig instance.

    Raises:
        ConfigFileNotFoundError: If the file does not exist.
        ConfigParseError: If the YAML cannot be parsed.
        EnvVarNotFoundError: If an environment variable is not defined.
        ValidationError: If the configuration fails Pydantic validation.
    """
    if not path.exists():
        raise ConfigFileNotFoundError(f"Configuration file not found: {path}")

    try:
        with open(path) as f:
            raw_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Failed to parse YAML: {e}") from e

    if raw_data is None:
        raw_data = {}
    if not isinstance(raw_data, dict):
        raise ConfigParseError("Configuration root must be a mapping")

    expanded_data = expand_env_vars(raw_data)
    if overrides:
        expanded_data = apply_overrides(expanded_data, overrides)
    return AppConfig(**expanded_data)
