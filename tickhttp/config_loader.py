"""Config Loader - Loads runtime configuration.

Handles loading YAML config files with environment variable substitution,
looking up named endpoints, and resolving the trust bundle path against the
host's data directory.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from tickhttp.models import EndpointConfig, RuntimeConfig


# ${NAME} placeholders; NAME runs to the first closing brace
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


class ConfigError(Exception):
    """Raised when configuration loading fails."""


def load_runtime_config(config_path: Path) -> RuntimeConfig:
    """Load a RuntimeConfig from a YAML file.

    ${ENV_VAR} placeholders in any string value are expanded before
    validation.

    Raises:
        ConfigError: If the file is missing, is not a YAML mapping, names an
                     unset environment variable, or fails validation.
    """
    try:
        text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if not isinstance(document, dict):
        raise ConfigError("Config file must be a YAML mapping")

    try:
        return RuntimeConfig.model_validate(_expand_env_vars(document))
    except ValidationError as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def get_endpoint(config: RuntimeConfig, name: str) -> EndpointConfig:
    """Return the named endpoint's config."""
    if name not in config.endpoints:
        available = ", ".join(config.endpoints.keys()) or "(none)"
        raise ConfigError(f"Endpoint '{name}' not found in config. Available: {available}")
    return config.endpoints[name]


def resolve_ca_bundle(data_dir: str | Path, ca_bundle: str | Path) -> str:
    """Join ca_bundle onto data_dir. Absolute paths pass through."""
    bundle_path = Path(ca_bundle)
    if bundle_path.is_absolute():
        return str(bundle_path)
    return str(Path(data_dir) / bundle_path)


def _expand_env_vars(node: Any) -> Any:
    """Expand ${ENV_VAR} in every string of a parsed YAML document."""
    if isinstance(node, dict):
        return {key: _expand_env_vars(value) for key, value in node.items()}
    if isinstance(node, list):
        return [_expand_env_vars(value) for value in node]
    if isinstance(node, str):
        return ENV_VAR_PATTERN.sub(_lookup_env_var, node)
    return node


def _lookup_env_var(match: re.Match) -> str:
    name = match.group(1)
    try:
        return os.environ[name]
    except KeyError:
        raise ConfigError(f"Environment variable '{name}' is not set") from None
