"""Config Loader - Loads endpoint configuration from YAML.

Supports ${ENV_VAR} substitution in any string value. A file holds either a
single endpoint at the top level:

    url: https://api.example.com/speech
    proxy_host: proxy.local
    proxy_port: 8080

or several named endpoints:

    endpoints:
      production:
        url: https://api.example.com/speech
      sandbox:
        url: https://sandbox.example.com/speech
        trust_all_certs: true
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from rest_client.models import EndpointConfig

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


class ConfigError(Exception):
    """Raised when configuration loading fails."""


def load_endpoint_config(config_path: Path, name: str | None = None) -> EndpointConfig:
    """Load one endpoint configuration from YAML with ${ENV_VAR} substitution.

    Args:
        config_path: YAML file to read.
        name: Endpoint name when the file has an `endpoints` mapping. May be
            omitted if the mapping holds exactly one endpoint.
    """
    raw_config = _read_yaml(config_path)

    if "endpoints" in raw_config:
        raw_endpoint = _select_endpoint(raw_config["endpoints"], name)
    elif name is not None:
        raise ConfigError(f"Endpoint '{name}' requested but config has no 'endpoints' mapping")
    else:
        raw_endpoint = raw_config

    raw_endpoint = _substitute_env_vars(raw_endpoint)

    try:
        config = EndpointConfig.model_validate(raw_endpoint)
    except ValidationError as e:
        raise ConfigError(f"Invalid endpoint config: {e}") from e

    _warn_if_trust_all(config)
    return config


def load_endpoint_configs(config_path: Path) -> dict[str, EndpointConfig]:
    """Load every endpoint from an `endpoints` mapping."""
    raw_config = _read_yaml(config_path)
    endpoints = raw_config.get("endpoints")
    if not isinstance(endpoints, dict):
        raise ConfigError("Config file must contain an 'endpoints' mapping")

    configs: dict[str, EndpointConfig] = {}
    for endpoint_name, raw_endpoint in endpoints.items():
        try:
            configs[endpoint_name] = EndpointConfig.model_validate(
                _substitute_env_vars(raw_endpoint)
            )
        except ValidationError as e:
            raise ConfigError(f"Invalid config for endpoint '{endpoint_name}': {e}") from e
        _warn_if_trust_all(configs[endpoint_name])
    return configs


def _warn_if_trust_all(config: EndpointConfig) -> None:
    if config.trust_all_certs:
        logger.warning(
            "Certificate verification disabled for %s (trust_all_certs=true)", config.url
        )


def _read_yaml(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")
    return raw_config


def _select_endpoint(endpoints: Any, name: str | None) -> Any:
    if not isinstance(endpoints, dict) or not endpoints:
        raise ConfigError("'endpoints' must be a non-empty mapping")

    if name is None:
        if len(endpoints) != 1:
            available = ", ".join(endpoints.keys())
            raise ConfigError(f"Multiple endpoints defined; choose one of: {available}")
        return next(iter(endpoints.values()))

    if name not in endpoints:
        available = ", ".join(endpoints.keys())
        raise ConfigError(f"Endpoint '{name}' not found in config. Available: {available}")
    return endpoints[name]


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return _ENV_VAR_PATTERN.sub(replacer, s)
