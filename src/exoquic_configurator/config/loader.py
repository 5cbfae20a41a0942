"""Build a ConfiguratorConfig from packaged defaults, YAML and the environment."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import ValidationError

from exoquic_configurator.config.models import ConfiguratorConfig
from exoquic_configurator.errors import ConfigError

DEFAULTS_FILE = Path(__file__).parent / "defaults" / "configurator.yaml"

# Matches ${VAR} or ${VAR:-default}
_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::-((?:[^}\\]|\\.)*))?}")


def _resolve_env_str(value: str, environ: Mapping[str, str]) -> str:
    """Replace all ${VAR} / ${VAR:-default} references in a string.

    As in the shell, ``${VAR:-default}`` also falls back when VAR is empty.
    """

    def _replace(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2)
        env_val = environ.get(var_name)
        if default is not None:
            return env_val if env_val else default.replace("\\}", "}")
        if env_val is not None:
            return env_val
        msg = f"Environment variable '{var_name}' is not set and no default provided"
        raise ConfigError(msg)

    return _ENV_PATTERN.sub(_replace, value)


def resolve_env_vars(data: Any, environ: Mapping[str, str] | None = None) -> Any:
    """Recursively resolve ${VAR} and ${VAR:-default} in parsed YAML data."""
    env = os.environ if environ is None else environ
    if isinstance(data, str):
        return _resolve_env_str(data, env)
    if isinstance(data, dict):
        return {k: resolve_env_vars(v, env) for k, v in data.items()}
    if isinstance(data, list):
        return [resolve_env_vars(item, env) for item in data]
    return data


def merge_configs(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge *overrides* into a copy of *base*."""
    merged: dict[str, Any] = {**base}
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_configs(current, value)
        else:
            merged[key] = value
    return merged


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML mapping from *path* without resolving variables."""
    p = Path(path)
    if not p.exists():
        msg = f"Config file not found: {p}"
        raise ConfigError(msg)
    try:
        with p.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        msg = f"Failed to parse YAML in {p}"
        mark = getattr(exc, "problem_mark", None)
        if mark is not None:
            msg += f" at line {mark.line + 1}, column {mark.column + 1}"
        msg += f": {exc}"
        raise ConfigError(msg) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping at top level in {p}, got {type(data).__name__}"
        raise ConfigError(msg)
    return cast(dict[str, Any], data)


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        msg = str(err["msg"]).removeprefix("Value error, ")
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ConfiguratorConfig:
    """Load the packaged defaults, merge an optional YAML file, then validate.

    Both layers are interpolated against *environ* (``os.environ`` if omitted).
    Raises ConfigError when a required value is missing or invalid.
    """
    env = os.environ if environ is None else environ
    data = load_yaml(DEFAULTS_FILE)
    if path is not None:
        data = merge_configs(data, load_yaml(path))
    resolved = resolve_env_vars(data, env)
    try:
        return ConfiguratorConfig.model_validate(resolved)
    except ValidationError as exc:
        raise ConfigError(_format_validation_error(exc)) from exc
