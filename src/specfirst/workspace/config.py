"""Workspace configuration loader (``.specfirst/config.yaml``)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from specfirst.errors import ConfigError

DEFAULT_PROTOCOL = "multi-stage"
PROTOCOL_ENV = "SPECFIRST_PROTOCOL"


@dataclass(frozen=True)
class Config:
    """Project configuration."""

    project_name: str = ""
    protocol: str = ""
    language: str = ""
    framework: str = ""
    custom_vars: dict[str, str] = field(default_factory=dict)
    constraints: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        """Parse and validate a config mapping."""
        custom_vars = data.get("custom_vars") or {}
        constraints = data.get("constraints") or {}
        if not isinstance(custom_vars, dict):
            raise ValueError("'custom_vars' must be a mapping")
        if not isinstance(constraints, dict):
            raise ValueError("'constraints' must be a mapping")

        return cls(
            project_name=str(data.get("project_name") or ""),
            protocol=str(data.get("protocol") or "").strip(),
            language=str(data.get("language") or ""),
            framework=str(data.get("framework") or ""),
            custom_vars={str(k): str(v) for k, v in custom_vars.items()},
            constraints={str(k): str(v) for k, v in constraints.items()},
        )


def load_config(config_path: Path) -> Config:
    """Load config.yaml; a missing or empty file yields defaults.

    Raises:
        ConfigError: If the file is malformed or has an invalid structure.
    """
    if not config_path.exists():
        return Config()

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Malformed YAML config at {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config at {config_path}: {e}") from e

    if data is None:
        return Config()
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config structure in {config_path}: expected a mapping")

    try:
        return Config.from_dict(data)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid config structure in {config_path}: {e}") from e


def resolve_active_protocol(config: Config, override: str | None = None) -> str:
    """Pick the active protocol: CLI override, then environment, then config."""
    if override:
        return override
    env_value = os.getenv(PROTOCOL_ENV, "").strip()
    if env_value:
        return env_value
    if config.protocol:
        return config.protocol
    return DEFAULT_PROTOCOL
