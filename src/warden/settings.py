"""Load sandbox configuration from YAML files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from warden.errors import ConfigError
from warden.models import SandboxConfig


def load_config(path: str | Path) -> SandboxConfig:
    """Read a YAML file, interpolate env vars, and validate.

    Environment variables in the form ``${VAR}`` or ``$VAR`` are expanded
    using :func:`os.path.expandvars` before YAML parsing.  The settings may
    sit at the top level or under a ``sandbox:`` key.  An empty file gives
    the default configuration.

    Raises:
        ConfigError: On read errors, YAML parse errors or validation failures.
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc

    expanded = os.path.expandvars(raw)

    try:
        data: Any = yaml.safe_load(expanded)
    except yaml.YAMLError as exc:
        raise ConfigError(f"YAML parse error: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("Sandbox config YAML must be a mapping")

    if "sandbox" in data:
        data = data["sandbox"] or {}
        if not isinstance(data, dict):
            raise ConfigError("'sandbox' must be a mapping")

    try:
        return SandboxConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


def apply_overrides(config: SandboxConfig, **values: Any) -> SandboxConfig:
    """Return a copy of *config* with every non-``None`` value replaced.

    Raises:
        ConfigError: If the merged settings do not validate.
    """
    updates = {key: value for key, value in values.items() if value is not None}
    if not updates:
        return config

    unknown = sorted(set(updates) - set(SandboxConfig.model_fields))
    if unknown:
        raise ConfigError(f"unknown setting(s): {', '.join(unknown)}")

    try:
        return SandboxConfig.model_validate({**config.model_dump(), **updates})
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
