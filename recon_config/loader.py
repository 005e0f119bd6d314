"""
Configuration Loader (``recon_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into the typed
``recon_config.schema`` dataclasses.  Runtime callers go through
``recon_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong value types or unknown keys  -> ``ValueError``.
"""

from __future__ import annotations

from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from recon_config.schema import (
    BatchSettings,
    DatabaseSettings,
    ErpSettings,
    JobSettings,
    ReconConfig,
    TreasurySettings,
)

_SECTIONS: dict[str, type] = {
    "batch": BatchSettings,
    "erp": ErpSettings,
    "jobs": JobSettings,
    "treasury": TreasurySettings,
    "database": DatabaseSettings,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _coerce(section: str, name: str, default: Any, value: Any) -> Any:
    """Coerce a YAML scalar to the type of the dataclass default."""
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ValueError(f"{section}.{name} must be a boolean, got {value!r}")
        return value
    if isinstance(default, Decimal):
        try:
            return Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"{section}.{name} must be a number, got {value!r}") from None
    if isinstance(default, tuple):
        if not isinstance(value, list):
            raise ValueError(f"{section}.{name} must be a list, got {value!r}")
        return tuple(str(v) for v in value)
    if isinstance(default, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{section}.{name} must be a number, got {value!r}")
        return float(value)
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{section}.{name} must be an integer, got {value!r}")
        return value
    if not isinstance(value, str):
        raise ValueError(f"{section}.{name} must be a string, got {value!r}")
    return value


def parse_section(section: str, data: dict[str, Any] | None) -> Any:
    """Build one settings dataclass, keeping defaults for absent keys."""
    cls = _SECTIONS[section]
    defaults = cls()
    if not data:
        return defaults
    if not isinstance(data, dict):
        raise ValueError(f"Section '{section}' must be a mapping")

    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown keys in section '{section}': {sorted(unknown)}")

    kwargs = {
        name: _coerce(section, name, getattr(defaults, name), value)
        for name, value in data.items()
    }
    return cls(**kwargs)


def parse_config(data: dict[str, Any], source: str | None = None) -> ReconConfig:
    """Assemble a ``ReconConfig`` from a parsed YAML mapping."""
    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")
    sections = {name: parse_section(name, data.get(name)) for name in _SECTIONS}
    return ReconConfig(source=source, **sections)


def load_config_file(path: Path) -> ReconConfig:
    return parse_config(load_yaml_file(path), source=str(path))
