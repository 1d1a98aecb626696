"""Processor configuration files.

A configuration file lists plugins by import reference together with shared
settings, and resolves to a :class:`~unifold.plugins.Preset`::

    # unifold.toml
    plugins = [
        "my_package.parsing:markdown",
        { use = "my_package.lint:no_empty", options = { level = "warn" } },
        { use = "my_package.lint:slow_rule", enabled = false },
    ]

    [settings]
    bullet = "*"

JSON files (``.unifoldrc``) use the same structure.

This module is optional: the processor itself never touches the filesystem
and the top-level ``unifold`` package does not import it.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError
from .plugins import Preset, resolve_plugin

try:  # Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - fallback for older interpreters
    tomllib = None  # type: ignore

logger = logging.getLogger(__name__)

CONFIG_FILE_NAMES = ("unifold.toml", ".unifoldrc")


class PluginEntry(BaseModel):
    """One plugin line of a configuration file."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    reference: str = Field(..., alias="use", min_length=1)
    options: Any = None
    enabled: bool = True

    @field_validator("reference")
    @classmethod
    def _strip_reference(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("plugin reference cannot be blank")
        return value

    def to_pluggable(self) -> List[Any]:
        plugin = resolve_plugin(self.reference)
        if not self.enabled:
            return [plugin, False]
        if self.options is None:
            return [plugin]
        return [plugin, self.options]


class ProcessorConfig(BaseModel):
    """Validated contents of a configuration file."""

    model_config = ConfigDict(extra="forbid")

    plugins: List[PluginEntry] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("plugins", mode="before")
    @classmethod
    def _expand_shorthand(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        return [{"use": item} if isinstance(item, str) else item for item in value]

    def to_preset(self) -> Preset:
        return Preset(
            plugins=[entry.to_pluggable() for entry in self.plugins],
            settings=dict(self.settings) if self.settings else None,
        )


def _read_json_config(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _read_toml_config(path: Path) -> Dict[str, Any]:
    if tomllib is None:
        raise ConfigError("TOML configuration requires Python 3.11+", path=str(path))
    with path.open("rb") as handle:
        return tomllib.load(handle)


def locate_config_file(root: Union[str, Path], explicit: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """Return the configuration file to use for ``root``, if any."""

    if explicit:
        return Path(explicit)
    root = Path(root)
    for name in CONFIG_FILE_NAMES:
        candidate = root / name
        if candidate.exists():
            return candidate
    return None


def load_processor_config(path: Union[str, Path]) -> ProcessorConfig:
    """Read and validate the configuration file at ``path``."""

    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError("Configuration file not found", path=str(config_path))
    try:
        if config_path.suffix == ".toml":
            data = _read_toml_config(config_path)
        else:
            data = _read_json_config(config_path)
    except (OSError, ValueError) as exc:
        # json.JSONDecodeError and tomllib.TOMLDecodeError are ValueErrors
        raise ConfigError(f"Could not read configuration: {exc}", path=str(config_path)) from exc

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a table/object at the top level", path=str(config_path))
    try:
        config = ProcessorConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(
            f"Invalid configuration: {exc.error_count()} error(s)",
            path=str(config_path),
            hint=str(exc),
        ) from exc
    logger.debug("Loaded %d plugin entries from %s", len(config.plugins), config_path)
    return config


def load_preset(root: Union[str, Path], explicit: Optional[Union[str, Path]] = None) -> Optional[Preset]:
    """Locate, load and resolve the configuration for ``root``; ``None`` when absent."""

    config_path = locate_config_file(root, explicit)
    if config_path is None:
        return None
    return load_processor_config(config_path).to_preset()


__all__ = [
    "CONFIG_FILE_NAMES",
    "PluginEntry",
    "ProcessorConfig",
    "load_preset",
    "load_processor_config",
    "locate_config_file",
]
