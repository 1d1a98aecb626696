"""Plugin references, presets and entry point discovery."""

from __future__ import annotations

import importlib
import importlib.metadata
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol, Tuple

from .errors import PluginLoadError

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "unifold.plugins"


class Plugin(Protocol):
    """A plugin receives the processor being frozen plus its stored options."""

    def __call__(self, processor: Any, *options: Any) -> Optional[Callable[..., Any]]:  # pragma: no cover - typing helper
        ...


@dataclass
class Preset:
    """Bundle of plugins and shared settings accepted by ``Processor.use``."""

    plugins: Optional[List[Any]] = field(default_factory=list)
    settings: Optional[Dict[str, Any]] = None

    def as_mapping(self) -> Dict[str, Any]:
        mapping: Dict[str, Any] = {}
        if self.plugins is not None:
            mapping["plugins"] = self.plugins
        if self.settings is not None:
            mapping["settings"] = self.settings
        return mapping


def _split_reference(reference: str) -> Tuple[str, str]:
    if ":" in reference:
        module_name, _, attribute = reference.partition(":")
    else:
        module_name, _, attribute = reference.rpartition(".")
    if not module_name or not attribute:
        raise PluginLoadError(
            reference,
            f"Plugin reference '{reference}' must look like 'package.module:attribute'",
        )
    return module_name, attribute


def resolve_plugin(reference: str) -> Callable[..., Any]:
    """Import ``reference`` (``module:attr`` or ``module.attr``) and return the plugin."""

    module_name, attribute = _split_reference((reference or "").strip())
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise PluginLoadError(reference, f"Failed to import plugin module '{module_name}': {exc}", exc) from exc

    target: Any = module
    for part in attribute.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            raise PluginLoadError(
                reference,
                f"Plugin module '{module_name}' has no attribute '{attribute}'",
                exc,
            ) from exc
    if not callable(target):
        raise PluginLoadError(reference, f"Plugin '{reference}' is not callable")
    return target


def iter_entry_point_plugins(group: str = ENTRY_POINT_GROUP) -> Iterator[Tuple[str, Any]]:
    """Yield ``(name, plugin)`` for every installed entry point in ``group``."""

    for entry in importlib.metadata.entry_points(group=group):
        try:
            plugin = entry.load()
        except Exception as exc:  # pragma: no cover - depends on installed distributions
            raise PluginLoadError(entry.name, f"Failed to load plugin {entry.name}: {exc}", exc) from exc
        logger.debug("Discovered plugin %s from entry point group %s", entry.name, group)
        yield entry.name, plugin


__all__ = [
    "ENTRY_POINT_GROUP",
    "Plugin",
    "Preset",
    "iter_entry_point_plugins",
    "resolve_plugin",
]
