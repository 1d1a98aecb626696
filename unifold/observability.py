"""Centralised logging helpers for unifold processors."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

_LOGGER_CACHE: Dict[str, logging.Logger] = {}


def get_logger(name: str = "unifold") -> logging.Logger:
    """Return a cached :class:`logging.Logger` instance."""

    if name not in _LOGGER_CACHE:
        _LOGGER_CACHE[name] = logging.getLogger(name)
    return _LOGGER_CACHE[name]


def log_phase_event(
    phase: str,
    *,
    processor: Any,
    logger: Optional[logging.Logger] = None,
    extras: Optional[Dict[str, Any]] = None,
) -> None:
    """Emit a structured debug entry when a processor enters a phase."""

    target_logger = logger or get_logger("unifold.phases")
    if not target_logger.isEnabledFor(logging.DEBUG):
        return
    payload: Dict[str, Any] = {
        "processor": hex(id(processor)),
        "plugins": len(getattr(processor, "attachers", ())),
        "transformers": len(getattr(processor, "transformers", ())),
    }
    if extras:
        payload.update(extras)
    target_logger.debug(
        "Entering %s phase",
        phase,
        extra={"unifold_event": phase, "unifold_data": payload},
    )


__all__ = ["get_logger", "log_phase_event"]
