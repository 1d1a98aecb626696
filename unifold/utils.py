"""Shape checks shared by the processor, the pipeline and the file model."""

from __future__ import annotations

import inspect
from typing import Any, Mapping


class _Missing:
    """Sentinel type distinguishing "not passed" from ``None``."""

    _instance = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def is_node(value: Any) -> bool:
    """Return ``True`` when ``value`` looks like a syntax tree node.

    A node is a mapping with a string ``"type"`` entry, or any instance
    (not a class) exposing a string ``type`` attribute.
    """

    if isinstance(value, Mapping):
        return isinstance(value.get("type"), str)
    if value is None or inspect.isclass(value):
        return False
    return isinstance(getattr(value, "type", None), str)


def is_plain_mapping(value: Any) -> bool:
    """Only plain ``dict`` instances take the option-merge path."""

    return type(value) is dict


def is_text_value(value: Any) -> bool:
    return isinstance(value, (str, bytes, bytearray, memoryview))


def is_awaitable(value: Any) -> bool:
    return inspect.isawaitable(value)


def required_positional_count(func: Any) -> int:
    """Count positional parameters without defaults that ``func`` declares.

    Callables whose signature cannot be inspected report ``0``.
    """

    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return 0
    count = 0
    for parameter in signature.parameters.values():
        if parameter.kind not in (parameter.POSITIONAL_ONLY, parameter.POSITIONAL_OR_KEYWORD):
            continue
        if parameter.default is not parameter.empty:
            continue
        count += 1
    return count


def positional_capacity(func: Any, default: int) -> int:
    """Return how many positional arguments ``func`` accepts.

    ``*args`` callables and callables without an inspectable signature
    report ``default``.
    """

    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return default
    count = 0
    for parameter in signature.parameters.values():
        if parameter.kind is parameter.VAR_POSITIONAL:
            return default
        if parameter.kind in (parameter.POSITIONAL_ONLY, parameter.POSITIONAL_OR_KEYWORD):
            count += 1
    return count


__all__ = [
    "MISSING",
    "is_node",
    "is_plain_mapping",
    "is_text_value",
    "is_awaitable",
    "positional_capacity",
    "required_positional_count",
]
