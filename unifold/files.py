"""Minimal virtual file model passed through every processing phase.

A :class:`VirtualFile` holds the document value (text or bytes), an optional
path, the diagnostics reported while processing, and, for compilers that do
not serialize, the compiled ``result``.
"""

from __future__ import annotations

import os
import posixpath
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .utils import is_text_value

FileValue = Union[str, bytes]

_FIELDS = ("history", "path", "basename", "stem", "extname", "dirname", "value", "cwd", "data", "result", "stored")


class FileMessage(Exception):
    """Diagnostic attached to a :class:`VirtualFile`."""

    def __init__(
        self,
        reason: Union[str, BaseException],
        place: Optional[Union[Tuple[int, int], Mapping[str, Any]]] = None,
        origin: Optional[str] = None,
    ) -> None:
        if isinstance(reason, BaseException):
            self.cause: Optional[BaseException] = reason
            reason = str(reason)
        else:
            self.cause = None
        super().__init__(reason)
        self.reason = reason
        self.line: Optional[int] = None
        self.column: Optional[int] = None
        if isinstance(place, tuple):
            self.line, self.column = place
        elif isinstance(place, Mapping):
            start = place.get("start", place)
            self.line = start.get("line")
            self.column = start.get("column")
        self.source: Optional[str] = None
        self.rule_id: Optional[str] = None
        if origin:
            if ":" in origin:
                self.source, self.rule_id = origin.split(":", 1)
            else:
                self.rule_id = origin
        self.file: Optional[str] = None
        self.fatal: Optional[bool] = None

    @property
    def location(self) -> str:
        parts = [self.file or "<unknown>"]
        if self.line is not None:
            parts.append(str(self.line))
            if self.column is not None:
                parts.append(str(self.column))
        return ":".join(parts)

    def __str__(self) -> str:
        return f"{self.location}: {self.reason}"


class VirtualFile:
    """In-memory document carrying a value, a path and diagnostic messages."""

    def __init__(self, options: Any = None) -> None:
        self.data: Dict[str, Any] = {}
        self.messages: List[FileMessage] = []
        self.history: List[str] = []
        self.cwd: str = os.getcwd()
        self.value: Optional[FileValue] = None
        self.result: Any = None
        self.stored: bool = False

        if options is None:
            return
        if is_text_value(options):
            self.value = bytes(options) if isinstance(options, (bytearray, memoryview)) else options
            return
        if isinstance(options, Mapping):
            source: Mapping[str, Any] = options
        elif looks_like_file(options):
            source = {name: getattr(options, name) for name in _FIELDS if hasattr(options, name)}
        else:
            raise TypeError(f"Cannot create a file from `{options!r}`")

        # `history` goes first so that path parts build on it
        for name in _FIELDS:
            if name in source and source[name] is not None:
                value = source[name]
                if name == "history":
                    self.history = list(value)
                elif name == "data":
                    self.data = dict(value)
                else:
                    setattr(self, name, value)
        for name, value in source.items():
            if name not in _FIELDS:
                setattr(self, name, value)

    # ------------------------------------------------------------------
    # Path handling
    # ------------------------------------------------------------------

    @property
    def path(self) -> Optional[str]:
        return self.history[-1] if self.history else None

    @path.setter
    def path(self, value: Optional[Union[str, os.PathLike]]) -> None:
        if value is None:
            return
        path = os.fspath(value)
        if not path:
            raise ValueError("`path` cannot be empty")
        if path != self.path:
            self.history.append(path)

    @property
    def dirname(self) -> Optional[str]:
        return posixpath.dirname(self.path) if self.path is not None else None

    @dirname.setter
    def dirname(self, value: str) -> None:
        self._require_path("dirname")
        self.path = posixpath.join(value or "", self.basename)

    @property
    def basename(self) -> Optional[str]:
        return posixpath.basename(self.path) if self.path is not None else None

    @basename.setter
    def basename(self, value: str) -> None:
        if not value or posixpath.sep in value:
            raise ValueError("`basename` cannot be empty or contain a path separator")
        self.path = posixpath.join(self.dirname or "", value)

    @property
    def extname(self) -> Optional[str]:
        return posixpath.splitext(self.path)[1] if self.path is not None else None

    @extname.setter
    def extname(self, value: str) -> None:
        self._require_path("extname")
        if value and not value.startswith("."):
            raise ValueError("`extname` must start with `.`")
        self.path = posixpath.join(self.dirname or "", self.stem + (value or ""))

    @property
    def stem(self) -> Optional[str]:
        return posixpath.splitext(self.basename)[0] if self.path is not None else None

    @stem.setter
    def stem(self, value: str) -> None:
        if not value or posixpath.sep in value:
            raise ValueError("`stem` cannot be empty or contain a path separator")
        self.path = posixpath.join(self.dirname or "", value + (self.extname or ""))

    def _require_path(self, name: str) -> None:
        if self.path is None:
            raise ValueError(f"Setting `{name}` requires `path` to be set too")

    # ------------------------------------------------------------------
    # Value and diagnostics
    # ------------------------------------------------------------------

    def to_string(self, encoding: str = "utf-8") -> str:
        if self.value is None:
            return ""
        if isinstance(self.value, str):
            return self.value
        return bytes(self.value).decode(encoding)

    def __str__(self) -> str:
        return self.to_string()

    def message(
        self,
        reason: Union[str, BaseException],
        place: Optional[Union[Tuple[int, int], Mapping[str, Any]]] = None,
        origin: Optional[str] = None,
    ) -> FileMessage:
        """Create a warning, attach it to this file and return it."""

        message = FileMessage(reason, place, origin)
        message.file = self.path
        message.fatal = False
        self.messages.append(message)
        return message

    def info(self, reason, place=None, origin=None) -> FileMessage:
        message = self.message(reason, place, origin)
        message.fatal = None
        return message

    def fail(self, reason, place=None, origin=None) -> None:
        message = self.message(reason, place, origin)
        message.fatal = True
        raise message

    def __repr__(self) -> str:
        return f"VirtualFile(path={self.path!r}, value={self.value!r}, messages={len(self.messages)})"


def looks_like_file(value: Any) -> bool:
    """A file is anything exposing a callable ``message`` and a ``messages`` list."""

    return (
        value is not None
        and not isinstance(value, (str, bytes, bytearray, memoryview, Mapping))
        and callable(getattr(value, "message", None))
        and hasattr(value, "messages")
    )


def coerce_file(value: Any = None) -> Any:
    """Return ``value`` when it already looks like a file, otherwise wrap it."""

    return value if looks_like_file(value) else VirtualFile(value)


__all__ = ["FileMessage", "FileValue", "VirtualFile", "coerce_file", "looks_like_file"]
