"""Unified error model for unifold processors."""

from __future__ import annotations

from typing import Any, Optional


class ProcessorError(Exception):
    """Base class for all usage and configuration errors raised by unifold."""

    code: Optional[str] = None
    hint: Optional[str] = None

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if hint is not None:
            self.hint = hint

    def format(self) -> str:
        components = [self.message]
        if self.code:
            components[-1] = f"{components[-1]} ({self.code})"
        if self.hint:
            components.append(f"Hint: {self.hint}")
        return " ".join(part for part in components if part)


class FrozenProcessorError(ProcessorError):
    """Raised when configuration is attempted on a frozen processor."""

    code = "UF001"
    hint = "Create a new processor first, by calling it: use `processor()` instead of `processor`."

    def __init__(self, operation: str) -> None:
        super().__init__(f"Cannot call `{operation}` on a frozen processor.")
        self.operation = operation


class MissingParserError(ProcessorError, TypeError):
    """Raised when a phase needs a parser and none is configured."""

    code = "UF002"

    def __init__(self, operation: str) -> None:
        super().__init__(f"Cannot `{operation}` without `parser`")
        self.operation = operation


class MissingCompilerError(ProcessorError, TypeError):
    """Raised when a phase needs a compiler and none is configured."""

    code = "UF003"

    def __init__(self, operation: str) -> None:
        super().__init__(f"Cannot `{operation}` without `compiler`")
        self.operation = operation


class InvalidNodeError(ProcessorError, TypeError):
    """Raised when a value that must be a tree node is not node-shaped."""

    code = "UF004"

    def __init__(self, value: Any) -> None:
        super().__init__(f"Expected node, got `{value!r}`")
        self.value = value


class UnusableValueError(ProcessorError, TypeError):
    """Raised when `use` receives something that is not a plugin, list or preset."""

    code = "UF005"

    def __init__(self, value: Any, *, expected: str = "usable value") -> None:
        super().__init__(f"Expected {expected}, not `{value!r}`")
        self.value = value


class EmptyPresetError(ProcessorError, ValueError):
    """Raised for presets that carry neither plugins nor settings."""

    code = "UF006"

    def __init__(self) -> None:
        super().__init__(
            "Expected usable value but received an empty preset, which is probably a mistake: "
            "presets typically come with `plugins` and sometimes with `settings`, but this has neither"
        )


class AsyncCompletionError(ProcessorError):
    """Raised by the blocking entry points when the work did not finish synchronously."""

    code = "UF007"

    def __init__(self, operation: str, async_operation: str) -> None:
        super().__init__(f"`{operation}` finished async. Use `{async_operation}` instead")
        self.operation = operation
        self.async_operation = async_operation


class MissingEventLoopError(ProcessorError, RuntimeError):
    """Raised when a transformer returns an awaitable outside a running event loop."""

    code = "UF010"
    hint = "Await `processor.run(...)` or `processor.process(...)` from a coroutine instead."

    def __init__(self, transformer: Any) -> None:
        name = getattr(transformer, "__name__", None) or repr(transformer)
        super().__init__(f"Transformer `{name}` returned an awaitable but no event loop is running")
        self.transformer = transformer


class ConfigError(ProcessorError):
    """Raised when a processor configuration file cannot be read or validated."""

    code = "UF008"

    def __init__(self, message: str, *, path: Optional[str] = None, hint: Optional[str] = None) -> None:
        if path:
            message = f"{message} ({path})"
        super().__init__(message, hint=hint)
        self.path = path


class PluginLoadError(ProcessorError):
    """Raised when a plugin reference cannot be imported or is not callable."""

    code = "UF009"

    def __init__(self, reference: str, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.reference = reference
        self.cause = cause


__all__ = [
    "ProcessorError",
    "FrozenProcessorError",
    "MissingParserError",
    "MissingCompilerError",
    "InvalidNodeError",
    "UnusableValueError",
    "EmptyPresetError",
    "AsyncCompletionError",
    "MissingEventLoopError",
    "ConfigError",
    "PluginLoadError",
]
