"""unifold: a pluggable parse, transform and compile processor."""

from .errors import (
    AsyncCompletionError,
    ConfigError,
    EmptyPresetError,
    FrozenProcessorError,
    InvalidNodeError,
    MissingCompilerError,
    MissingEventLoopError,
    MissingParserError,
    PluginLoadError,
    ProcessorError,
    UnusableValueError,
)
from .files import FileMessage, VirtualFile
from .pipeline import Outcome, OutcomeStatus, TransformPipeline
from .plugins import Preset
from .processor import FreezeState, Processor, unified

__all__ = [
    "AsyncCompletionError",
    "ConfigError",
    "EmptyPresetError",
    "FileMessage",
    "FreezeState",
    "FrozenProcessorError",
    "InvalidNodeError",
    "MissingCompilerError",
    "MissingEventLoopError",
    "MissingParserError",
    "Outcome",
    "OutcomeStatus",
    "PluginLoadError",
    "Preset",
    "Processor",
    "ProcessorError",
    "TransformPipeline",
    "UnusableValueError",
    "VirtualFile",
    "unified",
]
__version__ = "0.1.0"
