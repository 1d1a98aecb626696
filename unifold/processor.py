"""The processor: plugin attachment, freezing and phase execution.

A :class:`Processor` is configured with :meth:`Processor.use` and
:meth:`Processor.data`, then frozen. Freezing invokes every registered plugin
once, in registration order, as ``plugin(processor, *options)``; plugins set
:attr:`Processor.parser` / :attr:`Processor.compiler`, share settings through
:meth:`Processor.data` and may return a transformer for the run phase.

Once frozen, a processor only executes:

- :meth:`parse` turns a file into a tree,
- :meth:`run` passes the tree through the transformers,
- :meth:`stringify` compiles a tree,
- :meth:`process` does all three.

``run`` and ``process`` report either through a ``done`` callback or, when no
callback is given, through a coroutine to await. ``run_sync`` and
``process_sync`` block and fail when a transformer completed asynchronously.
Calling a processor, ``processor()``, yields a new unfrozen copy.
"""

from __future__ import annotations

import asyncio
import copy
import enum
import inspect
import logging
import math
import types
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .errors import (
    AsyncCompletionError,
    EmptyPresetError,
    FrozenProcessorError,
    InvalidNodeError,
    MissingCompilerError,
    MissingEventLoopError,
    MissingParserError,
    UnusableValueError,
)
from .files import VirtualFile, coerce_file, looks_like_file
from .observability import log_phase_event
from .pipeline import Outcome, TransformPipeline
from .plugins import Preset
from .utils import MISSING, is_node, is_plain_mapping, is_text_value

logger = logging.getLogger(__name__)

SETTINGS_KEY = "settings"

Done = Callable[..., None]


class FreezeState(str, enum.Enum):
    """Lifecycle of a processor's configuration."""

    UNFROZEN = "unfrozen"
    FREEZING = "freezing"
    FROZEN = "frozen"


class Processor:
    """Chainable plugin host executing the parse, run and compile phases."""

    def __init__(self) -> None:
        self._parser: Optional[Callable[..., Any]] = None
        self._compiler: Optional[Callable[..., Any]] = None
        self._attachers: List[List[Any]] = []
        self._state = FreezeState.UNFROZEN
        self.freeze_index: Union[int, float] = -1
        self.namespace: Dict[str, Any] = {}
        self.transformers = TransformPipeline(accepts=(is_node, looks_like_file))

    def __call__(self) -> "Processor":
        return self.copy()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._state.value} plugins={len(self._attachers)}>"

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> FreezeState:
        return self._state

    @property
    def frozen(self) -> bool:
        return self._state is FreezeState.FROZEN

    @property
    def attachers(self) -> Tuple[Tuple[Any, ...], ...]:
        """Registered ``(plugin, *options)`` entries, in registration order."""

        return tuple(tuple(entry) for entry in self._attachers)

    @property
    def parser(self) -> Optional[Callable[..., Any]]:
        return self._parser

    @parser.setter
    def parser(self, value: Optional[Callable[..., Any]]) -> None:
        self._assert_unfrozen("parser")
        self._parser = value

    @property
    def compiler(self) -> Optional[Callable[..., Any]]:
        return self._compiler

    @compiler.setter
    def compiler(self, value: Optional[Callable[..., Any]]) -> None:
        self._assert_unfrozen("compiler")
        self._compiler = value

    def _assert_unfrozen(self, operation: str) -> None:
        if self.frozen:
            raise FrozenProcessorError(operation)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def copy(self) -> "Processor":
        """Return a new unfrozen processor configured like this one."""

        destination = type(self)()
        for plugin, *options in self._attachers:
            destination.use(plugin, *options)
        destination.data(copy.deepcopy(self.namespace))
        return destination

    def data(self, key: Union[str, Mapping[str, Any], None] = None, value: Any = MISSING) -> Any:
        """Get or set shared data.

        ``data()`` returns the whole namespace, ``data(mapping)`` replaces it,
        ``data(key)`` returns the value stored at ``key`` (``None`` when
        absent) and ``data(key, value)`` stores a value. Setters return the
        processor and fail once it is frozen; a frozen processor's
        ``data()`` is a read-only view.
        """

        if isinstance(key, str):
            if value is not MISSING:
                self._assert_unfrozen("data")
                self.namespace[key] = value
                return self
            return self.namespace.get(key)

        if key is not None:
            if not isinstance(key, Mapping):
                raise TypeError(f"Expected string key or mapping, not `{key!r}`")
            self._assert_unfrozen("data")
            self.namespace = key if isinstance(key, dict) else dict(key)
            return self

        if self.frozen:
            return types.MappingProxyType(self.namespace)
        return self.namespace

    def use(self, value: Any = None, *parameters: Any) -> "Processor":
        """Register a plugin, a list of pluggables or a preset."""

        self._assert_unfrozen("use")

        if value is None:
            pass
        elif callable(value):
            self._add_plugin(value, parameters)
        elif isinstance(value, (list, tuple)):
            self._add_list(value)
        elif isinstance(value, (Mapping, Preset)):
            self._add_preset(value)
        else:
            raise UnusableValueError(value)
        return self

    def _add(self, value: Any) -> None:
        if callable(value):
            self._add_plugin(value, ())
        elif isinstance(value, (list, tuple)):
            if not value or not callable(value[0]):
                raise UnusableValueError(value[0] if value else value)
            plugin, *parameters = value
            self._add_plugin(plugin, parameters)
        elif isinstance(value, (Mapping, Preset)):
            self._add_preset(value)
        else:
            raise UnusableValueError(value)

    def _add_list(self, plugins: Any) -> None:
        if plugins is None:
            return
        if not isinstance(plugins, (list, tuple)):
            raise UnusableValueError(plugins, expected="a list of plugins")
        for item in plugins:
            self._add(item)

    def _add_preset(self, preset: Union[Mapping[str, Any], Preset]) -> None:
        if isinstance(preset, Preset):
            preset = preset.as_mapping()
        if "plugins" not in preset and SETTINGS_KEY not in preset:
            raise EmptyPresetError()

        self._add_list(preset.get("plugins"))

        settings = preset.get(SETTINGS_KEY)
        if settings:
            self.namespace[SETTINGS_KEY] = {
                **(self.namespace.get(SETTINGS_KEY) or {}),
                **copy.deepcopy(dict(settings)),
            }

    def _add_plugin(self, plugin: Callable[..., Any], parameters: Sequence[Any]) -> None:
        for index, entry in enumerate(self._attachers):
            if _same_plugin(entry[0], plugin):
                break
        else:
            self._attachers.append([plugin, *parameters])
            logger.debug("Registered plugin %s", _plugin_name(plugin))
            return

        # Only rewrite when options were given, so `use(plugin)` keeps them
        if not parameters:
            return
        primary, *rest = parameters
        current_primary = entry[1] if len(entry) > 1 else None
        if is_plain_mapping(current_primary) and is_plain_mapping(primary):
            primary = copy.deepcopy({**current_primary, **primary})
        self._attachers[index] = [plugin, primary, *rest]
        logger.debug("Reconfigured plugin %s", _plugin_name(plugin))

    def freeze(self) -> "Processor":
        """Run every attacher once and lock the configuration.

        A ``freeze()`` from inside a plugin while freezing is a no-op; the
        outer walk picks up where it is, so each attacher runs exactly once.
        """

        if self._state is not FreezeState.UNFROZEN:
            return self

        self._state = FreezeState.FREEZING
        log_phase_event("freeze", processor=self)
        try:
            while True:
                self.freeze_index += 1
                if self.freeze_index >= len(self._attachers):
                    break
                plugin, *options = self._attachers[int(self.freeze_index)]

                if options and options[0] is False:
                    logger.debug("Skipping disabled plugin %s", _plugin_name(plugin))
                    continue
                if options and options[0] is True:
                    options = [None, *options[1:]] if len(options) > 1 else []

                logger.debug("Attaching plugin %s", _plugin_name(plugin))
                transformer = plugin(self, *options)
                if callable(transformer):
                    self.transformers.use(transformer)
        except BaseException:
            # Attachers already run stay run; a later freeze resumes after them
            self._state = FreezeState.UNFROZEN
            raise

        self._state = FreezeState.FROZEN
        self.freeze_index = math.inf
        return self

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def parse(self, file: Any = None) -> Any:
        """Parse ``file`` into a tree with the configured parser."""

        self.freeze()
        real_file = coerce_file(file)
        parser = self._parser
        _assert_parser("parse", parser)
        log_phase_event("parse", processor=self, extras={"path": real_file.path})

        if _constructs(parser, "parse"):
            return parser(str(real_file), real_file).parse()
        return parser(str(real_file), real_file)

    def stringify(self, tree: Any, file: Any = None) -> Any:
        """Compile ``tree`` with the configured compiler and return the raw result."""

        self.freeze()
        real_file = coerce_file(file)
        compiler = self._compiler
        _assert_compiler("stringify", compiler)
        _assert_node(tree)
        log_phase_event("stringify", processor=self, extras={"path": real_file.path})

        if _constructs(compiler, "compile"):
            return compiler(tree, real_file).compile()
        return compiler(tree, real_file)

    def run(self, tree: Any, file: Any = None, done: Optional[Done] = None) -> Any:
        """Run the transformers over ``tree``.

        With ``done``, it is called once as ``done(error, tree, file)`` and
        ``None`` is returned. Without it, a coroutine is returned that
        resolves to the resulting tree or raises the error.
        """

        _assert_node(tree)
        self.freeze()

        if done is None and callable(file):
            done, file = file, None

        if done is not None:
            self._execute_run(tree, file, done)
            return None
        return self._await_run(tree, file)

    def _execute_run(self, tree: Any, file: Any, done: Done) -> None:
        real_file = coerce_file(file)
        log_phase_event("run", processor=self, extras={"path": real_file.path})

        def finish(error: Optional[BaseException], output_tree: Any = None, output_file: Any = None) -> None:
            if error is not None:
                done(error, None, None)
            else:
                done(None, output_tree if output_tree is not None else tree, output_file)

        self.transformers.run(tree, real_file, done=finish)

    async def _await_run(self, tree: Any, file: Any) -> Any:
        loop = asyncio.get_running_loop()
        future: "asyncio.Future[Any]" = loop.create_future()

        def settle(error: Optional[BaseException], output_tree: Any = None, output_file: Any = None) -> None:
            loop.call_soon_threadsafe(_settle_future, future, error, output_tree)

        self._execute_run(tree, file, settle)
        return await future

    def run_sync(self, tree: Any, file: Any = None) -> Any:
        """Run the transformers and return the resulting tree, blocking."""

        outcome = Outcome()
        self.run(tree, file, outcome.settle)
        if _unfinished(outcome):
            raise AsyncCompletionError("run_sync", "run") from outcome.error
        result_tree, _ = outcome.unwrap()
        return result_tree

    def process(self, file: Any = None, done: Optional[Done] = None) -> Any:
        """Parse, run and compile ``file``.

        A text-like compile result becomes ``file.value``; any other non-``None``
        result is stored on ``file.result``. Reports through ``done(error, file)``
        or, without ``done``, through a coroutine resolving to the file.
        """

        self.freeze()
        _assert_parser("process", self._parser)
        _assert_compiler("process", self._compiler)

        if done is not None:
            self._execute_process(file, done)
            return None
        return self._await_process(file)

    def _execute_process(self, file: Any, done: Done) -> None:
        report = _Once(done)
        real_file = coerce_file(file)

        def after_run(error: Optional[BaseException], tree: Any = None, run_file: Any = None) -> None:
            if error is not None:
                report(error, None)
                return
            target = run_file if run_file is not None else real_file
            try:
                result = self.stringify(tree, target)
            except Exception as exc:
                report(exc, None)
                return
            if result is None:
                pass
            elif is_text_value(result):
                target.value = bytes(result) if isinstance(result, (bytearray, memoryview)) else result
            else:
                target.result = result
            report(None, target)

        try:
            tree = self.parse(real_file)
            self.run(tree, real_file, after_run)
        except Exception as exc:
            if report.called:
                # Raised by `done` itself, not by a phase
                raise
            report(exc, None)

    async def _await_process(self, file: Any) -> VirtualFile:
        loop = asyncio.get_running_loop()
        future: "asyncio.Future[Any]" = loop.create_future()

        def settle(error: Optional[BaseException], result_file: Any = None) -> None:
            loop.call_soon_threadsafe(_settle_future, future, error, result_file)

        self._execute_process(file, settle)
        return await future

    def process_sync(self, file: Any = None) -> VirtualFile:
        """Parse, run and compile ``file``, blocking."""

        self.freeze()
        _assert_parser("process_sync", self._parser)
        _assert_compiler("process_sync", self._compiler)

        outcome = Outcome()
        self.process(file, outcome.settle)
        if _unfinished(outcome):
            raise AsyncCompletionError("process_sync", "process") from outcome.error
        (result_file,) = outcome.unwrap()
        return result_file


def _unfinished(outcome: Outcome) -> bool:
    """A blocking call cannot finish pending work or work that needed a loop."""

    return not outcome.settled or isinstance(outcome.error, MissingEventLoopError)


def _same_plugin(left: Any, right: Any) -> bool:
    # Bound methods are recreated on every attribute access
    if left is right:
        return True
    return inspect.ismethod(left) and inspect.ismethod(right) and left == right


def _plugin_name(plugin: Any) -> str:
    return getattr(plugin, "__qualname__", None) or getattr(plugin, "__name__", None) or repr(plugin)


def _constructs(value: Any, method: str) -> bool:
    """A parser or compiler class is instantiated, then its method is called."""

    return inspect.isclass(value) and callable(getattr(value, method, None))


def _assert_parser(operation: str, value: Any) -> None:
    if not callable(value):
        raise MissingParserError(operation)


def _assert_compiler(operation: str, value: Any) -> None:
    if not callable(value):
        raise MissingCompilerError(operation)


def _assert_node(value: Any) -> None:
    if not is_node(value):
        raise InvalidNodeError(value)


class _Once:
    """Callback wrapper ignoring every call after the first."""

    def __init__(self, callback: Done) -> None:
        self.callback = callback
        self.called = False

    def __call__(self, *args: Any) -> None:
        if self.called:
            return
        self.called = True
        self.callback(*args)


def _settle_future(future: "asyncio.Future[Any]", error: Optional[BaseException], value: Any) -> None:
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(value)


unified = Processor().freeze()


__all__ = ["FreezeState", "Processor", "SETTINGS_KEY", "unified"]
