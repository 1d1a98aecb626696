"""Ordered transform chain used by the run phase.

A :class:`TransformPipeline` holds a list of transformer callables and runs
them one after the other over shared values (for the processor these are the
tree and the file). Each transformer either:

- declares one more required positional parameter than there are values, in
  which case it receives a once-only continuation ``next(error, *values)``
  that it must call to advance the chain (possibly later, from a timer or
  another task), or
- returns its outcome: an exception instance signals an error, an awaitable
  is awaited on the running event loop, and any other value may replace the
  first shared value.

Non-continuation transformers receive only as many leading values as they
accept, so ``def transformer(tree)`` works as well as ``(tree, file)``. An
awaitable returned while no event loop is running fails the chain with
:class:`~unifold.errors.MissingEventLoopError`.

Completion is reported through a ``done(error, *values)`` callback. The chain
is fully synchronous when every transformer is, which is what the blocking
``run_sync``/``process_sync`` entry points rely on.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple

from .errors import MissingEventLoopError
from .utils import is_awaitable, positional_capacity, required_positional_count

logger = logging.getLogger(__name__)

Transformer = Callable[..., Any]
Done = Callable[..., None]
Accept = Callable[[Any], bool]


def _accept_any(value: Any) -> bool:
    return value is not None


class OutcomeStatus(str, enum.Enum):
    """Where a unit of work stands when control returns to the caller."""

    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


@dataclass
class Outcome:
    """Explicit result of a callback-driven run: pending, fulfilled or rejected."""

    status: OutcomeStatus = OutcomeStatus.PENDING
    error: Optional[BaseException] = None
    values: Tuple[Any, ...] = field(default_factory=tuple)

    @property
    def settled(self) -> bool:
        return self.status is not OutcomeStatus.PENDING

    def settle(self, error: Optional[BaseException] = None, *values: Any) -> None:
        if self.settled:
            return
        if error is not None:
            self.status = OutcomeStatus.REJECTED
            self.error = error
        else:
            self.status = OutcomeStatus.FULFILLED
            self.values = values

    def unwrap(self) -> Tuple[Any, ...]:
        """Return the values, raising the captured error for rejected outcomes."""

        if self.status is OutcomeStatus.REJECTED:
            if self.error is None:
                raise RuntimeError("Rejected outcome carries no error")
            raise self.error
        if self.status is OutcomeStatus.PENDING:
            raise RuntimeError("Outcome is still pending")
        return self.values


class TransformPipeline:
    """Runs registered transformers in order over shared values."""

    def __init__(self, accepts: Sequence[Accept] = ()) -> None:
        self._transformers: List[Transformer] = []
        # Per-position predicates deciding which outputs replace the values
        self._accepts: Tuple[Accept, ...] = tuple(accepts)

    def use(self, transformer: Transformer) -> "TransformPipeline":
        if not callable(transformer):
            raise TypeError(f"Expected callable transformer, not `{transformer!r}`")
        self._transformers.append(transformer)
        return self

    def __len__(self) -> int:
        return len(self._transformers)

    def __iter__(self):
        return iter(tuple(self._transformers))

    def run(self, *values: Any, done: Done) -> None:
        """Run every transformer over ``values`` and report through ``done``."""

        if not callable(done):
            raise TypeError(f"Expected callable `done`, not `{done!r}`")
        _ChainRun(tuple(self._transformers), list(values), self._accepts, done).drive()


class _ChainRun:
    """State of one pass over a transformer list."""

    def __init__(self, transformers: Tuple[Transformer, ...], values: List[Any], accepts: Tuple[Accept, ...], done: Done) -> None:
        self.transformers = transformers
        self.values = values
        self.accepts = accepts
        self.done = done
        self.index = 0
        self.finished = False

    def accept(self, position: int, value: Any) -> bool:
        if position < len(self.accepts):
            return self.accepts[position](value)
        return _accept_any(value)

    def apply(self, output: Sequence[Any]) -> None:
        for position, value in enumerate(output[: len(self.values)]):
            if self.accept(position, value):
                self.values[position] = value

    def finish(self, error: Optional[BaseException]) -> None:
        if self.finished:
            return
        self.finished = True
        if error is not None:
            self.done(error)
        else:
            self.done(None, *self.values)

    def drive(self) -> None:
        # Iterative so that long synchronous chains do not grow the stack;
        # a step that settles later re-enters here from its continuation.
        while not self.finished:
            if self.index >= len(self.transformers):
                self.finish(None)
                return
            transformer = self.transformers[self.index]
            self.index += 1
            step = _Step(self, transformer)
            step.invoke()
            if not step.outcome.settled:
                step.resume_later = True
                return
            if step.outcome.status is OutcomeStatus.REJECTED:
                self.finish(step.outcome.error)
                return
            self.apply(step.outcome.values)


class _Step:
    """One transformer invocation and its once-only completion."""

    def __init__(self, run: _ChainRun, transformer: Transformer) -> None:
        self.run = run
        self.transformer = transformer
        self.outcome = Outcome()
        self.resume_later = False
        self.uses_continuation = False

    def settle(self, error: Optional[BaseException] = None, *output: Any) -> None:
        if self.outcome.settled:
            return
        if error is not None and not isinstance(error, BaseException):
            error = TypeError(f"Expected exception as first argument to `next`, not `{error!r}`")
        self.outcome.settle(error, *output)
        if not self.resume_later:
            return
        if error is not None:
            self.run.finish(error)
            return
        self.run.apply(output)
        self.run.drive()

    def invoke(self) -> None:
        values = self.run.values
        self.uses_continuation = required_positional_count(self.transformer) > len(values)
        try:
            if self.uses_continuation:
                result = self.transformer(*values, self.settle)
            else:
                accepted = positional_capacity(self.transformer, len(values))
                result = self.transformer(*values[:accepted])
        except Exception as error:
            if self.uses_continuation and self.outcome.settled:
                raise
            self.settle(error)
            return
        if not self.uses_continuation:
            self.interpret(result)
        elif is_awaitable(result):
            # `async def` transformers taking `next` still have to be scheduled
            self.wait_for(result)

    def interpret(self, result: Any) -> None:
        if isinstance(result, BaseException):
            self.settle(result)
        elif is_awaitable(result):
            self.wait_for(result)
        else:
            self.settle(None, result)

    def wait_for(self, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "Transformer %r returned an awaitable but no event loop is running; failing the chain",
                getattr(self.transformer, "__name__", self.transformer),
            )
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.settle(MissingEventLoopError(self.transformer))
            return
        future = asyncio.ensure_future(awaitable, loop=loop)
        future.add_done_callback(self._on_future_done)

    def _on_future_done(self, future: "asyncio.Future[Any]") -> None:
        if future.cancelled():
            self.settle(asyncio.CancelledError())
            return
        error = future.exception()
        if error is not None:
            if self.outcome.settled:
                logger.error("Transformer failed after calling `next`", exc_info=error)
            self.settle(error)
            return
        if not self.uses_continuation:
            self.interpret(future.result())


__all__ = ["Outcome", "OutcomeStatus", "TransformPipeline", "Transformer"]
