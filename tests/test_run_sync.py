from __future__ import annotations

import asyncio

import pytest

from unifold import AsyncCompletionError, InvalidNodeError, MissingEventLoopError, Processor, VirtualFile


def _transform(transformer):
    def plugin(processor):
        return transformer

    return plugin


def test_run_sync_rejects_non_nodes() -> None:
    with pytest.raises(InvalidNodeError):
        Processor().run_sync(None)


def test_run_sync_returns_tree() -> None:
    given_node = {"type": "bravo"}
    assert Processor().run_sync(given_node) is given_node


def test_run_sync_passes_file() -> None:
    given_file = VirtualFile("alpha")
    seen = []

    def transformer(tree, file):
        seen.append(file)

    Processor().use(_transform(transformer)).run_sync({"type": "bravo"}, given_file)
    assert seen == [given_file]


def test_run_sync_returns_replaced_tree() -> None:
    modified = {"type": "charlie"}
    assert Processor().use(_transform(lambda tree, file: modified)).run_sync({"type": "bravo"}) is modified


def test_run_sync_raises_transformer_errors() -> None:
    def failing(tree, file):
        raise ValueError("delta")

    with pytest.raises(ValueError, match="delta"):
        Processor().use(_transform(failing)).run_sync({"type": "bravo"})


def test_run_sync_raises_returned_errors() -> None:
    with pytest.raises(ValueError, match="echo"):
        Processor().use(_transform(lambda tree, file: ValueError("echo"))).run_sync({"type": "bravo"})


def test_run_sync_raises_continuation_errors() -> None:
    def transformer(tree, file, next):
        next(KeyError("foxtrot"))

    with pytest.raises(KeyError):
        Processor().use(_transform(transformer)).run_sync({"type": "bravo"})


def test_run_sync_with_synchronous_continuation() -> None:
    modified = {"type": "golf"}

    def transformer(tree, file, next):
        next(None, modified)

    assert Processor().use(_transform(transformer)).run_sync({"type": "bravo"}) is modified


def test_run_sync_fails_for_pending_continuation() -> None:
    pending = []

    def transformer(tree, file, next):
        pending.append(next)

    processor = Processor().use(_transform(transformer))
    with pytest.raises(AsyncCompletionError, match="`run_sync` finished async. Use `run` instead"):
        processor.run_sync({"type": "bravo"})

    # The continuation is still usable; calling it later has no effect on the caller
    pending[0]()


def test_run_sync_fails_for_async_function_without_loop() -> None:
    async def transformer(tree, file):
        return {"type": "charlie"}

    with pytest.raises(AsyncCompletionError, match="Use `run` instead") as info:
        Processor().use(_transform(transformer)).run_sync({"type": "bravo"})
    assert isinstance(info.value.__cause__, MissingEventLoopError)


async def test_run_sync_fails_for_async_function_inside_loop() -> None:
    async def transformer(tree, file):
        await asyncio.sleep(0)
        return {"type": "charlie"}

    with pytest.raises(AsyncCompletionError):
        Processor().use(_transform(transformer)).run_sync({"type": "bravo"})
    # let the scheduled task settle before the loop closes
    await asyncio.sleep(0.01)
