from __future__ import annotations

import asyncio

import pytest

from unifold import InvalidNodeError, MissingEventLoopError, Processor, VirtualFile


def _transform(transformer):
    def plugin(processor):
        return transformer

    return plugin


class _Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, error, tree=None, file=None):
        self.calls.append((error, tree, file))


def test_run_rejects_non_nodes_before_freezing() -> None:
    processor = Processor()
    with pytest.raises(InvalidNodeError):
        processor.run("not a node", lambda *args: None)
    assert not processor.frozen


def test_run_passes_tree_and_file_to_done() -> None:
    given_file = VirtualFile("alpha")
    given_node = {"type": "bravo"}
    done = _Recorder()

    Processor().run(given_node, given_file, done)

    assert done.calls == [(None, given_node, given_file)]


def test_run_accepts_done_as_second_argument() -> None:
    given_node = {"type": "bravo"}
    done = _Recorder()

    Processor().run(given_node, done)

    error, tree, file = done.calls[0]
    assert error is None
    assert tree is given_node
    assert isinstance(file, VirtualFile)


def test_transformer_receives_tree_and_file() -> None:
    given_file = VirtualFile("alpha")
    given_node = {"type": "bravo"}
    seen = []

    def transformer(tree, file):
        seen.append((tree, file))

    Processor().use(_transform(transformer)).run(given_node, given_file, _Recorder())

    assert seen == [(given_node, given_file)]


def test_returned_node_replaces_tree() -> None:
    modified = {"type": "charlie"}
    done = _Recorder()

    Processor().use(_transform(lambda tree, file: modified)).run({"type": "bravo"}, done)

    assert done.calls[0][1] is modified


def test_returned_non_node_leaves_tree_unchanged() -> None:
    given_node = {"type": "bravo"}
    done = _Recorder()

    Processor().use(_transform(lambda tree, file: "text")).use(_transform(lambda tree, file: True)).run(
        given_node, done
    )

    assert done.calls[0][1] is given_node


def test_transformers_run_in_order_with_replaced_tree() -> None:
    seen = []

    def first(tree, file):
        seen.append(tree["type"])
        return {"type": "second"}

    def second(tree, file):
        seen.append(tree["type"])

    Processor().use(_transform(first)).use(_transform(second)).run({"type": "first"}, _Recorder())

    assert seen == ["first", "second"]


def test_raised_error_stops_chain() -> None:
    failure = ValueError("delta")
    later = []

    def failing(tree, file):
        raise failure

    done = _Recorder()
    Processor().use(_transform(failing)).use(_transform(lambda tree, file: later.append(tree))).run(
        {"type": "bravo"}, done
    )

    assert done.calls == [(failure, None, None)]
    assert later == []


def test_returned_error_stops_chain() -> None:
    failure = ValueError("delta")
    done = _Recorder()

    Processor().use(_transform(lambda tree, file: failure)).run({"type": "bravo"}, done)

    assert done.calls[0][0] is failure


def test_continuation_advances_chain() -> None:
    modified = {"type": "charlie"}
    other_file = VirtualFile("other")
    done = _Recorder()

    def transformer(tree, file, next):
        next(None, modified, other_file)

    Processor().use(_transform(transformer)).run({"type": "bravo"}, VirtualFile(), done)

    assert done.calls == [(None, modified, other_file)]


def test_continuation_error_stops_chain() -> None:
    failure = RuntimeError("charlie")
    done = _Recorder()

    def transformer(tree, file, next):
        next(failure)

    Processor().use(_transform(transformer)).run({"type": "bravo"}, done)

    assert done.calls == [(failure, None, None)]


def test_continuation_called_twice_is_ignored() -> None:
    done = _Recorder()

    def transformer(tree, file, next):
        next()
        next(RuntimeError("ignored"))

    Processor().use(_transform(transformer)).run({"type": "bravo"}, done)

    assert len(done.calls) == 1
    assert done.calls[0][0] is None


def test_raise_after_continuation_propagates() -> None:
    def transformer(tree, file, next):
        next()
        raise RuntimeError("after next")

    with pytest.raises(RuntimeError, match="after next"):
        Processor().use(_transform(transformer)).run({"type": "bravo"}, _Recorder())


async def test_run_without_done_returns_awaitable() -> None:
    modified = {"type": "charlie"}
    processor = Processor().use(_transform(lambda tree, file: modified))

    assert await processor.run({"type": "bravo"}) is modified
    assert await processor.run({"type": "bravo"}, VirtualFile("alpha")) is modified


async def test_run_without_done_matches_callback_run() -> None:
    modified = {"type": "charlie"}
    processor = Processor().use(_transform(lambda tree, file: modified))
    done = _Recorder()

    processor.run({"type": "bravo"}, done)

    assert await processor.run({"type": "bravo"}) is done.calls[0][1]


async def test_run_without_done_raises_errors() -> None:
    def failing(tree, file):
        raise ValueError("echo")

    with pytest.raises(ValueError, match="echo"):
        await Processor().use(_transform(failing)).run({"type": "bravo"})


async def test_async_function_transformer() -> None:
    given_file = VirtualFile("alpha")
    given_node = {"type": "bravo"}
    modified = {"type": "charlie"}
    seen = []

    async def transformer(tree, file):
        seen.append((tree, file))
        await asyncio.sleep(0)
        return modified

    processor = Processor().use(_transform(transformer))

    assert await processor.run(given_node, given_file) is modified
    assert seen == [(given_node, given_file)]


async def test_async_function_transformer_error() -> None:
    async def transformer(tree, file):
        raise KeyError("foxtrot")

    with pytest.raises(KeyError):
        await Processor().use(_transform(transformer)).run({"type": "bravo"})


async def test_deferred_continuation() -> None:
    modified = {"type": "charlie"}
    order = []

    def deferred(tree, file, next):
        order.append("deferred")
        asyncio.get_running_loop().call_later(0.01, next, None, modified)

    def after(tree, file):
        order.append(tree["type"])

    processor = Processor().use(_transform(deferred)).use(_transform(after))

    assert await processor.run({"type": "bravo"}) is modified
    assert order == ["deferred", "charlie"]


async def test_deferred_continuation_with_callback() -> None:
    loop = asyncio.get_running_loop()
    finished = loop.create_future()

    def deferred(tree, file, next):
        loop.call_soon(next)

    def done(error, tree, file):
        finished.set_result((error, tree))

    given_node = {"type": "bravo"}
    result = Processor().use(_transform(deferred)).run(given_node, done)

    assert result is None
    assert not finished.done()
    assert await finished == (None, given_node)


async def test_awaited_future_value_is_interpreted() -> None:
    loop = asyncio.get_running_loop()
    modified = {"type": "charlie"}

    def transformer(tree, file):
        future = loop.create_future()
        loop.call_soon(future.set_result, modified)
        return future

    assert await Processor().use(_transform(transformer)).run({"type": "bravo"}) is modified


def test_long_synchronous_chain() -> None:
    count = []

    def counter(processor, index):
        def transformer(tree, file):
            count.append(index)

        return transformer

    processor = Processor()
    for index in range(3000):

        def plugin(p, index=index):
            return counter(p, index)

        processor.use(plugin)

    done = _Recorder()
    processor.run({"type": "root"}, done)

    assert len(count) == 3000
    assert done.calls[0][0] is None


def test_async_transformer_without_loop_reports_through_done() -> None:
    async def transformer(tree, file):
        return {"type": "charlie"}

    done = _Recorder()
    Processor().use(_transform(transformer)).run({"type": "bravo"}, done)

    assert len(done.calls) == 1
    error, tree, file = done.calls[0]
    assert isinstance(error, MissingEventLoopError)
    assert (tree, file) == (None, None)


def test_transformer_taking_only_the_tree() -> None:
    seen = []
    modified = {"type": "charlie"}

    def transformer(tree):
        seen.append(tree)
        return modified

    given_node = {"type": "bravo"}
    assert Processor().use(_transform(transformer)).run_sync(given_node) is modified
    assert seen == [given_node]
