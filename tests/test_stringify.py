from __future__ import annotations

import pytest

from unifold import InvalidNodeError, MissingCompilerError, Processor, VirtualFile


def test_stringify_without_compiler_fails() -> None:
    with pytest.raises(MissingCompilerError, match="Cannot `stringify` without `compiler`"):
        Processor().stringify({"type": "root"})


def test_stringify_rejects_non_nodes() -> None:
    processor = Processor()
    processor.compiler = lambda tree, file: "never"

    for value in (None, "", {"type": 1}, {"value": "x"}, [1, 2]):
        with pytest.raises(InvalidNodeError, match="Expected node"):
            processor.stringify(value)


def test_stringify_with_function() -> None:
    given_file = VirtualFile("charlie")
    given_node = {"type": "delta"}
    seen = []

    def compiler(tree, file):
        seen.append((tree, file))
        return "echo"

    processor = Processor()
    processor.compiler = compiler

    assert processor.stringify(given_node, given_file) == "echo"
    assert seen == [(given_node, given_file)]


def test_stringify_with_class() -> None:
    given_node = {"type": "delta"}
    seen = []

    class Compiler:
        def __init__(self, tree, file):
            seen.append((tree, str(file)))

        def compile(self):
            return "echo"

    processor = Processor()
    processor.compiler = Compiler

    assert processor.stringify(given_node, "charlie") == "echo"
    assert seen == [(given_node, "charlie")]


def test_stringify_returns_non_text_results() -> None:
    result = {"rendered": True}
    processor = Processor()
    processor.compiler = lambda tree, file: result
    assert processor.stringify({"type": "root"}) is result


def test_stringify_accepts_attribute_nodes() -> None:
    class Node:
        type = "element"

    processor = Processor()
    processor.compiler = lambda tree, file: tree.type
    assert processor.stringify(Node()) == "element"
