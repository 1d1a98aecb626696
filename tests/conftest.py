import asyncio
import inspect
import sys

import pytest


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    """Run async test functions without requiring external plugins."""
    test_function = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_function):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            # Filter funcargs to only include parameters the function expects
            sig = inspect.signature(test_function)
            filtered_args = {k: v for k, v in pyfuncitem.funcargs.items() if k in sig.parameters}
            loop.run_until_complete(test_function(**filtered_args))
        finally:
            loop.close()
            asyncio.set_event_loop(None)
        return True
    return None


def pytest_configure(config):
    """Register markers for pytest."""
    config.addinivalue_line("markers", "asyncio: mark async tests")


def simple_parser(text, file):
    return {"type": "text", "value": text}


def simple_compiler(tree, file):
    return tree["value"]


def text_plugin(processor):
    processor.parser = simple_parser
    processor.compiler = simple_compiler


@pytest.fixture
def text_processor():
    """Unfrozen processor with a text parser and compiler attached."""
    from unifold import Processor

    return Processor().use(text_plugin)


SAMPLE_PLUGINS = '''
def exclaim(processor, options=None):
    suffix = (options or {}).get("suffix", "!")

    def transformer(tree, file):
        tree["value"] += suffix

    return transformer


def shout(processor):
    def transformer(tree, file):
        tree["value"] = tree["value"].upper()

    return transformer


class Namespace:
    @staticmethod
    def nested(processor):
        processor.data("nested", True)


NOT_CALLABLE = 42
'''


@pytest.fixture
def plugin_module(tmp_path, monkeypatch):
    """Importable module of sample plugins, returned by name."""
    (tmp_path / "sample_plugins.py").write_text(SAMPLE_PLUGINS, encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))
    monkeypatch.delitem(sys.modules, "sample_plugins", raising=False)
    return "sample_plugins"
