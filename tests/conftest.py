"""Shared fixtures: function registries and a temporary thread store."""

import pytest

from termai.functions.registry import FunctionRegistry
from termai.threads import ThreadStore
from tests.helpers import ECHO_FUNCTION, EXECUTE_FUNCTION


@pytest.fixture
def registry() -> FunctionRegistry:
    """Registry with an echo function and a fake executeCommand."""
    reg = FunctionRegistry()

    async def echo(args: dict) -> str:
        return args["text"]

    async def fake_execute(args: dict) -> str:
        return f"<{args['command']} output>"

    reg.register(ECHO_FUNCTION, echo)
    reg.register(EXECUTE_FUNCTION, fake_execute)
    return reg


@pytest.fixture
def store(tmp_path):
    s = ThreadStore(tmp_path / "threads.db")
    yield s
    s.close()


