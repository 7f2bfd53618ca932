"""Function registry and dispatch."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from termai.errors import FunctionDispatchError, FunctionNotFound
from termai.messages import FunctionDefinition

logger = logging.getLogger(__name__)

FunctionHandler = Callable[[dict[str, Any]], Awaitable[str]]


@dataclass
class RegisteredFunction:
    definition: FunctionDefinition
    handler: FunctionHandler


class FunctionRegistry:
    """Holds registered functions and dispatches calls to their handlers."""

    def __init__(self) -> None:
        self._functions: dict[str, RegisteredFunction] = {}

    def register(self, definition: FunctionDefinition, handler: FunctionHandler) -> None:
        if definition.name in self._functions:
            logger.debug("Replacing handler for function %s", definition.name)
        self._functions[definition.name] = RegisteredFunction(definition, handler)

    def get(self, name: str) -> RegisteredFunction | None:
        return self._functions.get(name)

    def definitions(self) -> list[FunctionDefinition]:
        return [f.definition for f in self._functions.values()]

    def __contains__(self, name: str) -> bool:
        return name in self._functions

    def __len__(self) -> int:
        return len(self._functions)

    async def dispatch(self, name: str, arguments: dict[str, Any]) -> str:
        """Run the handler for ``name``.

        Raises FunctionNotFound for an unregistered name and wraps any handler
        exception in FunctionDispatchError.
        """
        fn = self._functions.get(name)
        if fn is None:
            raise FunctionNotFound(name)
        try:
            return await fn.handler(arguments)
        except Exception as e:
            logger.debug("Function %s failed", name, exc_info=True)
            raise FunctionDispatchError(f"Error executing {name}: {e}") from e
