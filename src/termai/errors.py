"""Exception types raised across termai."""


class TermAIError(Exception):
    """Base class for all termai errors."""


class ProviderError(TermAIError):
    """The language-model provider failed (transport, HTTP status, or malformed reply)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FunctionDispatchError(TermAIError):
    """A function handler failed. Captured into the function result, never fatal."""


class FunctionNotFound(FunctionDispatchError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Function '{name}' is not registered")
        self.name = name


class ToolLoopExceeded(TermAIError):
    def __init__(self, rounds: int) -> None:
        super().__init__(
            f"The model kept requesting tools after {rounds} rounds; giving up on this turn."
        )
        self.rounds = rounds


class PersistenceError(TermAIError):
    """The thread store could not write."""
