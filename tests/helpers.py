"""Test doubles: a scripted provider stub, canned replies, and scripted prompts."""

from typing import Any

from termai.messages import (
    CompletionOptions,
    CompletionResult,
    FunctionCall,
    FunctionDefinition,
    Message,
    TokenUsage,
)
from termai.providers.base import LLMProvider


class StubProvider(LLMProvider):
    """Replays scripted results in order. An Exception in the script is raised instead."""

    def __init__(self, responses: list[Any], model: str = "gpt-4o") -> None:
        self.responses = list(responses)
        self.model = model
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def generate_streaming_completion(
        self,
        messages: list[Message],
        on_token,
        options: CompletionOptions | None = None,
    ) -> CompletionResult:
        self.calls.append({"messages": list(messages), "options": options})
        if not self.responses:
            raise AssertionError("provider called more times than scripted")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        for i in range(0, len(item.content), 4):
            on_token(item.content[i:i + 4])
        return item

    def get_model(self) -> str:
        return self.model

    async def close(self) -> None:
        self.closed = True


def text_reply(content: str, input_tokens: int = 10, output_tokens: int = 5) -> CompletionResult:
    return CompletionResult(
        content=content,
        usage=TokenUsage(input_tokens, output_tokens, "gpt-4o"),
    )


def call_reply(*calls: FunctionCall, content: str = "", input_tokens: int = 10, output_tokens: int = 5) -> CompletionResult:
    return CompletionResult(
        content=content,
        function_calls=list(calls),
        usage=TokenUsage(input_tokens, output_tokens, "gpt-4o"),
    )


ECHO_FUNCTION = FunctionDefinition(
    name="echo",
    description="Echo the given text back.",
    properties={"text": {"type": "string", "description": "Text to echo"}},
    required=["text"],
)

EXECUTE_FUNCTION = FunctionDefinition(
    name="executeCommand",
    description="Execute a shell command.",
    properties={"command": {"type": "string"}},
    required=["command"],
)


def scripted_prompt(inputs: list[str]):
    """A prompt callable that returns each input in turn, then raises EOFError."""
    remaining = list(inputs)

    def prompt() -> str:
        if not remaining:
            raise EOFError
        return remaining.pop(0)

    prompt.remaining = remaining
    return prompt
