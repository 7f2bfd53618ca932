"""OpenAI-compatible chat completions adapter (OpenAI, Ollama, llama.cpp, vLLM)."""

import json
from contextlib import aclosing
from typing import Any

import httpx

from termai.errors import ProviderError
from termai.messages import (
    AssistantMessage,
    CompletionOptions,
    CompletionResult,
    FunctionCall,
    FunctionCallMessage,
    FunctionMessage,
    Message,
    SystemMessage,
    TokenUsage,
    UserMessage,
)
from termai.providers.base import HTTPProvider, TokenCallback, parse_arguments

OPENAI_BASE_URL = "https://api.openai.com/v1"


class OpenAIProvider(HTTPProvider):
    """Streams from a /chat/completions endpoint using OpenAI tool calling."""

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str = OPENAI_BASE_URL,
        temperature: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        super().__init__(base_url, model, headers=headers, transport=transport)
        self.temperature = temperature

    def build_payload(self, messages: list[Message], options: CompletionOptions) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": to_openai_messages(messages),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if options.functions:
            payload["tools"] = [
                {"type": "function", "function": f.to_schema()} for f in options.functions
            ]
            payload["tool_choice"] = _tool_choice(options.function_call)
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        return payload

    async def generate_streaming_completion(
        self,
        messages: list[Message],
        on_token: TokenCallback,
        options: CompletionOptions | None = None,
    ) -> CompletionResult:
        payload = self.build_payload(messages, options or CompletionOptions())

        content_parts: list[str] = []
        tool_calls_by_index: dict[int, dict] = {}
        usage: TokenUsage | None = None

        async with aclosing(self.stream_events("/chat/completions", payload)) as chunks:
            async for chunk in chunks:
                if "error" in chunk:
                    raise ProviderError(f"Provider error: {_error_message(chunk['error'])}")

                if chunk.get("usage"):
                    usage = TokenUsage(
                        input_tokens=chunk["usage"].get("prompt_tokens", 0),
                        output_tokens=chunk["usage"].get("completion_tokens", 0),
                        model=chunk.get("model") or self.model,
                    )

                choices = chunk.get("choices")
                if not choices:
                    continue
                delta = choices[0].get("delta") or {}

                if delta.get("content"):
                    content_parts.append(delta["content"])
                    on_token(delta["content"])

                # Tool call arguments arrive in fragments keyed by index
                for tc_delta in delta.get("tool_calls") or []:
                    idx = tc_delta.get("index", 0)
                    if idx not in tool_calls_by_index:
                        tool_calls_by_index[idx] = {"id": None, "name": "", "arguments": ""}
                    tc = tool_calls_by_index[idx]
                    if tc_delta.get("id"):
                        tc["id"] = tc_delta["id"]
                    fn = tc_delta.get("function") or {}
                    if fn.get("name"):
                        tc["name"] += fn["name"]
                    if fn.get("arguments"):
                        tc["arguments"] += fn["arguments"]

        function_calls = [
            FunctionCall(
                name=tc["name"],
                arguments=parse_arguments(tc["arguments"]),
                call_id=tc["id"] or f"call_{i}",
            )
            for i, tc in sorted(tool_calls_by_index.items())
        ]
        return CompletionResult(
            content="".join(content_parts), function_calls=function_calls, usage=usage
        )


def to_openai_messages(messages: list[Message]) -> list[dict[str, Any]]:
    """Translate the conversation into OpenAI chat message dicts."""
    out: list[dict[str, Any]] = []
    for msg in messages:
        if isinstance(msg, (SystemMessage, UserMessage, AssistantMessage)):
            out.append({"role": msg.role, "content": msg.content})
        elif isinstance(msg, FunctionCallMessage):
            out.append({
                "role": "assistant",
                "content": None,
                "tool_calls": [
                    {
                        "id": c.call_id,
                        "type": "function",
                        "function": {"name": c.name, "arguments": json.dumps(c.arguments)},
                    }
                    for c in msg.content
                ],
            })
        elif isinstance(msg, FunctionMessage):
            for r in msg.content:
                out.append({
                    "role": "tool",
                    "tool_call_id": r.call_id,
                    "content": r.result if r.error is None else f"Error: {r.error}",
                })
        else:
            raise TypeError(f"Not a message: {msg!r}")
    return out


def _tool_choice(policy: str | dict[str, str]) -> str | dict[str, Any]:
    if isinstance(policy, dict):
        return {"type": "function", "function": {"name": policy["name"]}}
    return policy


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message", error))
    return str(error)
