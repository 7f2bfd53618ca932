"""Anthropic Messages API adapter."""

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

ANTHROPIC_BASE_URL = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096


class ClaudeProvider(HTTPProvider):
    """Streams from /v1/messages using Anthropic tool use."""

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str = ANTHROPIC_BASE_URL,
        temperature: float | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"anthropic-version": ANTHROPIC_VERSION}
        if api_key:
            headers["x-api-key"] = api_key
        super().__init__(base_url, model, headers=headers, transport=transport)
        self.temperature = temperature
        self.max_tokens = max_tokens

    def build_payload(self, messages: list[Message], options: CompletionOptions) -> dict[str, Any]:
        system, converted = to_claude_messages(messages)
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": converted,
            "stream": True,
        }
        if system:
            payload["system"] = system
        if options.functions:
            payload["tools"] = [
                {
                    "name": f.name,
                    "description": f.description,
                    "input_schema": f.parameters(),
                }
                for f in options.functions
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
        tool_blocks: dict[int, dict] = {}
        input_tokens = output_tokens = 0
        saw_usage = False

        async with aclosing(self.stream_events("/v1/messages", payload)) as events:
            async for event in events:
                kind = event.get("type")

                if kind == "error":
                    err = event.get("error") or {}
                    raise ProviderError(f"Provider error: {err.get('message', err)}")

                if kind == "message_start":
                    usage = (event.get("message") or {}).get("usage") or {}
                    if usage:
                        saw_usage = True
                        input_tokens = usage.get("input_tokens", 0)
                        output_tokens = usage.get("output_tokens", 0)

                elif kind == "content_block_start":
                    block = event.get("content_block") or {}
                    if block.get("type") == "tool_use":
                        tool_blocks[event.get("index", 0)] = {
                            "id": block.get("id"),
                            "name": block.get("name", ""),
                            "json": "",
                        }

                elif kind == "content_block_delta":
                    delta = event.get("delta") or {}
                    if delta.get("type") == "text_delta" and delta.get("text"):
                        content_parts.append(delta["text"])
                        on_token(delta["text"])
                    elif delta.get("type") == "input_json_delta":
                        block = tool_blocks.get(event.get("index", 0))
                        if block is not None:
                            block["json"] += delta.get("partial_json", "")

                elif kind == "message_delta":
                    usage = event.get("usage") or {}
                    if "output_tokens" in usage:
                        saw_usage = True
                        output_tokens = usage["output_tokens"]

        function_calls = [
            FunctionCall(
                name=b["name"],
                arguments=parse_arguments(b["json"]),
                call_id=b["id"] or f"toolu_{i}",
            )
            for i, b in sorted(tool_blocks.items())
        ]
        usage_result = (
            TokenUsage(input_tokens, output_tokens, self.model) if saw_usage else None
        )
        return CompletionResult(
            content="".join(content_parts), function_calls=function_calls, usage=usage_result
        )


def to_claude_messages(messages: list[Message]) -> tuple[str, list[dict[str, Any]]]:
    """Split out the system prompt and convert the rest into content-block messages.

    Consecutive messages with the same Anthropic role are merged, since the API
    requires user and assistant turns to alternate.
    """
    system_parts: list[str] = []
    out: list[dict[str, Any]] = []

    for msg in messages:
        if isinstance(msg, SystemMessage):
            system_parts.append(msg.content)
            continue
        if isinstance(msg, UserMessage):
            role, blocks = "user", [{"type": "text", "text": msg.content}]
        elif isinstance(msg, AssistantMessage):
            if not msg.content:
                continue
            role, blocks = "assistant", [{"type": "text", "text": msg.content}]
        elif isinstance(msg, FunctionCallMessage):
            role = "assistant"
            blocks = [
                {"type": "tool_use", "id": c.call_id, "name": c.name, "input": c.arguments}
                for c in msg.content
            ]
        elif isinstance(msg, FunctionMessage):
            role = "user"
            blocks = []
            for r in msg.content:
                block: dict[str, Any] = {
                    "type": "tool_result",
                    "tool_use_id": r.call_id,
                    "content": r.result if r.error is None else r.error,
                }
                if r.error is not None:
                    block["is_error"] = True
                blocks.append(block)
        else:
            raise TypeError(f"Not a message: {msg!r}")

        if out and out[-1]["role"] == role:
            out[-1]["content"].extend(blocks)
        else:
            out.append({"role": role, "content": blocks})

    return "\n\n".join(system_parts), out


def _tool_choice(policy: str | dict[str, str]) -> dict[str, Any]:
    if isinstance(policy, dict):
        return {"type": "tool", "name": policy["name"]}
    return {"type": policy}
