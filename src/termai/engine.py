"""Conversation engine. Stream a response, run requested functions, re-prompt."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from termai.errors import FunctionDispatchError, ToolLoopExceeded
from termai.functions.registry import FunctionRegistry
from termai.messages import (
    AssistantMessage,
    CompletionOptions,
    FunctionCall,
    FunctionCallMessage,
    FunctionMessage,
    FunctionResult,
    Message,
    SystemMessage,
    TokenUsage,
    UserMessage,
)
from termai.providers.base import LLMProvider, TokenCallback

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_ROUNDS = 10


@dataclass
class TurnResult:
    history: list[Message]
    usage: TokenUsage


class Conversation:
    """Runs turns against one provider with one function registry.

    The engine never persists anything: ``run_turn`` returns the new history
    and the caller decides what to do with it.
    """

    def __init__(
        self,
        provider: LLMProvider,
        registry: FunctionRegistry | None = None,
        system_prompt: str | None = None,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
        concurrent_tools: bool = False,
        on_function_call: Callable[[FunctionCall], None] | None = None,
        on_function_result: Callable[[FunctionResult], None] | None = None,
    ) -> None:
        if max_tool_rounds < 1:
            raise ValueError("max_tool_rounds must be at least 1")
        self.provider = provider
        self.registry = registry or FunctionRegistry()
        self.system_prompt = system_prompt
        self.max_tool_rounds = max_tool_rounds
        self.concurrent_tools = concurrent_tools
        self._on_function_call = on_function_call
        self._on_function_result = on_function_result

    async def run_turn(
        self,
        history: list[Message],
        user_input: str,
        on_token: TokenCallback,
    ) -> TurnResult:
        """Run one user turn to completion, including any function-call rounds.

        The returned history is ``history`` plus the new messages; the list
        passed in is left untouched. Usage covers every provider call made
        during the turn.
        """
        working: list[Message] = list(history)
        working.append(UserMessage(user_input))
        usage = TokenUsage(model=self.provider.get_model())
        options = CompletionOptions(functions=self.registry.definitions(), function_call="auto")

        rounds = 0
        while True:
            result = await self.provider.generate_streaming_completion(
                self._with_system_prompt(working), on_token, options
            )
            if result.usage is not None:
                usage = usage + result.usage

            if not result.function_calls:
                working.append(AssistantMessage(result.content))
                return TurnResult(working, usage)

            rounds += 1
            if rounds > self.max_tool_rounds:
                raise ToolLoopExceeded(self.max_tool_rounds)

            logger.debug(
                "Round %d: model requested %s",
                rounds, ", ".join(c.name for c in result.function_calls),
            )
            if result.content:
                working.append(AssistantMessage(result.content))

            results = await self._dispatch_all(result.function_calls)
            for call, fn_result in zip(result.function_calls, results):
                working.append(FunctionCallMessage([call]))
                working.append(FunctionMessage([fn_result]))

            # Loop back to re-prompt the model with function results

    def _with_system_prompt(self, messages: list[Message]) -> list[Message]:
        if not self.system_prompt:
            return messages
        return [SystemMessage(self.system_prompt), *messages]

    async def _dispatch_all(self, calls: list[FunctionCall]) -> list[FunctionResult]:
        """Run every call of one round. Results come back in request order."""
        if self.concurrent_tools:
            return list(await asyncio.gather(*(self._dispatch(c) for c in calls)))
        return [await self._dispatch(c) for c in calls]

    async def _dispatch(self, call: FunctionCall) -> FunctionResult:
        if self._on_function_call:
            self._on_function_call(call)
        try:
            output = await self.registry.dispatch(call.name, call.arguments)
            fn_result = FunctionResult(name=call.name, result=output, call_id=call.call_id)
        except FunctionDispatchError as e:
            fn_result = FunctionResult(name=call.name, result="", call_id=call.call_id, error=str(e))
        if self._on_function_result:
            self._on_function_result(fn_result)
        return fn_result
