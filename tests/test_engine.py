"""
Tests for the conversation engine turn loop.
"""

import asyncio

import pytest

from termai.engine import Conversation
from termai.errors import ProviderError, ToolLoopExceeded
from termai.functions.registry import FunctionRegistry
from termai.messages import (
    AssistantMessage,
    FunctionCall,
    FunctionCallMessage,
    FunctionDefinition,
    FunctionMessage,
    FunctionResult,
    SystemMessage,
    TokenUsage,
    UserMessage,
)
from tests.helpers import StubProvider, call_reply, text_reply


def collect():
    tokens: list[str] = []
    return tokens, tokens.append


class TestRunTurn:
    @pytest.mark.asyncio
    async def test_plain_reply(self, registry):
        provider = StubProvider([text_reply("Hello there.")])
        conv = Conversation(provider, registry)
        tokens, on_token = collect()

        result = await conv.run_turn([], "hi", on_token)

        assert result.history == [UserMessage("hi"), AssistantMessage("Hello there.")]
        assert "".join(tokens) == "Hello there."
        assert result.usage == TokenUsage(10, 5, "gpt-4o")

    @pytest.mark.asyncio
    async def test_list_files_scenario(self, registry):
        """One function call round followed by a final text answer."""
        provider = StubProvider([
            call_reply(FunctionCall("executeCommand", {"command": "ls"}, "c1")),
            text_reply("Done."),
        ])
        conv = Conversation(provider, registry)

        result = await conv.run_turn([], "list files", lambda t: None)

        assert result.history == [
            UserMessage("list files"),
            FunctionCallMessage([FunctionCall("executeCommand", {"command": "ls"}, "c1")]),
            FunctionMessage([FunctionResult("executeCommand", "<ls output>", "c1")]),
            AssistantMessage("Done."),
        ]

    @pytest.mark.asyncio
    async def test_resubmits_full_history_after_function_round(self, registry):
        provider = StubProvider([
            call_reply(FunctionCall("echo", {"text": "x"}, "c1")),
            text_reply("ok"),
        ])
        conv = Conversation(provider, registry)

        await conv.run_turn([], "go", lambda t: None)

        second = provider.calls[1]["messages"]
        assert [m.role for m in second] == ["user", "function_call", "function"]
        assert second[2].content[0].result == "x"

    @pytest.mark.asyncio
    async def test_history_is_append_only_and_input_untouched(self, registry):
        prior = [UserMessage("earlier"), AssistantMessage("reply")]
        snapshot = list(prior)
        provider = StubProvider([
            call_reply(FunctionCall("echo", {"text": "a"}, "c1")),
            text_reply("fine"),
        ])
        conv = Conversation(provider, registry)

        result = await conv.run_turn(prior, "again", lambda t: None)

        assert prior == snapshot
        assert result.history[: len(prior)] == prior
        assert result.history is not prior

    @pytest.mark.asyncio
    async def test_system_prompt_sent_but_not_stored(self, registry):
        provider = StubProvider([text_reply("ok")])
        conv = Conversation(provider, registry, system_prompt="Be brief.")

        result = await conv.run_turn([], "hi", lambda t: None)

        sent = provider.calls[0]["messages"]
        assert sent[0] == SystemMessage("Be brief.")
        assert all(not isinstance(m, SystemMessage) for m in result.history)

    @pytest.mark.asyncio
    async def test_options_advertise_functions_with_auto_policy(self, registry):
        provider = StubProvider([text_reply("ok")])
        conv = Conversation(provider, registry)

        await conv.run_turn([], "hi", lambda t: None)

        options = provider.calls[0]["options"]
        assert options.function_call == "auto"
        assert [f.name for f in options.functions] == ["echo", "executeCommand"]

    @pytest.mark.asyncio
    async def test_usage_summed_over_every_provider_call(self, registry):
        provider = StubProvider([
            call_reply(FunctionCall("echo", {"text": "a"}, "c1"), input_tokens=100, output_tokens=7),
            call_reply(FunctionCall("echo", {"text": "b"}, "c2"), input_tokens=150, output_tokens=9),
            text_reply("done", input_tokens=200, output_tokens=11),
        ])
        conv = Conversation(provider, registry)

        result = await conv.run_turn([], "go", lambda t: None)

        assert result.usage.input_tokens == 450
        assert result.usage.output_tokens == 27
        assert result.usage.model == "gpt-4o"

    @pytest.mark.asyncio
    async def test_missing_usage_is_not_an_error(self, registry):
        reply = text_reply("ok")
        reply.usage = None
        conv = Conversation(StubProvider([reply]), registry)

        result = await conv.run_turn([], "hi", lambda t: None)

        assert result.usage.input_tokens == 0
        assert result.usage.output_tokens == 0


class TestFunctionCalls:
    @pytest.mark.asyncio
    async def test_every_call_is_followed_by_its_result(self, registry):
        provider = StubProvider([
            call_reply(
                FunctionCall("echo", {"text": "one"}, "a"),
                FunctionCall("echo", {"text": "two"}, "b"),
            ),
            text_reply("both done"),
        ])
        conv = Conversation(provider, registry)

        result = await conv.run_turn([], "go", lambda t: None)

        history = result.history
        for i, msg in enumerate(history):
            if isinstance(msg, FunctionCallMessage):
                follower = history[i + 1]
                assert isinstance(follower, FunctionMessage)
                assert follower.content[0].call_id == msg.content[0].call_id
        results = [m.content[0].result for m in history if isinstance(m, FunctionMessage)]
        assert results == ["one", "two"]

    @pytest.mark.asyncio
    async def test_unknown_function_becomes_error_result(self, registry):
        provider = StubProvider([
            call_reply(FunctionCall("nope", {}, "c1")),
            text_reply("sorry"),
        ])
        conv = Conversation(provider, registry)

        result = await conv.run_turn([], "go", lambda t: None)

        fn_result = result.history[2].content[0]
        assert fn_result.call_id == "c1"
        assert "not registered" in fn_result.error
        assert result.history[-1] == AssistantMessage("sorry")

    @pytest.mark.asyncio
    async def test_handler_failure_becomes_error_result(self):
        reg = FunctionRegistry()

        async def broken(args):
            raise RuntimeError("disk on fire")

        reg.register(FunctionDefinition("broken", "fails", {}), broken)
        provider = StubProvider([
            call_reply(FunctionCall("broken", {}, "c1")),
            text_reply("it failed"),
        ])

        result = await Conversation(provider, reg).run_turn([], "go", lambda t: None)

        assert "disk on fire" in result.history[2].content[0].error
        assert result.history[-1].content == "it failed"

    @pytest.mark.asyncio
    async def test_interim_text_is_kept_before_calls(self, registry):
        provider = StubProvider([
            call_reply(FunctionCall("echo", {"text": "x"}, "c1"), content="Let me check."),
            text_reply("Checked."),
        ])

        result = await Conversation(provider, registry).run_turn([], "go", lambda t: None)

        assert [m.role for m in result.history] == [
            "user", "assistant", "function_call", "function", "assistant",
        ]
        assert result.history[1].content == "Let me check."

    @pytest.mark.asyncio
    async def test_concurrent_dispatch_keeps_request_order(self):
        reg = FunctionRegistry()
        finished: list[str] = []

        async def sleepy(args):
            await asyncio.sleep(args["delay"])
            finished.append(args["tag"])
            return args["tag"]

        reg.register(FunctionDefinition("sleepy", "sleeps", {}), sleepy)
        provider = StubProvider([
            call_reply(
                FunctionCall("sleepy", {"delay": 0.05, "tag": "slow"}, "c1"),
                FunctionCall("sleepy", {"delay": 0.0, "tag": "fast"}, "c2"),
            ),
            text_reply("done"),
        ])
        conv = Conversation(provider, reg, concurrent_tools=True)

        result = await conv.run_turn([], "go", lambda t: None)

        assert finished == ["fast", "slow"]
        recorded = [m.content[0].result for m in result.history if isinstance(m, FunctionMessage)]
        assert recorded == ["slow", "fast"]

    @pytest.mark.asyncio
    async def test_hooks_see_calls_and_results(self, registry):
        seen = []
        provider = StubProvider([
            call_reply(FunctionCall("echo", {"text": "x"}, "c1")),
            text_reply("ok"),
        ])
        conv = Conversation(
            provider, registry,
            on_function_call=lambda c: seen.append(("call", c.name)),
            on_function_result=lambda r: seen.append(("result", r.result)),
        )

        await conv.run_turn([], "go", lambda t: None)

        assert seen == [("call", "echo"), ("result", "x")]


class TestFailures:
    @pytest.mark.asyncio
    async def test_tool_loop_is_bounded(self, registry):
        looping = [call_reply(FunctionCall("echo", {"text": "again"}, f"c{i}")) for i in range(5)]
        provider = StubProvider(looping)
        conv = Conversation(provider, registry, max_tool_rounds=2)

        with pytest.raises(ToolLoopExceeded) as exc_info:
            await conv.run_turn([], "loop forever", lambda t: None)

        assert exc_info.value.rounds == 2
        assert len(provider.calls) == 3

    @pytest.mark.asyncio
    async def test_provider_error_propagates_without_touching_history(self, registry):
        prior = [UserMessage("before"), AssistantMessage("answer")]
        provider = StubProvider([ProviderError("boom")])
        conv = Conversation(provider, registry)

        with pytest.raises(ProviderError):
            await conv.run_turn(prior, "hi", lambda t: None)

        assert prior == [UserMessage("before"), AssistantMessage("answer")]

    def test_max_tool_rounds_must_be_positive(self, registry):
        with pytest.raises(ValueError):
            Conversation(StubProvider([]), registry, max_tool_rounds=0)
