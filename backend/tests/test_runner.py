"""
Tests for the AgentRunner execution loop.
Covers terminal events, selection fallbacks, escalation switches, tool-result
matching, failure conversion and finalization side effects.
"""

import asyncio

import httpx
import pytest
from unittest.mock import AsyncMock

from conftest import MemoryTranscriptStore, ScriptedBackend, text_step, tool_step
from agents.base import AgentProfile
from agents.events import (
    DoneEvent,
    ModelSwitchEvent,
    TextDeltaEvent,
    ToolCallEvent,
    ToolResultEvent,
)
from agents.runner import AgentRunner, collect_response
from config import NO_MODELS_MESSAGE
from inference.provider import ProviderRegistry
from inference.streaming import TextPart
from routing.escalation import EscalationConfig
from routing.selector import ModelCandidate, ModelGroup
from tools import ToolDefinition


async def _events(runner, options) -> list:
    return [event async for event in runner.run(options)]


def _types(events) -> list[str]:
    return [e.type for e in events]


class TestTerminalEvent:
    """Every run ends with exactly one done event."""

    @pytest.mark.asyncio
    async def test_plain_text_run(self, make_runner, make_options):
        backend = ScriptedBackend([text_step("Hi ", 7, 3), text_step("unused")])
        events = await _events(make_runner({"fast": backend}), make_options())

        assert _types(events) == ["text-delta", "done"]
        done = events[-1]
        assert done.response == "Hi "
        assert done.usage.prompt_tokens == 7
        assert done.usage.completion_tokens == 3
        assert len(backend.requests) == 1

    @pytest.mark.asyncio
    async def test_no_models_yields_only_done(self, make_runner, make_options):
        options = make_options(fast=[], slow=[])
        events = await _events(make_runner({}), options)

        assert len(events) == 1
        assert isinstance(events[0], DoneEvent)
        assert events[0].response == NO_MODELS_MESSAGE
        assert events[0].usage.prompt_tokens == 0
        assert events[0].usage.completion_tokens == 0

    @pytest.mark.asyncio
    async def test_stream_failure_becomes_error_response(self, make_runner, make_options):
        backend = ScriptedBackend(error=RuntimeError("connection dropped"))
        events = await _events(make_runner({"fast": backend}), make_options())

        assert _types(events) == ["done"]
        assert events[0].response.startswith("Error during agent execution:")
        assert "connection dropped" in events[0].response

    @pytest.mark.asyncio
    async def test_failure_mid_attempt_keeps_earlier_events(self, make_runner, make_options):
        async def broken_stream(handle, system, messages, **kwargs):
            yield TextPart("partial")
            raise ValueError("stream exploded")

        runner = make_runner({"fast": ScriptedBackend()}, stream_fn=broken_stream)
        events = await _events(runner, make_options())

        assert _types(events) == ["text-delta", "done"]
        assert events[-1].response == "Error during agent execution: stream exploded"

    @pytest.mark.asyncio
    async def test_usage_tracker_failure_is_converted(self, make_runner, make_options):
        tracker = AsyncMock()
        tracker.record.side_effect = OSError("read-only")
        backend = ScriptedBackend([text_step("ok")])
        events = await _events(make_runner({"fast": backend}),
                               make_options(usage_tracker=tracker))

        assert events[-1].type == "done"
        assert events[-1].response == "Error during agent execution: read-only"

    @pytest.mark.asyncio
    async def test_collect_response_returns_done(self, make_runner, make_options):
        backend = ScriptedBackend([text_step("answer")])
        done = await collect_response(make_runner({"fast": backend}).run(make_options()))
        assert done.response == "answer"


class TestInitialSelection:
    """Agent model refs, fallbacks and group selection."""

    @pytest.mark.asyncio
    async def test_defaults_to_fast_group(self, make_runner, make_options):
        fast, slow = ScriptedBackend([text_step("f")]), ScriptedBackend([text_step("s")])
        done = await collect_response(
            make_runner({"fast": fast, "slow": slow}).run(make_options()))
        assert done.response == "f"
        assert slow.requests == []

    @pytest.mark.asyncio
    async def test_group_ref_selects_slow(self, make_runner, make_options):
        fast, slow = ScriptedBackend([text_step("f")]), ScriptedBackend([text_step("s")])
        options = make_options(agent=AgentProfile(model_ref="slow"))
        done = await collect_response(make_runner({"fast": fast, "slow": slow}).run(options))
        assert done.response == "s"
        assert fast.requests == []

    @pytest.mark.asyncio
    async def test_explicit_ref_wins(self, make_runner, make_options):
        pinned = ScriptedBackend([text_step("pinned")])
        options = make_options(agent=AgentProfile(model_ref="pinned/p1"))
        done = await collect_response(
            make_runner({"fast": ScriptedBackend(), "pinned": pinned}).run(options))
        assert done.response == "pinned"
        assert pinned.requests[0]["model"] == "p1"

    @pytest.mark.asyncio
    async def test_fallback_ref_used_when_primary_cools_down(self, make_runner, make_options,
                                                             cooldowns):
        cooldowns.mark_unavailable("pinned", "p1", 60_000)
        backup = ScriptedBackend([text_step("backup")])
        options = make_options(agent=AgentProfile(model_ref="pinned/p1",
                                                  fallback_model_ref="backup/b1"))
        runner = make_runner({"pinned": ScriptedBackend(), "backup": backup,
                              "fast": ScriptedBackend()})
        done = await collect_response(runner.run(options))
        assert done.response == "backup"

    @pytest.mark.asyncio
    async def test_group_fallback_switches_group(self, make_runner, make_options):
        slow = ScriptedBackend([text_step("slow answer")])
        options = make_options(agent=AgentProfile(model_ref="missing/m",
                                                  fallback_model_ref="slow"))
        done = await collect_response(
            make_runner({"fast": ScriptedBackend(), "slow": slow}).run(options))
        assert done.response == "slow answer"

    @pytest.mark.asyncio
    async def test_group_fallback_ignored_when_primary_group_available(self, make_runner,
                                                                      make_options):
        fast, slow = ScriptedBackend([text_step("f")]), ScriptedBackend([text_step("s")])
        options = make_options(agent=AgentProfile(model_ref="slow", fallback_model_ref="fast"))
        done = await collect_response(make_runner({"fast": fast, "slow": slow}).run(options))
        assert done.response == "s"
        assert fast.requests == []

    @pytest.mark.asyncio
    async def test_group_fallback_used_when_primary_group_empty(self, make_runner,
                                                                make_options):
        slow = ScriptedBackend([text_step("s")])
        options = make_options(fast=[], agent=AgentProfile(model_ref="fast",
                                                           fallback_model_ref="slow"))
        done = await collect_response(
            make_runner({"fast": ScriptedBackend(), "slow": slow}).run(options))
        assert done.response == "s"

    @pytest.mark.asyncio
    async def test_workspace_candidates_searched_first(self, make_runner, make_options):
        ws_backend = ScriptedBackend([text_step("workspace")])
        options = make_options(
            workspace_models={ModelGroup.FAST: [ModelCandidate("wsprov", "w1")]})
        done = await collect_response(
            make_runner({"fast": ScriptedBackend(), "wsprov": ws_backend}).run(options))
        assert done.response == "workspace"


class TestEscalation:
    """Fast-to-slow switching driven by the escalation state."""

    @pytest.mark.asyncio
    async def test_slow_only_tool_switches_model(self, make_runner, make_options,
                                                 tool_registry):
        def deep_research(query: str) -> str:
            """Research a topic thoroughly."""
            return "findings"

        tool_registry.register(ToolDefinition.from_function(
            deep_research, model_group=ModelGroup.SLOW))
        fast = ScriptedBackend([tool_step("deep_research", {"query": "x"}, text="Let me look. "),
                                text_step("fast summary")])
        slow = ScriptedBackend([text_step("slow answer")])

        events = await _events(make_runner({"fast": fast, "slow": slow}), make_options())
        types = _types(events)

        assert types.index("tool-call") < types.index("model-switch")
        switch = next(e for e in events if isinstance(e, ModelSwitchEvent))
        assert switch.from_model == "fast/f1"
        assert switch.to_model == "slow/s1"
        assert "deep_research" in switch.reason
        assert switch.to_dict()["to"] == "slow/s1"
        # The run continues on the slow model with the partial answer appended
        assert events[-1].response == "slow answer"
        sent = slow.requests[0]["messages"]
        assert sent[-1] == {"role": "assistant", "content": "Let me look. fast summary"}

    @pytest.mark.asyncio
    async def test_partial_text_kept_when_slow_model_is_silent(self, make_runner, make_options,
                                                              tool_registry):
        def deep_research(query: str) -> str:
            return "findings"

        tool_registry.register(ToolDefinition.from_function(
            deep_research, model_group=ModelGroup.SLOW))
        fast = ScriptedBackend([tool_step("deep_research", {"query": "x"}, text="Partial. ")])
        slow = ScriptedBackend()
        events = await _events(make_runner({"fast": fast, "slow": slow}), make_options())

        assert "model-switch" in _types(events)
        assert len(slow.requests) == 1
        assert events[-1].response == "Partial. "

    @pytest.mark.asyncio
    async def test_token_threshold_needs_tool_calls_to_switch(self, make_runner, make_options):
        fast = ScriptedBackend([text_step("long", prompt=5000, completion=10)])
        slow = ScriptedBackend([text_step("slow")])
        events = await _events(make_runner({"fast": fast, "slow": slow}), make_options())

        assert "model-switch" not in _types(events)
        assert events[-1].response == "long"

    @pytest.mark.asyncio
    async def test_tool_depth_threshold_switches(self, make_runner, make_options,
                                                 tool_registry):
        def lookup(term: str) -> str:
            return f"def:{term}"

        tool_registry.register(ToolDefinition.from_function(lookup))
        fast = ScriptedBackend([tool_step("lookup", {"term": str(i)}, call_id=f"c{i}")
                                for i in range(4)] + [text_step("fast done")])
        slow = ScriptedBackend([text_step("slow done")])
        runner = make_runner({"fast": fast, "slow": slow},
                             escalation_config=EscalationConfig(max_tool_call_depth=3))
        events = await _events(runner, make_options())

        switch = next(e for e in events if isinstance(e, ModelSwitchEvent))
        assert "Tool call depth 4" in switch.reason
        assert events[-1].response == "slow done"

    @pytest.mark.asyncio
    async def test_no_slow_candidate_keeps_fast_answer(self, make_runner, make_options,
                                                       tool_registry):
        def deep_research(query: str) -> str:
            return "findings"

        tool_registry.register(ToolDefinition.from_function(
            deep_research, model_group=ModelGroup.SLOW))
        fast = ScriptedBackend([tool_step("deep_research", {"query": "x"}),
                                text_step("fast answer")])
        events = await _events(make_runner({"fast": fast}), make_options(slow=[]))

        assert "model-switch" not in _types(events)
        assert events[-1].response == "fast answer"

    @pytest.mark.asyncio
    async def test_bounded_steps_and_attempts(self, make_runner, make_options, tool_registry):
        def loop_tool() -> str:
            return "again"

        tool_registry.register(ToolDefinition.from_function(loop_tool))
        fast = ScriptedBackend(default=tool_step("loop_tool"))
        slow = ScriptedBackend(default=tool_step("loop_tool"))
        events = await _events(make_runner({"fast": fast, "slow": slow}), make_options())

        assert len(fast.requests) == 10
        assert len(slow.requests) == 10
        assert _types(events).count("model-switch") == 1
        assert _types(events).count("done") == 1


class TestToolResults:
    """Tool events and result matching."""

    @pytest.mark.asyncio
    async def test_tool_result_becomes_response_without_text(self, make_runner, make_options,
                                                             tool_registry):
        def get_time() -> str:
            return "12:00 UTC"

        tool_registry.register(ToolDefinition.from_function(get_time))
        fast = ScriptedBackend([tool_step("get_time")])
        events = await _events(make_runner({"fast": fast}), make_options())

        assert _types(events) == ["tool-call", "tool-result", "done"]
        assert events[-1].response == "12:00 UTC"

    @pytest.mark.asyncio
    async def test_results_match_earliest_pending_call(self, make_runner, make_options,
                                                       transcripts, tool_registry):
        def search(query: str) -> str:
            return f"result for {query}"

        tool_registry.register(ToolDefinition.from_function(search))
        both = tool_step("search", {"query": "first"}, call_id="a")[:1] + \
            tool_step("search", {"query": "second"}, call_id="b")
        fast = ScriptedBackend([both, text_step("done")])
        await _events(make_runner({"fast": fast}), make_options())

        log = transcripts.entries["sess-1"][0].metadata["tool_calls"]
        assert log[0] == {"tool_name": "search", "args": {"query": "first"},
                          "result": "result for first"}
        assert log[1]["result"] == "result for second"

    @pytest.mark.asyncio
    async def test_events_serialize(self, make_runner, make_options, tool_registry):
        def ping() -> str:
            return "pong"

        tool_registry.register(ToolDefinition.from_function(ping))
        fast = ScriptedBackend([tool_step("ping"), text_step("done")])
        events = await _events(make_runner({"fast": fast}), make_options())

        call = next(e for e in events if isinstance(e, ToolCallEvent))
        result = next(e for e in events if isinstance(e, ToolResultEvent))
        assert call.to_dict() == {"type": "tool-call", "toolName": "ping", "args": {}}
        assert result.to_dict()["result"] == "pong"
        assert events[-1].to_dict()["usage"] == {"promptTokens": 20, "completionTokens": 10}


class TestFinalization:
    """Transcript, usage and cooldown side effects."""

    @pytest.mark.asyncio
    async def test_transcript_metadata(self, make_runner, make_options, transcripts):
        fast = ScriptedBackend([text_step("hello there", 12, 4)])
        await _events(make_runner({"fast": fast}), make_options(agent_name="Helper"))

        entry = transcripts.entries["sess-1"][0]
        assert entry.role == "assistant"
        assert entry.content == "hello there"
        assert entry.metadata["model_used"] == "fast:f1"
        assert entry.metadata["model_group"] == "fast"
        assert entry.metadata["escalated"] is False
        assert entry.metadata["token_usage"] == {"prompt": 12, "completion": 4}
        assert entry.metadata["agent_name"] == "Helper"

    @pytest.mark.asyncio
    async def test_empty_response_skips_transcript(self, make_runner, make_options, transcripts):
        await _events(make_runner({"fast": ScriptedBackend()}), make_options())
        assert transcripts.entries == {}

    @pytest.mark.asyncio
    async def test_transcript_failure_does_not_abort(self, tool_registry, cooldowns,
                                                     make_options):
        runner = AgentRunner(tool_registry, cooldowns, MemoryTranscriptStore(fail=True),
                             ProviderRegistry(backends={"fast": ScriptedBackend(
                                 [text_step("still here")])}))
        events = await _events(runner, make_options())
        assert events[-1].response == "still here"

    @pytest.mark.asyncio
    async def test_usage_recorded(self, make_runner, make_options):
        tracker = AsyncMock()
        fast = ScriptedBackend([text_step("ok", 1_000_000, 0)])
        options = make_options(fast=[ModelCandidate("fast", "gpt-4o-mini")],
                               usage_tracker=tracker, channel_type="telegram")
        await _events(make_runner({"fast": fast}), options)

        record = tracker.record.await_args.args[0]
        assert record.provider == "fast"
        assert record.model == "gpt-4o-mini"
        assert record.model_group == "fast"
        assert record.agent_name == "Tester"
        assert record.tokens.total == 1_000_000
        assert record.cost.total == pytest.approx(0.15)
        assert record.channel_type == "telegram"

    @pytest.mark.asyncio
    async def test_provider_failure_cools_candidate_down(self, make_runner, make_options,
                                                         cooldowns):
        request = httpx.Request("POST", "http://fast/v1/chat/completions")
        error = httpx.HTTPStatusError("Too Many Requests", request=request,
                                      response=httpx.Response(429, request=request))
        runner = make_runner({"fast": ScriptedBackend(error=error)})
        events = await _events(runner, make_options())

        assert events[-1].response.startswith("Error during agent execution:")
        assert not cooldowns.is_available("fast", "f1")
        assert cooldowns.remaining("fast", "f1") > 50


class TestAbort:
    """Graceful cancellation through RunOptions.abort."""

    @pytest.mark.asyncio
    async def test_abort_stops_and_still_yields_done(self, make_runner, make_options):
        abort = asyncio.Event()
        fast = ScriptedBackend([[*text_step("one ")[:1], *text_step("two")]])
        events = []
        async for event in make_runner({"fast": fast}).run(make_options(abort=abort)):
            events.append(event)
            if isinstance(event, TextDeltaEvent):
                abort.set()

        assert _types(events) == ["text-delta", "done"]
        assert events[-1].response == "one "

    @pytest.mark.asyncio
    async def test_preset_abort_runs_nothing(self, make_runner, make_options):
        abort = asyncio.Event()
        abort.set()
        fast = ScriptedBackend([text_step("never")])
        events = await _events(make_runner({"fast": fast}), make_options(abort=abort))

        assert _types(events) == ["done"]
        assert fast.requests == []
