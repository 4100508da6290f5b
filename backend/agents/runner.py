"""
AgentRunner — the execution loop for one conversational turn.

Architecture:
  - run() is an async generator: text deltas, tool calls/results and model
    switches stream out as they happen, then exactly one DoneEvent.
  - Each run starts on the fast group unless the agent pins a group or an
    explicit model. Step usage and tool calls feed the escalation state; when
    a fast-tier attempt that used tools crosses a threshold, the run switches
    to a slow model and re-runs with the partial answer appended.
  - Nothing escapes run() except consumer cancellation. Failures become the
    response text of the final DoneEvent; a provider failure also puts that
    candidate on cooldown first.

Usage:
    runner = AgentRunner(tool_registry, cooldowns, sessions, providers)
    async for event in runner.run(options):
        ...
    done = await collect_response(runner.run(options))
"""

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncGenerator, AsyncIterator, Callable, Optional

from agents.base import AgentProfile
from agents.events import (
    AgentStreamEvent,
    DoneEvent,
    ModelSwitchEvent,
    RunUsage,
    TextDeltaEvent,
    ToolCallEvent,
    ToolResultEvent,
)
from agents.prompts import PromptContext, build_system_prompt
from agents.skills import load_skills
from config import (
    ERROR_PREFIX,
    MAX_ATTEMPTS,
    MAX_TOOL_STEPS,
    NO_MODELS_MESSAGE,
    TOOL_RESULT_LOG_CHARS,
)
from inference.failover import ProviderInvocationError, apply_cooldown
from inference.streaming import (
    StepResult,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    stream_completion,
)
from routing.cooldown import CooldownTracker
from routing.escalation import (
    DEFAULT_ESCALATION_CONFIG,
    EscalationConfig,
    EscalationState,
    escalate,
    record_token_usage,
    record_tool_call,
    threshold_reason,
)
from routing.selector import (
    ModelCandidate,
    ModelGroup,
    ModelSelection,
    ModelSelector,
    parse_model_ref,
)
from sessions import TranscriptEntry, TranscriptStore
from tools import ToolContext, ToolRegistry
from usage.pricing import estimate_cost
from usage.tracker import TokenCounts, UsageRecord, UsageTracker

logger = logging.getLogger(__name__)

CandidateMap = dict[ModelGroup, list[ModelCandidate]]


@dataclass(frozen=True)
class RunOptions:
    """Everything one turn needs. Built per turn and never reused."""
    messages: tuple
    workspace_id: str
    workspace_path: str
    agent: AgentProfile
    session_id: str
    tool_context: ToolContext
    global_models: CandidateMap
    workspace_models: Optional[CandidateMap] = None
    memory_context: tuple = ()
    usage_tracker: Optional[UsageTracker] = None
    agent_name: Optional[str] = None
    channel_type: Optional[str] = None
    abort: Optional[asyncio.Event] = None

    def __post_init__(self):
        object.__setattr__(self, "messages", tuple(self.messages))
        object.__setattr__(self, "memory_context", tuple(self.memory_context))

    def candidates(self, group: ModelGroup) -> tuple[list, Optional[list]]:
        """(global, workspace) candidate lists for a group."""
        workspace = (self.workspace_models or {}).get(group)
        return list(self.global_models.get(group) or []), workspace

    @property
    def aborted(self) -> bool:
        return self.abort is not None and self.abort.is_set()


@dataclass
class _RunState:
    group: ModelGroup = ModelGroup.FAST
    selection: Optional[ModelSelection] = None
    escalation: EscalationState = field(default_factory=EscalationState)
    prompt_tokens: int = 0
    completion_tokens: int = 0
    buffer: str = ""
    tool_log: list[dict] = field(default_factory=list)
    last_tool_result: Optional[str] = None
    carried_text: str = ""      # text streamed before the last model switch
    response: str = ""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AgentRunner:
    def __init__(self, tool_registry: ToolRegistry, cooldowns: CooldownTracker,
                 sessions: TranscriptStore, providers,
                 escalation_config: Optional[EscalationConfig] = None,
                 stream_fn: Callable[..., AsyncIterator] = stream_completion,
                 clock: Callable[[], datetime] = _utcnow):
        self.tool_registry = tool_registry
        self.cooldowns = cooldowns
        self.sessions = sessions
        self.selector = ModelSelector(cooldowns, providers)
        self.escalation_config = escalation_config or DEFAULT_ESCALATION_CONFIG
        self._stream_fn = stream_fn
        self._clock = clock

    async def run(self, options: RunOptions) -> AsyncGenerator[AgentStreamEvent, None]:
        """Stream one turn. Always ends with exactly one DoneEvent."""
        state = _RunState()
        try:
            async with aclosing(self._execute(options, state)) as events:
                async for event in events:
                    yield event
            response = state.response
        except Exception as e:
            logger.exception("Agent run failed for session %s", options.session_id)
            response = f"{ERROR_PREFIX} {e}"

        yield DoneEvent(
            response=response,
            usage=RunUsage(state.prompt_tokens, state.completion_tokens),
        )

    # ── Selection ──

    def _select_initial(self, options: RunOptions,
                        state: _RunState) -> Optional[ModelSelection]:
        """Primary ref first; the fallback ref only when the primary is unavailable."""
        agent = options.agent
        ref = parse_model_ref(agent.model_ref)
        if isinstance(ref, ModelGroup):
            state.group = ref

        group_tried = False
        if isinstance(ref, ModelCandidate):
            selection = self.selector.resolve_candidate(ref, state.group)
        else:
            selection = self.selector.select(state.group, *options.candidates(state.group))
            group_tried = True
        if selection is not None:
            return selection
        logger.info("Primary model for agent %s unavailable, trying fallback", agent.name)

        fallback = parse_model_ref(agent.fallback_model_ref)
        if isinstance(fallback, ModelCandidate):
            selection = self.selector.resolve_candidate(fallback, state.group)
            if selection is not None:
                return selection
        elif isinstance(fallback, ModelGroup) and not (group_tried and fallback is state.group):
            state.group = fallback
            return self.selector.select(fallback, *options.candidates(fallback))

        if group_tried:
            return None
        return self.selector.select(state.group, *options.candidates(state.group))

    # ── Step bookkeeping ──

    def _on_step_finish(self, state: _RunState, step: StepResult):
        state.escalation = record_tool_call(state.escalation, len(step.tool_calls))
        state.escalation = record_token_usage(state.escalation, step.usage.total_tokens)
        state.prompt_tokens += step.usage.prompt_tokens
        state.completion_tokens += step.usage.completion_tokens

        if state.group is ModelGroup.FAST and not state.escalation.escalated:
            reason = threshold_reason(state.escalation, self.escalation_config)
            if reason:
                state.escalation = escalate(state.escalation, reason)
                logger.info("Escalation triggered: %s", reason)

    @staticmethod
    def _match_result(state: _RunState, part: ToolResultPart):
        for entry in state.tool_log:
            if entry["tool_name"] == part.tool_name and entry["result"] is None:
                entry["result"] = part.result
                return
        state.tool_log.append({"tool_name": part.tool_name, "args": None, "result": part.result})

    # ── Loop ──

    async def _execute(self, options: RunOptions,
                       state: _RunState) -> AsyncGenerator[AgentStreamEvent, None]:
        skills = await asyncio.to_thread(
            load_skills, options.workspace_path, options.agent.skill_names or None)
        system_prompt = build_system_prompt(PromptContext(
            agent=options.agent,
            skills=skills,
            memory_context=list(options.memory_context),
            timestamp=self._clock(),
            workspace_id=options.workspace_id,
            workspace_path=options.workspace_path,
        ))

        state.selection = self._select_initial(options, state)
        if state.selection is None:
            state.response = NO_MODELS_MESSAGE
            return

        toolset = self.tool_registry.for_context(options.tool_context)
        slow_tools = set(self.tool_registry.tools_requesting_group(ModelGroup.SLOW))
        messages = options.messages

        def on_step(step: StepResult):
            self._on_step_finish(state, step)

        for attempt in range(MAX_ATTEMPTS):
            if options.aborted:
                break
            selection = state.selection
            logger.info("Attempt %d on %s (group=%s)",
                        attempt + 1, selection.candidate.label, state.group.value)
            calls_made = 0

            try:
                parts = self._stream_fn(
                    selection.handle,
                    system_prompt,
                    list(messages),
                    tools=toolset,
                    max_steps=MAX_TOOL_STEPS,
                    on_step_finish=on_step,
                    max_tokens=selection.candidate.max_tokens,
                )
                async with aclosing(parts):
                    async for part in parts:
                        if isinstance(part, TextPart):
                            state.buffer += part.text
                            yield TextDeltaEvent(content=part.text)
                        elif isinstance(part, ToolCallPart):
                            calls_made += 1
                            yield ToolCallEvent(tool_name=part.tool_name, args=part.args)
                            if part.tool_name in slow_tools and state.group is ModelGroup.FAST:
                                state.escalation = escalate(
                                    state.escalation,
                                    f"Tool {part.tool_name} requests slow model")
                            state.tool_log.append({"tool_name": part.tool_name,
                                                   "args": part.args, "result": None})
                        elif isinstance(part, ToolResultPart):
                            self._match_result(state, part)
                            state.last_tool_result = part.result
                            yield ToolResultEvent(tool_name=part.tool_name, result=part.result)
                        if options.aborted:
                            logger.info("Run aborted for session %s", options.session_id)
                            break
            except Exception as e:
                candidate = selection.candidate
                category = apply_cooldown(self.cooldowns, candidate.provider, candidate.model, e)
                raise ProviderInvocationError(candidate.provider, candidate.model,
                                              category, e) from e

            if options.aborted:
                break
            if not (state.escalation.escalated and state.group is ModelGroup.FAST
                    and calls_made > 0):
                break

            slow = self.selector.select(ModelGroup.SLOW, *options.candidates(ModelGroup.SLOW))
            if slow is None:
                logger.info("Escalation wanted but no slow model available; "
                            "keeping fast response")
                break

            yield ModelSwitchEvent(
                from_model=selection.candidate.label,
                to_model=slow.candidate.label,
                reason=state.escalation.reason or "",
            )
            logger.info("Switching %s -> %s: %s", selection.candidate.label,
                        slow.candidate.label, state.escalation.reason)
            state.selection = slow
            state.group = ModelGroup.SLOW
            if state.buffer:
                messages = messages + ({"role": "assistant", "content": state.buffer},)
                state.carried_text = state.buffer
            state.buffer = ""

        response = state.buffer or state.carried_text
        if not response and state.last_tool_result is not None:
            response = state.last_tool_result
        state.response = response

        if response:
            await self._write_transcript(options, state)
        if options.usage_tracker is not None:
            await self._record_usage(options, state)

    # ── Finalization ──

    async def _write_transcript(self, options: RunOptions, state: _RunState):
        candidate = state.selection.candidate
        entry = TranscriptEntry(
            timestamp=self._clock().isoformat(),
            role="assistant",
            content=state.response,
            metadata={
                "model_used": f"{candidate.provider}:{candidate.model}",
                "model_group": state.group.value,
                "escalated": state.escalation.escalated,
                "escalation_reason": state.escalation.reason,
                "token_usage": {"prompt": state.prompt_tokens,
                                "completion": state.completion_tokens},
                "agent_name": options.agent_name or options.agent.name,
                "tool_calls": [
                    {
                        "tool_name": t["tool_name"],
                        "args": t["args"],
                        "result": (t["result"] or "")[:TOOL_RESULT_LOG_CHARS],
                    }
                    for t in state.tool_log
                ],
            },
        )
        try:
            await self.sessions.append_transcript(options.session_id, entry)
        except Exception as e:
            logger.warning("Failed to write transcript for session %s: %s",
                           options.session_id, e)

    async def _record_usage(self, options: RunOptions, state: _RunState):
        candidate = state.selection.candidate
        await options.usage_tracker.record(UsageRecord(
            timestamp=self._clock().isoformat(),
            workspace_id=options.workspace_id,
            session_id=options.session_id,
            provider=candidate.provider,
            model=candidate.model,
            agent_name=options.agent_name or options.agent.name,
            model_group=state.group.value,
            tokens=TokenCounts(
                input=state.prompt_tokens,
                output=state.completion_tokens,
                total=state.prompt_tokens + state.completion_tokens,
            ),
            cost=estimate_cost(candidate.model, state.prompt_tokens, state.completion_tokens),
            channel_type=options.channel_type,
        ))


async def collect_response(events: AsyncIterator[AgentStreamEvent]) -> DoneEvent:
    """Drain a run and return its DoneEvent."""
    done = None
    async for event in events:
        if isinstance(event, DoneEvent):
            done = event
    if done is None:
        raise RuntimeError("Agent run ended without a done event")
    return done
