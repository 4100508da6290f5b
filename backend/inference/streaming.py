"""
Streaming completion primitive — a bounded multi-step tool-calling exchange.

One call to stream_completion() drives up to `max_steps` chat requests
against a single model. Each step streams text, collects the tool calls the
model makes, executes them through the ToolSet, feeds the results back, and
reports the step's tool calls and token usage to `on_step_finish`. The
exchange ends when a step makes no tool calls or the step cap is hit.

Parts are yielded in arrival order:
    TextPart        : a text delta from the model
    ToolCallPart    : the model invoked a tool (yielded before it runs)
    ToolResultPart  : the tool's result string
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import AsyncGenerator, Callable, Optional, Union

from config import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, MAX_TOOL_STEPS
from inference.base import ToolCall, Usage

logger = logging.getLogger(__name__)


@dataclass
class TextPart:
    text: str


@dataclass
class ToolCallPart:
    tool_call_id: str
    tool_name: str
    args: dict = field(default_factory=dict)


@dataclass
class ToolResultPart:
    tool_call_id: str
    tool_name: str
    result: str


StreamPart = Union[TextPart, ToolCallPart, ToolResultPart]


@dataclass
class StepResult:
    step: int
    text: str
    tool_calls: list[ToolCall]
    usage: Usage
    finish_reason: Optional[str] = None


def _assistant_tool_message(text: str, calls: list[ToolCall]) -> dict:
    return {
        "role": "assistant",
        "content": text or None,
        "tool_calls": [
            {
                "id": c.id,
                "type": "function",
                "function": {"name": c.name, "arguments": c.raw_arguments or "{}"},
            }
            for c in calls
        ],
    }


async def _run_tool(tools, call: ToolCall) -> str:
    if call.parse_error:
        return f"JSON parse error: {call.parse_error}. Raw: {call.raw_arguments[:200]}"
    if tools is None:
        return f"Error: unknown tool '{call.name}'"
    return await tools.execute(call.name, call.arguments)


async def stream_completion(
    handle,
    system: str,
    messages: list[dict],
    tools=None,
    max_steps: int = MAX_TOOL_STEPS,
    on_step_finish: Callable[[StepResult], object] = None,
    max_tokens: int = None,
    temperature: float = DEFAULT_TEMPERATURE,
) -> AsyncGenerator[StreamPart, None]:
    """Stream a multi-step completion from `handle` (a ModelHandle).

    Args:
        handle: Resolved model handle (backend adapter + model id).
        system: System prompt, sent as the first message of every step.
        messages: Conversation so far, OpenAI format. Not mutated.
        tools: ToolSet exposing schemas() and async execute(name, args).
        max_steps: Maximum number of chat requests (tool-use steps).
        on_step_finish: Sync or async callback receiving a StepResult.
        max_tokens: Per-step generation cap.
        temperature: Sampling temperature.

    Backend errors propagate to the caller unchanged.
    """
    conversation: list[dict] = []
    if system:
        conversation.append({"role": "system", "content": system})
    conversation.extend(messages)
    schemas = tools.schemas() if tools is not None else None

    for step in range(max_steps):
        text = ""
        calls: list[ToolCall] = []
        usage = Usage()
        finish_reason = None

        async for chunk in handle.backend.stream_chat(
            handle.model_id,
            conversation,
            tools=schemas or None,
            max_tokens=max_tokens or DEFAULT_MAX_TOKENS,
            temperature=temperature,
        ):
            if chunk.type == "text":
                text += chunk.content
                yield TextPart(text=chunk.content)
            elif chunk.type == "tool_call":
                calls.append(chunk.tool_call)
                yield ToolCallPart(
                    tool_call_id=chunk.tool_call.id,
                    tool_name=chunk.tool_call.name,
                    args=chunk.tool_call.arguments,
                )
            elif chunk.type == "usage":
                usage = chunk.usage
            elif chunk.type == "finish":
                finish_reason = chunk.finish_reason

        if calls:
            conversation.append(_assistant_tool_message(text, calls))
            for call in calls:
                result = await _run_tool(tools, call)
                yield ToolResultPart(tool_call_id=call.id, tool_name=call.name, result=result)
                conversation.append({"role": "tool", "tool_call_id": call.id, "content": result})

        if on_step_finish is not None:
            outcome = on_step_finish(StepResult(
                step=step, text=text, tool_calls=calls,
                usage=usage, finish_reason=finish_reason,
            ))
            if inspect.isawaitable(outcome):
                await outcome

        if not calls:
            return

    logger.info("Step cap reached (%d) on %s", max_steps, handle.label)
