"""
Agent stream events — what a run yields to its consumer.

A run yields any interleaving of text-delta, tool-call, tool-result and
model-switch events, then exactly one done event, always last. Every event
serializes with to_dict() for forwarding over a socket or into a log.
"""

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass
class TextDeltaEvent:
    content: str
    type: str = field(default="text-delta", init=False)

    def to_dict(self) -> dict:
        return {"type": self.type, "content": self.content}


@dataclass
class ToolCallEvent:
    tool_name: str
    args: Any = None
    type: str = field(default="tool-call", init=False)

    def to_dict(self) -> dict:
        return {"type": self.type, "toolName": self.tool_name, "args": self.args}


@dataclass
class ToolResultEvent:
    tool_name: str
    result: str
    type: str = field(default="tool-result", init=False)

    def to_dict(self) -> dict:
        return {"type": self.type, "toolName": self.tool_name, "result": self.result}


@dataclass
class ModelSwitchEvent:
    from_model: str
    to_model: str
    reason: str
    type: str = field(default="model-switch", init=False)

    def to_dict(self) -> dict:
        return {"type": self.type, "from": self.from_model, "to": self.to_model,
                "reason": self.reason}


@dataclass
class RunUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    def to_dict(self) -> dict:
        return {"promptTokens": self.prompt_tokens,
                "completionTokens": self.completion_tokens}


@dataclass
class DoneEvent:
    response: str
    usage: RunUsage = field(default_factory=RunUsage)
    type: str = field(default="done", init=False)

    def to_dict(self) -> dict:
        return {"type": self.type, "response": self.response, "usage": self.usage.to_dict()}


AgentStreamEvent = Union[TextDeltaEvent, ToolCallEvent, ToolResultEvent,
                         ModelSwitchEvent, DoneEvent]
