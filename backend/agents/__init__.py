"""
Agents package — agent profiles, prompt assembly, skills and the execution loop.

Quick start:
    from agents import AgentRunner, RunOptions, collect_response
    runner = AgentRunner(tool_registry, cooldowns, sessions, providers)
    done = await collect_response(runner.run(options))
"""

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
from agents.runner import AgentRunner, RunOptions, collect_response
from agents.skills import SkillDefinition, load_skills

__all__ = [
    "AgentProfile",
    "AgentRunner",
    "AgentStreamEvent",
    "DoneEvent",
    "ModelSwitchEvent",
    "PromptContext",
    "RunOptions",
    "RunUsage",
    "SkillDefinition",
    "TextDeltaEvent",
    "ToolCallEvent",
    "ToolResultEvent",
    "build_system_prompt",
    "collect_response",
    "load_skills",
]
