"""
System prompt builder.

Architecture:
  - The prompt is assembled from independent sections, in a fixed order,
    joined by a horizontal rule.
  - Empty sections are omitted; memory guidance and the context block are
    always present.
  - Pure function of its inputs; the caller supplies the timestamp.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from agents.base import AgentProfile
from agents.skills import SkillDefinition
from config import PROMPT_SECTION_SEPARATOR


ONBOARDING_PROMPT = """# Onboarding

You are a new, unconfigured assistant. This workspace has just been created and needs to be set up.

Your first task is to help the user configure you. Guide them through the setup process:

1. **Name**: Ask what they'd like to call you
2. **Personality/Vibe**: Ask what personality or vibe they want (e.g., professional, casual, friendly, technical)
3. **Emoji**: Ask them to pick an emoji that represents you

Once they provide these details, update your identity file with the name, vibe and emoji, mark yourself as configured, and write a brief identity description.

Be friendly and welcoming during this process."""

MEMORY_GUIDANCE_PROMPT = """# Memory System

You have persistent memory tools:
- **memory_search**: Search indexed memory for relevant information
- **memory_get**: Read specific memory files
- **memory_write**: Write to memory files (auto re-indexed)

Memory organization:
- **Daily logs** (`memory/YYYY-MM-DD.md`): Append-only. Write observations, decisions, and preferences here.
- **Long-term memory** (`MEMORY.md`): Curated important facts. Consolidate from daily logs periodically.

Write important context to memory when:
- The user shares preferences, facts, or decisions worth remembering
- A session is getting long and you want to preserve key context
- The user explicitly asks you to remember something"""


@dataclass
class PromptContext:
    agent: AgentProfile
    timestamp: datetime
    workspace_id: str
    workspace_path: str
    skills: list[SkillDefinition] = field(default_factory=list)
    memory_context: list[str] = field(default_factory=list)
    citations_enabled: bool = False
    memory_backend: Optional[str] = None


def _onboarding_section(agent: AgentProfile) -> str:
    text = ONBOARDING_PROMPT
    if agent.welcome_context:
        text += (
            "\n\n## Welcome Context\n\n"
            "The user provided this context when creating the workspace:\n\n"
            f'"{agent.welcome_context}"\n\n'
            "Use this to personalize your greeting and approach."
        )
    return text


def _skills_section(skills: list[SkillDefinition]) -> str:
    blocks = [
        f"## Skill: {s.name}\n{s.description}\n\n{s.instructions}"
        for s in skills
    ]
    return "# Skills\n\n" + "\n\n".join(blocks)


def _memory_guidance(ctx: PromptContext) -> str:
    text = MEMORY_GUIDANCE_PROMPT
    if ctx.memory_backend and ctx.memory_backend.startswith("qmd"):
        text += ("\n\nThis workspace uses QMD for extended memory search. You can read "
                 "QMD-indexed files using `memory_get` with paths like `qmd/<collection>/<file>`.")
    if ctx.citations_enabled:
        text += ("\n\n**Citations**: When referencing memory search results, include the "
                 'source citation from the "Source:" line.')
    return text


def build_system_prompt(ctx: PromptContext) -> str:
    """Compose the system prompt for one turn."""
    agent = ctx.agent
    parts = []

    if not agent.configured:
        parts.append(_onboarding_section(agent))
    if agent.identity:
        parts.append(f"# Identity\n\n{agent.identity}")
    if agent.soul:
        parts.append(f"# Soul\n\n{agent.soul}")
    if agent.bootstrap:
        parts.append(f"# Instructions\n\n{agent.bootstrap}")
    if agent.tools:
        parts.append(f"# Tool Usage\n\n{agent.tools}")
    if ctx.skills:
        parts.append(_skills_section(ctx.skills))
    if ctx.memory_context:
        parts.append("# Relevant Memory\n\n" + PROMPT_SECTION_SEPARATOR.join(ctx.memory_context))

    parts.append(_memory_guidance(ctx))

    if agent.scratchpad:
        parts.append(
            "# Scratchpad (Short-term Notes)\n\n"
            "These are your temporary notes. Update or clear them as things change.\n"
            "Remove items when no longer relevant.\n\n"
            f"{agent.scratchpad}"
        )

    parts.append(
        "# Context\n\n"
        f"Current time: {ctx.timestamp.isoformat()}\n"
        f"Workspace: {ctx.workspace_id}\n"
        f"Workspace path: {ctx.workspace_path}"
    )
    return PROMPT_SECTION_SEPARATOR.join(parts)
