"""
Agent profile — the identity and model preferences an agent runs with.

Profiles are parsed by the host from a workspace's identity files; the
execution engine only reads them.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class AgentProfile:
    name: str = "Assistant"
    vibe: str = ""
    emoji: str = ""
    identity: str = ""          # body of the identity file
    soul: str = ""              # behavioural guidelines
    bootstrap: str = ""         # standing instructions
    tools: str = ""             # tool usage notes
    scratchpad: str = ""        # short-term mutable notes
    configured: bool = True     # new workspaces start unconfigured
    welcome_context: Optional[str] = None
    id: Optional[str] = None
    about: Optional[str] = None
    model_ref: Optional[str] = None           # "fast", "slow" or "provider/model"
    fallback_model_ref: Optional[str] = None
    skill_names: list[str] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return f"{self.emoji} {self.name}".strip() if self.emoji else self.name
