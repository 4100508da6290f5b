"""
Escalation state machine — decides when a run has outgrown the fast tier.

Two states, normal and escalated. Escalated is sticky for the rest of the
run. The transition functions are pure: they return a new EscalationState and
never touch the live model. Swapping models is the execution loop's call.
"""

from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class EscalationConfig:
    max_tool_call_depth: int = 3
    token_threshold: int = 4000


DEFAULT_ESCALATION_CONFIG = EscalationConfig()


@dataclass(frozen=True)
class EscalationState:
    tool_call_count: int = 0
    token_usage: int = 0
    escalated: bool = False
    reason: Optional[str] = None


def record_tool_call(state: EscalationState, count: int = 1) -> EscalationState:
    return replace(state, tool_call_count=state.tool_call_count + max(0, count))


def record_token_usage(state: EscalationState, tokens: int) -> EscalationState:
    return replace(state, token_usage=state.token_usage + max(0, tokens))


def escalate(state: EscalationState, reason: str) -> EscalationState:
    """Move to the escalated state. The first reason recorded is kept."""
    if state.escalated:
        return state
    return replace(state, escalated=True, reason=reason)


def threshold_reason(state: EscalationState,
                     config: EscalationConfig = DEFAULT_ESCALATION_CONFIG) -> Optional[str]:
    """Explain which threshold the counters crossed, or None."""
    if state.tool_call_count > config.max_tool_call_depth:
        return (f"Tool call depth {state.tool_call_count} exceeded "
                f"{config.max_tool_call_depth}")
    if state.token_usage > config.token_threshold:
        return (f"Token usage {state.token_usage} exceeded "
                f"{config.token_threshold}")
    return None


def should_escalate(state: EscalationState,
                    config: EscalationConfig = DEFAULT_ESCALATION_CONFIG) -> bool:
    """True once escalated, or when either counter is past its threshold."""
    if state.escalated:
        return True
    return threshold_reason(state, config) is not None
