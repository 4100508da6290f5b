"""
Routing package — model groups, candidate selection, cooldowns and escalation.

Quick start:
    from routing import CooldownTracker, ModelSelector, ModelGroup
    selector = ModelSelector(CooldownTracker(), providers)
    selection = selector.select(ModelGroup.FAST, candidates)
"""

from routing.cooldown import CooldownTracker
from routing.escalation import (
    EscalationConfig,
    EscalationState,
    escalate,
    record_token_usage,
    record_tool_call,
    should_escalate,
    threshold_reason,
)
from routing.selector import (
    ModelCandidate,
    ModelGroup,
    ModelSelection,
    ModelSelector,
    parse_model_ref,
)

__all__ = [
    "CooldownTracker",
    "EscalationConfig",
    "EscalationState",
    "ModelCandidate",
    "ModelGroup",
    "ModelSelection",
    "ModelSelector",
    "escalate",
    "parse_model_ref",
    "record_token_usage",
    "record_tool_call",
    "should_escalate",
    "threshold_reason",
]
