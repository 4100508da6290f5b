"""
Model selection — resolves ordered candidate lists into a usable model.

Each model group (fast / slow) maps to an ordered list of candidates. The
selector walks that list in strict order and returns the first candidate whose
provider resolves and which is not cooling down. There is no load balancing:
operators control priority through list order alone.

Usage:
    selector = ModelSelector(cooldowns, providers)
    selection = selector.select(ModelGroup.FAST, global_fast, workspace_fast)
    if selection is None:
        ...  # nothing available, not an error
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from routing.cooldown import CooldownTracker

logger = logging.getLogger(__name__)


class ModelGroup(Enum):
    FAST = "fast"
    SLOW = "slow"


@dataclass(frozen=True)
class ModelCandidate:
    provider: str
    model: str
    max_tokens: Optional[int] = None

    @property
    def label(self) -> str:
        return f"{self.provider}/{self.model}"

    @classmethod
    def from_dict(cls, data: dict) -> "ModelCandidate":
        return cls(
            provider=str(data["provider"]),
            model=str(data["model"]),
            max_tokens=data.get("max_tokens"),
        )


@dataclass(frozen=True)
class ModelSelection:
    handle: Any
    candidate: ModelCandidate
    group: ModelGroup


def parse_model_ref(ref: Optional[str]) -> Union[ModelGroup, ModelCandidate, None]:
    """Parse an agent model reference.

    "fast" / "slow" name a group, "provider/model" names an explicit candidate
    (split on the first slash, so model ids may contain slashes). Anything
    else, including an empty ref, is treated as no reference.
    """
    if not ref:
        return None
    ref = ref.strip()
    for group in ModelGroup:
        if ref == group.value:
            return group
    provider, sep, model = ref.partition("/")
    if not sep or not provider or not model:
        logger.warning("Ignoring malformed model reference '%s'", ref)
        return None
    return ModelCandidate(provider=provider, model=model)


class ModelSelector:
    """Picks the first live candidate for a group.

    `providers` is anything with a `resolve(provider, model)` method returning
    a ready-to-invoke handle, or None when the provider is not configured.
    """

    def __init__(self, cooldowns: CooldownTracker, providers):
        self._cooldowns = cooldowns
        self._providers = providers

    @staticmethod
    def search_order(global_candidates: Optional[list[ModelCandidate]],
                     workspace_candidates: Optional[list[ModelCandidate]] = None
                     ) -> list[ModelCandidate]:
        """Workspace candidates first, then global ones, first occurrence wins."""
        ordered: list[ModelCandidate] = []
        seen = set()
        for candidate in list(workspace_candidates or []) + list(global_candidates or []):
            key = (candidate.provider, candidate.model)
            if key in seen:
                continue
            seen.add(key)
            ordered.append(candidate)
        return ordered

    def resolve_candidate(self, candidate: ModelCandidate,
                          group: ModelGroup) -> Optional[ModelSelection]:
        """Resolve one explicit candidate, honouring cooldowns."""
        if not self._cooldowns.is_available(candidate.provider, candidate.model):
            logger.debug("Skipping %s: cooling down", candidate.label)
            return None
        handle = self._providers.resolve(candidate.provider, candidate.model)
        if handle is None:
            logger.debug("Skipping %s: provider not configured", candidate.label)
            return None
        return ModelSelection(handle=handle, candidate=candidate, group=group)

    def select(self, group: ModelGroup,
               global_candidates: Optional[list[ModelCandidate]],
               workspace_candidates: Optional[list[ModelCandidate]] = None,
               ) -> Optional[ModelSelection]:
        """Return the first usable candidate for the group, or None."""
        for candidate in self.search_order(global_candidates, workspace_candidates):
            selection = self.resolve_candidate(candidate, group)
            if selection is not None:
                logger.info("Selected %s for group '%s'", candidate.label, group.value)
                return selection
        logger.info("No available candidate for group '%s'", group.value)
        return None

    def available_candidates(self, global_candidates: Optional[list[ModelCandidate]],
                             workspace_candidates: Optional[list[ModelCandidate]] = None,
                             ) -> list[ModelCandidate]:
        """All candidates in search order that are not cooling down."""
        return [
            c for c in self.search_order(global_candidates, workspace_candidates)
            if self._cooldowns.is_available(c.provider, c.model)
        ]
