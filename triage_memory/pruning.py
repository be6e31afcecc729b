"""
Pruning algorithms that pick low-value memories for deletion.

Each memory is judged on its own against three tiers; the first tier that
matches decides, and memories above every score threshold are always kept:

1. Critical: score <= prune_critical_score (default -8.0), regardless of age.
2. Harmful + stale: score <= prune_harmful_score (-5.0) and unused for
   prune_harmful_days (90) or more.
3. Moderate + very stale: score <= prune_moderate_score (-3.0) and unused for
   prune_moderate_days (180) or more.

Age counts whole days since ``last_used_at``, falling back to ``created_at``
for memories that were saved but never retrieved.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Protocol, Sequence

from .config import DEFAULT_SCORING_CONFIG, ScoringConfig
from .schemas import AgentMemory
from .vector import days_between


class PruneTier(str, Enum):
    """Which pruning criterion matched a memory."""

    CRITICAL = "critical"
    HARMFUL_STALE = "harmful_stale"
    MODERATE_VERY_STALE = "moderate_very_stale"


class PruningAlgorithm(Protocol):
    """Selects IDs of memories that should be deleted."""

    def __call__(self, memories: Sequence[AgentMemory], now: datetime) -> List[str]:
        ...


def days_since_used(memory: AgentMemory, now: datetime) -> int:
    reference = memory.last_used_at or memory.created_at
    return days_between(reference, now)


def classify_for_pruning(
    memory: AgentMemory,
    now: datetime,
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> Optional[PruneTier]:
    """Return the first matching tier, or None if the memory is retained."""

    if memory.score <= config.prune_critical_score:
        return PruneTier.CRITICAL

    if memory.score > config.prune_moderate_score:
        return None

    age = days_since_used(memory, now)
    if memory.score <= config.prune_harmful_score and age >= config.prune_harmful_days:
        return PruneTier.HARMFUL_STALE
    if age >= config.prune_moderate_days:
        return PruneTier.MODERATE_VERY_STALE
    return None


def build_pruning_algorithm(config: ScoringConfig = DEFAULT_SCORING_CONFIG) -> PruningAlgorithm:
    """Create a tiered pruning algorithm bound to ``config``."""

    config.validate()

    def select_for_deletion(memories: Sequence[AgentMemory], now: datetime) -> List[str]:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return [
            memory.id
            for memory in memories
            if classify_for_pruning(memory, now, config) is not None
        ]

    return select_for_deletion


default_pruning_algorithm: PruningAlgorithm = build_pruning_algorithm()


__all__ = [
    "PruneTier",
    "PruningAlgorithm",
    "days_since_used",
    "classify_for_pruning",
    "build_pruning_algorithm",
    "default_pruning_algorithm",
]
