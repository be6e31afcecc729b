"""
Scoring algorithms that fold feedback into a memory's quality score.

Every update is an exponential moving average followed by a clamp:

    new = alpha * observation + (1 - alpha) * old
    new = min(max(new, score_min), score_max)

Two observation sources exist:

- Reflection (binary): a memory listed as helpful observes ``helpful_delta``,
  one listed as harmful observes ``harmful_delta``.
- Graded feedback: the observation is ``MemoryFeedback.normalized_score()``.

Both are exposed as injectable callables built from a ScoringConfig.
"""

from __future__ import annotations

from typing import Dict, Mapping, Protocol

from .config import DEFAULT_SCORING_CONFIG, ScoringConfig
from .schemas import AgentMemory, MemoryFeedback, Reflection
from .vector import clamp


def ema_update(
    old: float,
    observation: float,
    *,
    alpha: float,
    score_min: float,
    score_max: float,
) -> float:
    """Blend ``observation`` into ``old`` and clamp to the score range."""
    return clamp(alpha * observation + (1.0 - alpha) * old, score_min, score_max)


class ScoringAlgorithm(Protocol):
    """Computes new scores from a reflection's helpful/harmful verdicts.

    Returns a new-score map (not yet persisted) containing only IDs that were
    both referenced by the reflection and present in ``memories``.
    """

    def __call__(
        self, memories: Mapping[str, AgentMemory], reflection: Reflection
    ) -> Dict[str, float]:
        ...


class GradedScoringAlgorithm(Protocol):
    """Computes one memory's new score from graded feedback."""

    def __call__(self, memory: AgentMemory, feedback: MemoryFeedback) -> float:
        ...


def _reflection_deltas(reflection: Reflection, config: ScoringConfig) -> Dict[str, float]:
    """Map each referenced memory ID to exactly one observation."""

    # dict.fromkeys collapses duplicates while keeping first-seen order.
    helpful = dict.fromkeys(reflection.helpful_memories)
    harmful = dict.fromkeys(reflection.harmful_memories)
    conflicting = helpful.keys() & harmful.keys()
    if conflicting:
        # Reflection's validator normally blocks this; model_construct() can bypass it.
        raise ValueError(
            "memory IDs cannot be both helpful and harmful: "
            + ", ".join(sorted(conflicting))
        )

    deltas: Dict[str, float] = {}
    for memory_id in helpful:
        deltas[memory_id] = config.helpful_delta
    for memory_id in harmful:
        deltas[memory_id] = config.harmful_delta
    return deltas


def build_reflection_scoring(config: ScoringConfig = DEFAULT_SCORING_CONFIG) -> ScoringAlgorithm:
    """Create a binary helpful/harmful scoring algorithm bound to ``config``."""

    config.validate()

    def apply_feedback(
        memories: Mapping[str, AgentMemory], reflection: Reflection
    ) -> Dict[str, float]:
        updates: Dict[str, float] = {}
        for memory_id, delta in _reflection_deltas(reflection, config).items():
            memory = memories.get(memory_id)
            if memory is None:
                # Reflection may cite memories outside this batch.
                continue
            updates[memory_id] = ema_update(
                memory.score,
                delta,
                alpha=config.ema_alpha,
                score_min=config.score_min,
                score_max=config.score_max,
            )
        return updates

    return apply_feedback


def build_graded_scoring(config: ScoringConfig = DEFAULT_SCORING_CONFIG) -> GradedScoringAlgorithm:
    """Create a graded-feedback scoring algorithm bound to ``config``."""

    config.validate()

    def apply_graded(memory: AgentMemory, feedback: MemoryFeedback) -> float:
        return ema_update(
            memory.score,
            feedback.normalized_score(),
            alpha=config.ema_alpha,
            score_min=config.score_min,
            score_max=config.score_max,
        )

    return apply_graded


# Faster-moving profile: trusts the latest verdict more and punishes harm harder.
AGGRESSIVE_SCORING_CONFIG = DEFAULT_SCORING_CONFIG.with_overrides(
    ema_alpha=0.5,
    helpful_delta=3.0,
    harmful_delta=-5.0,
)

default_scoring_algorithm: ScoringAlgorithm = build_reflection_scoring()
aggressive_scoring_algorithm: ScoringAlgorithm = build_reflection_scoring(AGGRESSIVE_SCORING_CONFIG)
default_graded_scoring: GradedScoringAlgorithm = build_graded_scoring()


__all__ = [
    "ema_update",
    "ScoringAlgorithm",
    "GradedScoringAlgorithm",
    "build_reflection_scoring",
    "build_graded_scoring",
    "AGGRESSIVE_SCORING_CONFIG",
    "default_scoring_algorithm",
    "aggressive_scoring_algorithm",
    "default_graded_scoring",
]
