"""
Selection algorithms for injecting past memories into a task prompt.

Candidates arrive already scoped to one agent and narrowed by the repository's
nearest-neighbor search. Selection then:

1. Drops memories whose quality score fell below ``filter_min_quality`` so
   memories flagged as harmful never re-enter a prompt, however similar.
2. Ranks survivors by a weighted blend of query similarity, normalized quality
   and recency of use.
3. Returns the top ``limit`` in descending order (ties keep input order).

Algorithms are plain callables so alternative policies can be injected into
MemoryService and unit tested without subclassing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Sequence

from .config import DEFAULT_SCORING_CONFIG, ScoringConfig
from .schemas import AgentMemory
from .vector import cosine_similarity, normalize_score, recency_score


class SelectionAlgorithm(Protocol):
    """Ranks and filters candidate memories for prompt selection."""

    def __call__(
        self,
        candidates: Sequence[AgentMemory],
        query_embedding: Sequence[float],
        limit: int,
        *,
        now: Optional[datetime] = None,
    ) -> List[AgentMemory]:
        ...


@dataclass(frozen=True)
class RankedMemory:
    """Per-candidate score breakdown."""

    memory: AgentMemory
    similarity: float
    quality: float
    recency: float
    final_score: float


def rank_memories(
    candidates: Sequence[AgentMemory],
    query_embedding: Sequence[float],
    *,
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
    now: Optional[datetime] = None,
) -> List[RankedMemory]:
    """Apply the quality gate and return every survivor ranked best first."""

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    ranked: List[RankedMemory] = []

    for memory in candidates:
        if memory.score < config.filter_min_quality:
            continue

        similarity = cosine_similarity(query_embedding, memory.query_embedding)
        quality = normalize_score(memory.score, config.score_min, config.score_max)
        recency = recency_score(memory.last_used_at, now, config.recency_half_life_days)

        final_score = (
            config.rank_similarity_weight * similarity
            + config.rank_quality_weight * quality
            + config.rank_recency_weight * recency
        )
        ranked.append(
            RankedMemory(
                memory=memory,
                similarity=similarity,
                quality=quality,
                recency=recency,
                final_score=final_score,
            )
        )

    # sorted() is stable, including with reverse=True, so ties keep input order.
    return sorted(ranked, key=lambda item: item.final_score, reverse=True)


def build_selection_algorithm(config: ScoringConfig = DEFAULT_SCORING_CONFIG) -> SelectionAlgorithm:
    """Create a selection algorithm bound to ``config``."""

    config.validate()

    def select(
        candidates: Sequence[AgentMemory],
        query_embedding: Sequence[float],
        limit: int,
        *,
        now: Optional[datetime] = None,
    ) -> List[AgentMemory]:
        if limit <= 0 or not candidates:
            return []
        ranked = rank_memories(candidates, query_embedding, config=config, now=now)
        return [item.memory for item in ranked[:limit]]

    return select


default_selection_algorithm: SelectionAlgorithm = build_selection_algorithm()


__all__ = [
    "SelectionAlgorithm",
    "RankedMemory",
    "rank_memories",
    "build_selection_algorithm",
    "default_selection_algorithm",
]
