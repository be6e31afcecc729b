"""Tests for quality-gated, weighted memory selection."""

from datetime import datetime, timedelta, timezone

import pytest

from triage_memory.config import DEFAULT_SCORING_CONFIG
from triage_memory.schemas import AgentMemory
from triage_memory.selection import (
    build_selection_algorithm,
    default_selection_algorithm,
    rank_memories,
)


NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)
QUERY = [1.0, 0.0, 0.0]


def make_memory(memory_id: str, *, embedding, score=0.0, last_used_at=None) -> AgentMemory:
    return AgentMemory(
        id=memory_id,
        agent_id="bigquery",
        query=f"task for {memory_id}",
        query_embedding=embedding,
        claim=f"claim {memory_id}",
        score=score,
        created_at=NOW - timedelta(days=10),
        last_used_at=last_used_at,
    )


def test_ranking_blends_similarity_quality_and_recency():
    a = make_memory("A", embedding=[1.0, 0.0, 0.0], score=8.0, last_used_at=NOW - timedelta(days=1))
    b = make_memory("B", embedding=[0.9, 0.1, 0.0], score=5.0, last_used_at=NOW - timedelta(days=7))
    c = make_memory("C", embedding=[0.5, 0.5, 0.0], score=0.0, last_used_at=NOW - timedelta(days=30))

    selected = default_selection_algorithm([c, b, a], QUERY, 3, now=NOW)

    assert [m.id for m in selected] == ["A", "B", "C"]


def test_quality_gate_excludes_harmful_memories_regardless_of_similarity():
    harmful = make_memory("H", embedding=QUERY, score=-6.0, last_used_at=NOW)
    boundary = make_memory("E", embedding=[0.0, 1.0, 0.0], score=-5.0)

    selected = default_selection_algorithm([harmful, boundary], QUERY, 5, now=NOW)

    assert [m.id for m in selected] == ["E"]


def test_limit_and_empty_inputs():
    memories = [make_memory(str(i), embedding=QUERY) for i in range(4)]

    assert len(default_selection_algorithm(memories, QUERY, 2, now=NOW)) == 2
    assert default_selection_algorithm(memories, QUERY, 0, now=NOW) == []
    assert default_selection_algorithm([], QUERY, 3, now=NOW) == []


def test_ties_keep_input_order():
    first = make_memory("first", embedding=QUERY)
    second = make_memory("second", embedding=QUERY)
    third = make_memory("third", embedding=QUERY)

    selected = default_selection_algorithm([second, third, first], QUERY, 3, now=NOW)

    assert [m.id for m in selected] == ["second", "third", "first"]


def test_missing_embedding_ranks_with_zero_similarity():
    legacy = make_memory("legacy", embedding=[], score=0.0)
    fresh = make_memory("fresh", embedding=QUERY, score=0.0)

    ranked = rank_memories([legacy, fresh], QUERY, now=NOW)

    assert [item.memory.id for item in ranked] == ["fresh", "legacy"]
    assert ranked[1].similarity == 0.0
    assert ranked[1].final_score == pytest.approx(0.3 * 0.5)


def test_rank_breakdown_uses_configured_weights():
    memory = make_memory("A", embedding=QUERY, score=10.0, last_used_at=NOW)

    [item] = rank_memories([memory], QUERY, now=NOW)

    assert item.similarity == pytest.approx(1.0)
    assert item.quality == pytest.approx(1.0)
    assert item.recency == pytest.approx(1.0)
    assert item.final_score == pytest.approx(1.0)


def test_custom_weights_change_order():
    similar = make_memory("similar", embedding=QUERY, score=0.0)
    proven = make_memory("proven", embedding=[0.0, 1.0, 0.0], score=10.0)

    quality_first = build_selection_algorithm(
        DEFAULT_SCORING_CONFIG.with_overrides(
            rank_similarity_weight=0.1,
            rank_quality_weight=0.9,
            rank_recency_weight=0.0,
        )
    )

    assert default_selection_algorithm([proven, similar], QUERY, 1, now=NOW)[0].id == "similar"
    assert quality_first([similar, proven], QUERY, 1, now=NOW)[0].id == "proven"


def test_naive_now_is_treated_as_utc():
    memory = make_memory("A", embedding=QUERY, last_used_at=NOW)

    selected = default_selection_algorithm([memory], QUERY, 1, now=NOW.replace(tzinfo=None))

    assert [m.id for m in selected] == ["A"]


def test_quality_gate_is_strict_just_below_threshold():
    threshold = DEFAULT_SCORING_CONFIG.filter_min_quality
    below = make_memory("below", embedding=QUERY, score=threshold - 1e-9, last_used_at=NOW)
    at = make_memory("at", embedding=[0.0, 1.0, 0.0], score=threshold)

    selected = default_selection_algorithm([below, at], QUERY, 5, now=NOW)

    assert [m.id for m in selected] == ["at"]
