"""Tests for EMA-based score updates."""

import pytest

from triage_memory.config import DEFAULT_SCORING_CONFIG
from triage_memory.schemas import AgentMemory, MemoryFeedback, Reflection
from triage_memory.scoring import (
    aggressive_scoring_algorithm,
    build_graded_scoring,
    build_reflection_scoring,
    default_graded_scoring,
    default_scoring_algorithm,
    ema_update,
)


def make_memory(memory_id: str, score: float = 0.0) -> AgentMemory:
    return AgentMemory(id=memory_id, agent_id="slack", query="find messages", score=score)


def make_feedback(relevance: int, support: int, impact: int) -> MemoryFeedback:
    return MemoryFeedback(memory_id="m", relevance=relevance, support=support, impact=impact)


def test_ema_update_alpha_identities():
    assert ema_update(4.0, -6.0, alpha=1.0, score_min=-10, score_max=10) == -6.0
    assert ema_update(4.0, -6.0, alpha=0.0, score_min=-10, score_max=10) == 4.0
    assert ema_update(0.0, 2.0, alpha=0.3, score_min=-10, score_max=10) == pytest.approx(0.6)


def test_ema_update_clamps_to_range():
    assert ema_update(9.5, 100.0, alpha=0.5, score_min=-10, score_max=10) == 10.0
    assert ema_update(-9.5, -100.0, alpha=0.5, score_min=-10, score_max=10) == -10.0


def test_reflection_scoring_helpful_and_harmful():
    memories = {"good": make_memory("good"), "bad": make_memory("bad", score=1.0)}
    reflection = Reflection(helpful_memories=["good"], harmful_memories=["bad"])

    updates = default_scoring_algorithm(memories, reflection)

    assert updates["good"] == pytest.approx(0.6)
    assert updates["bad"] == pytest.approx(0.3 * -3.0 + 0.7 * 1.0)


def test_reflection_scoring_skips_unknown_ids():
    memories = {"known": make_memory("known")}
    reflection = Reflection(helpful_memories=["known", "ghost"], harmful_memories=["phantom"])

    updates = default_scoring_algorithm(memories, reflection)

    assert set(updates) == {"known"}


def test_reflection_scoring_counts_duplicate_ids_once():
    memories = {"m": make_memory("m")}
    reflection = Reflection(helpful_memories=["m", "m", "m"])

    assert default_scoring_algorithm(memories, reflection) == {"m": pytest.approx(0.6)}


def test_reflection_with_conflicting_ids_is_rejected():
    with pytest.raises(ValueError):
        Reflection(helpful_memories=["m"], harmful_memories=["m"])

    bypassed = Reflection.model_construct(
        new_claims=[], helpful_memories=["m"], harmful_memories=["m"]
    )
    with pytest.raises(ValueError):
        default_scoring_algorithm({"m": make_memory("m")}, bypassed)


def test_repeated_helpful_verdicts_saturate_at_max():
    memory = make_memory("m")
    scoring = build_reflection_scoring(
        DEFAULT_SCORING_CONFIG.with_overrides(ema_alpha=1.0, helpful_delta=10.0)
    )

    for _ in range(5):
        memory = memory.model_copy(
            update={"score": scoring({"m": memory}, Reflection(helpful_memories=["m"]))["m"]}
        )

    assert memory.score == 10.0


def test_aggressive_profile_moves_faster():
    memories = {"m": make_memory("m")}
    reflection = Reflection(harmful_memories=["m"])

    assert aggressive_scoring_algorithm(memories, reflection)["m"] == pytest.approx(-2.5)
    assert default_scoring_algorithm(memories, reflection)["m"] == pytest.approx(-0.9)


def test_graded_scoring_neutral_feedback_keeps_zero():
    feedback = make_feedback(2, 2, 1)

    assert feedback.normalized_score() == 0.0
    assert default_graded_scoring(make_memory("m"), feedback) == 0.0


def test_graded_scoring_extremes():
    best = make_feedback(3, 4, 3)
    worst = make_feedback(0, 0, 0)

    assert best.normalized_score() == 10.0
    assert worst.normalized_score() == -10.0
    assert default_graded_scoring(make_memory("m"), best) == pytest.approx(3.0)
    assert default_graded_scoring(make_memory("m", score=-9.0), worst) == pytest.approx(-9.3)


def test_graded_scoring_alpha_one_replaces_score():
    scoring = build_graded_scoring(DEFAULT_SCORING_CONFIG.with_overrides(ema_alpha=1.0))

    assert scoring(make_memory("m", score=7.0), make_feedback(0, 1, 0)) == -8.0
