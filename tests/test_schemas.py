"""Schema validation tests."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from triage_memory.schemas import AgentMemory, MemoryFeedback, Reflection, ScoreUpdate


def test_agent_memory_defaults():
    memory = AgentMemory(agent_id="bigquery", query="count logins")

    assert memory.id
    assert memory.score == 0.0
    assert memory.last_used_at is None
    assert memory.created_at.tzinfo is not None
    assert not memory.has_embedding()


def test_agent_memory_rejects_out_of_range_score():
    with pytest.raises(ValidationError):
        AgentMemory(agent_id="bigquery", query="q", score=10.5)
    with pytest.raises(ValidationError):
        ScoreUpdate(score=-11.0)


def test_agent_memory_requires_agent_and_query():
    with pytest.raises(ValidationError):
        AgentMemory(agent_id="", query="q")
    with pytest.raises(ValidationError):
        AgentMemory(agent_id="bigquery", query="")


def test_naive_timestamps_are_read_as_utc():
    memory = AgentMemory(
        agent_id="bigquery",
        query="q",
        created_at=datetime(2025, 1, 1),
        last_used_at=datetime(2025, 1, 2),
    )

    assert memory.created_at.tzinfo == timezone.utc
    assert memory.last_used_at.tzinfo == timezone.utc


def test_summary_truncates_long_claims():
    memory = AgentMemory(id="abcdef1234", agent_id="a", query="q", claim="x" * 500, score=1.0)

    summary = memory.summary(limit=20)

    assert summary.startswith("abcdef12 score=+1.00 ")
    assert summary.endswith("...")


def test_feedback_grade_ranges():
    with pytest.raises(ValidationError):
        MemoryFeedback(memory_id="m", relevance=4, support=0, impact=0)
    with pytest.raises(ValidationError):
        MemoryFeedback(memory_id="m", relevance=0, support=5, impact=0)

    feedback = MemoryFeedback(memory_id="m", relevance=1, support=2, impact=3)
    assert feedback.raw_total() == 6
    assert feedback.normalized_score() == 2.0


def test_reflection_strips_blank_claims():
    reflection = Reflection(new_claims=["  a  ", "", "   ", "b"])

    assert reflection.new_claims == ["a", "b"]


def test_reflection_rejects_conflicting_ids():
    with pytest.raises(ValidationError) as excinfo:
        Reflection(helpful_memories=["x", "y"], harmful_memories=["y"])

    assert "both helpful and harmful" in str(excinfo.value)
