"""Tests for reflection prompt rendering and generation."""

import pytest

from triage_memory.reflection import (
    NO_HISTORY,
    LLMReflectionGenerator,
    format_execution_history,
)
from triage_memory.schemas import AgentMemory, ExecutionMessage, Reflection


def test_empty_history_has_placeholder_text():
    assert format_execution_history([]) == NO_HISTORY


def test_history_renders_text_tool_calls_and_responses():
    history = [
        ExecutionMessage(role="user", content="Find failed logins"),
        ExecutionMessage(
            role="assistant",
            kind="tool_call",
            tool_name="bigquery_query",
            payload={"sql": "SELECT 1"},
        ),
        ExecutionMessage(
            role="tool",
            kind="tool_response",
            tool_name="bigquery_query",
            payload={"rows": 0},
        ),
    ]

    lines = format_execution_history(history).splitlines()

    assert lines[0] == "1. [user] Find failed logins"
    assert lines[1] == '2. [assistant] call bigquery_query({"sql": "SELECT 1"})'
    assert lines[2] == '3. [tool] bigquery_query -> {"rows": 0}'


@pytest.mark.asyncio
async def test_generator_renders_memories_and_history(monkeypatch):
    captured: dict[str, object] = {}

    async def fake_call(**kwargs):
        captured.update(kwargs)
        return Reflection(new_claims=["  use user.email  ", ""], helpful_memories=["m1"])

    monkeypatch.setattr("triage_memory.reflection.call_llm_with_retries", fake_call)

    memory = AgentMemory(
        id="m1", agent_id="bigquery", query="failed logins", claim="severity='ERROR'", score=1.5
    )
    generator = LLMReflectionGenerator(llm_provider="ollama", llm_model="llama3.1")

    reflection = await generator.generate("count failed logins", [memory], [])

    assert reflection.new_claims == ["use user.email"]
    assert reflection.helpful_memories == ["m1"]
    assert captured["response_model"] is Reflection
    assert captured["llm_provider"] == "ollama"
    user_prompt = captured["user_prompt"]
    assert "id=m1 score=+1.50" in user_prompt
    assert "severity='ERROR'" in user_prompt
    assert NO_HISTORY in user_prompt
