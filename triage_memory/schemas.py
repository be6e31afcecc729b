"""
Pydantic schemas for the triage agent memory subsystem.

Design Philosophy:
- AgentMemory is the only persisted entity; everything else is ephemeral
- Scores are range-checked by the model so no write can carry an out-of-range value
- Free-form KPT text stays opaque to the engines
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


# ============================================================================
# Constants
# ============================================================================

SCORE_MIN = -10.0
SCORE_MAX = 10.0

RELEVANCE_RANGE = (0, 3)
SUPPORT_RANGE = (0, 4)
IMPACT_RANGE = (0, 3)

# Sum of the three grades that maps to a neutral (0.0) normalized score.
NEUTRAL_GRADE_SUM = 5


def new_memory_id() -> str:
    """Return a fresh memory identifier."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Memory Schemas
# ============================================================================


class AgentMemory(BaseModel):
    """One remembered sub-agent task execution.

    A memory is created once per completed task claim and afterwards only its
    ``score`` and ``last_used_at`` change, always through a batched repository
    update. ``query_embedding`` is produced once at save time.

    Score scale (-10..+10):
    - <= -8: critical, pruned unconditionally
    - -5..-8: harmful, filtered out of prompts and pruned once stale
    - around 0: neutral (initial value)
    - > 0: proven helpful
    """

    id: str = Field(default_factory=new_memory_id, min_length=1, description="Unique memory identifier")
    agent_id: str = Field(..., min_length=1, description="Owning agent namespace (e.g., 'bigquery')")
    query: str = Field(..., min_length=1, description="Task description that produced this memory")
    # Empty embeddings are tolerated for legacy records; they rank with similarity 0.
    query_embedding: List[float] = Field(
        default_factory=list,
        description="Embedding of the task query, generated once at save time",
    )
    claim: str = Field("", description="Distilled insight surfaced to future prompts")
    score: float = Field(
        0.0, ge=SCORE_MIN, le=SCORE_MAX, description="Quality score in [-10, 10]"
    )
    created_at: datetime = Field(default_factory=utc_now, description="When the memory was saved")
    last_used_at: Optional[datetime] = Field(
        None, description="When the memory was last graded after use; None if never"
    )
    # Legacy KPT (Keep/Problem/Try) text fields
    successes: List[str] = Field(default_factory=list, description="What worked (Keep)")
    problems: List[str] = Field(default_factory=list, description="What went wrong (Problem)")
    improvements: List[str] = Field(default_factory=list, description="What to try next (Try)")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Free-form metadata")

    @field_validator("created_at", "last_used_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Naive datetimes are read as UTC so age arithmetic never mixes kinds.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def has_embedding(self) -> bool:
        return bool(self.query_embedding)

    def summary(self, limit: int = 120) -> str:
        """Short single-line description used in logs."""
        text = (self.claim or self.query).strip().replace("\n", " ")
        if len(text) > limit:
            text = text[: limit - 3] + "..."
        return f"{self.id[:8]} score={self.score:+.2f} {text}"


class ScoreUpdate(BaseModel):
    """New score and last-used timestamp for one memory in a batched write."""

    score: float = Field(..., ge=SCORE_MIN, le=SCORE_MAX)
    last_used_at: Optional[datetime] = None


# ============================================================================
# Feedback Schemas
# ============================================================================


class MemoryFeedback(BaseModel):
    """Graded usefulness of one memory for one task execution.

    Never persisted; only ``normalized_score()`` is folded into the memory's
    quality score.
    """

    memory_id: str = Field(..., description="Memory that was graded")
    relevance: int = Field(..., ge=RELEVANCE_RANGE[0], le=RELEVANCE_RANGE[1])
    support: int = Field(..., ge=SUPPORT_RANGE[0], le=SUPPORT_RANGE[1])
    impact: int = Field(..., ge=IMPACT_RANGE[0], le=IMPACT_RANGE[1])
    reasoning: str = Field("", description="Grader's explanation")

    def raw_total(self) -> int:
        return self.relevance + self.support + self.impact

    def normalized_score(self) -> float:
        """Map the 0..10 grade sum onto -10..+10 with 5 as neutral."""
        return float((self.raw_total() - NEUTRAL_GRADE_SUM) * 2)


class Reflection(BaseModel):
    """Post-hoc analysis of a single execution.

    ``helpful_memories`` and ``harmful_memories`` reference memories that were in
    the prompt context for that execution. Listing an ID in both is a caller
    error and fails validation, which also lets LLM output be retried.
    """

    new_claims: List[str] = Field(
        default_factory=list,
        description="Newly discovered insights (specific, actionable claims)",
    )
    helpful_memories: List[str] = Field(
        default_factory=list,
        description="IDs of memories that helped during execution",
    )
    harmful_memories: List[str] = Field(
        default_factory=list,
        description="IDs of memories that were harmful or misleading during execution",
    )

    @field_validator("new_claims")
    @classmethod
    def _drop_blank_claims(cls, value: List[str]) -> List[str]:
        return [claim.strip() for claim in value if claim and claim.strip()]

    @model_validator(mode="after")
    def _reject_conflicting_ids(self) -> "Reflection":
        overlap = set(self.helpful_memories) & set(self.harmful_memories)
        if overlap:
            listed = ", ".join(sorted(overlap))
            raise ValueError(
                f"memory IDs cannot be both helpful and harmful: {listed}"
            )
        return self


# ============================================================================
# Execution History
# ============================================================================


class ExecutionMessage(BaseModel):
    """One message of a sub-agent's execution history.

    Only used to render the reflection prompt; the agent framework producing
    the history is external.
    """

    role: str = Field(..., description="Message role (user, assistant, tool)")
    kind: Literal["text", "tool_call", "tool_response"] = "text"
    content: str = ""
    tool_name: Optional[str] = None
    tool_call_id: Optional[str] = None
    payload: Optional[Dict[str, Any]] = Field(
        None, description="Tool call arguments or tool response body"
    )
