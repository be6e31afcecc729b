"""
Post-execution feedback: grade every memory a task used, then persist once.

FeedbackCollector fans out one grading call per used memory (bounded by a
semaphore), joins them, folds each successful grade into the memory's score
with the graded scoring algorithm, and issues a single batched repository
write.

Failure policy:
- A failed grading is logged and that memory is skipped; the others proceed.
- Gradings still running when ``grading_timeout`` expires are cancelled and
  skipped; the finished ones are still written.
- A failed batched write is raised as MemoryPersistenceError.
- Only successfully graded memories get ``last_used_at`` refreshed, so a
  transient grading outage cannot make a memory look fresh or stale.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from pydantic import BaseModel, Field

from .config import Config, DEFAULT_SCORING_CONFIG, ScoringConfig
from .errors import MemoryPersistenceError
from .llm_utils import call_llm_with_retries
from .logging_utils import (
    format_fields,
    log_debug,
    log_error,
    log_llm,
    log_success,
)
from .prompts import DEFAULT_PROMPTS, PromptLibrary, render_prompt
from .repository import MemoryRepository
from .schemas import (
    IMPACT_RANGE,
    RELEVANCE_RANGE,
    SUPPORT_RANGE,
    AgentMemory,
    MemoryFeedback,
    ScoreUpdate,
)
from .scoring import GradedScoringAlgorithm, build_graded_scoring


class FeedbackGrader(Protocol):
    """Grades how useful one memory was for one task execution."""

    async def grade(
        self,
        memory: AgentMemory,
        task_query: str,
        *,
        session: Any = None,
        exec_result: Any = None,
        exec_error: Optional[BaseException] = None,
    ) -> MemoryFeedback:
        ...


# ============================================================================
# LLM grader
# ============================================================================


class FeedbackResponse(BaseModel):
    """Raw grader output. Grades are unconstrained here and clamped afterwards."""

    relevance: int = Field(..., description="Relevance score (0-3)")
    support: int = Field(..., description="Support score (0-4)")
    impact: int = Field(..., description="Impact score (0-3)")
    reasoning: str = Field("", description="Explanation for the scores")


def clamp_grade(value: int, bounds: tuple[int, int], name: str, memory_id: str) -> int:
    """Clamp an LLM grade into range, logging when it was out of range."""

    low, high = bounds
    if low <= value <= high:
        return value
    log_error(
        f"{name} score out of range, clamping "
        + format_fields(memory_id=memory_id, score=value, low=low, high=high)
    )
    return max(low, min(high, value))


def render_exec_result(exec_result: Any) -> str:
    if exec_result is None:
        return "(no result)"
    if isinstance(exec_result, BaseModel):
        return exec_result.model_dump_json(indent=2)
    if isinstance(exec_result, (dict, list)):
        return json.dumps(exec_result, indent=2, default=str)
    return str(exec_result)


def render_kpt(memory: AgentMemory) -> str:
    sections = (
        ("Successes", memory.successes),
        ("Problems", memory.problems),
        ("Improvements", memory.improvements),
    )
    lines: List[str] = []
    for title, items in sections:
        if items:
            lines.append(f"- {title}:")
            lines.extend(f"  - {item}" for item in items)
    return "\n".join(lines)


def truncate(text: str, limit: int = 100) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class LLMFeedbackGrader:
    """Feedback grader that asks an LLM for relevance/support/impact grades."""

    def __init__(
        self,
        *,
        llm_provider: Optional[str] = None,
        llm_model: Optional[str] = None,
        template_name: str = "feedback",
        prompt_library: Optional[PromptLibrary] = None,
        base_url: Optional[str] = None,
    ) -> None:
        self.llm_provider = llm_provider or Config.LLM_PROVIDER
        self.llm_model = llm_model or Config.LLM_MODEL
        self.template_name = template_name
        self.prompt_library = prompt_library or DEFAULT_PROMPTS
        self.base_url = base_url or Config.LOCAL_LLM_BASE_URL

    async def grade(
        self,
        memory: AgentMemory,
        task_query: str,
        *,
        session: Any = None,
        exec_result: Any = None,
        exec_error: Optional[BaseException] = None,
    ) -> MemoryFeedback:
        if not self.llm_provider or not self.llm_model:
            raise ValueError(
                f"LLMFeedbackGrader requires LLM configuration (memory: {memory.id}). "
                "Set LLM_PROVIDER and LLM_MODEL environment variables."
            )

        try:
            template = self.prompt_library.get(self.template_name)
        except KeyError:
            template = DEFAULT_PROMPTS.get("feedback")

        rendered = render_prompt(
            template,
            {
                "task_query": task_query,
                "exec_result": render_exec_result(exec_result),
                "exec_error": str(exec_error) if exec_error is not None else "(none)",
                "memory_id": memory.id,
                "memory_query": memory.query,
                "memory_claim": memory.claim or "(no claim)",
                "memory_kpt": render_kpt(memory),
            },
        )

        log_llm(f"Grading memory {memory.id[:8]} for task {truncate(task_query, 60)!r}")
        response = await call_llm_with_retries(
            system_prompt=rendered.system,
            user_prompt=rendered.user,
            llm_provider=self.llm_provider,
            llm_model=self.llm_model,
            response_model=FeedbackResponse,
            base_url=self.base_url,
        )

        return MemoryFeedback(
            memory_id=memory.id,
            relevance=clamp_grade(response.relevance, RELEVANCE_RANGE, "relevance", memory.id),
            support=clamp_grade(response.support, SUPPORT_RANGE, "support", memory.id),
            impact=clamp_grade(response.impact, IMPACT_RANGE, "impact", memory.id),
            reasoning=response.reasoning,
        )


# ============================================================================
# Collector
# ============================================================================


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FeedbackCollector:
    """Grades used memories and writes their new scores in one batch."""

    def __init__(
        self,
        repository: MemoryRepository,
        grader: FeedbackGrader,
        *,
        config: ScoringConfig = DEFAULT_SCORING_CONFIG,
        graded_scoring: Optional[GradedScoringAlgorithm] = None,
        max_concurrency: int = 4,
        grading_timeout: Optional[float] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be positive")
        self.repository = repository
        self.grader = grader
        self.config = config.validate()
        self.graded_scoring = graded_scoring or build_graded_scoring(self.config)
        self.max_concurrency = max_concurrency
        self.grading_timeout = grading_timeout
        self.clock = clock

    async def collect_and_apply_feedback(
        self,
        agent_id: str,
        used_memories: Sequence[AgentMemory],
        task_query: str,
        session: Any = None,
        exec_result: Any = None,
        exec_error: Optional[BaseException] = None,
    ) -> Dict[str, ScoreUpdate]:
        """Grade each used memory and persist the new scores.

        Returns:
            The batch that was written (memory_id -> ScoreUpdate). Empty when
            nothing was used or every grading failed.

        Raises:
            MemoryPersistenceError: If the batched write fails
        """

        if not used_memories:
            return {}

        # A memory selected twice in one prompt is graded once.
        unique: Dict[str, AgentMemory] = {}
        for memory in used_memories:
            unique.setdefault(memory.id, memory)

        feedback = await self._grade_all(
            list(unique.values()),
            task_query,
            session=session,
            exec_result=exec_result,
            exec_error=exec_error,
        )

        now = self.clock()
        updates: Dict[str, ScoreUpdate] = {}
        for memory_id, item in feedback.items():
            memory = unique[memory_id]
            new_score = self.graded_scoring(memory, item)
            updates[memory_id] = ScoreUpdate(score=new_score, last_used_at=now)
            log_debug(
                "calculated feedback score "
                + format_fields(
                    memory_id=memory_id,
                    old_score=f"{memory.score:.2f}",
                    new_score=f"{new_score:.2f}",
                    feedback_score=f"{item.normalized_score():.1f}",
                    relevance=item.relevance,
                    support=item.support,
                    impact=item.impact,
                    reasoning=repr(truncate(item.reasoning)),
                )
            )

        if not updates:
            return {}

        try:
            await self.repository.update_score_batch(agent_id, updates)
        except Exception as exc:
            raise MemoryPersistenceError(
                agent_id=agent_id,
                operation="update_score_batch",
                underlying=exc,
                count=len(updates),
            ) from exc

        log_success(
            "batch updated memory scores "
            + format_fields(agent_id=agent_id, count=len(updates), used=len(unique))
        )
        return updates

    async def _grade_all(
        self,
        memories: List[AgentMemory],
        task_query: str,
        *,
        session: Any,
        exec_result: Any,
        exec_error: Optional[BaseException],
    ) -> Dict[str, MemoryFeedback]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _grade_one(memory: AgentMemory) -> MemoryFeedback:
            async with semaphore:
                return await self.grader.grade(
                    memory,
                    task_query,
                    session=session,
                    exec_result=exec_result,
                    exec_error=exec_error,
                )

        tasks = {
            asyncio.create_task(_grade_one(memory)): memory for memory in memories
        }
        try:
            done, pending = await asyncio.wait(tasks.keys(), timeout=self.grading_timeout)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        for task in pending:
            task.cancel()
            log_error(
                "feedback grading timed out, skipping memory "
                + format_fields(memory_id=tasks[task].id, timeout=self.grading_timeout)
            )
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        results: Dict[str, MemoryFeedback] = {}
        # Iterate in input order so logs and the batch are deterministic.
        for task, memory in tasks.items():
            if task not in done:
                continue
            if task.cancelled():
                log_error(
                    "feedback grading was cancelled, skipping memory "
                    + format_fields(memory_id=memory.id)
                )
                continue
            exc = task.exception()
            if exc is not None:
                log_error(
                    "failed to generate feedback for memory "
                    + format_fields(memory_id=memory.id, error=repr(exc))
                )
                continue
            item = task.result()
            if item.memory_id != memory.id:
                # Graders echo the ID from the prompt; trust the one we asked about.
                item = item.model_copy(update={"memory_id": memory.id})
            results[memory.id] = item
        return results


__all__ = [
    "FeedbackGrader",
    "FeedbackResponse",
    "LLMFeedbackGrader",
    "FeedbackCollector",
    "clamp_grade",
    "render_exec_result",
]
