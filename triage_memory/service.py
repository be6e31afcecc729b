"""
MemoryService: agent-bound orchestration of the memory lifecycle.

One service instance serves one agent namespace. It owns no state of its own
beyond its collaborators; every read and write goes through the repository.

Lifecycle around a sub-agent task:

1. search_and_select()          - pick memories to inject into the prompt
2. (agent executes)
3. collect_and_apply_feedback() - grade used memories, one batched score write
4. extract_and_save()           - reflect, adjust scores, store new claims
5. prune()                      - periodic sweep of low-value memories
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from .config import Config, DEFAULT_SCORING_CONFIG, ScoringConfig
from .embedding import Embedder
from .errors import EmbeddingError, MemoryPersistenceError
from .feedback import FeedbackCollector, FeedbackGrader, LLMFeedbackGrader
from .logging_utils import (
    format_fields,
    log_debug,
    log_deterministic,
    log_error,
    log_info,
    log_success,
)
from .pruning import PruningAlgorithm, build_pruning_algorithm
from .reflection import LLMReflectionGenerator, ReflectionGenerator
from .repository import MemoryRepository
from .schemas import AgentMemory, ExecutionMessage, ScoreUpdate
from .scoring import (
    GradedScoringAlgorithm,
    ScoringAlgorithm,
    build_graded_scoring,
    build_reflection_scoring,
)
from .selection import SelectionAlgorithm, build_selection_algorithm


class MemoryService:
    """Search, feedback, reflection and pruning for one agent's memories."""

    def __init__(
        self,
        agent_id: str,
        repository: MemoryRepository,
        embedder: Embedder,
        *,
        config: Optional[ScoringConfig] = None,
        grader: Optional[FeedbackGrader] = None,
        reflection_generator: Optional[ReflectionGenerator] = None,
        selection_algorithm: Optional[SelectionAlgorithm] = None,
        scoring_algorithm: Optional[ScoringAlgorithm] = None,
        pruning_algorithm: Optional[PruningAlgorithm] = None,
        graded_scoring: Optional[GradedScoringAlgorithm] = None,
        embedding_dimension: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        grading_timeout: Optional[float] = None,
    ) -> None:
        if not agent_id:
            raise ValueError("agent_id must be a non-empty string")

        self.agent_id = agent_id
        self.repository = repository
        self.embedder = embedder
        self.config = (config or DEFAULT_SCORING_CONFIG).validate()
        self.grader = grader or LLMFeedbackGrader()
        self.reflection_generator = reflection_generator or LLMReflectionGenerator()
        self.selection_algorithm = selection_algorithm or build_selection_algorithm(self.config)
        self.scoring_algorithm = scoring_algorithm or build_reflection_scoring(self.config)
        self.pruning_algorithm = pruning_algorithm or build_pruning_algorithm(self.config)
        self.graded_scoring = graded_scoring or build_graded_scoring(self.config)
        self.embedding_dimension = embedding_dimension or Config.EMBEDDING_DIMENSION
        self.max_concurrency = max_concurrency or Config.FEEDBACK_MAX_CONCURRENCY
        self.grading_timeout = grading_timeout

    # ------------------------------------------------------------------
    # Algorithm injection
    # ------------------------------------------------------------------

    def with_selection_algorithm(self, algorithm: SelectionAlgorithm) -> "MemoryService":
        self.selection_algorithm = algorithm
        return self

    def with_scoring_algorithm(self, algorithm: ScoringAlgorithm) -> "MemoryService":
        self.scoring_algorithm = algorithm
        return self

    def with_pruning_algorithm(self, algorithm: PruningAlgorithm) -> "MemoryService":
        self.pruning_algorithm = algorithm
        return self

    def with_graded_scoring(self, algorithm: GradedScoringAlgorithm) -> "MemoryService":
        self.graded_scoring = algorithm
        return self

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def search_and_select(
        self, query: str, limit: int, *, now: Optional[datetime] = None
    ) -> List[AgentMemory]:
        """Return up to ``limit`` memories to inject into a prompt for ``query``.

        The repository is asked for ``limit * search_multiplier`` nearest
        candidates (capped at ``search_max_candidates``); the selection
        algorithm then gates and ranks them. ``last_used_at`` is not touched
        here: only graded feedback marks a memory as used.

        Raises:
            EmbeddingError: If the embedder returns no vector for ``query``
            MemoryPersistenceError: If the vector search fails
        """

        if limit <= 0:
            return []

        embedding = await self._embed(query)
        search_limit = min(
            limit * self.config.search_multiplier, self.config.search_max_candidates
        )

        try:
            candidates = await self.repository.find_nearest_by_agent(
                self.agent_id, embedding, search_limit
            )
        except Exception as exc:
            raise MemoryPersistenceError(
                agent_id=self.agent_id, operation="find_nearest_by_agent", underlying=exc
            ) from exc

        if not candidates:
            return []

        selected = self.selection_algorithm(candidates, embedding, limit, now=now)
        log_deterministic(
            "selected memories "
            + format_fields(
                agent_id=self.agent_id,
                candidates=len(candidates),
                selected=len(selected),
            )
        )
        for memory in selected:
            log_debug(f"  {memory.summary()}")
        return selected

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save_memory(
        self,
        query: str,
        claim: str,
        *,
        successes: Optional[Sequence[str]] = None,
        problems: Optional[Sequence[str]] = None,
        improvements: Optional[Sequence[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AgentMemory:
        """Embed ``query`` and persist one new memory with a neutral score."""

        embedding = await self._embed(query)
        memory = AgentMemory(
            agent_id=self.agent_id,
            query=query,
            query_embedding=embedding,
            claim=claim,
            successes=list(successes or []),
            problems=list(problems or []),
            improvements=list(improvements or []),
            metadata=dict(metadata or {}),
        )
        try:
            await self.repository.save(memory)
        except Exception as exc:
            raise MemoryPersistenceError(
                agent_id=self.agent_id, operation="save", underlying=exc
            ) from exc
        log_success(f"saved memory {memory.summary()}")
        return memory

    async def extract_and_save(
        self,
        query: str,
        used_memories: Sequence[AgentMemory],
        history: Sequence[ExecutionMessage],
    ) -> List[AgentMemory]:
        """Reflect on an execution, adjust used-memory scores, store new claims.

        A failed reflection is logged and yields an empty list; nothing is
        written in that case. Score adjustments start from the stored score
        and keep the stored ``last_used_at``, so running this after
        collect_and_apply_feedback() builds on the feedback write. Used
        memories that no longer exist are skipped.

        Returns:
            The newly saved memories
        """

        try:
            reflection = await self.reflection_generator.generate(query, used_memories, history)
        except Exception as exc:
            log_error(
                "failed to generate reflection "
                + format_fields(agent_id=self.agent_id, error=repr(exc))
            )
            return []

        # Score from the stored records: feedback may have moved them since
        # the caller's snapshot was taken.
        try:
            by_id = await self.repository.get_batch(
                self.agent_id, [memory.id for memory in used_memories]
            )
        except Exception as exc:
            raise MemoryPersistenceError(
                agent_id=self.agent_id, operation="get_batch", underlying=exc
            ) from exc

        new_scores = self.scoring_algorithm(by_id, reflection)
        if new_scores:
            updates = {
                memory_id: ScoreUpdate(score=score, last_used_at=by_id[memory_id].last_used_at)
                for memory_id, score in new_scores.items()
            }
            try:
                await self.repository.update_score_batch(self.agent_id, updates)
            except Exception as exc:
                raise MemoryPersistenceError(
                    agent_id=self.agent_id,
                    operation="update_score_batch",
                    underlying=exc,
                    count=len(updates),
                ) from exc
            for memory_id, score in new_scores.items():
                old = by_id[memory_id].score
                log_deterministic(
                    f"reflection score {memory_id[:8]}: {old:+.2f} -> {score:+.2f} "
                    f"(delta {score - old:+.2f})"
                )

        log_info(
            "reflection summary "
            + format_fields(
                agent_id=self.agent_id,
                new_claims=len(reflection.new_claims),
                helpful=len(reflection.helpful_memories),
                harmful=len(reflection.harmful_memories),
            )
        )

        if not reflection.new_claims:
            return []

        embedding = await self._embed(query)
        new_memories = [
            AgentMemory(
                agent_id=self.agent_id,
                query=query,
                query_embedding=embedding,
                claim=claim,
                score=0.0,
            )
            for claim in reflection.new_claims
        ]
        try:
            await self.repository.save_batch(new_memories)
        except Exception as exc:
            raise MemoryPersistenceError(
                agent_id=self.agent_id,
                operation="save_batch",
                underlying=exc,
                count=len(new_memories),
            ) from exc

        log_success(
            "saved new memories " + format_fields(agent_id=self.agent_id, count=len(new_memories))
        )
        return new_memories

    async def collect_and_apply_feedback(
        self,
        used_memories: Sequence[AgentMemory],
        task_query: str,
        session: Any = None,
        exec_result: Any = None,
        exec_error: Optional[BaseException] = None,
    ) -> Dict[str, ScoreUpdate]:
        """Grade each used memory and write the new scores in one batch."""

        collector = FeedbackCollector(
            self.repository,
            self.grader,
            config=self.config,
            graded_scoring=self.graded_scoring,
            max_concurrency=self.max_concurrency,
            grading_timeout=self.grading_timeout,
        )
        return await collector.collect_and_apply_feedback(
            self.agent_id,
            used_memories,
            task_query,
            session=session,
            exec_result=exec_result,
            exec_error=exec_error,
        )

    async def prune(self, *, now: Optional[datetime] = None) -> int:
        """Delete memories the pruning algorithm selects.

        Returns:
            Number of memories deleted
        """

        try:
            memories = await self.repository.list_by_agent(self.agent_id)
        except Exception as exc:
            raise MemoryPersistenceError(
                agent_id=self.agent_id, operation="list_by_agent", underlying=exc
            ) from exc

        if not memories:
            return 0

        now = now or datetime.now(timezone.utc)
        to_delete = self.pruning_algorithm(memories, now)
        if not to_delete:
            return 0

        try:
            deleted = await self.repository.delete_batch(self.agent_id, to_delete)
        except Exception as exc:
            raise MemoryPersistenceError(
                agent_id=self.agent_id,
                operation="delete_batch",
                underlying=exc,
                count=len(to_delete),
            ) from exc

        log_deterministic(
            "pruned agent memories "
            + format_fields(agent_id=self.agent_id, deleted=deleted, total=len(memories))
        )
        return deleted

    async def _embed(self, text: str) -> List[float]:
        vectors = await self.embedder.embed([text], self.embedding_dimension)
        if not vectors or not vectors[0]:
            raise EmbeddingError(query=text, reason="no embedding generated")
        return [float(value) for value in vectors[0]]


__all__ = ["MemoryService"]
