"""
BigQuery Sub-Agent Memory Walkthrough

Simulates a few task executions of a BigQuery triage sub-agent and shows the
memory lifecycle end to end:

- Memories are selected for a task by similarity, quality and recency
- Used memories are graded after execution and their scores move by EMA
- Reflection stores new claims and marks misleading memories as harmful
- A prune sweep deletes memories that kept misleading the agent

Grading and reflection use a real LLM when LLM_PROVIDER/LLM_MODEL are set
(pass --llm). Otherwise scripted stand-ins keep the run offline. Embeddings
come from Ollama with --ollama-embed, else a tiny keyword embedder.

Run: uv run python examples/bigquery_agent/run.py [--llm] [--ollama-embed]
"""

import argparse
import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Sequence

from triage_memory import (
    AgentMemory,
    Config,
    ExecutionMessage,
    InMemoryRepository,
    LLMFeedbackGrader,
    LLMReflectionGenerator,
    MemoryFeedback,
    MemoryService,
    OllamaEmbedder,
    Reflection,
)
from triage_memory.logging_utils import log_info

KEYWORDS = ("login", "failed", "email", "severity", "table", "slack", "deploy", "cost")


class KeywordEmbedder:
    """Bag-of-keywords embedding, good enough to demo nearest-neighbor search."""

    async def embed(self, texts: Sequence[str], dimension: int) -> List[List[float]]:
        vectors = []
        for text in texts:
            lowered = text.lower()
            vectors.append([1.0 if word in lowered else 0.0 for word in KEYWORDS] + [0.1])
        return vectors


class ScriptedGrader:
    """Grades memories that mention 'severity' as misleading, others as helpful."""

    async def grade(self, memory, task_query, *, session=None, exec_result=None, exec_error=None):
        if "severity" in memory.claim:
            return MemoryFeedback(memory_id=memory.id, relevance=1, support=0, impact=0,
                                  reasoning="Pointed at a column that does not exist")
        return MemoryFeedback(memory_id=memory.id, relevance=3, support=3, impact=2,
                              reasoning="Named the right table")


class ScriptedReflection:
    async def generate(self, task_query, used_memories, history):
        harmful = [m.id for m in used_memories if "severity" in m.claim]
        helpful = [m.id for m in used_memories if m.id not in harmful]
        return Reflection(
            new_claims=["Failed logins: filter protoPayload.status.code != 0"],
            helpful_memories=helpful,
            harmful_memories=harmful,
        )


async def seed(repository: InMemoryRepository, embedder) -> None:
    now = datetime.now(timezone.utc)
    seeds = [
        ("find failed login attempts", "Auth events live in audit.login_events", 2.0, 3),
        ("count failed login by email", "Filter on severity='ERROR' for login failures", -4.5, 120),
        ("slack deploy notices", "Deploy bot posts in #deploys", 0.0, 10),
    ]
    for query, claim, score, days_ago in seeds:
        [embedding] = await embedder.embed([query], Config.EMBEDDING_DIMENSION)
        await repository.save(
            AgentMemory(
                agent_id="bigquery",
                query=query,
                query_embedding=embedding,
                claim=claim,
                score=score,
                created_at=now - timedelta(days=days_ago + 30),
                last_used_at=now - timedelta(days=days_ago),
            )
        )


async def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--llm", action="store_true", help="Grade and reflect with the configured LLM")
    parser.add_argument("--ollama-embed", action="store_true", help="Embed with Ollama")
    parser.add_argument("--tasks", type=int, default=3, help="Number of simulated executions")
    args = parser.parse_args()

    if args.llm:
        Config.validate()
    print(Config.display())

    embedder = OllamaEmbedder() if args.ollama_embed else KeywordEmbedder()
    repository = InMemoryRepository()
    await repository.initialize()
    await seed(repository, embedder)

    service = MemoryService(
        "bigquery",
        repository,
        embedder,
        grader=LLMFeedbackGrader() if args.llm else ScriptedGrader(),
        reflection_generator=LLMReflectionGenerator() if args.llm else ScriptedReflection(),
    )

    task = "how many failed login attempts per email yesterday"
    for run in range(1, args.tasks + 1):
        log_info(f"--- execution {run} ---")
        used = await service.search_and_select(task, Config.MEMORY_SEARCH_LIMIT)
        for memory in used:
            log_info(f"  injected {memory.summary()}")

        history = [
            ExecutionMessage(role="user", content=task),
            ExecutionMessage(role="assistant", kind="tool_call", tool_name="bigquery_query",
                             payload={"sql": "SELECT email, COUNT(*) FROM audit.login_events GROUP BY 1"}),
            ExecutionMessage(role="tool", kind="tool_response", tool_name="bigquery_query",
                             payload={"rows": 12}),
        ]
        await service.collect_and_apply_feedback(used, task, exec_result={"rows": 12})
        await service.extract_and_save(task, used, history)

    deleted = await service.prune(now=datetime.now(timezone.utc) + timedelta(days=200))
    log_info(f"prune sweep (200 days later) deleted {deleted} memories")

    for memory in await repository.list_by_agent("bigquery"):
        log_info(f"  kept {memory.summary()}")

    await repository.close()


if __name__ == "__main__":
    asyncio.run(main())
