"""Reflection over a finished execution: new claims plus helpful/harmful verdicts."""

from __future__ import annotations

import json
from typing import List, Optional, Protocol, Sequence

from .config import Config
from .llm_utils import call_llm_with_retries
from .logging_utils import log_llm
from .prompts import DEFAULT_PROMPTS, PromptLibrary, render_prompt
from .schemas import AgentMemory, ExecutionMessage, Reflection


NO_HISTORY = "No execution history available"


class ReflectionGenerator(Protocol):
    async def generate(
        self,
        task_query: str,
        used_memories: Sequence[AgentMemory],
        history: Sequence[ExecutionMessage],
    ) -> Reflection:
        ...


def format_execution_history(history: Sequence[ExecutionMessage]) -> str:
    """Render an execution history as numbered plain-text lines.

    Tool calls show their arguments, tool responses their payload; plain
    messages show their text.
    """

    if not history:
        return NO_HISTORY

    lines: List[str] = []
    for index, message in enumerate(history, start=1):
        if message.kind == "tool_call":
            args = json.dumps(message.payload or {}, default=str)
            lines.append(f"{index}. [{message.role}] call {message.tool_name or 'tool'}({args})")
        elif message.kind == "tool_response":
            body = (
                json.dumps(message.payload, default=str)
                if message.payload is not None
                else message.content
            )
            lines.append(f"{index}. [{message.role}] {message.tool_name or 'tool'} -> {body}")
        else:
            lines.append(f"{index}. [{message.role}] {message.content}")
    return "\n".join(lines)


def format_used_memories(memories: Sequence[AgentMemory]) -> str:
    if not memories:
        return "(none)"
    return "\n".join(
        f"- id={memory.id} score={memory.score:+.2f}\n"
        f"  query: {memory.query}\n"
        f"  claim: {memory.claim or '(no claim)'}"
        for memory in memories
    )


class LLMReflectionGenerator:
    """Reflection generator backed by a structured LLM call."""

    def __init__(
        self,
        *,
        llm_provider: Optional[str] = None,
        llm_model: Optional[str] = None,
        template_name: str = "reflection",
        prompt_library: Optional[PromptLibrary] = None,
        base_url: Optional[str] = None,
    ) -> None:
        self.llm_provider = llm_provider or Config.LLM_PROVIDER
        self.llm_model = llm_model or Config.LLM_MODEL
        self.template_name = template_name
        self.prompt_library = prompt_library or DEFAULT_PROMPTS
        self.base_url = base_url or Config.LOCAL_LLM_BASE_URL

    async def generate(
        self,
        task_query: str,
        used_memories: Sequence[AgentMemory],
        history: Sequence[ExecutionMessage],
    ) -> Reflection:
        if not self.llm_provider or not self.llm_model:
            raise ValueError(
                "LLMReflectionGenerator requires LLM configuration. "
                "Set LLM_PROVIDER and LLM_MODEL environment variables."
            )

        rendered = render_prompt(
            self.prompt_library.get(self.template_name),
            {
                "task_query": task_query,
                "used_memories": format_used_memories(used_memories),
                "execution_history": format_execution_history(history),
            },
        )

        log_llm(f"Reflecting on execution ({len(used_memories)} memories used, {len(history)} messages)")
        return await call_llm_with_retries(
            system_prompt=rendered.system,
            user_prompt=rendered.user,
            llm_provider=self.llm_provider,
            llm_model=self.llm_model,
            response_model=Reflection,
            base_url=self.base_url,
        )


__all__ = [
    "ReflectionGenerator",
    "LLMReflectionGenerator",
    "format_execution_history",
    "format_used_memories",
    "NO_HISTORY",
]
