"""Prompt templates for memory grading and reflection.

Templates use ``{{double_brace}}`` placeholders so literal JSON braces in the
examples never collide with substitution.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping


@dataclass
class PromptTemplate:
    """Represents a templated prompt with placeholders."""

    name: str
    system: str
    user: str
    description: str = ""


@dataclass
class RenderedPrompt:
    system: str
    user: str


class PromptLibrary:
    """Container for named prompt templates."""

    def __init__(self) -> None:
        self.templates: Dict[str, PromptTemplate] = {}

    def register(self, template: PromptTemplate) -> None:
        self.templates[template.name] = template

    def get(self, name: str) -> PromptTemplate:
        return self.templates[name]


def render_prompt(template: PromptTemplate, values: Mapping[str, str]) -> RenderedPrompt:
    """Replace ``{{key}}`` placeholders in both prompt parts.

    Unknown placeholders are left untouched so a template typo shows up in
    DEBUG_MEMORY output rather than silently vanishing.
    """

    system = template.system
    user = template.user
    for key, value in values.items():
        token = "{{" + key + "}}"
        system = system.replace(token, value)
        user = user.replace(token, value)
    return RenderedPrompt(system=system, user=user)


DEFAULT_PROMPTS = PromptLibrary()

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="feedback",
        system=(
            "You are reviewing how useful a stored memory was for a security-operations sub-agent. "
            "Grade it strictly and respond with JSON only."
        ),
        user=(
            "Task the agent just executed:\n{{task_query}}\n\n"
            "Execution outcome:\n{{exec_result}}\n\n"
            "Execution error (if any):\n{{exec_error}}\n\n"
            "Memory under review (id {{memory_id}}):\n"
            "- Original task: {{memory_query}}\n"
            "- Claim: {{memory_claim}}\n"
            "{{memory_kpt}}\n\n"
            "Grade the memory:\n"
            "- relevance (0-3): how related the memory was to this task\n"
            "- support (0-4): how much it helped the agent reach its result\n"
            "- impact (0-3): how much it changed what the agent did\n"
            "A memory that misled the agent must get low support and impact.\n\n"
            "Example output:\n"
            "{\n"
            "  \"memory_id\": \"{{memory_id}}\",\n"
            "  \"relevance\": 2,\n"
            "  \"support\": 3,\n"
            "  \"impact\": 1,\n"
            "  \"reasoning\": \"Pointed the agent at the right table but not the right field.\"\n"
            "}\n\n"
            "Respond with JSON only."
        ),
        description="Grades one used memory for one task execution.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="reflection",
        system=(
            "You analyze a finished security-operations sub-agent execution. Extract reusable, specific "
            "insights and judge which supplied memories helped or misled the agent. Respond with JSON only."
        ),
        user=(
            "Task query:\n{{task_query}}\n\n"
            "Memories supplied to the agent:\n{{used_memories}}\n\n"
            "Execution history:\n{{execution_history}}\n\n"
            "Rules:\n"
            "- new_claims: concrete facts worth remembering (field names, formats, query patterns). "
            "Skip generic advice.\n"
            "- helpful_memories / harmful_memories: only IDs from the list above; never list an ID in both.\n\n"
            "Example output:\n"
            "{\n"
            "  \"new_claims\": [\"Login failures are severity='ERROR' AND action='login'; user is user.email\"],\n"
            "  \"helpful_memories\": [\"3f1c...\"],\n"
            "  \"harmful_memories\": []\n"
            "}\n\n"
            "Respond with JSON only."
        ),
        description="Synthesizes new claims and helpful/harmful verdicts from an execution.",
    )
)
