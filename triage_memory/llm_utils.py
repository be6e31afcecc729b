"""Structured LLM calls with validation-aware retries.

Both the feedback grader and the reflection generator need a pydantic object
back from the model. This helper sends the prompt through mirascope (or a
local Ollama server), and when the reply fails validation it retries with the
validation issues appended so the model can correct itself.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Sequence, TypeVar

from mirascope import llm
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from .errors import LocalLLMError
from .local_llm import call_ollama_chat
from .logging_utils import log_error


ModelT = TypeVar("ModelT", bound=BaseModel)
LLM_TIMEOUT_SECONDS = 120.0


@dataclass(slots=True)
class ValidationFeedback:
    """Structured feedback for retrying failed LLM schema outputs."""

    llm_text: str
    issues: Sequence[str]


def _truncate_preview(value: Any, *, limit: int = 80) -> str:
    """Return a compact preview of the offending input value."""

    if value is None:
        return "null"
    text = repr(value)
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def inject_validation_feedback(error: ValidationError) -> ValidationFeedback:
    """Turn a pydantic ValidationError into retry guidance for the model.

    Each issue carries the dotted field path, the message, the error type and
    a short preview of the rejected value.
    """

    issues: list[str] = []
    for err in error.errors(include_url=False):  # pragma: no branch - typically small
        loc = ".".join(str(part) for part in err.get("loc", [])) or "root"
        details = f"{loc}: {err.get('msg', 'validation error')}"
        err_type = err.get("type")
        if err_type:
            details += f" [type={err_type}]"
        if "input" in err:
            preview = _truncate_preview(err.get("input"))
            if preview:
                details += f" | received={preview}"
        issues.append(details)

    if not issues:
        issues.append("root: response did not match the expected schema")

    instructions = [
        "Your previous JSON response failed to validate against the required schema.",
        "Produce a corrected response that strictly matches the schema.",
        "Do not include explanations or code fences; return only valid JSON.",
        "Issues detected:",
    ]
    instructions.extend(f"- {issue}" for issue in issues)

    return ValidationFeedback(llm_text="\n".join(instructions), issues=issues)


def _log_validation_failure(
    *,
    model_name: str,
    attempt: int,
    max_attempts: int,
    feedback: ValidationFeedback,
) -> None:
    log_error(
        f"LLM schema validation failed for {model_name} "
        f"(attempt {attempt}/{max_attempts})."
    )
    for issue in feedback.issues:
        log_error(f"    - {issue}")


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json fence some models add despite instructions."""

    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    lines = stripped.splitlines()[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines).strip()


async def call_llm_with_retries(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_provider: str,
    llm_model: str,
    response_model: type[ModelT],
    max_attempts: int = 3,
    base_url: str | None = None,
    feedback_builder: Callable[[ValidationError], ValidationFeedback] = inject_validation_feedback,
) -> ModelT:
    """Invoke a structured LLM call and return a validated ``response_model``.

    Only ValidationError triggers a retry. Timeouts and transport errors
    propagate on the first occurrence, since retrying rarely helps there.
    """

    system_prompt = system_prompt.strip()
    base_user_prompt = user_prompt.strip()

    def _build_user_prompt(feedback_payload: ValidationFeedback | None) -> str:
        sections = [base_user_prompt]
        if feedback_payload is not None:
            sections.append(feedback_payload.llm_text)
        return "\n\n".join(section for section in sections if section)

    def _build_combined_prompt(user_section: str) -> str:
        return "\n\n".join(section for section in (system_prompt, user_section) if section)

    feedback_payload: ValidationFeedback | None = None
    use_local_llm = llm_provider.lower() == "ollama"

    remote_invoke: Callable[[str], Any] | None = None
    if not use_local_llm:
        @llm.call(provider=llm_provider, model=llm_model, response_model=response_model)
        async def _invoke(prompt: str) -> str:
            return prompt

        remote_invoke = _invoke

    attempt_number = 0
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(ValidationError),
        stop=stop_after_attempt(max_attempts),
        reraise=True,
    ):
        with attempt:
            attempt_number += 1
            user_section = _build_user_prompt(feedback_payload)
            try:
                if use_local_llm:
                    raw_response = await asyncio.wait_for(
                        call_ollama_chat(
                            system_prompt=system_prompt,
                            user_prompt=user_section,
                            llm_model=llm_model,
                            base_url=base_url,
                        ),
                        timeout=LLM_TIMEOUT_SECONDS,
                    )
                    return response_model.model_validate_json(strip_code_fence(raw_response))

                if remote_invoke is None:
                    raise RuntimeError("Remote LLM invoke is not initialized.")

                return await asyncio.wait_for(
                    remote_invoke(_build_combined_prompt(user_section)),
                    timeout=LLM_TIMEOUT_SECONDS,
                )
            except ValidationError as exc:
                feedback_payload = feedback_builder(exc)
                _log_validation_failure(
                    model_name=response_model.__name__,
                    attempt=attempt_number,
                    max_attempts=max_attempts,
                    feedback=feedback_payload,
                )
                raise
            except asyncio.TimeoutError:
                log_error(
                    f"LLM call timed out after {int(LLM_TIMEOUT_SECONDS)}s for {response_model.__name__}."
                )
                raise
            except LocalLLMError as exc:
                raise RuntimeError(
                    f"Local LLM provider error ({llm_provider}): {exc}"
                ) from exc

    raise RuntimeError("LLM retry mechanism exited unexpectedly")
