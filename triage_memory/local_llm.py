"""Utilities for calling a locally hosted Ollama server (chat and embeddings)."""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any
from urllib import error, request

from .errors import LocalLLMError

DEFAULT_OLLAMA_BASE_URL = "http://127.0.0.1:11434"
_CHAT_ENDPOINT = "/api/chat"
_EMBED_ENDPOINT = "/api/embed"


def resolve_base_url(base_url: str | None = None) -> str:
    return (
        base_url or os.getenv("OLLAMA_BASE_URL") or DEFAULT_OLLAMA_BASE_URL
    ).rstrip("/")


def _post_json(
    endpoint: str,
    payload: dict[str, Any],
    base_url: str,
    timeout: float,
) -> dict[str, Any]:
    """Execute a blocking POST against the Ollama REST API and decode the body."""

    url = f"{base_url.rstrip('/')}{endpoint}"
    data = json.dumps(payload).encode("utf-8")
    req = request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/json"},
        method="POST",
    )

    try:
        with request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8")
    except error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="ignore") if exc.fp else ""
        message = body or exc.reason
        raise LocalLLMError(
            f"Ollama request to {endpoint} failed with status {exc.code}: {message}"
        ) from exc
    except error.URLError as exc:
        raise LocalLLMError(
            f"Could not reach Ollama at {url}: {exc.reason}"
        ) from exc

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LocalLLMError("Ollama returned non-JSON response.") from exc

    if not isinstance(parsed, dict):
        raise LocalLLMError("Ollama returned an unexpected payload shape.")
    return parsed


def _perform_chat_request(
    payload: dict[str, Any],
    base_url: str,
    timeout: float,
) -> str:
    parsed = _post_json(_CHAT_ENDPOINT, payload, base_url, timeout)
    message = parsed.get("message") or {}
    content = message.get("content")
    if not content:
        raise LocalLLMError("Ollama response did not include assistant content.")
    return content


def _perform_embed_request(
    payload: dict[str, Any],
    base_url: str,
    timeout: float,
) -> list[list[float]]:
    parsed = _post_json(_EMBED_ENDPOINT, payload, base_url, timeout)
    embeddings = parsed.get("embeddings")
    if not isinstance(embeddings, list):
        raise LocalLLMError("Ollama response did not include embeddings.")
    return [[float(value) for value in vector] for vector in embeddings]


async def call_ollama_chat(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_model: str,
    base_url: str | None = None,
    timeout: float = 120.0,
) -> str:
    """Invoke a local Ollama model in JSON mode and return the assistant text."""

    system_prompt = system_prompt.strip()
    user_prompt = user_prompt.strip()
    if not user_prompt:
        raise LocalLLMError("Cannot call Ollama with an empty user prompt.")

    messages: list[dict[str, str]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": user_prompt})

    payload = {
        "model": llm_model,
        "messages": messages,
        "stream": False,
        "format": "json",
    }

    return await asyncio.to_thread(
        _perform_chat_request,
        payload,
        resolve_base_url(base_url),
        timeout,
    )


async def call_ollama_embed(
    *,
    texts: list[str],
    model: str,
    dimension: int | None = None,
    base_url: str | None = None,
    timeout: float = 60.0,
) -> list[list[float]]:
    """Embed ``texts`` with a local Ollama embedding model.

    ``dimension`` is forwarded as ``dimensions`` for models that support
    Matryoshka truncation.
    """

    if not texts:
        return []

    payload: dict[str, Any] = {"model": model, "input": list(texts)}
    if dimension is not None:
        payload["dimensions"] = dimension

    return await asyncio.to_thread(
        _perform_embed_request,
        payload,
        resolve_base_url(base_url),
        timeout,
    )


__all__ = [
    "LocalLLMError",
    "call_ollama_chat",
    "call_ollama_embed",
    "resolve_base_url",
    "DEFAULT_OLLAMA_BASE_URL",
]
