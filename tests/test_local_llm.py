import pytest

from triage_memory.embedding import OllamaEmbedder
from triage_memory.errors import LocalLLMError
from triage_memory.local_llm import call_ollama_chat, call_ollama_embed


@pytest.mark.asyncio
async def test_call_ollama_chat_builds_payload(monkeypatch):
    captured: dict[str, object] = {}

    def fake_request(payload, base_url, timeout):
        captured["payload"] = payload
        captured["base_url"] = base_url
        captured["timeout"] = timeout
        return '{"relevance": 2}'

    monkeypatch.setattr("triage_memory.local_llm._perform_chat_request", fake_request)

    result = await call_ollama_chat(
        system_prompt="System context",
        user_prompt="User payload",
        llm_model="llama3.1",
        base_url="http://localhost:11434/",
        timeout=30,
    )

    assert result == '{"relevance": 2}'
    payload = captured["payload"]
    assert payload["model"] == "llama3.1"
    assert payload["format"] == "json"
    assert payload["messages"][0] == {"role": "system", "content": "System context"}
    assert payload["messages"][1] == {"role": "user", "content": "User payload"}
    assert captured["base_url"] == "http://localhost:11434"
    assert captured["timeout"] == 30


@pytest.mark.asyncio
async def test_call_ollama_chat_rejects_empty_prompt():
    with pytest.raises(LocalLLMError):
        await call_ollama_chat(system_prompt="s", user_prompt="   ", llm_model="llama3.1")


@pytest.mark.asyncio
async def test_call_ollama_embed_forwards_dimension(monkeypatch):
    captured: dict[str, object] = {}

    def fake_request(payload, base_url, timeout):
        captured["payload"] = payload
        return [[0.1, 0.2, 0.3]]

    monkeypatch.setattr("triage_memory.local_llm._perform_embed_request", fake_request)

    vectors = await call_ollama_embed(
        texts=["failed logins"], model="nomic-embed-text", dimension=256, base_url="http://x"
    )

    assert vectors == [[0.1, 0.2, 0.3]]
    assert captured["payload"] == {
        "model": "nomic-embed-text",
        "input": ["failed logins"],
        "dimensions": 256,
    }
    assert await call_ollama_embed(texts=[], model="nomic-embed-text") == []


@pytest.mark.asyncio
async def test_ollama_embedder_truncates_to_dimension(monkeypatch):
    async def fake_embed(*, texts, model, dimension=None, base_url=None, timeout=60.0):
        return [[1.0, 2.0, 3.0, 4.0] for _ in texts]

    monkeypatch.setattr("triage_memory.embedding.call_ollama_embed", fake_embed)

    embedder = OllamaEmbedder(model="nomic-embed-text", base_url="http://x")

    assert await embedder.embed(["a", "b"], 2) == [[1.0, 2.0], [1.0, 2.0]]
