"""
Completion client tests
Covers the Ollama HTTP client (MockTransport), the callback client and the factory.
"""

import json

import httpx
import pytest

from llm import config
from llm.llm_client import CustomLLMClient, OllamaClient, create_llm_client


def _ollama(handler, model="phi3:mini") -> OllamaClient:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return OllamaClient(base_url="http://ollama.test", model=model, http_client=client)


class TestOllamaClient:
    def test_generate_posts_options(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"response": "¡Hola!"})

        text = _ollama(handler).generate(
            "hola", "Eres un asistente", temperature=0.2, top_p=0.9, top_k=40, max_tokens=256
        )

        assert text == "¡Hola!"
        assert seen["path"] == "/api/generate"
        body = seen["body"]
        assert body["model"] == "phi3:mini"
        assert body["stream"] is False
        assert body["system"] == "Eres un asistente"
        assert body["options"] == {"temperature": 0.2, "top_p": 0.9, "top_k": 40, "num_predict": 256}

    def test_generate_raises_on_http_error(self):
        client = _ollama(lambda request: httpx.Response(500, text="model crashed"))

        with pytest.raises(httpx.HTTPStatusError):
            client.generate("hola")

    def test_is_available(self):
        assert _ollama(lambda r: httpx.Response(200, json={"models": []})).is_available() is True

    def test_is_available_false_when_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert _ollama(handler).is_available() is False

    def test_has_model_matches_tag(self):
        tags = {"models": [{"name": "phi3:mini"}, {"name": "llama3:latest"}]}

        assert _ollama(lambda r: httpx.Response(200, json=tags)).has_model() is True
        assert _ollama(lambda r: httpx.Response(200, json=tags), model="llama3").has_model() is True
        assert _ollama(lambda r: httpx.Response(200, json=tags), model="mistral").has_model() is False


class TestCustomClient:
    def test_forwards_prompt_and_options(self):
        calls = []

        def generate(prompt, system_prompt, **kwargs):
            calls.append((prompt, system_prompt, kwargs))
            return "ok"

        client = CustomLLMClient(generate, name="stub")

        assert client.generate("p", "s", temperature=0.5) == "ok"
        assert calls == [("p", "s", {"temperature": 0.5})]

    def test_availability_callback(self):
        client = CustomLLMClient(lambda *a, **k: "", available_func=lambda: False)

        assert client.is_available() is False
        assert client.has_model() is False


class TestFactory:
    def test_custom_provider(self):
        client = create_llm_client("custom", generate_func=lambda *a, **k: "x")
        assert isinstance(client, CustomLLMClient)

    def test_default_provider_from_settings(self, monkeypatch):
        monkeypatch.setenv("LLM_PROVIDER", "ollama")
        monkeypatch.setenv("OLLAMA_MODEL", "qwen2:1.5b")
        # restored by monkeypatch after the test
        monkeypatch.setattr(config, "llm_settings", config.llm_settings)
        config.reload_settings()

        client = create_llm_client()

        assert isinstance(client, OllamaClient)
        assert client.model_name == "qwen2:1.5b"

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_llm_client("gemini")

    def test_openai_requires_key(self, monkeypatch):
        pytest.importorskip("langchain_openai")
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.setattr(config, "llm_settings", config.LLMSettings(_env_file=None))

        with pytest.raises(ValueError):
            create_llm_client("openai")
