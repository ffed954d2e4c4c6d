"""Tests for the litellm-backed ModelBackend and its error mapping."""

from types import SimpleNamespace

import litellm
import pytest
import requests

import saber_code.llm as llm_module
from saber_code.config import Config
from saber_code.errors import BackendError, BackendTimeoutError, BackendUnreachableError
from saber_code.llm import ModelBackend


def _response(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


def _chunk(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


@pytest.fixture
def calls(monkeypatch):
    recorded = []

    def fake_completion(**kwargs):
        recorded.append(kwargs)
        if kwargs.get("stream"):
            return iter([_chunk("Hel"), SimpleNamespace(choices=[]), _chunk(None), _chunk("lo")])
        return _response("Hello")

    monkeypatch.setattr(llm_module.litellm, "completion", fake_completion)
    return recorded


def test_generate_builds_request(calls):
    backend = ModelBackend(Config(model="codellama:70b"))
    response = backend.generate([{"role": "user", "content": "hi"}])
    assert response.content == "Hello"
    assert response.done is True
    kwargs = calls[0]
    assert kwargs["model"] == "ollama_chat/codellama:70b"
    assert kwargs["api_base"] == "http://localhost:11434"
    assert kwargs["timeout"] == 300
    assert kwargs["temperature"] == 0.7
    assert kwargs["top_p"] == 0.9
    assert kwargs["max_tokens"] == 2048


def test_explicit_provider_prefix_kept(calls):
    ModelBackend(Config()).generate([], model="openai/gpt-local")
    assert calls[0]["model"] == "openai/gpt-local"
    assert calls[0]["timeout"] == 120


def test_stream_yields_text_then_done(calls):
    chunks = list(ModelBackend(Config()).stream([{"role": "user", "content": "hi"}]))
    assert [c.chunk for c in chunks] == ["Hel", "lo", ""]
    assert [c.done for c in chunks] == [False, False, True]
    assert calls[0]["stream"] is True


@pytest.mark.parametrize("exc,expected", [
    (litellm.exceptions.Timeout(message="slow", model="m", llm_provider="ollama"), BackendTimeoutError),
    (litellm.exceptions.APIConnectionError(message="refused", llm_provider="ollama", model="m"),
     BackendUnreachableError),
    (ValueError("weird"), BackendError),
])
def test_error_mapping(monkeypatch, exc, expected):
    def fail(**kwargs):
        raise exc

    monkeypatch.setattr(llm_module.litellm, "completion", fail)
    with pytest.raises(expected):
        ModelBackend(Config()).generate([])


def test_unreachable_message_suggests_starting_server(monkeypatch):
    def fail(**kwargs):
        raise litellm.exceptions.APIConnectionError(message="refused", llm_provider="ollama", model="m")

    monkeypatch.setattr(llm_module.litellm, "completion", fail)
    with pytest.raises(BackendUnreachableError, match="ollama serve"):
        list(ModelBackend(Config()).stream([]))


def test_timeout_message_names_model(monkeypatch):
    def fail(**kwargs):
        raise litellm.exceptions.Timeout(message="slow", model="m", llm_provider="ollama")

    monkeypatch.setattr(llm_module.litellm, "completion", fail)
    with pytest.raises(BackendTimeoutError, match="wizardcoder:15b"):
        ModelBackend(Config()).generate([], model="wizardcoder:15b")


class FakeTagsResponse:
    def raise_for_status(self):
        pass

    def json(self):
        return {"models": [{"name": "qwen2.5-coder:7b", "size": 4_700_000_000}, {"name": "llama3"}]}


def test_list_models(monkeypatch):
    seen = {}

    def fake_get(url, timeout):
        seen["url"] = url
        return FakeTagsResponse()

    monkeypatch.setattr(llm_module.requests, "get", fake_get)
    models = ModelBackend(Config(base_url="http://gpu-box:11434/")).list_models()
    assert seen["url"] == "http://gpu-box:11434/api/tags"
    assert [(m.name, m.size) for m in models] == [("qwen2.5-coder:7b", 4_700_000_000), ("llama3", None)]


def test_list_models_unreachable(monkeypatch):
    def fake_get(url, timeout):
        raise requests.exceptions.ConnectionError("refused")

    monkeypatch.setattr(llm_module.requests, "get", fake_get)
    with pytest.raises(BackendUnreachableError):
        ModelBackend(Config()).list_models()
