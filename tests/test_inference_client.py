"""Inference clients map every failure to an InferenceError reason."""
from dataclasses import replace

import httpx
import ollama
import pytest
import requests

from classification.inference_client import (
    HuggingFaceClient,
    InferenceError,
    OllamaClient,
    build_inference_client,
)
from config import Settings

SETTINGS = Settings(hf_api_key="hf-key", hf_model="org/model", hf_api_url="https://hf.example/models")


class _Response:
    def __init__(self, status_code=200, body=None, reason="OK"):
        self.status_code = status_code
        self.ok = status_code < 400
        self.reason = reason
        self._body = body

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class _Session:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.posts = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


def _reason(client):
    with pytest.raises(InferenceError) as exc:
        client.generate("prompt")
    return exc.value.reason


def test_generated_text_is_returned():
    session = _Session(_Response(body=[{"generated_text": "[]"}]))
    client = HuggingFaceClient(SETTINGS, session=session)

    assert client.generate("classify this") == "[]"
    sent = session.posts[0]
    assert sent["url"] == "https://hf.example/models/org/model"
    assert sent["json"]["inputs"] == "classify this"
    assert sent["json"]["parameters"] == {"max_new_tokens": 500, "temperature": 0.3, "return_full_text": False}
    assert sent["headers"]["Authorization"] == "Bearer hf-key"
    assert sent["timeout"] is None


def test_dict_body_is_accepted():
    client = HuggingFaceClient(SETTINGS, session=_Session(_Response(body={"generated_text": "{}"})))
    assert client.generate("p") == "{}"


def test_missing_key_is_not_configured():
    session = _Session()
    assert _reason(HuggingFaceClient(replace(SETTINGS, hf_api_key=""), session=session)) == "not_configured"
    assert session.posts == []


@pytest.mark.parametrize(
    "session, reason",
    [
        (_Session(error=requests.ConnectionError("refused")), "network_error"),
        (_Session(error=requests.Timeout("slow")), "network_error"),
        (_Session(_Response(status_code=500, reason="Server Error")), "http_500"),
        (_Session(_Response(body=ValueError("not json"))), "invalid_json"),
        (_Session(_Response(body={"error": "Model org/model is currently loading"})), "model_loading"),
    ],
)
def test_failures_have_reasons(session, reason):
    assert _reason(HuggingFaceClient(SETTINGS, session=session)) == reason


class _OllamaStub:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def generate(self, model, prompt, options):
        self.calls.append((model, options))
        if self.error:
            raise self.error
        return self.response


def test_ollama_returns_response_text():
    stub = _OllamaStub(response={"response": '[{"type": "task"}]'})
    client = OllamaClient(replace(SETTINGS, ollama_model="llama3"), client=stub)

    assert client.generate("p") == '[{"type": "task"}]'
    assert stub.calls[0] == ("llama3", {"temperature": 0.3, "num_predict": 500})


@pytest.mark.parametrize(
    "error, reason",
    [
        (ollama.ResponseError("model not found", 404), "http_404"),
        (httpx.ConnectError("refused"), "network_error"),
        (ConnectionError("refused"), "network_error"),
    ],
)
def test_ollama_failures_have_reasons(error, reason):
    assert _reason(OllamaClient(SETTINGS, client=_OllamaStub(error=error))) == reason


def test_backend_selection():
    assert isinstance(build_inference_client(SETTINGS), HuggingFaceClient)
    assert isinstance(build_inference_client(replace(SETTINGS, llm_backend="ollama")), OllamaClient)
