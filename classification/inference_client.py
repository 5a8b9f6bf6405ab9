"""
    classification/inference_client.py
    ----------------------------------
    Clients for the external text-generation collaborator.

    - HuggingFaceClient: hosted inference API over plain HTTP (default)
    - OllamaClient: local Ollama server via the ``ollama`` package

    Every client exposes ``generate(prompt) -> str`` and raises
    ``InferenceError`` (with a short ``reason``) on any failure.  There is
    no retry: a failed call is an ordinary branch that the classifier maps
    to its keyword fallback.
"""

# =========================
# Imports
# =========================
import logging
import time
from typing import Any, Dict, Optional

import httpx
import ollama
import requests

from config import Settings

log = logging.getLogger("classification.inference_client")


class InferenceError(Exception):
    """The collaborator could not produce generated text."""

    def __init__(self, reason: str, message: str = ""):
        super().__init__(message or reason)
        self.reason = reason


# =========================
# Hugging Face inference API
# =========================
class HuggingFaceClient:
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.api_key = settings.hf_api_key
        self.url = f"{settings.hf_api_url}/{settings.hf_model}"
        self.timeout = settings.llm_timeout_sec
        self.max_new_tokens = settings.llm_max_new_tokens
        self.temperature = settings.llm_temperature
        self.slow_ms = settings.slow_llm_ms
        self._session = session or requests.Session()

    def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise InferenceError("not_configured", "HUGGINGFACE_API_KEY not set")

        payload: Dict[str, Any] = {
            "inputs": prompt,
            "parameters": {
                "max_new_tokens": self.max_new_tokens,
                "temperature": self.temperature,
                "return_full_text": False,
            },
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        start = time.perf_counter()
        try:
            # timeout=None leaves the limit to the HTTP stack
            resp = self._session.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise InferenceError("network_error", f"Inference request failed at {self.url}: {e}") from e
        finally:
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            if self.slow_ms and elapsed_ms > self.slow_ms:
                log.warning("slow_llm_call", extra={"kv": {"elapsed_ms": elapsed_ms, "url": self.url}})

        if not resp.ok:
            raise InferenceError(f"http_{resp.status_code}", f"Inference API error: {resp.reason}")

        try:
            body = resp.json()
        except ValueError as e:
            raise InferenceError("invalid_json", "Inference API returned a non-JSON body") from e

        if isinstance(body, dict) and "loading" in str(body.get("error") or ""):
            raise InferenceError("model_loading", "Model is loading")

        if isinstance(body, list) and body and isinstance(body[0], dict):
            return body[0].get("generated_text") or ""
        if isinstance(body, dict):
            return body.get("generated_text") or ""
        return ""


# =========================
# Local Ollama server
# =========================
class OllamaClient:
    def __init__(self, settings: Settings, client: Optional[ollama.Client] = None):
        self.model = settings.ollama_model
        self.options = {
            "temperature": settings.llm_temperature,
            "num_predict": settings.llm_max_new_tokens,
        }
        self._client = client or ollama.Client(host=settings.ollama_host, timeout=settings.llm_timeout_sec)

    def generate(self, prompt: str) -> str:
        try:
            resp = self._client.generate(model=self.model, prompt=prompt, options=self.options)
        except ollama.ResponseError as e:
            reason = "model_loading" if "loading" in str(e.error) else f"http_{e.status_code}"
            raise InferenceError(reason, str(e)) from e
        except (httpx.HTTPError, ConnectionError) as e:
            raise InferenceError("network_error", str(e)) from e
        return resp.get("response") or ""


def build_inference_client(settings: Settings):
    if settings.llm_backend == "ollama":
        return OllamaClient(settings)
    return HuggingFaceClient(settings)
