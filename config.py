"""
Service configuration
---------------------
All tunables are read from the environment (optionally a ``.env`` file)
exactly once, into a frozen ``Settings`` object that is handed to the
classifier, decoder and persistence components at construction time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _optional(key: str, default: str = "") -> str:
    return os.getenv(key, default)


def _get_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _timeout(name: str) -> Optional[float]:
    # Unset or "0" means no client-side timeout
    raw = os.getenv(name)
    if not raw or raw == "0":
        return None
    try:
        return float(raw)
    except ValueError:
        return None


@dataclass(frozen=True)
class Settings:
    # Logging
    service_name: str = "content-classifier"
    log_level: str = "INFO"
    log_style: str = "json"
    slow_llm_ms: int = 8000

    # Inference
    llm_backend: str = "huggingface"            # "huggingface" or "ollama"
    hf_api_key: str = ""
    hf_model: str = "mistralai/Mistral-7B-Instruct-v0.2"
    hf_api_url: str = "https://api-inference.huggingface.co/models"
    llm_timeout_sec: Optional[float] = None
    llm_max_new_tokens: int = 500
    llm_temperature: float = 0.3
    ollama_host: str = "http://localhost:11434"
    ollama_model: str = "mistral:7b"

    # Attachment storage
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    upload_bucket: str = ""
    storage_timeout_sec: Optional[float] = None

    # Persistence
    database_url: str = "sqlite:///./content_classifier.db"
    position_allocator: str = "serialized"      # "serialized" or "max_plus_one"

    # Auth
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"

    @property
    def storage_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key and self.upload_bucket)


def load_settings() -> Settings:
    load_dotenv()
    return Settings(
        service_name=_optional("SERVICE_NAME", "content-classifier"),
        log_level=_optional("LOG_LEVEL", "INFO").upper(),
        log_style=_optional("LOG_STYLE", "json").lower(),
        slow_llm_ms=_get_int("SLOW_LLM_MS", 8000),
        llm_backend=_optional("LLM_BACKEND", "huggingface").lower(),
        hf_api_key=_optional("HUGGINGFACE_API_KEY"),
        hf_model=_optional("HF_MODEL", "mistralai/Mistral-7B-Instruct-v0.2"),
        hf_api_url=_optional("HF_API_URL", "https://api-inference.huggingface.co/models").rstrip("/"),
        llm_timeout_sec=_timeout("LLM_TIMEOUT_SEC"),
        llm_max_new_tokens=_get_int("LLM_MAX_NEW_TOKENS", 500),
        llm_temperature=_get_float("LLM_TEMPERATURE", 0.3),
        ollama_host=_optional("OLLAMA_HOST", "http://localhost:11434").rstrip("/"),
        ollama_model=_optional("OLLAMA_MODEL", "mistral:7b"),
        supabase_url=_optional("SUPABASE_URL").rstrip("/"),
        supabase_service_role_key=_optional("SUPABASE_SERVICE_ROLE_KEY"),
        upload_bucket=_optional("UPLOAD_BUCKET"),
        storage_timeout_sec=_timeout("STORAGE_TIMEOUT_SEC"),
        database_url=_optional("DATABASE_URL", "sqlite:///./content_classifier.db"),
        position_allocator=_optional("POSITION_ALLOCATOR", "serialized").lower(),
        jwt_secret=_optional("JWT_SECRET"),
        jwt_algorithm=_optional("JWT_ALGORITHM", "HS256"),
    )
