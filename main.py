"""
Content Classification API
==========================

This FastAPI application turns unstructured content (pasted text, an
uploaded document, an email body, a receipt transcript) into business
records.  It exposes the following endpoints:

* ``GET /`` – Health check returning a simple confirmation string.
* ``GET /health`` – Returns non-secret configuration values.
* ``POST /classify`` – Classify the content into task / contact / vendor /
  expense entities, extract their fields and materialize them as records.

Classification first tries the configured language model and silently
falls back to a deterministic keyword classifier whenever the model is
unavailable, still loading, or returns unusable output.  Contact details
(emails, phones, address blocks) are harvested from the text on every
request regardless of which path classified it.

Logging is structured.  The root logger is configured via
``logging_setup.init_logging`` to emit either JSON or human readable
lines.  Each request is assigned a unique request ID and the caller's
user id, both attached to every log record.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from classification.attachments import StorageClient
from classification.auth import require_user
from classification.db import create_db_engine, create_session_factory, init_db, session_scope
from classification.entities import ClassifyIn, ClassifyOut
from classification.inference_client import build_inference_client
from classification.pipeline import EmptyContentError, classify_request
from classification.positions import build_position_allocator
from config import load_settings
from logging_setup import init_logging, set_request_id, set_user_id

# ---------------------------------------------------------------------------
# Configuration and shared collaborators
# ---------------------------------------------------------------------------
settings = load_settings()
init_logging(settings.log_level, settings.service_name, settings.log_style)
log = logging.getLogger("main")

engine = create_db_engine(settings.database_url)
SessionLocal = create_session_factory(engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(engine)
    log.info("service_started", extra={"kv": {"llm_backend": settings.llm_backend}})
    yield


app = FastAPI(title="Content Classification API", lifespan=lifespan)
app.state.settings = settings
app.state.inference_client = build_inference_client(settings)
app.state.storage = StorageClient(settings)
app.state.allocator = build_position_allocator(settings.position_allocator)


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework errors (401, 405, ...) in the same ``{error}`` shape."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


# ---------------------------------------------------------------------------
# Dependencies (overridable in tests)
# ---------------------------------------------------------------------------
def get_db():
    with session_scope(SessionLocal) as db:
        yield db


def get_inference_client(request: Request):
    return request.app.state.inference_client


def get_storage(request: Request) -> StorageClient:
    return request.app.state.storage


def get_allocator(request: Request):
    return request.app.state.allocator


# ---------------------------------------------------------------------------
# Root and health endpoints
# ---------------------------------------------------------------------------
@app.get("/")
def root() -> Dict[str, str]:
    """Basic health check for service availability."""
    return {"message": "Content Classification API is running"}


@app.get("/health")
def health(request: Request) -> Dict[str, Any]:
    """Detailed health endpoint exposing non-secret configuration values."""
    s = request.app.state.settings
    return {
        "ok": True,
        "log_level": s.log_level,
        "llm_backend": s.llm_backend,
        "llm_configured": bool(s.hf_api_key) if s.llm_backend == "huggingface" else True,
        "storage_configured": s.storage_configured,
        "position_allocator": s.position_allocator,
        "slow_llm_ms": s.slow_llm_ms,
    }


# ---------------------------------------------------------------------------
# Classification endpoint
# ---------------------------------------------------------------------------
@app.post("/classify", response_model=ClassifyOut)
def classify(
    payload: ClassifyIn,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
    client=Depends(get_inference_client),
    storage: StorageClient = Depends(get_storage),
    allocator=Depends(get_allocator),
):
    """Classify content and materialize the detected records.

    Returns ``400`` when neither ``content`` nor the attachment yields any
    text, and ``500`` with ``{error, details}`` for any unexpected failure
    (typically persistence).  Language-model failures are never surfaced:
    the keyword fallback takes over.
    """
    set_request_id(uuid.uuid4().hex)
    set_user_id(user_id)
    t0 = time.perf_counter()
    try:
        return classify_request(db, user_id, payload, client, storage=storage, allocator=allocator)
    except EmptyContentError as e:
        log.info("classify_rejected_empty_content")
        return JSONResponse(status_code=400, content={"error": str(e)})
    except Exception as e:
        log.exception("classify_failed")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to classify content", "details": str(e)},
        )
    finally:
        elapsed_ms = int((time.perf_counter() - t0) * 1000)
        log.info("classify_endpoint_complete", extra={"kv": {"elapsed_ms": elapsed_ms}})
        set_request_id(None)
        set_user_id(None)
