"""
Shared logging for the whole service (Content Classification API).

Features
- Context vars: service, request_id, user_id on every record
- Styles:
    LOG_STYLE=json   -> newline-delimited JSON (default; best for log ingestion)
    LOG_STYLE=human  -> compact human-readable lines
    LOG_STYLE=both   -> emit both handlers
- Tuning:
    LOG_LEVEL=INFO|DEBUG|...
    SERVICE_NAME=content-classifier (default)
- Helpers:
    human_kv(dict) to format short key=val lists (with safe truncation)
    preview(text) / sha256_8(text) so content is never logged raw
"""

from __future__ import annotations

import hashlib
import logging
import contextvars
from typing import Any, Dict, Mapping, Iterable, Optional

from pythonjsonlogger.json import JsonFormatter

# ----------------------------
# Context (settable from any module)
# ----------------------------
request_id_var = contextvars.ContextVar("request_id", default=None)
user_id_var    = contextvars.ContextVar("user_id", default=None)

def set_request_id(rid: str | None) -> None:
    request_id_var.set(rid)

def set_user_id(uid: str | None) -> None:
    user_id_var.set(uid)

# ----------------------------
# Pretty key/value helper
# ----------------------------
def _short(s: Any, limit: int = 140) -> str:
    """Safely stringify & truncate for single-line logs."""
    if s is None:
        return "-"
    t = str(s)
    t = t.replace("\n", " ").replace("\r", " ").strip()
    return t if len(t) <= limit else (t[:limit] + "…")

def human_kv(items: Mapping[str, Any] | Iterable[tuple[str, Any]], sep: str = " ") -> str:
    """Render mapping/iterable as 'k=v' tokens with truncation."""
    pairs = items.items() if isinstance(items, Mapping) else items
    return sep.join(f"{k}={_short(v)}" for k, v in pairs)

def preview(s: Optional[str], lim: int = 280) -> Dict[str, Any]:
    """Return the length and a truncated prefix of ``s`` for logging."""
    if not s:
        return {"len": 0, "preview": ""}
    s = s.strip()
    return {
        "len": len(s),
        "preview": s[:lim] + ("…" if len(s) > lim else ""),
    }

def sha256_8(s: Optional[str]) -> str:
    """Short SHA256 digest for correlating content across log lines."""
    return hashlib.sha256((s or "").encode("utf-8")).hexdigest()[:8]

# ----------------------------
# Filters & Formatters
# ----------------------------
class _CtxFilter(logging.Filter):
    def __init__(self, service: str):
        super().__init__()
        self.service = service

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.service    = self.service
        record.request_id = request_id_var.get()
        record.user_id    = user_id_var.get()
        return True

class _HumanFormatter(logging.Formatter):
    default_msec_format = "%s.%03d"

    def format(self, record: logging.LogRecord) -> str:
        # Base prefix: 2025-08-28 10:36:28,047 INFO content-classifier main:
        prefix = f"{self.formatTime(record)} {record.levelname} {getattr(record, 'service', '-')}" \
                 f" {record.name}:"
        msg = str(record.getMessage())

        extras = []
        for key in ("request_id", "user_id"):
            val = getattr(record, key, None)
            if val:
                extras.append((key, val))
        # Modules pass structured values under the 'kv' extra
        kv = getattr(record, "kv", None)
        if isinstance(kv, Mapping) and kv:
            extras.extend(kv.items())

        line = f"{prefix} {msg}"
        if extras:
            line += " | " + human_kv(extras)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line

# ----------------------------
# Init
# ----------------------------
def init_logging(level: str = "INFO", service: str = "content-classifier", style: str = "json") -> None:
    root = logging.getLogger()
    # Avoid duplicate handlers on reloads
    if getattr(root, "_initialized_by_app", False):
        return

    root.handlers.clear()
    root.setLevel(level.upper())

    ctx_filter = _CtxFilter(service)
    style = style.lower()

    # Human handler (pretty one-liners)
    if style in ("human", "both"):
        h = logging.StreamHandler()
        h.setFormatter(_HumanFormatter())
        h.addFilter(ctx_filter)
        root.addHandler(h)

    # JSON handler (for log ingestion)
    if style in ("json", "both") or not root.handlers:
        j = logging.StreamHandler()
        fmt = JsonFormatter(
            "%(asctime)s %(levelname)s %(service)s %(name)s %(message)s %(request_id)s %(user_id)s"
        )
        j.setFormatter(fmt)
        j.addFilter(ctx_filter)
        root.addHandler(j)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.setLevel(level.upper())
        lg.propagate = True

    root._initialized_by_app = True  # type: ignore[attr-defined]
