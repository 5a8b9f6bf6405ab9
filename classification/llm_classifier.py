"""
Entity classification
=====================

Two paths produce the same ``ClassifiedEntity`` list:

* the LLM path builds a prompt listing the caller's boards and the field
  schema of every entity type, calls the inference collaborator and parses
  the first JSON array/object found in the generated text;
* the keyword fallback in ``classification.fallback``.

``run_llm_classifier`` never raises.  It returns a ``ClassifierOutcome``
carrying either entities or a failure reason, and ``classify_entities``
maps every failure to the fallback.  Failure reasons:

``not_configured``, ``network_error``, ``http_<status>``, ``model_loading``
    the collaborator could not produce text;
``no_json``
    no JSON array/object inside the generated text;
``invalid_json``
    the candidate JSON did not parse;
``no_entities``
    JSON parsed but held no valid entity.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol, Sequence, Tuple

from pydantic import ValidationError

from classification.contact_info import ExtractedContactInfo
from classification.entities import ClassifiedEntity, entity_adapter, sanitize_entity
from classification.fallback import fallback_entities
from classification.inference_client import InferenceError
from logging_setup import sha256_8

log = logging.getLogger("classification.llm_classifier")


class TextGenerator(Protocol):
    def generate(self, prompt: str) -> str: ...


@dataclass
class BoardContext:
    name: str
    description: Optional[str] = None


@dataclass
class ClassifierOutcome:
    entities: List[ClassifiedEntity] = field(default_factory=list)
    failure: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------
_GUIDELINES = """Classification Guidelines:
- **Contact**: Email signatures, business cards, personal introductions, networking info, resumes
- **Vendor**: Invoices, estimates, quotes, supplier information with pricing
- **Task**: Action items, to-dos, project requirements, work assignments
- **Expense**: Receipts, bills, payment records"""

_SCHEMAS = """Respond ONLY with valid JSON array. Include one object per entity detected. Each object must include "type" and the fields listed below:

Task entity fields:
{
  "type": "task",
  "title": "string",
  "description": "string",
  "boardName": "string",
  "priority": "URGENT|HIGH|MEDIUM|LOW",
  "status": "BACKLOG|NEXT_7_DAYS|IN_PROGRESS|BLOCKED|DONE",
  "labels": ["string"],
  "summary": "string",
  "confidence": 0.95,
  "dueDate": "YYYY-MM-DD"
}

Vendor/Contact entity fields:
{
  "type": "vendor" | "contact",
  "name": "string",
  "email": "string",
  "phone": "string",
  "company": "string",
  "title": "string",
  "address": "string",
  "notes": "string",
  "summary": "string",
  "confidence": 0.95
}

Expense entity fields:
{
  "type": "expense",
  "vendorName": "string",
  "description": "string",
  "category": "string",
  "amount": 0,
  "currency": "USD",
  "subtotal": 0,
  "tax": 0,
  "total": 0,
  "date": "YYYY-MM-DD",
  "lineItems": [
    {
      "description": "string",
      "quantity": 0,
      "rate": 0,
      "total": 0
    }
  ],
  "confidence": 0.9
}"""


def build_prompt(
    content: str,
    boards: Sequence[BoardContext],
    file_name: Optional[str] = None,
    file_type: Optional[str] = None,
) -> str:
    boards_context = "\n".join(f"- {b.name}: {b.description or 'No description'}" for b in boards)
    file_part = f"File: {file_name}\nType: {file_type}\n\n" if file_name else ""
    return (
        "You are an AI assistant that helps classify and organize content into tasks, "
        "vendors, contacts, and expenses.\n\n"
        f"Available boards:\n{boards_context}\n\n"
        "Analyze the provided content and determine:\n"
        "1. Relevant entities present (task, vendor, contact, expense)\n"
        "2. Extract structured fields for each entity\n\n"
        f"{_GUIDELINES}\n\n"
        f"{file_part}Content:\n{content}\n\n"
        f"{_SCHEMAS}"
    )


# ---------------------------------------------------------------------------
# JSON extraction helpers
# ---------------------------------------------------------------------------
def _strip_code_fences(s: str) -> str:
    """Remove leading/trailing triple backtick fences from a response."""
    s = s.strip()
    if s.startswith("```"):
        lines = s.splitlines()[1:]
        if lines and lines[-1].strip().startswith("```"):
            lines = lines[:-1]
        return "\n".join(lines).strip()
    return s


def _first_complete_json(s: str) -> Optional[str]:
    """Return the first balanced JSON object/array substring in ``s`` or None."""
    start_idx: Optional[int] = None
    stack: List[str] = []
    in_str = False
    esc = False
    for i, ch in enumerate(s):
        if start_idx is None:
            if ch in "{[":
                start_idx = i
                stack = [ch]
            continue
        if in_str:
            if esc:
                esc = False
            elif ch == "\\":
                esc = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]":
            open_ch = stack.pop()
            if (open_ch, ch) not in (("{", "}"), ("[", "]")):
                return None
            if not stack:
                return s[start_idx : i + 1]
    return None


def ensure_list(value: Any) -> List[Any]:
    if not value:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return [value]
    return []


def parse_entities(generated_text: str) -> Tuple[List[ClassifiedEntity], Optional[str]]:
    """Turn generated text into validated entities, or a failure reason."""
    candidate = _first_complete_json(_strip_code_fences(generated_text or ""))
    if candidate is None:
        return [], "no_json"
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        return [], "invalid_json"

    entities: List[ClassifiedEntity] = []
    for index, item in enumerate(ensure_list(parsed)):
        if isinstance(item, dict) and isinstance(item.get("type"), str):
            item = {**item, "type": item["type"].strip().lower()}
        try:
            entities.append(sanitize_entity(entity_adapter.validate_python(item)))
        except ValidationError as e:
            log.warning("llm_entity_dropped", extra={"kv": {"index": index, "errors": e.error_count()}})
    if not entities:
        return [], "no_entities"
    return entities, None


# ---------------------------------------------------------------------------
# Public classification
# ---------------------------------------------------------------------------
def run_llm_classifier(
    client: Optional[TextGenerator],
    content: str,
    boards: Sequence[BoardContext],
    file_name: Optional[str] = None,
    file_type: Optional[str] = None,
) -> ClassifierOutcome:
    if client is None:
        return ClassifierOutcome(failure="not_configured")

    prompt = build_prompt(content, boards, file_name, file_type)
    log.info(
        "llm_classify_invoked",
        extra={"kv": {"input_chars": len(content), "hash": sha256_8(content), "boards": len(boards)}},
    )
    start = time.perf_counter()
    try:
        generated = client.generate(prompt)
    except InferenceError as e:
        log.warning("llm_unavailable_using_fallback", extra={"kv": {"reason": e.reason, "error": str(e)}})
        return ClassifierOutcome(failure=e.reason)

    entities, failure = parse_entities(generated)
    elapsed_ms = int((time.perf_counter() - start) * 1000)
    if failure:
        log.warning("llm_output_unusable", extra={"kv": {"reason": failure, "elapsed_ms": elapsed_ms}})
        return ClassifierOutcome(failure=failure)

    log.info(
        "llm_classify_complete",
        extra={"kv": {"entities": [e.type for e in entities], "elapsed_ms": elapsed_ms}},
    )
    return ClassifierOutcome(entities=entities)


def classify_entities(
    client: Optional[TextGenerator],
    content: str,
    extracted: ExtractedContactInfo,
    boards: Sequence[BoardContext],
    file_name: Optional[str] = None,
    file_type: Optional[str] = None,
) -> Tuple[List[ClassifiedEntity], str]:
    """Return ``(entities, source)`` where source is ``"llm"`` or ``"fallback"``."""
    outcome = run_llm_classifier(client, content, boards, file_name, file_type)
    if outcome.ok:
        return outcome.entities, "llm"
    entities = fallback_entities(content, extracted)
    log.info(
        "fallback_classification_used",
        extra={"kv": {"reason": outcome.failure, "entities": [e.type for e in entities]}},
    )
    return entities, "fallback"
