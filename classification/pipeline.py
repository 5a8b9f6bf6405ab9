"""
Classification pipeline for one ``POST /classify`` request.

    content | attachment
      → normalize (NUL strip)
      → attachment decoding when no content was supplied
      → contact-info extraction (always)
      → LLM classification, keyword fallback on any failure
      → contact/vendor post-check
      → materialization
      → summary response

Everything runs synchronously within the request.  Input problems raise
``EmptyContentError``; persistence errors propagate unchanged.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from classification.attachments import StorageClient, read_attachment_content
from classification.contact_info import extract_contact_info
from classification.entities import (
    ClassifiedEntity,
    ClassifyIn,
    ClassifyOut,
    ContactOut,
    ExpenseOut,
    TaskOut,
    VendorOut,
)
from classification.fallback import ensure_contact_entity
from classification.llm_classifier import BoardContext, TextGenerator, classify_entities
from classification.materializer import (
    MaterializationContext,
    MaterializationResult,
    materialize_entities,
)
from classification.models import Board, BoardMember
from classification.normalize import sanitize_text
from classification.positions import PositionAllocator
from logging_setup import preview, sha256_8

log = logging.getLogger("classification.pipeline")


class EmptyContentError(ValueError):
    """Neither the body nor the attachment produced any text."""


def load_user_boards(session: Session, user_id: str) -> List[Board]:
    return list(
        session.scalars(
            select(Board)
            .join(BoardMember, BoardMember.board_id == Board.id)
            .where(BoardMember.user_id == user_id)
            .order_by(BoardMember.id)
        )
    )


def resolve_content(payload: ClassifyIn, storage: Optional[StorageClient]) -> str:
    content = sanitize_text(payload.content) if payload.content else ""
    if not content.strip() and payload.attachment is not None and storage is not None:
        attachment_text = read_attachment_content(payload.attachment, storage)
        if attachment_text:
            content = attachment_text
    if not content.strip():
        raise EmptyContentError("Content is required")
    return content


def primary_type(entities: List[ClassifiedEntity], result: MaterializationResult) -> str:
    if entities:
        return entities[0].type
    if result.tasks:
        return "task"
    if result.contacts:
        return "contact"
    if result.vendors:
        return "vendor"
    if result.expenses:
        return "expense"
    return "task"


def build_response(
    entities: List[ClassifiedEntity],
    result: MaterializationResult,
    payload: ClassifyIn,
) -> ClassifyOut:
    tasks = [TaskOut.model_validate(t) for t in result.tasks]
    contacts = [ContactOut.model_validate(c) for c in result.contacts]
    vendors = [VendorOut.model_validate(v) for v in result.vendors]
    expenses = [ExpenseOut.model_validate(e) for e in result.expenses]
    return ClassifyOut(
        type=primary_type(entities, result),
        task=tasks[0] if tasks else None,
        contact=contacts[0] if contacts else None,
        vendor=vendors[0] if vendors else None,
        expense=expenses[0] if expenses else None,
        tasks=tasks,
        contacts=contacts,
        vendors=vendors,
        expenses=expenses,
        attachment=payload.attachment,
        ai_entities=entities,
    )


def classify_request(
    session: Session,
    user_id: str,
    payload: ClassifyIn,
    client: Optional[TextGenerator],
    storage: Optional[StorageClient] = None,
    allocator: Optional[PositionAllocator] = None,
    today: Optional[date] = None,
) -> ClassifyOut:
    content = resolve_content(payload, storage)
    log.info(
        "classify_begin",
        extra={"kv": {
            "content": preview(content, 80),
            "hash": sha256_8(content),
            "file_name": payload.file_name,
            "has_attachment": payload.attachment is not None,
        }},
    )

    boards = load_user_boards(session, user_id)
    extracted = extract_contact_info(content)

    entities, source = classify_entities(
        client,
        content,
        extracted,
        [BoardContext(name=b.name, description=b.description) for b in boards],
        file_name=payload.file_name,
        file_type=payload.file_type,
    )
    entities = ensure_contact_entity(entities, content, extracted)

    ctx = MaterializationContext(
        user_id=user_id,
        content=content,
        boards=boards,
        extracted=extracted,
        file_name=payload.file_name,
        receipt_url=payload.attachment.url if payload.attachment else None,
        today=today,
    )
    result = materialize_entities(session, entities, ctx, allocator)

    log.info(
        "classify_complete",
        extra={"kv": {
            "source": source,
            "entities": [e.type for e in entities],
            "tasks": len(result.tasks),
            "skipped_tasks": result.skipped_tasks,
            "contacts": len(result.contacts),
            "vendors": len(result.vendors),
            "expenses": len(result.expenses),
        }},
    )
    return build_response(entities, result, payload)
