"""
classification/materializer.py
------------------------------
Turns classified entities into database records.

Business rules:
  • contact/vendor → one transaction per entity: look up the contact by
    lower-cased email, merge (fill only empty fields, OR ``is_vendor``) or
    create; vendor entities then upsert the single Vendor for that contact
  • expense        → always a new Expense (never deduplicated), with line
    items and an audit JSON blob
  • task           → board by case-insensitive name, else the caller's first
    board, else skipped silently; position = max+1 in board+status; one
    "created" Activity written in the same transaction

There is no transaction spanning all entities: a failure leaves the records
committed so far in place and propagates to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from classification.contact_info import ExtractedContactInfo
from classification.due_dates import resolve_due_date
from classification.entities import (
    ClassifiedEntity,
    ContactEntity,
    ExpenseEntity,
    PartyEntity,
    TaskEntity,
    VendorEntity,
    dump_entity,
)
from classification.models import (
    Activity,
    Board,
    Contact,
    Expense,
    ExpenseLineItem,
    Priority,
    Task,
    TaskStatus,
    Vendor,
)
from classification.normalize import parse_number, sanitize_labels, sanitize_nullable, sanitize_text
from classification.positions import MaxPlusOneAllocator, PositionAllocator

log = logging.getLogger("classification.materializer")

ACTIVITY_SOURCE = "AI Classification"
_STATUSES = {s.value for s in TaskStatus}
_PRIORITIES = {p.value for p in Priority}


@dataclass
class MaterializationContext:
    """Per-request inputs shared by every entity."""
    user_id: str
    content: str
    boards: Sequence[Board]
    extracted: ExtractedContactInfo
    file_name: Optional[str] = None
    receipt_url: Optional[str] = None
    today: Optional[date] = None


@dataclass
class MaterializationResult:
    tasks: List[Task] = field(default_factory=list)
    contacts: List[Contact] = field(default_factory=list)
    vendors: List[Vendor] = field(default_factory=list)
    expenses: List[Expense] = field(default_factory=list)
    skipped_tasks: int = 0


def _commit_or_rollback(session: Session) -> None:
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise


# ---------------------------------------------------------------------------
# contact / vendor
# ---------------------------------------------------------------------------
def find_contact_by_email(session: Session, email: str) -> Optional[Contact]:
    return session.scalar(
        select(Contact).where(func.lower(Contact.email) == email.lower()).order_by(Contact.id).limit(1)
    )


def upsert_party(
    session: Session, entity: PartyEntity, ctx: MaterializationContext
) -> tuple[Contact, Optional[Vendor]]:
    """Create or merge the contact (and vendor) for one entity, atomically."""
    extracted = ctx.extracted
    email = sanitize_nullable(entity.email) or (extracted.emails[0] if extracted.emails else None)
    email = email.strip().lower() if email else None

    name_parts = (entity.name or "").split()
    first_name = sanitize_text(name_parts[0] if name_parts else (entity.company or "Contact"))
    last_name = sanitize_nullable(" ".join(name_parts[1:])) or None

    phone = sanitize_nullable(entity.phone) or (extracted.phones[0] if extracted.phones else None)
    address = sanitize_nullable(entity.address) or (extracted.addresses[0] if extracted.addresses else None)
    base_notes = sanitize_nullable(entity.notes or entity.summary)
    notes = "\n\n".join(filter(None, [base_notes, f"Address: {address}"])) if address else base_notes
    company = sanitize_nullable(entity.company) or None
    job_title = sanitize_nullable(entity.title) or None
    is_vendor = isinstance(entity, VendorEntity)

    try:
        contact = find_contact_by_email(session, email) if email else None
        if contact is not None:
            contact.phone = contact.phone or phone
            contact.company = contact.company or company
            contact.notes = contact.notes or notes
            contact.job_title = contact.job_title or job_title
            contact.is_vendor = bool(contact.is_vendor or is_vendor)
            action = "merged"
        else:
            contact = Contact(
                owner_id=ctx.user_id,
                first_name=first_name,
                last_name=last_name,
                email=email,
                phone=phone,
                company=company,
                job_title=job_title,
                notes=notes,
                is_vendor=is_vendor,
                tags=[],
            )
            session.add(contact)
            action = "created"
        session.flush()

        vendor = None
        if is_vendor:
            vendor_name = (
                company
                or sanitize_nullable(entity.name)
                or contact.company
                or f"{first_name} {last_name or ''}".strip()
                or "Vendor"
            )
            vendor = session.scalar(select(Vendor).where(Vendor.contact_id == contact.id))
            if vendor is None:
                vendor = Vendor(contact_id=contact.id, name=vendor_name, tags=[])
                session.add(vendor)
            vendor.name = vendor_name
            vendor.email = email or vendor.email
            vendor.phone = phone or vendor.phone
            vendor.notes = notes or vendor.notes
        session.commit()
    except Exception:
        session.rollback()
        raise

    log.info(
        "contact_materialized",
        extra={"kv": {"contact_id": contact.id, "action": action, "vendor_id": vendor.id if vendor else None}},
    )
    return contact, vendor


# ---------------------------------------------------------------------------
# expense
# ---------------------------------------------------------------------------
def create_expense(session: Session, entity: ExpenseEntity, ctx: MaterializationContext) -> Expense:
    amount = parse_number(entity.amount)
    subtotal = parse_number(entity.subtotal) or amount
    tax = parse_number(entity.tax)
    total = parse_number(entity.total) or (
        subtotal + tax if subtotal is not None and tax is not None else amount
    )

    line_items = [
        {
            "description": sanitize_text(item.description or ""),
            "quantity": item.quantity,
            "rate": item.rate,
            "total": item.total,
        }
        for item in entity.line_items
    ]

    expense = Expense(
        amount=total or subtotal or amount or 0,
        currency=entity.currency or "USD",
        category=entity.category or "Uncategorized",
        description=entity.description or f"Expense captured from {ctx.file_name or 'AI content'}",
        receipt_url=ctx.receipt_url,
        ai_vendor_name=entity.vendor_name,
        ai_confidence=entity.confidence or 0.6,
        ai_extracted_data={
            "subtotal": subtotal,
            "tax": tax,
            "total": total,
            "lineItems": line_items,
            "raw": dump_entity(entity),
        },
        created_by_id=ctx.user_id,
        line_items=[ExpenseLineItem(**item) for item in line_items],
    )
    session.add(expense)
    _commit_or_rollback(session)
    log.info("expense_created", extra={"kv": {"expense_id": expense.id, "amount": expense.amount}})
    return expense


# ---------------------------------------------------------------------------
# task
# ---------------------------------------------------------------------------
def resolve_board(boards: Sequence[Board], board_name: Optional[str]) -> Optional[Board]:
    wanted = (board_name or "").lower()
    if wanted:
        for board in boards:
            if board.name.lower() == wanted:
                return board
    return boards[0] if boards else None


def create_task(
    session: Session,
    entity: TaskEntity,
    ctx: MaterializationContext,
    allocator: PositionAllocator,
) -> Optional[Task]:
    board = resolve_board(ctx.boards, entity.board_name)
    if board is None:
        # No destination: the entity is dropped without surfacing an error
        log.info("task_skipped_no_board", extra={"kv": {"board_name": entity.board_name}})
        return None

    status = entity.status if entity.status in _STATUSES else TaskStatus.BACKLOG.value
    priority = entity.priority if entity.priority in _PRIORITIES else Priority.MEDIUM.value
    due_date = resolve_due_date(entity.due_date, ctx.content, entity.description, today=ctx.today)

    try:
        position = allocator.next_position(session, board.id, status)
        task = Task(
            title=sanitize_nullable(entity.title) or "Untitled Task",
            description=sanitize_nullable(entity.description) or sanitize_text(ctx.content[:500]),
            board_id=board.id,
            creator_id=ctx.user_id,
            status=status,
            priority=priority,
            ai_summary=sanitize_nullable(entity.summary),
            ai_labels=sanitize_labels(entity.labels),
            ai_confidence=entity.confidence or 0.8,
            position=position,
            due_date=due_date,
        )
        session.add(task)
        session.flush()
        session.add(
            Activity(
                task_id=task.id,
                user_id=ctx.user_id,
                action="created",
                details={
                    "title": sanitize_text(task.title),
                    "source": ACTIVITY_SOURCE,
                    "fileName": ctx.file_name,
                },
            )
        )
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        allocator.release(board.id, status)

    log.info(
        "task_created",
        extra={"kv": {"task_id": task.id, "board_id": board.id, "status": status, "position": position}},
    )
    return task


# ---------------------------------------------------------------------------
# dispatch
# ---------------------------------------------------------------------------
def materialize_entities(
    session: Session,
    entities: Sequence[ClassifiedEntity],
    ctx: MaterializationContext,
    allocator: Optional[PositionAllocator] = None,
) -> MaterializationResult:
    """Process entities sequentially, in classifier order."""
    allocator = allocator or MaxPlusOneAllocator()
    result = MaterializationResult()
    for entity in entities:
        if isinstance(entity, (VendorEntity, ContactEntity)):
            contact, vendor = upsert_party(session, entity, ctx)
            result.contacts.append(contact)
            if vendor is not None:
                result.vendors.append(vendor)
        elif isinstance(entity, ExpenseEntity):
            result.expenses.append(create_expense(session, entity, ctx))
        elif isinstance(entity, TaskEntity):
            task = create_task(session, entity, ctx, allocator)
            if task is None:
                result.skipped_tasks += 1
            else:
                result.tasks.append(task)
        else:
            raise TypeError(f"Unsupported entity type: {type(entity).__name__}")
    return result
