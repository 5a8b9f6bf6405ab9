"""
classification/fallback.py
--------------------------
Keyword fallback classifier, used whenever the language model is unavailable
or returns unusable output, plus the post-check that guarantees every
classification carries a contact or vendor.

Both functions are pure: identical input yields identical entity lists.
"""

import logging
import re
from typing import List

from classification.contact_info import EMAIL_RE, ExtractedContactInfo, content_lines
from classification.entities import (
    ClassifiedEntity,
    ContactEntity,
    ExpenseEntity,
    TaskEntity,
    VendorEntity,
)
from classification.normalize import parse_number, sanitize_text

log = logging.getLogger("classification.fallback")

EXPENSE_KEYWORDS = ("invoice", "receipt", "amount")
VENDOR_KEYWORDS = ("vendor", "supplier")

_DOLLAR_AMOUNT = re.compile(r"\$\s*([0-9][0-9.,]*)")
_LOOSE_PHONE = re.compile(r"\d{3}[-.]?\d{3}[-.]?\d{4}")
_COMPANY_HINT = re.compile(r"inc\.|llc|ltd|company|services|drill|tech|corp", re.I)


def _first_line(content: str) -> str:
    return content.split("\n")[0]


def _fallback_task(content: str) -> TaskEntity:
    return TaskEntity(
        title=_first_line(content)[:100] or "Untitled Task",
        description=content[:500],
        priority="MEDIUM",
        status="BACKLOG",
        summary="Created from AI content",
        confidence=0.6,
    )


def fallback_entities(content: str, extracted: ExtractedContactInfo) -> List[ClassifiedEntity]:
    """Classify ``content`` on keyword presence alone."""
    content = sanitize_text(content)
    lower = content.lower()

    if any(kw in lower for kw in EXPENSE_KEYWORDS):
        m = _DOLLAR_AMOUNT.search(content)
        amount = parse_number(m.group(1)) if m else None
        log.debug("fallback_hit", extra={"kv": {"kind": "expense", "amount": amount}})
        return [
            _fallback_task(content),
            ExpenseEntity(
                amount=amount,
                description=content[:120],
                category="Uncategorized",
                subtotal=amount,
                total=amount,
                confidence=0.5,
            ),
        ]

    if any(kw in lower for kw in VENDOR_KEYWORDS):
        email_match = EMAIL_RE.search(content)
        phone_match = _LOOSE_PHONE.search(content)
        name = _first_line(content)[:60]
        log.debug("fallback_hit", extra={"kv": {"kind": "vendor"}})
        return [
            _fallback_task(content),
            VendorEntity(
                name=name,
                email=(extracted.emails[0] if extracted.emails
                       else email_match.group(0) if email_match else ""),
                phone=(extracted.phones[0] if extracted.phones
                       else phone_match.group(0) if phone_match else ""),
                company=name,
                notes=content[:500],
                address=extracted.addresses[0] if extracted.addresses else None,
                summary="Classified as vendor based on content",
                confidence=0.6,
            ),
        ]

    log.debug("fallback_hit", extra={"kv": {"kind": "task"}})
    return [_fallback_task(content)]


def ensure_contact_entity(
    entities: List[ClassifiedEntity],
    content: str,
    extracted: ExtractedContactInfo,
) -> List[ClassifiedEntity]:
    """Append an inferred contact when no contact/vendor entity is present."""
    if any(e.type in ("vendor", "contact") for e in entities):
        return entities

    lines = content_lines(sanitize_text(content))
    header = next((i for i, line in enumerate(lines) if re.search(r"name\s*/\s*address", line, re.I)), None)
    if header is not None and header + 1 < len(lines):
        name = lines[header + 1]
    else:
        name = lines[0] if lines else "Unknown Contact"
    company = next((line for line in lines if _COMPANY_HINT.search(line)), name)

    log.info("contact_synthesized", extra={"kv": {"has_email": bool(extracted.emails)}})
    return [
        *entities,
        ContactEntity(
            name=name[:80],
            email=extracted.emails[0] if extracted.emails else None,
            phone=extracted.phones[0] if extracted.phones else None,
            company=company[:100],
            notes=content[:500],
            summary="Inferred contact from document content",
            confidence=0.45,
            address=extracted.addresses[0] if extracted.addresses else None,
        ),
    ]
