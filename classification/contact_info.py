"""
classification/contact_info.py
------------------------------
Best-effort harvesting of emails, phone numbers and address blocks from
noisy text (invoices, estimates, business cards, email signatures).

The address heuristic is tuned to one invoice/estimate layout family: a line
with a ZIP code plus up to two lines above and one below, and an optional
"Name / Address" header block.  It is intentionally matched as-is rather
than generalised.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List

EMAIL_RE = re.compile(r"[\w.-]+@[\w.-]+\.\w+")
PHONE_RE = re.compile(r"(\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4})")
ZIP_RE = re.compile(r"\b\d{5}(?:-\d{4})?\b")
NAME_ADDRESS_RE = re.compile(r"name\s*/\s*address", re.I)

_PRECEDING_EXCLUDE = re.compile(r"estimate|sales\s*tax|total", re.I)
_FOLLOWING_EXCLUDE = re.compile(r"total|signature")
_JOB_LOCATION = re.compile(r"job location", re.I)


@dataclass
class ExtractedContactInfo:
    """Ordered, de-duplicated contact details found in a document."""
    emails: List[str] = field(default_factory=list)
    phones: List[str] = field(default_factory=list)
    addresses: List[str] = field(default_factory=list)


def _unique(values) -> List[str]:
    return list(dict.fromkeys(values))


def format_phone(digits: str) -> str:
    return f"{digits[:3]}-{digits[3:6]}-{digits[6:]}"


def extract_emails(content: str) -> List[str]:
    return _unique(e.strip().lower() for e in EMAIL_RE.findall(content))


def extract_phones(content: str) -> List[str]:
    digits = (re.sub(r"[^0-9]", "", p) for p in PHONE_RE.findall(content))
    return _unique(format_phone(d) for d in digits if len(d) == 10)


def content_lines(content: str) -> List[str]:
    """Non-empty, trimmed lines of ``content``."""
    return [line.strip() for line in re.split(r"\r?\n", content) if line.strip()]


def extract_addresses(content: str) -> List[str]:
    lines = content_lines(content)
    addresses: List[str] = []

    for index, line in enumerate(lines):
        if not ZIP_RE.search(line):
            continue
        block: List[str] = []
        for offset in (2, 1):
            if index - offset < 0:
                continue
            prev = lines[index - offset]
            if not _PRECEDING_EXCLUDE.search(prev):
                block.append(prev)
        block.append(line)
        if index + 1 < len(lines):
            following = lines[index + 1]
            if len(following) <= 80 and not _FOLLOWING_EXCLUDE.search(following.lower()):
                block.append(following)
        joined = ", ".join(_unique(block))
        if joined:
            addresses.append(joined)

    header = next((i for i, line in enumerate(lines) if NAME_ADDRESS_RE.search(line)), None)
    if header is not None:
        block = []
        for current in lines[header + 1:]:
            if _JOB_LOCATION.search(current):
                break
            block.append(current)
            if len(block) >= 4:
                break
        if block:
            addresses.append(", ".join(block))

    return _unique(addresses)


def extract_contact_info(content: str) -> ExtractedContactInfo:
    return ExtractedContactInfo(
        emails=extract_emails(content),
        phones=extract_phones(content),
        addresses=extract_addresses(content),
    )
