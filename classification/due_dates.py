"""
classification/due_dates.py
---------------------------
Deterministic due-date resolution.

An AI-proposed date wins when it parses; otherwise the content (plus the
entity description) is scanned case-insensitively and the FIRST matching
rule is used:

  day after tomorrow > tomorrow > today > "in N days" > next week >
  next month > next/this <weekday> > ISO date > M/D/YY(YY) > "<Month> D[, YYYY]"

Results are naive datetimes at midnight.  ``today`` is injectable so the
resolver is pure.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta
from typing import Optional

from classification.normalize import sanitize_nullable, sanitize_text

log = logging.getLogger("classification.due_dates")

WEEKDAYS = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]
MONTHS = [
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
]

_IN_DAYS = re.compile(r"in\s+(\d+)\s+days?")
_WEEKDAY = re.compile(r"(?:next|this)\s+(" + "|".join(WEEKDAYS) + r")")
_ISO = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
_SHORT = re.compile(r"\b(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})\b")
_MONTH_DAY = re.compile(r"(" + "|".join(MONTHS) + r")\s+(\d{1,2})(?:,\s*(\d{4}))?", re.I)

_STRPTIME_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%m-%d-%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%d %B %Y",
)


def start_of_day(d: date) -> datetime:
    return datetime.combine(d, time.min)


def _rolled(year: int, month: int, day: int) -> date:
    """Build a date, letting month/day overflow roll forward like a JS Date."""
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return date(year, month, 1) + timedelta(days=day - 1)


def _ymd(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _two_digit_year(year: int, raw: str) -> int:
    if len(raw) == 2:
        return 2000 + year if year < 50 else 1900 + year
    return year


def parse_date_value(value: Optional[str]) -> Optional[date]:
    """Parse an explicit date string (typically proposed by the model)."""
    if not value or not value.strip():
        return None
    raw = value.strip()
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
    if parsed is not None:
        if parsed.tzinfo is not None:
            try:
                parsed = parsed.astimezone()
            except (OverflowError, ValueError):
                return None
        return parsed.date()
    m = _ISO.fullmatch(raw)
    if m:
        return _ymd(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    for fmt in _STRPTIME_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None


def _relative_day(lower: str, base: date) -> Optional[date]:
    if "day after tomorrow" in lower:
        return base + timedelta(days=2)
    if "tomorrow" in lower:
        return base + timedelta(days=1)
    if "today" in lower:
        return base
    return None


def _in_days(lower: str, base: date) -> Optional[date]:
    m = _IN_DAYS.search(lower)
    return base + timedelta(days=int(m.group(1))) if m else None


def _next_period(lower: str, base: date) -> Optional[date]:
    if "next week" in lower:
        return base + timedelta(days=7)
    if "next month" in lower:
        return _rolled(base.year, base.month + 1, base.day)
    return None


def _weekday(lower: str, base: date) -> Optional[date]:
    m = _WEEKDAY.search(lower)
    if not m:
        return None
    target = WEEKDAYS.index(m.group(1))
    current = (base.weekday() + 1) % 7  # Sunday == 0
    diff = target - current
    if diff <= 0:
        diff += 7
    if m.group(0).startswith("this") and diff == 7:
        diff = 0
    return base + timedelta(days=diff)


def _iso(text: str, base: date) -> Optional[date]:
    m = _ISO.search(text)
    return _ymd(int(m.group(1)), int(m.group(2)), int(m.group(3))) if m else None


def _short(text: str, base: date) -> Optional[date]:
    m = _SHORT.search(text)
    if not m:
        return None
    year = _two_digit_year(int(m.group(3)), m.group(3))
    return _ymd(year, int(m.group(1)), int(m.group(2)))


def _month_day(text: str, base: date) -> Optional[date]:
    m = _MONTH_DAY.search(text)
    if not m:
        return None
    month = MONTHS.index(m.group(1).lower()) + 1
    day = int(m.group(2))
    year = int(m.group(3)) if m.group(3) else base.year
    if not 1 <= day <= 31:
        return None
    return _rolled(year, month, day)


# (rule, reads lower-cased text) in priority order
_RULES = (
    (_relative_day, True),
    (_in_days, True),
    (_next_period, True),
    (_weekday, True),
    (_iso, False),
    (_short, False),
    (_month_day, False),
)


def parse_due_date_from_text(text: str, today: Optional[date] = None) -> Optional[datetime]:
    cleaned = sanitize_text(text)
    base = today or date.today()
    lower = cleaned.lower()

    for rule, wants_lower in _RULES:
        try:
            found = rule(lower if wants_lower else cleaned, base)
        except (OverflowError, ValueError) as e:
            # a date outside the calendar range means the rule did not match
            log.debug("due_date_rule_out_of_range", extra={"kv": {"rule": rule.__name__, "error": str(e)}})
            continue
        if found is not None:
            return start_of_day(found)
    return None


def resolve_due_date(
    ai_value: Optional[str],
    content: str,
    description: Optional[str] = None,
    today: Optional[date] = None,
) -> Optional[datetime]:
    """Pick the due date for a task entity."""
    ai_date = parse_date_value(ai_value)
    if ai_date:
        return start_of_day(ai_date)
    text = f"{sanitize_text(content)}\n{sanitize_nullable(description) or ''}"
    return parse_due_date_from_text(text, today=today)
