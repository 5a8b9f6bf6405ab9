"""
classification/normalize.py
---------------------------
NUL stripping for every piece of text that is logged, prompted or persisted,
and the tolerant numeric parser shared by the fallback and the materializer.
"""

import math
import re
from typing import Any, List, Optional, Union

NUL = "\u0000"

# Leading float prefix, the way a lenient parseFloat reads a string
_FLOAT_PREFIX = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)")
_NON_NUMERIC = re.compile(r"[^0-9.,-]")


def sanitize_text(value: str) -> str:
    return value.replace(NUL, "")


def sanitize_nullable(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return sanitize_text(value)


def sanitize_labels(labels: Optional[List[str]]) -> List[str]:
    if not labels:
        return []
    return [sanitize_text(label) for label in labels]


def strip_nul(value: Any) -> Any:
    """Recursively remove NUL characters from strings inside dicts/lists."""
    if isinstance(value, str):
        return sanitize_text(value)
    if isinstance(value, dict):
        return {k: strip_nul(v) for k, v in value.items()}
    if isinstance(value, list):
        return [strip_nul(v) for v in value]
    return value


def parse_number(value: Union[int, float, str, None]) -> Optional[float]:
    """Parse amounts such as ``"$1,540.00"`` or ``"USD 12"``.

    Everything except digits, ``.``, ``,`` and ``-`` is dropped, then the
    first ``,`` is removed and the leading float prefix is read.  Returns
    ``None`` when nothing numeric remains or the result is not finite.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    cleaned = _NON_NUMERIC.sub("", str(value)).replace(",", "", 1)
    m = _FLOAT_PREFIX.match(cleaned)
    if not m:
        return None
    parsed = float(m.group(0))
    return parsed if math.isfinite(parsed) else None

