"""Normalization functions for groundwater survey workbook ingestion.

Cells arrive as whatever the workbook reader produced: None, str, int,
float, date or datetime.  Every function here degrades to None on input it
cannot interpret; none of them raise.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from functools import lru_cache
from typing import Any, Sequence

from openpyxl.utils.datetime import from_excel

DEFAULT_DATE_FORMATS: tuple[str, ...] = (
    "YYYY-MM-DD",
    "DD/MM/YYYY",
    "D/M/YYYY",
    "DD/MM/YY",
    "D/M/YY",
)

_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_HEADER_UNIT_RE = re.compile(r"^(.*?)\s*\((.*?)\)\s*$")


@dataclass(frozen=True)
class CellValue:
    value: float | None
    text: str | None

    @property
    def is_empty(self) -> bool:
        return self.value is None and self.text is None


@dataclass(frozen=True)
class HeaderParts:
    alias: str | None
    unit_hint: str | None


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: str | None) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


def _is_native_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


# ---------------------------------------------------------------------------
# Rule 3: normalize_text  (free-text meta columns such as locality)
# ---------------------------------------------------------------------------

def normalize_text(value: Any) -> str | None:
    """Return any cell as trimmed text, or None when blank."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return trim(str(value))


# ---------------------------------------------------------------------------
# Rule 4: normalize_code  (well identifiers)
# ---------------------------------------------------------------------------

def normalize_code(value: Any) -> str | None:
    """Return a well identifier as text.

    Numeric identifier cells come back from the workbook as floats;
    12.0 becomes "12" so the same well keeps the same code whether the
    campaign typed it as text or as a number.
    """
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    return normalize_text(value)


# ---------------------------------------------------------------------------
# Rule 5: normalize_number
# ---------------------------------------------------------------------------

def normalize_number(value: Any) -> float | None:
    """Parse a numeric cell.

    Native numbers pass through.  Text is trimmed and a comma decimal
    separator ("7,2") is accepted.  Anything else, including non-finite
    results, yields None.
    """
    if value is None:
        return None
    if _is_native_number(value):
        n = float(value)
        return n if math.isfinite(n) else None
    if not isinstance(value, str):
        return None
    v = trim(value)
    if v is None:
        return None
    v = v.replace(",", ".", 1)
    if not _NUMBER_RE.match(v):
        return None
    n = float(v)
    return n if math.isfinite(n) else None


# ---------------------------------------------------------------------------
# Rule 6: normalize_date
# ---------------------------------------------------------------------------

# (token, regex, strptime directive); longest tokens first
_DATE_TOKENS: tuple[tuple[str, str, str], ...] = (
    ("YYYY", r"\d{4}", "%Y"),
    ("YY", r"\d{2}", "%y"),
    ("MM", r"\d{2}", "%m"),
    ("M", r"[1-9]\d?", "%m"),
    ("DD", r"\d{2}", "%d"),
    ("D", r"[1-9]\d?", "%d"),
)


@lru_cache(maxsize=64)
def compile_date_format(fmt: str) -> tuple[re.Pattern[str], str]:
    """Translate a token format such as "DD/MM/YYYY" into (regex, strptime format).

    The regex enforces the exact digit count of each token, which
    strptime alone does not.  D and M never take a leading zero, so
    "05/3/2001" does not match "D/M/YYYY".
    """
    pattern: list[str] = []
    directive: list[str] = []
    i = 0
    while i < len(fmt):
        for token, regex, code in _DATE_TOKENS:
            if fmt.startswith(token, i):
                pattern.append(regex)
                directive.append(code)
                i += len(token)
                break
        else:
            pattern.append(re.escape(fmt[i]))
            directive.append(fmt[i].replace("%", "%%"))
            i += 1
    return re.compile("".join(pattern)), "".join(directive)


def parse_date_strict(value: str, fmt: str) -> date | None:
    """Parse value against one token format; None unless it matches exactly."""
    pattern, directive = compile_date_format(fmt)
    if not pattern.fullmatch(value):
        return None
    try:
        return datetime.strptime(value, directive).date()
    except ValueError:
        return None


def _decode_serial(value: Any) -> date | None:
    if value <= 0:
        return None
    try:
        decoded = from_excel(value)
    except (OverflowError, ValueError, TypeError):
        return None
    if isinstance(decoded, datetime):
        return decoded.date()
    return None


def normalize_date(
    value: Any,
    formats: Sequence[str] = DEFAULT_DATE_FORMATS,
) -> str | None:
    """Return an ISO 'YYYY-MM-DD' string, or None.

    Resolution order: date/datetime values, then spreadsheet date serial
    numbers, then strict text parsing against formats in order.  The
    first format that matches wins.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if _is_native_number(value):
        decoded = _decode_serial(value)
        if decoded is not None:
            return decoded.isoformat()
    v = trim(str(value))
    if v is None:
        return None
    for fmt in formats:
        parsed = parse_date_strict(v, fmt)
        if parsed is not None:
            return parsed.isoformat()
    return None


# ---------------------------------------------------------------------------
# Rule 7: normalize_cell  (measurement cells)
# ---------------------------------------------------------------------------

def normalize_cell(value: Any) -> CellValue:
    """Split a measurement cell into (numeric value, free text).

    At most one side is populated.  Both None means the cell contributes
    no measurement.
    """
    if value is None or value == "":
        return CellValue(None, None)
    if _is_native_number(value):
        # NaN/inf cells carry nothing
        return CellValue(normalize_number(value), None)
    n = normalize_number(value)
    if n is not None:
        return CellValue(n, None)
    return CellValue(None, normalize_text(value))


# ---------------------------------------------------------------------------
# Rule 8: parse_header
# ---------------------------------------------------------------------------

def parse_header(header: Any) -> HeaderParts:
    """Split 'Cloruros (mg/L)' into alias 'Cloruros' and unit hint 'mg/L'."""
    raw = trim(str(header)) if header is not None else None
    if raw is None:
        return HeaderParts(None, None)
    m = _HEADER_UNIT_RE.match(raw)
    if m:
        return HeaderParts(trim(m.group(1)), trim(m.group(2)))
    return HeaderParts(raw, None)
