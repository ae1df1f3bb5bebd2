"""Normalization functions for incoming-shipment workbook ingestion.

All functions accept a raw cell value (str | int | float | datetime | None)
and return the appropriate type or None.  None always means "absent": a
value that is missing or could not be coerced.  Nothing here raises on bad
data.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from openpyxl.utils.datetime import WINDOWS_EPOCH, from_excel

# Month placeholder used by the logistics team before a date is fixed,
# e.g. "شهر 10" ("month 10").
MONTH_PLACEHOLDER_RE = re.compile(r"شهر\s*(\d+)")
REFERENCE_YEAR = 2025

_ISO_DATE_RE = re.compile(r"(\d{4})[-/](\d{1,2})[-/](\d{1,2})")
_DMY_DATE_RE = re.compile(r"(\d{1,2})[-/](\d{1,2})[-/](\d{4})")
_MIN_YEAR = 2000
_MAX_YEAR = 2100

_AMOUNT_NOISE_RE = re.compile(r"[\s,$€£٬]")
_LEADING_INT_RE = re.compile(r"^[+-]?\d+")
_LEADING_DECIMAL_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)")


# ---------------------------------------------------------------------------
# Rule 1: cell_text
# ---------------------------------------------------------------------------

def cell_text(value: Any) -> str | None:
    """Render a cell value as the text a user sees in the sheet.

    Integral floats lose their ".0" so a numeric SN of 1001 reads "1001".
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.date().isoformat() if value.time() == datetime.min.time() else value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


# ---------------------------------------------------------------------------
# Rule 2: trim
# ---------------------------------------------------------------------------

def trim(value: Any) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    text = cell_text(value)
    if text is None:
        return None
    v = text.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 3: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: Any) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


def is_blank(value: Any) -> bool:
    """True for None and for strings that are empty after stripping."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


# ---------------------------------------------------------------------------
# Rule 4: parse_int
# ---------------------------------------------------------------------------

def parse_int(value: Any) -> int | None:
    """Parse a count.

    Numbers are truncated toward zero; text yields its leading integer
    ("3 x 40HC" -> 3).  Anything else is None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        return int(value)
    v = trim(value)
    if v is None:
        return None
    m = _LEADING_INT_RE.match(v)
    return int(m.group(0)) if m else None


# ---------------------------------------------------------------------------
# Rule 5: parse_amount
# ---------------------------------------------------------------------------

def parse_amount(value: Any) -> Decimal | None:
    """Parse a strictly positive decimal quantity or price.

    Currency symbols, thousands separators and whitespace are removed,
    then the leading number is taken, so "25 طن" and "100 USD" keep
    their quantity.  Non-finite, zero and negative results are None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        raw = repr(value) if isinstance(value, float) else str(value)
        try:
            amount = Decimal(raw)
        except InvalidOperation:
            return None
    else:
        m = _LEADING_DECIMAL_RE.match(_AMOUNT_NOISE_RE.sub("", str(value)))
        if not m:
            return None
        amount = Decimal(m.group(0))
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


# ---------------------------------------------------------------------------
# Rule 6: parse_sheet_date
# ---------------------------------------------------------------------------

def _checked_date(year: int, month: int, day: int) -> date | None:
    if not _MIN_YEAR <= year <= _MAX_YEAR:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_sheet_date(
    value: Any,
    reference_year: int = REFERENCE_YEAR,
    epoch: datetime | None = None,
) -> date | None:
    """Convert a cell value into a calendar date.

    Shapes, tried in order:
      1. A spreadsheet serial number (converted under *epoch*, the
         workbook's date system; 1900 when None).  openpyxl already turns
         date-formatted cells into datetimes, which are accepted as is.
      2. The "شهر N" month placeholder -> first day of month N in
         *reference_year*.
      3. YYYY-M-D / D-M-YYYY text (``-`` or ``/``), year within 2000-2100.

    Returns None for anything else.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        epoch = epoch or WINDOWS_EPOCH
        if 0 <= value < 1:
            # from_excel reads a pure fraction as a time of day
            return (epoch + timedelta(days=int(value))).date()
        try:
            converted = from_excel(value, epoch=epoch)
        except (ValueError, OverflowError, TypeError):
            return None
        if isinstance(converted, datetime):
            return converted.date()
        return converted if isinstance(converted, date) else None

    v = trim(value)
    if v is None:
        return None

    m = MONTH_PLACEHOLDER_RE.search(v)
    if m:
        month = int(m.group(1))
        if 1 <= month <= 12:
            return date(reference_year, month, 1)

    m = _ISO_DATE_RE.search(v)
    if m:
        return _checked_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _DMY_DATE_RE.search(v)
    if m:
        return _checked_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))

    return None
