# src/backend/utils/field_transform.py
"""
Formatting rules applied to authority letter field values before substitution.
"""
from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

TEXT_TRANSFORMS = ("none", "sentence", "lowercase", "uppercase", "capitalize_words", "toggle")
NUMBER_FORMATS = ("none", "with_commas", "without_commas")
DATE_FORMATS = (
    "DD-MM-YYYY",
    "MM-DD-YYYY",
    "YYYY-MM-DD",
    "DD/MM/YYYY",
    "MM/DD/YYYY",
    "YYYY/MM/DD",
    "DD.MM.YYYY",
    "MM.DD.YYYY",
    "YYYY.MM.DD",
    "DD Mon YYYY",
    "DD Month YYYY",
    "Month DD, YYYY",
    "YYYY Month DD",
)
DEFAULT_DATE_FORMAT = "DD-MM-YYYY"

MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")
_DAY_FIRST = re.compile(r"^(\d{1,2})[-/.](\d{1,2})[-/.](\d{4})$")


# ---------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------
def apply_text_transform(value: str, transform: Optional[str]) -> str:
    if not value:
        return value
    t = (transform or "none").strip().lower()
    if t == "sentence":
        return value[0].upper() + value[1:].lower()
    if t == "lowercase":
        return value.lower()
    if t == "uppercase":
        return value.upper()
    if t == "capitalize_words":
        return " ".join(w[:1].upper() + w[1:].lower() for w in value.split(" "))
    if t == "toggle":
        return value.swapcase()
    return value


# ---------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------
def _plain(d: Decimal) -> str:
    if d == d.to_integral_value():
        return str(int(d))
    return format(d.normalize(), "f")


def apply_number_format(value: str, number_format: Optional[str]) -> str:
    """
    '1234567' + with_commas -> '1,234,567'; fractions keep at most three digits.
    Anything that is not a number comes back untouched.
    """
    if value is None or str(value).strip() == "":
        return value
    raw = str(value)
    try:
        num = Decimal(raw.replace(",", "").strip())
    except InvalidOperation:
        return raw
    if not num.is_finite():
        return raw

    if (number_format or "none") == "with_commas":
        num = num.quantize(Decimal("0.001"), rounding=ROUND_HALF_UP)
        if num == num.to_integral_value():
            return f"{int(num):,}"
        whole, _, frac = f"{num:,.3f}".partition(".")
        frac = frac.rstrip("0")
        return f"{whole}.{frac}" if frac else whole

    return _plain(num)


# ---------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------
def parse_date_value(value: Any) -> Optional[date]:
    """ISO (YYYY-MM-DD[...]) or day-first with -, / or . separators."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value or "").strip()
    if not text:
        return None
    try:
        m = _ISO_DATE.match(text)
        if m:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        m = _DAY_FIRST.match(text)
        if m:
            return date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
    except ValueError:
        return None
    return None


def format_date(d: date, date_format: Optional[str]) -> str:
    dd = f"{d.day:02d}"
    mm = f"{d.month:02d}"
    yyyy = f"{d.year:04d}"
    month = MONTHS[d.month - 1]

    fmt = date_format or DEFAULT_DATE_FORMAT
    if fmt == "MM-DD-YYYY":
        return f"{mm}-{dd}-{yyyy}"
    if fmt == "YYYY-MM-DD":
        return f"{yyyy}-{mm}-{dd}"
    if fmt == "DD/MM/YYYY":
        return f"{dd}/{mm}/{yyyy}"
    if fmt == "MM/DD/YYYY":
        return f"{mm}/{dd}/{yyyy}"
    if fmt == "YYYY/MM/DD":
        return f"{yyyy}/{mm}/{dd}"
    if fmt == "DD.MM.YYYY":
        return f"{dd}.{mm}.{yyyy}"
    if fmt == "MM.DD.YYYY":
        return f"{mm}.{dd}.{yyyy}"
    if fmt == "YYYY.MM.DD":
        return f"{yyyy}.{mm}.{dd}"
    if fmt == "DD Mon YYYY":
        return f"{dd} {month[:3]} {yyyy}"
    if fmt == "DD Month YYYY":
        return f"{dd} {month} {yyyy}"
    if fmt == "Month DD, YYYY":
        return f"{month} {dd}, {yyyy}"
    if fmt == "YYYY Month DD":
        return f"{yyyy} {month} {dd}"
    return f"{dd}-{mm}-{yyyy}"


def apply_date_format(value: Any, date_format: Optional[str]) -> str:
    parsed = parse_date_value(value)
    if parsed is None:
        return "" if value is None else str(value)
    return format_date(parsed, date_format)


# ---------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------
def transform_field_value(
    value: Any,
    field_type: Optional[str],
    text_transform: Optional[str] = None,
    number_format: Optional[str] = None,
    date_format: Optional[str] = None,
) -> str:
    if value is None:
        return ""
    text = value if isinstance(value, str) else str(value)
    ftype = (field_type or "text").lower()

    if ftype in ("text", "textarea"):
        return apply_text_transform(text, text_transform)
    if ftype == "number":
        return apply_number_format(text, number_format)
    if ftype == "date":
        return apply_date_format(value if isinstance(value, date) else text, date_format)
    if text_transform:
        return apply_text_transform(text, text_transform)
    return text
