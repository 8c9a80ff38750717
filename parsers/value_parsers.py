"""
Cell value parsers shared by the entity importers.

All functions take a raw text cell and return a typed value or None.
None means "blank or unreadable"; callers decide whether that is an error.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Type, TypeVar

import pandas as pd

E = TypeVar("E", bound=Enum)

# Tried in order; ISO first, then US, then day-first
DATE_FORMATS = [
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%m/%d/%y",
    "%m-%d-%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%b %d %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
]

_CURRENCY_CHARS = re.compile(r"[$€£¥\s,]")
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_VOCAB_SEPARATORS = re.compile(r"[\s\-]+")

CENTS = Decimal("0.01")


# ===================
# DATES
# ===================

def parse_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a date cell in one of the common export shapes.

    - "2024-01-31", "2024/01/31"
    - "1/31/2024", "31/01/2024" (US tried first when ambiguous)
    - "Jan 31 2024", "31 January 2024"
    - "2024-01-31T09:30:00" (time part dropped)

    Returns None when blank or unparseable.
    """
    if value is None:
        return None

    value_str = str(value).strip()
    if not value_str:
        return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value_str, fmt).date()
        except ValueError:
            continue

    # ISO timestamps and spreadsheet "2024-01-31 00:00:00" cells
    try:
        return datetime.fromisoformat(value_str.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    # pandas as last resort; short or digit-free strings are never dates
    if len(value_str) < 8 or not any(c.isdigit() for c in value_str):
        return None

    parsed = pd.to_datetime(value_str, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.date()


# ===================
# NUMBERS
# ===================

def parse_decimal(value: Optional[str]) -> Optional[Decimal]:
    """
    Parse a money cell, keeping its sign.

    - "1,200.00" → 1200.00
    - "$-50" → -50.00
    - "(50.00)" → -50.00 (accounting negative)
    - "50.00-" → -50.00 (trailing minus)

    Returns None when blank or not a number.
    """
    if value is None:
        return None

    value_str = _CURRENCY_CHARS.sub("", str(value))
    if not value_str:
        return None

    negative = False
    if value_str.startswith("(") and value_str.endswith(")"):
        negative = True
        value_str = value_str[1:-1]
    elif value_str.endswith("-"):
        negative = True
        value_str = value_str[:-1]

    try:
        amount = Decimal(value_str)
    except InvalidOperation:
        return None

    if not amount.is_finite():
        return None

    if negative:
        amount = -abs(amount)

    # More digits than the decimal context holds
    try:
        return amount.quantize(CENTS)
    except InvalidOperation:
        return None


def parse_probability(value: Optional[str]) -> Optional[int]:
    """
    Parse a win probability to an integer percentage.

    Accepts "40", "40%" and fractions "0.4". Values outside 0-100 are
    returned as-is so the caller can reject them.

    Raises:
        ValueError: If the cell is not a number
    """
    if value is None:
        return None

    value_str = str(value).strip()
    if not value_str:
        return None

    is_percent = value_str.endswith("%")
    number = parse_decimal(value_str.rstrip("%"))
    if number is None:
        raise ValueError(f"'{value_str}' is not a number")

    # 0.4 means 40%, but "1" stays 1%
    if not is_percent and Decimal("0") < number < Decimal("1"):
        number = number * 100

    return int(number.to_integral_value())


# ===================
# VOCABULARIES
# ===================

def parse_enum(value: Optional[str], enum_cls: Type[E], default: E) -> E:
    """
    Normalize free text to a closed vocabulary.

    Case-insensitive exact match after folding spaces and dashes to "_":
    "Closed Won" does not match "won", "One-Time" matches "one_time".
    Unknown or blank values fall back to the default.
    """
    if value is None:
        return default

    key = _VOCAB_SEPARATORS.sub("_", str(value).strip().lower())
    if not key:
        return default

    for member in enum_cls:
        if member.value == key:
            return member
    return default


def is_valid_email(value: Optional[str]) -> bool:
    """Loose local@domain.tld check."""
    if not value:
        return False
    return bool(_EMAIL.match(value.strip()))
