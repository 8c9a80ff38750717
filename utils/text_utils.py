"""
Text utilities for import headers, names and websites.

Used for header detection, name matching and duplicate keys.
"""

import re
import unicodedata
from typing import Optional

_DROPPED_PUNCTUATION = re.compile(r"[.'’`]")
_NON_ALNUM = re.compile(r"[^0-9a-z]+")
_SCHEME = re.compile(r"^[a-z][a-z0-9+.-]*://")


def strip_accents(text: str) -> str:
    """
    Remove accent marks.

    - "Decoración García" → "Decoracion Garcia"
    - "Société Générale" → "Societe Generale"
    """
    # NFKD separates base chars from combining marks (category 'Mn')
    normalized = unicodedata.normalize("NFKD", text)
    return "".join(c for c in normalized if not unicodedata.combining(c))


def normalize_header(header: Optional[str]) -> str:
    """
    Normalize a column header for synonym lookup.

    - "  Transaction Date " → "transaction date"
    - "E-mail_Address" → "e mail address"
    - "Débit/Crédit" → "debit credit"
    """
    if not header:
        return ""
    text = strip_accents(str(header)).lower()
    return _NON_ALNUM.sub(" ", text).strip()


def normalize_name(name: Optional[str]) -> str:
    """
    Normalize a company/person name for comparison.

    Case, accents, punctuation and whitespace are folded:
    - "Acme Corp." → "acme corp"
    - "  ACME   corp " → "acme corp"
    - "O'Brien & Sons, Inc." → "obrien sons inc"

    Returns "" for empty input.
    """
    if not name:
        return ""
    text = strip_accents(str(name)).lower()
    text = _DROPPED_PUNCTUATION.sub("", text)
    return _NON_ALNUM.sub(" ", text).strip()


def clean_text(value: Optional[str], max_length: Optional[int] = None) -> Optional[str]:
    """
    Clean a free-text cell for storage (preserves accents and case).

    - Strips whitespace
    - Truncates to max length
    - Returns None for empty/whitespace-only strings
    """
    if value is None:
        return None

    value = str(value).strip()

    if not value:
        return None

    if max_length is not None and len(value) > max_length:
        value = value[:max_length]

    return value


def extract_domain(website: Optional[str]) -> Optional[str]:
    """
    Reduce a website to its bare domain.

    - "https://www.Acme.com/about" → "acme.com"
    - "acme.com:8080" → "acme.com"
    - "WWW.ACME.CO.UK" → "acme.co.uk"

    Returns None when nothing domain-like remains.
    """
    if not website:
        return None

    text = str(website).strip().lower()
    text = _SCHEME.sub("", text)

    # Drop path, query and fragment, then credentials and port
    text = re.split(r"[/?#]", text, maxsplit=1)[0]
    text = text.split("@")[-1]
    text = text.split(":")[0]

    if text.startswith("www."):
        text = text[4:]

    text = text.strip(".")
    if not text or "." not in text:
        return None

    return text
