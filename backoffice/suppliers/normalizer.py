"""Supplier name cleaning and normalization.

Extracted supplier blocks often run the company name together with its legal
boilerplate on one line ("UAB Foo PVM mokėtojo kodas LT123456789 Juridinis
adresas ..."). Cleaning removes that boilerplate; normalization produces the
key used for comparing names.
"""

import re

# Removed in order. Each pattern swallows the annotation and the codes after it.
_NOISE_PATTERNS: list[re.Pattern[str]] = [
    # Lithuanian: VAT payer code, legal address, address
    re.compile(r"\s*\bPVM\s+mok[ėe]tojo\s+kodas\s+r?\.?\s*[A-Z0-9\s]+", re.IGNORECASE),
    re.compile(r"\s*\bJuridinis\s*adresas[^\n]*", re.IGNORECASE),
    re.compile(r"\s*\bAdresas[^\n]*", re.IGNORECASE),
    # Bare country-prefixed tax codes such as LT123456789 or LT100001234567
    re.compile(r"\b[A-Z]{2}[0-9]{9,11}\b"),
    # International annotations
    re.compile(r"\s*\bVAT\b[:\s]*[A-Z0-9\s]+", re.IGNORECASE),
    re.compile(r"\s*\bTax\s*ID\b[:\s]*[A-Z0-9\s]+", re.IGNORECASE),
    re.compile(r"\s*\bRegistration\s*No\b[:\s.]*[A-Z0-9\s]+", re.IGNORECASE),
]

_SURROUNDING_QUOTES = re.compile(r"^[\s\"'“”„‘’]+|[\s\"'“”„‘’]+$")
_WHITESPACE = re.compile(r"\s+")
_QUOTE_TRANSLATION = str.maketrans({"“": '"', "”": '"', "„": '"', "‘": "'", "’": "'"})


def clean_supplier_name(supplier_name: str | None) -> str | None:
    """Strip registration and address noise from a raw supplier name.

    Args:
        supplier_name: Supplier name as extracted from the document

    Returns:
        Cleaned name. Empty or None input is returned unchanged, and if
        cleaning would leave nothing the original input is returned.
    """
    if not supplier_name:
        return supplier_name

    cleaned = supplier_name.strip()
    for pattern in _NOISE_PATTERNS:
        cleaned = pattern.sub(" ", cleaned)

    cleaned = _SURROUNDING_QUOTES.sub("", cleaned)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()

    return cleaned or supplier_name


def normalize_for_matching(name: str | None) -> str:
    """Build the comparison key for a supplier name.

    Returns:
        Lower-cased, quote-normalized, whitespace-collapsed name, or an empty
        string if nothing useful remains.
    """
    cleaned = clean_supplier_name(name)
    if not cleaned:
        return ""

    normalized = cleaned.lower().translate(_QUOTE_TRANSLATION)
    return _WHITESPACE.sub(" ", normalized).strip()
