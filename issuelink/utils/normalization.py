"""Normalization helpers for names, identifiers and ticket keys."""

import re
from typing import Any, Iterable, Optional

LIST_SEPARATORS = re.compile(r"[,;]")
TOKEN_PATTERN = re.compile(r"[a-z0-9]+")
THEME_KEY_SEPARATORS = re.compile(r"[\s\-]+")

# Tokens of this length or shorter are too generic to match on ("inc", "llc").
SIGNIFICANT_TOKEN_MIN_LENGTH = 4


def normalize_name(name: Optional[str]) -> str:
    """
    Normalize an account or client name for comparison.

    Args:
        name: Raw name input

    Returns:
        Lowercased name with collapsed whitespace, "" if empty
    """
    if not name:
        return ""
    return " ".join(str(name).split()).lower()


def significant_tokens(text: Optional[str]) -> list[str]:
    """Lowercase alphanumeric tokens longer than 3 characters, in order."""
    if not text:
        return []
    return [
        token
        for token in TOKEN_PATTERN.findall(str(text).lower())
        if len(token) >= SIGNIFICANT_TOKEN_MIN_LENGTH
    ]


def split_list_value(value: Any) -> list[str]:
    """
    Split a comma/semicolon separated value into stripped, non-empty parts.

    Lists are flattened element by element; None gives an empty list.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        parts: list[str] = []
        for item in value:
            parts.extend(split_list_value(item))
        return parts
    return [part.strip() for part in LIST_SEPARATORS.split(str(value)) if part.strip()]


def strip_leading_zeros(identifier: str) -> str:
    """Strip leading zeros from a numeric identifier; other values pass through."""
    if not identifier.isdigit():
        return identifier
    return identifier.lstrip("0") or "0"


def identifier_variants(identifier: Optional[str]) -> list[str]:
    """The identifier plus its zero-stripped form when that differs."""
    if not identifier:
        return []
    value = str(identifier).strip()
    if not value:
        return []
    stripped = strip_leading_zeros(value)
    return [value] if stripped == value else [value, stripped]


def project_prefix(external_key: Optional[str]) -> Optional[str]:
    """Project part of a PROJECT-NUMBER ticket key, uppercased."""
    if not external_key or "-" not in external_key:
        return None
    prefix = external_key.split("-", 1)[0].strip().upper()
    return prefix or None


def normalize_theme_key(value: Optional[str]) -> str:
    """Lowercase with spaces and hyphens folded to underscores."""
    if not value:
        return ""
    return THEME_KEY_SEPARATORS.sub("_", str(value).strip().lower())


def contains_any(haystack: str, needles: Iterable[str]) -> bool:
    lowered = haystack.lower()
    return any(needle.lower() in lowered for needle in needles if needle)
