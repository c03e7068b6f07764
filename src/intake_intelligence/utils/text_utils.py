"""
Text utilities for the Intake Intelligence System.

Provides functions for text normalization and numeric token extraction used
by the keyword extractor, the response parser and the structuring stage.
"""

import re
import unicodedata
from typing import Any, List, Optional

# Leading numeric token: "1,250.5 sq ft" -> 1250.5, "6ft" -> 6
_LEADING_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def normalize_whitespace(text: str) -> str:
    """
    Normalize multiple spaces, tabs, newlines to single space.

    Args:
        text: Input text

    Returns:
        Normalized text with single spaces
    """
    normalized = re.sub(r"\s+", " ", text)
    return normalized.strip()


def strip_accents(text: str) -> str:
    """
    Remove diacritics so "remodelación" matches "remodelacion".

    Args:
        text: Input text

    Returns:
        Text with combining marks removed
    """
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_for_matching(text: str) -> str:
    """Lowercase, accent-free, whitespace-normalized text for keyword matching."""
    return normalize_whitespace(strip_accents(text).lower())


def leading_number(value: Any) -> Optional[float]:
    """
    Coerce a dimension value to a float by its first numeric token.

    Thousands separators are stripped before matching. Booleans are not
    numbers here.

    Args:
        value: int, float or string such as "70 linear feet" or "1,200 sq ft"

    Returns:
        Parsed number, or None if no numeric token exists

    Example:
        >>> leading_number("1,200 sq ft")
        1200.0
        >>> leading_number("about six feet") is None
        True
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None

    match = _LEADING_NUMBER.search(value.replace(",", ""))
    if not match:
        return None
    try:
        return float(match.group(0))
    except ValueError:
        return None


def extract_numbers(text: str) -> List[float]:
    """
    Extract all numeric values from text.

    Args:
        text: Input text

    Returns:
        List of numbers found
    """
    return [float(m) for m in _LEADING_NUMBER.findall(text.replace(",", ""))]


def to_snake_case(text: str) -> str:
    """
    Convert "Linear Feet" or "linearFeet" to "linear_feet".

    Args:
        text: Key text

    Returns:
        snake_case key
    """
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", text.strip())
    return re.sub(r"[^a-zA-Z0-9]+", "_", spaced).strip("_").lower()


def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    """
    Truncate text to maximum length with suffix.

    Args:
        text: Input text
        max_length: Maximum length including suffix
        suffix: Suffix to add if truncated (default: '...')

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text

    truncate_at = max_length - len(suffix)
    return text[:truncate_at] + suffix
