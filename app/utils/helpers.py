"""
Common utility functions and helpers.
"""
from typing import Any, Optional
import re
import unicodedata
import uuid


_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def strip_control_chars(text: str) -> str:
    """
    Remove NUL and other control characters that break downstream JSON/LLM calls.

    Tabs, newlines and carriage returns are kept.

    Args:
        text: Raw text string

    Returns:
        Cleaned text
    """
    return _CONTROL_CHARS.sub("", text)


def normalize_for_matching(text: str) -> str:
    """
    Lower-case text, replace punctuation with spaces and collapse whitespace.

    Args:
        text: Raw text string

    Returns:
        Space-separated tokens suitable for phrase matching
    """
    text = unicodedata.normalize("NFKC", text).lower()
    text = re.sub(r"[^\w\s]", " ", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def contains_phrase(normalized_text: str, phrase: str) -> bool:
    """
    Check whether a phrase occurs on word boundaries in normalized text.

    Args:
        normalized_text: Output of ``normalize_for_matching``
        phrase: Lower-case phrase (one or more words)

    Returns:
        True if the phrase appears as whole words
    """
    return f" {phrase} " in f" {normalized_text} "


def format_context_lines(company: Optional[str], problem_statement: Optional[str]) -> str:
    """
    Render optional analysis hints as prompt lines.

    Args:
        company: Company name or description
        problem_statement: Problem the product addresses

    Returns:
        Zero, one or two lines of text (empty string when both are absent)
    """
    lines = []
    if company and company.strip():
        lines.append(f"Company Context: {company.strip()}")
    if problem_statement and problem_statement.strip():
        lines.append(f"Problem Statement: {problem_statement.strip()}")
    return "\n".join(lines)


def generate_id() -> str:
    """Return a short random identifier."""
    return uuid.uuid4().hex[:12]


def clamp_int(value: Any, lo: int = 0, hi: int = 100, default: int = 0) -> int:
    """
    Parse value as a number and clamp it to [lo, hi].

    Args:
        value: Anything the model may have produced
        lo: Lower bound
        hi: Upper bound
        default: Returned when value is not numeric

    Returns:
        Clamped integer
    """
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return int(round(max(lo, min(hi, number))))
