"""
Query Normalizer

Maps raw user text to the stable key fragment used by every cache tier.
Queries that differ only in case, punctuation or whitespace style share
one key.

Usage:
    normalize_query("  Hello, World! ")  # "hello-world"
"""

import re
from typing import Any

MAX_KEY_LENGTH = 100

# Word characters are ASCII only; whitespace keeps the Unicode definition.
_DISALLOWED = re.compile(r"[^A-Za-z0-9_\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")


def normalize_query(raw: Any, max_length: int = MAX_KEY_LENGTH) -> str:
    """
    Normalize a raw query into a cache-key fragment.

    Never raises: empty or non-string input yields an empty string.

    Args:
        raw: Raw user query
        max_length: Maximum length of the normalized key

    Returns:
        Lowercase hyphen-separated key of at most ``max_length`` characters
    """
    if not raw or not isinstance(raw, str):
        return ""

    key = raw.strip().lower()
    key = _DISALLOWED.sub("", key)
    key = _WHITESPACE.sub("-", key)
    key = _HYPHENS.sub("-", key)
    key = key.strip("-")
    # Truncation can expose a hyphen at the cut point
    return key[:max_length].strip("-")
