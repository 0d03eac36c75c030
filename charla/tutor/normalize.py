"""
Text normalization for exact-match retry gating.
"""

import re

# Only these characters are stripped, and only at the string boundaries.
# Inverted marks such as ¡ and ¿ are kept.
STRIPPED_PUNCTUATION = ".,!?;:"

_WHITESPACE_RUN = re.compile(r"\s+")
# Whitespace is included so "hola ." normalizes in one pass.
_EDGE_RUN = re.compile(r"^[\s.,!?;:]+|[\s.,!?;:]+$")


def normalize_for_exact_match(text: str) -> str:
    """
    Canonicalize learner text for comparison.

    Lowercase, trim, collapse whitespace runs to one space, then strip
    leading and trailing runs of `. , ! ? ; :`. Idempotent.
    """
    normalized = text.lower().strip()
    normalized = _WHITESPACE_RUN.sub(" ", normalized)
    return _EDGE_RUN.sub("", normalized)


def is_exact_match(text: str, expected: str) -> bool:
    """True when both strings are equal after normalization."""
    return normalize_for_exact_match(text) == normalize_for_exact_match(expected)
