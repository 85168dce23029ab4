"""Text-matching primitives for citation scoring and gap detection.

Pure text operations with zero domain dependencies. Callers pass
pre-lowercased text where a parameter is named ``text_lower``.
"""
from __future__ import annotations

from collections.abc import Iterable


def significant_words(text: str, *, min_chars: int = 4) -> list[str]:
    """Lowercased whitespace-separated words of at least ``min_chars`` chars.

    Duplicates are kept; each occurrence counts separately when scored.
    """
    return [w for w in text.lower().split() if len(w) >= min_chars]


def word_overlap(words: Iterable[str], text_lower: str) -> int:
    """Number of ``words`` contained (as substrings) in ``text_lower``.

    Substring containment, not token equality: "exclusions" in the words
    matches "exclusions," in the text, and "insur" would match "insured".
    """
    return sum(1 for w in words if w in text_lower)


def contains_any(text_lower: str, phrases: Iterable[str]) -> bool:
    """True if any phrase occurs in ``text_lower`` (phrases are lowercased)."""
    return any(phrase.lower() in text_lower for phrase in phrases)
