"""Heading detection for insurance policy forms.

An ordered list of ``SectionRule`` patterns classifies a single trimmed line as
a section heading of a known type. The first matching rule wins; ``priority``
is carried for reporting only and does not reorder evaluation.

Heading-like lines that match no rule (all-caps lines of reasonable length)
still become anchors, see ``is_anchor_heading``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal, TypeAlias

SectionType: TypeAlias = Literal[
    "coverage",
    "exclusion",
    "condition",
    "definition",
    "endorsement",
    "schedule",
    "declarations",
    "insuring_agreement",
    "limits",
    "deductibles",
    "general",
]

SECTION_TYPES: tuple[SectionType, ...] = (
    "coverage",
    "exclusion",
    "condition",
    "definition",
    "endorsement",
    "schedule",
    "declarations",
    "insuring_agreement",
    "limits",
    "deductibles",
    "general",
)

SECTION_TYPE_LABELS: dict[SectionType, str] = {
    "coverage": "Coverage",
    "exclusion": "Exclusion",
    "condition": "Condition",
    "definition": "Definition",
    "endorsement": "Endorsement",
    "schedule": "Schedule",
    "declarations": "Declarations",
    "insuring_agreement": "Insuring Agreement",
    "limits": "Limits",
    "deductibles": "Deductibles",
    "general": "General",
}

# Types that carry insurance meaning; "general" is structural only.
STRUCTURED_SECTION_TYPES: frozenset[SectionType] = frozenset(
    t for t in SECTION_TYPES if t != "general"
)

MIN_HEADING_CHARS = 3


@dataclass(frozen=True, slots=True)
class SectionRule:
    """One heading pattern and the section type it assigns."""

    pattern: re.Pattern[str]
    section_type: SectionType
    priority: int


_SECTION_PREFIX = r"(?:SECTION\s+[IVX]+\s*[-–—]\s*)?"


def _rule(pattern: str, section_type: SectionType, priority: int) -> SectionRule:
    return SectionRule(re.compile(pattern, re.IGNORECASE), section_type, priority)


# ---------------------------------------------------------------------------
# Rule table (evaluation order matters)
# ---------------------------------------------------------------------------

SECTION_RULES: tuple[SectionRule, ...] = (
    _rule(rf"^{_SECTION_PREFIX}COVERAGE\s+[A-Z]", "coverage", 10),
    _rule(r"^INSURING\s+AGREEMENT", "insuring_agreement", 10),
    _rule(rf"^{_SECTION_PREFIX}COVERAGES?\s*$", "coverage", 9),
    _rule(rf"^{_SECTION_PREFIX}EXCLUSIONS?\s*$", "exclusion", 10),
    _rule(r"^(?:\d+\.\s*)?(?:THIS\s+INSURANCE\s+DOES\s+NOT\s+APPLY)", "exclusion", 8),
    _rule(rf"^{_SECTION_PREFIX}CONDITIONS?\s*$", "condition", 10),
    _rule(r"^GENERAL\s+CONDITIONS?", "condition", 9),
    _rule(rf"^{_SECTION_PREFIX}DEFINITIONS?\s*$", "definition", 10),
    _rule(r"^THIS\s+ENDORSEMENT\s+MODIFIES", "endorsement", 10),
    _rule(r"^ENDORSEMENT", "endorsement", 9),
    _rule(r"^POLICY\s+CHANGE", "endorsement", 8),
    _rule(r"^SCHEDULE\s*(?:OF|$)", "schedule", 9),
    _rule(r"^DECLARATIONS?\s*(?:PAGE|$)", "declarations", 9),
    _rule(r"^LIMITS?\s+OF\s+(?:LIABILITY|INSURANCE)", "limits", 9),
    _rule(r"^COVERAGE\s+LIMITS?", "limits", 8),
    _rule(r"^DEDUCTIBLES?\s*$", "deductibles", 9),
    _rule(r"^SECTION\s+[IVX]+", "general", 5),
    _rule(r"^PART\s+[A-Z0-9]", "general", 4),
)

_HAS_LETTER_RE = re.compile(r"[A-Z]")


def match_section_rule(line: str) -> SectionRule | None:
    """Return the first rule matching the trimmed line, or None."""
    trimmed = line.strip()
    if len(trimmed) < MIN_HEADING_CHARS:
        return None
    for rule in SECTION_RULES:
        if rule.pattern.search(trimmed):
            return rule
    return None


def detect_section_type(line: str) -> SectionType | None:
    """Classify a line as a section heading type, or None for body text."""
    rule = match_section_rule(line)
    return rule.section_type if rule is not None else None


def is_anchor_heading(
    trimmed: str,
    *,
    min_chars: int = 5,
    max_chars: int = 120,
) -> bool:
    """True if a trimmed line should produce a ContentAnchor.

    Either it matches a section rule, or it looks like a heading: all caps,
    at least one letter, ``min_chars`` <= length < ``max_chars``.
    """
    if detect_section_type(trimmed) is not None:
        return True
    return (
        min_chars <= len(trimmed) < max_chars
        and trimmed == trimmed.upper()
        and _HAS_LETTER_RE.search(trimmed) is not None
    )
