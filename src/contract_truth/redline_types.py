"""Types for edition-to-edition redline comparison.

Type hierarchy:
  HashPair                 - Differing chunk hashes at one ordinal ("" = missing)
  SectionDiff              - Section-level status keyed by section path
  ChunkDiff                - Chunk-level status keyed by "path::index"
  FormUse / ClauseLink     - Downstream relations of a form (supplied by caller)
  ImpactCandidate          - Downstream artifact that may need review
  RedlineStats             - Status counts
  RedlineInput             - Both editions plus relations
  RedlineComparisonResult  - Everything above for one comparison
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, cast, TypeAlias

from contract_truth.ingestion_types import Chunk, Section, chunks_from_list, sections_from_list
from contract_truth.payload import (
    choice_field,
    list_field,
    opt_str_field,
    require_mapping,
    str_field,
)
from contract_truth.section_patterns import SectionType

DiffStatus: TypeAlias = Literal["unchanged", "modified", "added", "removed"]
ImpactTargetType: TypeAlias = Literal["product", "coverage", "state", "rule", "clause"]
ImpactSeverity: TypeAlias = Literal["high", "medium", "low"]
FormUseType: TypeAlias = Literal["base", "endorsement", "notice", "condition"]

DIFF_STATUSES: tuple[DiffStatus, ...] = ("unchanged", "modified", "added", "removed")
FORM_USE_TYPES: tuple[FormUseType, ...] = ("base", "endorsement", "notice", "condition")

SEVERITY_RANK: dict[ImpactSeverity, int] = {"low": 0, "medium": 1, "high": 2}


@dataclass(frozen=True, slots=True)
class HashPair:
    left: str
    right: str


@dataclass(frozen=True, slots=True)
class SectionDiff:
    match_key: str  # section path
    status: DiffStatus
    left_section: Section | None
    right_section: Section | None
    section_type: SectionType
    title: str
    changed_chunk_hashes: tuple[HashPair, ...] | None = None  # modified only
    left_pages: tuple[int, ...] | None = None
    right_pages: tuple[int, ...] | None = None


@dataclass(frozen=True, slots=True)
class ChunkDiff:
    match_key: str  # f"{section_path}::{index}"
    status: DiffStatus
    left_chunk: Chunk | None
    right_chunk: Chunk | None
    left_text: str
    right_text: str


@dataclass(frozen=True, slots=True)
class FormUse:
    form_id: str
    form_version_id: str
    use_type: FormUseType
    product_version_id: str | None = None
    coverage_version_id: str | None = None
    state_code: str | None = None
    product_name: str | None = None
    coverage_name: str | None = None
    id: str | None = None


@dataclass(frozen=True, slots=True)
class ClauseLink:
    clause_id: str
    clause_name: str | None = None
    rule_version_id: str | None = None
    target_label: str | None = None
    form_version_id: str | None = None
    id: str | None = None


@dataclass(frozen=True, slots=True)
class ImpactCandidate:
    target_type: ImpactTargetType
    target_id: str
    target_label: str
    reason: str
    affected_section_keys: tuple[str, ...]
    severity: ImpactSeverity


@dataclass(frozen=True, slots=True)
class RedlineStats:
    total_sections: int
    unchanged_sections: int
    modified_sections: int
    added_sections: int
    removed_sections: int
    total_chunks: int
    unchanged_chunks: int
    modified_chunks: int
    added_chunks: int
    removed_chunks: int
    impact_candidate_count: int


@dataclass(frozen=True, slots=True)
class RedlineInput:
    form_id: str
    form_number: str
    form_title: str
    left_version_id: str
    left_edition_date: str
    right_version_id: str
    right_edition_date: str
    left_sections: tuple[Section, ...]
    right_sections: tuple[Section, ...]
    left_chunks: tuple[Chunk, ...]
    right_chunks: tuple[Chunk, ...]
    form_uses: tuple[FormUse, ...] = ()
    clause_links: tuple[ClauseLink, ...] = ()


@dataclass(frozen=True, slots=True)
class RedlineComparisonResult:
    form_id: str
    form_number: str
    form_title: str
    left_version_id: str
    left_edition_date: str
    right_version_id: str
    right_edition_date: str
    section_diffs: tuple[SectionDiff, ...]
    chunk_diffs: tuple[ChunkDiff, ...]
    impact_candidates: tuple[ImpactCandidate, ...]
    stats: RedlineStats


# ---------------------------------------------------------------------------
# Payload readers
# ---------------------------------------------------------------------------

def form_use_from_dict(data: Any, where: str = "form_use") -> FormUse:
    d = require_mapping(data, where)
    return FormUse(
        form_id=str_field(d, "form_id", where),
        form_version_id=str_field(d, "form_version_id", where),
        use_type=cast(FormUseType, choice_field(d, "use_type", where, FORM_USE_TYPES, "base")),
        product_version_id=opt_str_field(d, "product_version_id", where),
        coverage_version_id=opt_str_field(d, "coverage_version_id", where),
        state_code=opt_str_field(d, "state_code", where),
        product_name=opt_str_field(d, "product_name", where),
        coverage_name=opt_str_field(d, "coverage_name", where),
        id=opt_str_field(d, "id", where),
    )


def clause_link_from_dict(data: Any, where: str = "clause_link") -> ClauseLink:
    d = require_mapping(data, where)
    return ClauseLink(
        clause_id=str_field(d, "clause_id", where),
        clause_name=opt_str_field(d, "clause_name", where),
        rule_version_id=opt_str_field(d, "rule_version_id", where),
        target_label=opt_str_field(d, "target_label", where),
        form_version_id=opt_str_field(d, "form_version_id", where),
        id=opt_str_field(d, "id", where),
    )


def form_relations_from_dict(
    data: Any, where: str = "relations",
) -> tuple[tuple[FormUse, ...], tuple[ClauseLink, ...]]:
    """Read ``{"form_uses": [...], "clause_links": [...]}``; both keys optional."""
    d = require_mapping(data, where)
    uses = tuple(
        form_use_from_dict(u, f"{where}.form_uses[{i}]")
        for i, u in enumerate(list_field(d, "form_uses", where, []))
    )
    links = tuple(
        clause_link_from_dict(c, f"{where}.clause_links[{i}]")
        for i, c in enumerate(list_field(d, "clause_links", where, []))
    )
    return uses, links


def redline_input_from_dict(data: Any, where: str = "redline") -> RedlineInput:
    d = require_mapping(data, where)
    uses, links = form_relations_from_dict(d, where)
    return RedlineInput(
        form_id=str_field(d, "form_id", where),
        form_number=str_field(d, "form_number", where, ""),
        form_title=str_field(d, "form_title", where, ""),
        left_version_id=str_field(d, "left_version_id", where),
        left_edition_date=str_field(d, "left_edition_date", where, ""),
        right_version_id=str_field(d, "right_version_id", where),
        right_edition_date=str_field(d, "right_edition_date", where, ""),
        left_sections=sections_from_list(
            list_field(d, "left_sections", where), f"{where}.left_sections",
        ),
        right_sections=sections_from_list(
            list_field(d, "right_sections", where), f"{where}.right_sections",
        ),
        left_chunks=chunks_from_list(list_field(d, "left_chunks", where), f"{where}.left_chunks"),
        right_chunks=chunks_from_list(list_field(d, "right_chunks", where), f"{where}.right_chunks"),
        form_uses=uses,
        clause_links=links,
    )
