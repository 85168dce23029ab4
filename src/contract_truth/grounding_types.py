"""Types for clause-grounded coverage analysis.

Type hierarchy:
  AnalysisStructuredFields - Upstream analysis: determination + statement lists
  FormSourceSnapshot       - Form edition the analysis was run against
  AnalysisCitation         - Flat form-level citation from the upstream analysis
  ClauseAnchorCitation     - Citation pinned to one ingested anchor
  CitedConclusion          - One statement with its anchor citations
  OpenQuestion             - Explicit gap that blocks a final determination
  DecisionGate             - Review step in the analysis workflow
  ClauseGroundedFields     - Everything above for one analysis version
  GroundingInput           - Analysis + ingested sections/chunks per edition
  AnalysisSnapshot         - (id, determination, grounded) pair for comparison
  AnalysisComparison       - Conclusion/question deltas between two versions
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, cast, TypeAlias

from contract_truth.ingestion_types import (
    Chunk,
    Section,
    chunks_from_list,
    ingestion_result_from_dict,
    sections_from_list,
)
from contract_truth.payload import (
    bool_field,
    choice_field,
    get_field,
    int_field,
    list_field,
    opt_str_field,
    require_list,
    require_mapping,
    str_field,
    str_tuple_field,
)
from contract_truth.section_patterns import SECTION_TYPES, SectionType

CoverageDetermination: TypeAlias = Literal[
    "covered", "not_covered", "partially_covered", "insufficient_information",
]
ConclusionType: TypeAlias = Literal[
    "coverage_grant",
    "exclusion_applies",
    "exclusion_exception",
    "condition_met",
    "condition_unmet",
    "limitation_applies",
    "definition_relevant",
    "endorsement_modifies",
    "no_coverage",
]
Confidence: TypeAlias = Literal["high", "medium", "low"]
Relevance: TypeAlias = Literal["direct", "supporting", "contextual"]
OpenQuestionCategory: TypeAlias = Literal[
    "missing_facts",
    "ambiguous_language",
    "missing_forms",
    "endorsement_unknown",
    "jurisdiction_specific",
    "policy_specific",
    "claimant_info",
]
DecisionGateStatus: TypeAlias = Literal["pending", "approved", "rejected", "needs_review"]
ChangeType: TypeAlias = Literal["added", "removed", "changed", "unchanged"]

DETERMINATIONS: tuple[CoverageDetermination, ...] = (
    "covered", "not_covered", "partially_covered", "insufficient_information",
)
CONFIDENCES: tuple[Confidence, ...] = ("high", "medium", "low")
RELEVANCE_ORDER: dict[Relevance, int] = {"direct": 0, "supporting": 1, "contextual": 2}
DECISION_GATE_STATUSES: tuple[DecisionGateStatus, ...] = (
    "pending", "approved", "rejected", "needs_review",
)

DETERMINATION_LABELS: dict[CoverageDetermination, str] = {
    "covered": "Covered",
    "not_covered": "Not Covered",
    "partially_covered": "Partially Covered",
    "insufficient_information": "Insufficient Information",
}

CONCLUSION_TYPE_LABELS: dict[ConclusionType, str] = {
    "coverage_grant": "Coverage Grant",
    "exclusion_applies": "Exclusion Applies",
    "exclusion_exception": "Exclusion Exception",
    "condition_met": "Condition Met",
    "condition_unmet": "Condition Unmet",
    "limitation_applies": "Limitation Applies",
    "definition_relevant": "Definition Relevant",
    "endorsement_modifies": "Endorsement Modifies",
    "no_coverage": "No Coverage",
}

OPEN_QUESTION_LABELS: dict[OpenQuestionCategory, str] = {
    "missing_facts": "Missing Facts",
    "ambiguous_language": "Ambiguous Language",
    "missing_forms": "Missing Forms",
    "endorsement_unknown": "Endorsement Unknown",
    "jurisdiction_specific": "Jurisdiction-Specific",
    "policy_specific": "Policy-Specific",
    "claimant_info": "Claimant Info",
}

DECISION_GATE_LABELS: dict[DecisionGateStatus, str] = {
    "pending": "Pending",
    "approved": "Approved",
    "rejected": "Rejected",
    "needs_review": "Needs Review",
}


# ---------------------------------------------------------------------------
# Upstream analysis inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class AnalysisStructuredFields:
    determination: CoverageDetermination
    summary: str = ""
    applicable_coverages: tuple[str, ...] = ()
    relevant_exclusions: tuple[str, ...] = ()
    conditions_and_limitations: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class FormSourceSnapshot:
    form_id: str
    form_version_id: str
    form_number: str
    form_title: str
    edition_date: str
    extracted_text: str = ""
    status: str = "published"


@dataclass(frozen=True, slots=True)
class AnalysisCitation:
    """Flat citation from the upstream analysis; carried through untouched."""

    form_version_id: str
    form_label: str
    section: str
    excerpt_hash: str
    location_hint: str
    excerpt_text: str | None = None


# ---------------------------------------------------------------------------
# Grounded outputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ClauseAnchorCitation:
    conclusion_id: str
    form_version_id: str
    form_label: str  # "{form_number} {edition_date}"
    section_path: str  # never empty
    section_type: SectionType
    anchor_hash: str
    anchor_slug: str
    anchor_text: str
    page: int
    excerpt: str  # up to 300 chars from the anchor offset
    relevance: Relevance


@dataclass(frozen=True, slots=True)
class CitedConclusion:
    id: str  # "conc-{order}"
    order: int
    type: ConclusionType
    statement: str
    reasoning: str
    citations: tuple[ClauseAnchorCitation, ...]
    confidence: Confidence


@dataclass(frozen=True, slots=True)
class OpenQuestion:
    id: str  # "oq-{order}"
    order: int
    category: OpenQuestionCategory
    question: str
    impact: str
    affected_conclusion_ids: tuple[str, ...] = ()
    resolved: bool = False
    resolution: str | None = None


@dataclass(frozen=True, slots=True)
class DecisionGate:
    id: str
    name: str
    status: DecisionGateStatus = "pending"
    assignee_role: str | None = None
    decided_by: str | None = None
    decided_at: str | None = None
    notes: str | None = None


@dataclass(frozen=True, slots=True)
class ClauseGroundedFields:
    conclusions: tuple[CitedConclusion, ...]
    open_questions: tuple[OpenQuestion, ...]
    decision_gates: tuple[DecisionGate, ...]
    analysis_version: int = 1
    prior_analysis_id: str | None = None
    tags: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class GroundingInput:
    structured_fields: AnalysisStructuredFields
    sources: tuple[FormSourceSnapshot, ...] = ()
    sections_by_form_version: Mapping[str, tuple[Section, ...]] = field(
        default_factory=dict[str, tuple[Section, ...]]
    )
    chunks_by_form_version: Mapping[str, tuple[Chunk, ...]] = field(
        default_factory=dict[str, tuple[Chunk, ...]]
    )
    existing_citations: tuple[AnalysisCitation, ...] = ()
    output_markdown: str = ""


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class AnalysisSnapshot:
    id: str
    determination: CoverageDetermination
    grounded: ClauseGroundedFields


@dataclass(frozen=True, slots=True)
class ConclusionDelta:
    conclusion_id: str
    type: ConclusionType
    statement: str
    change_type: ChangeType
    previous_statement: str | None = None
    previous_confidence: Confidence | None = None


@dataclass(frozen=True, slots=True)
class QuestionDelta:
    question_id: str
    question: str
    change_type: ChangeType
    newly_resolved: bool = False


@dataclass(frozen=True, slots=True)
class ComparisonStats:
    conclusions_added: int
    conclusions_removed: int
    conclusions_changed: int
    conclusions_unchanged: int
    questions_resolved: int
    questions_added: int
    questions_removed: int


@dataclass(frozen=True, slots=True)
class AnalysisComparison:
    left_analysis_id: str
    right_analysis_id: str
    left_version: int
    right_version: int
    determination_changed: bool
    left_determination: CoverageDetermination
    right_determination: CoverageDetermination
    conclusion_deltas: tuple[ConclusionDelta, ...]
    question_deltas: tuple[QuestionDelta, ...]
    stats: ComparisonStats


# ---------------------------------------------------------------------------
# Payload readers
# ---------------------------------------------------------------------------

def _determination(d: Mapping[str, Any], where: str) -> CoverageDetermination:
    return cast(CoverageDetermination, choice_field(d, "determination", where, DETERMINATIONS))


def structured_fields_from_dict(data: Any, where: str = "structured_fields") -> AnalysisStructuredFields:
    d = require_mapping(data, where)
    return AnalysisStructuredFields(
        determination=_determination(d, where),
        summary=str_field(d, "summary", where, ""),
        applicable_coverages=str_tuple_field(d, "applicable_coverages", where),
        relevant_exclusions=str_tuple_field(d, "relevant_exclusions", where),
        conditions_and_limitations=str_tuple_field(d, "conditions_and_limitations", where),
        recommendations=str_tuple_field(d, "recommendations", where),
    )


def source_from_dict(data: Any, where: str = "source") -> FormSourceSnapshot:
    d = require_mapping(data, where)
    return FormSourceSnapshot(
        form_id=str_field(d, "form_id", where, ""),
        form_version_id=str_field(d, "form_version_id", where),
        form_number=str_field(d, "form_number", where, ""),
        form_title=str_field(d, "form_title", where, ""),
        edition_date=str_field(d, "edition_date", where, ""),
        extracted_text=str_field(d, "extracted_text", where, ""),
        status=str_field(d, "status", where, "published"),
    )


def analysis_citation_from_dict(data: Any, where: str = "citation") -> AnalysisCitation:
    d = require_mapping(data, where)
    return AnalysisCitation(
        form_version_id=str_field(d, "form_version_id", where),
        form_label=str_field(d, "form_label", where, ""),
        section=str_field(d, "section", where, ""),
        excerpt_hash=str_field(d, "excerpt_hash", where, ""),
        location_hint=str_field(d, "location_hint", where, ""),
        excerpt_text=opt_str_field(d, "excerpt_text", where),
    )


def sources_from_list(data: Any, where: str = "sources") -> tuple[FormSourceSnapshot, ...]:
    return tuple(
        source_from_dict(s, f"{where}[{i}]") for i, s in enumerate(require_list(data, where))
    )


def grounding_input_from_dict(data: Any, where: str = "grounding") -> GroundingInput:
    """Read a grounding payload.

    ``ingestions`` (a list of ingestion results) is accepted as an alternative
    to the explicit ``sections_by_form_version`` / ``chunks_by_form_version``
    maps; both may be given and are merged.
    """
    d = require_mapping(data, where)
    sections: dict[str, tuple[Section, ...]] = {}
    chunks: dict[str, tuple[Chunk, ...]] = {}
    for i, raw in enumerate(list_field(d, "ingestions", where, [])):
        result = ingestion_result_from_dict(raw, f"{where}.ingestions[{i}]")
        sections[result.form_version_id] = result.sections
        chunks[result.form_version_id] = result.chunks
    by_version_sections = require_mapping(
        get_field(d, "sections_by_form_version", where, {}), f"{where}.sections_by_form_version"
    )
    for fv, items in by_version_sections.items():
        sections[fv] = sections_from_list(items, f"{where}.sections_by_form_version.{fv}")
    by_version_chunks = require_mapping(
        get_field(d, "chunks_by_form_version", where, {}), f"{where}.chunks_by_form_version"
    )
    for fv, items in by_version_chunks.items():
        chunks[fv] = chunks_from_list(items, f"{where}.chunks_by_form_version.{fv}")

    return GroundingInput(
        structured_fields=structured_fields_from_dict(
            get_field(d, "structured_fields", where), f"{where}.structured_fields"
        ),
        sources=sources_from_list(list_field(d, "sources", where, []), f"{where}.sources"),
        sections_by_form_version=sections,
        chunks_by_form_version=chunks,
        existing_citations=tuple(
            analysis_citation_from_dict(c, f"{where}.existing_citations[{i}]")
            for i, c in enumerate(list_field(d, "existing_citations", where, []))
        ),
        output_markdown=str_field(d, "output_markdown", where, ""),
    )


def _citation_from_dict(data: Any, where: str) -> ClauseAnchorCitation:
    d = require_mapping(data, where)
    return ClauseAnchorCitation(
        conclusion_id=str_field(d, "conclusion_id", where),
        form_version_id=str_field(d, "form_version_id", where),
        form_label=str_field(d, "form_label", where, ""),
        section_path=str_field(d, "section_path", where),
        section_type=cast(SectionType, choice_field(d, "section_type", where, SECTION_TYPES)),
        anchor_hash=str_field(d, "anchor_hash", where),
        anchor_slug=str_field(d, "anchor_slug", where, ""),
        anchor_text=str_field(d, "anchor_text", where, ""),
        page=int_field(d, "page", where),
        excerpt=str_field(d, "excerpt", where, ""),
        relevance=cast(Relevance, choice_field(d, "relevance", where, tuple(RELEVANCE_ORDER))),
    )


def _conclusion_from_dict(data: Any, where: str) -> CitedConclusion:
    d = require_mapping(data, where)
    return CitedConclusion(
        id=str_field(d, "id", where),
        order=int_field(d, "order", where),
        type=cast(ConclusionType, choice_field(d, "type", where, tuple(CONCLUSION_TYPE_LABELS))),
        statement=str_field(d, "statement", where),
        reasoning=str_field(d, "reasoning", where, ""),
        citations=tuple(
            _citation_from_dict(c, f"{where}.citations[{i}]")
            for i, c in enumerate(list_field(d, "citations", where, []))
        ),
        confidence=cast(Confidence, choice_field(d, "confidence", where, CONFIDENCES)),
    )


def _question_from_dict(data: Any, where: str) -> OpenQuestion:
    d = require_mapping(data, where)
    return OpenQuestion(
        id=str_field(d, "id", where),
        order=int_field(d, "order", where),
        category=cast(
            OpenQuestionCategory,
            choice_field(d, "category", where, tuple(OPEN_QUESTION_LABELS)),
        ),
        question=str_field(d, "question", where),
        impact=str_field(d, "impact", where, ""),
        affected_conclusion_ids=str_tuple_field(d, "affected_conclusion_ids", where),
        resolved=bool_field(d, "resolved", where, False),
        resolution=opt_str_field(d, "resolution", where),
    )


def _gate_from_dict(data: Any, where: str) -> DecisionGate:
    d = require_mapping(data, where)
    return DecisionGate(
        id=str_field(d, "id", where),
        name=str_field(d, "name", where, ""),
        status=cast(
            DecisionGateStatus,
            choice_field(d, "status", where, DECISION_GATE_STATUSES, "pending"),
        ),
        assignee_role=opt_str_field(d, "assignee_role", where),
        decided_by=opt_str_field(d, "decided_by", where),
        decided_at=opt_str_field(d, "decided_at", where),
        notes=opt_str_field(d, "notes", where),
    )


def grounded_fields_from_dict(data: Any, where: str = "grounded") -> ClauseGroundedFields:
    d = require_mapping(data, where)
    return ClauseGroundedFields(
        conclusions=tuple(
            _conclusion_from_dict(c, f"{where}.conclusions[{i}]")
            for i, c in enumerate(list_field(d, "conclusions", where, []))
        ),
        open_questions=tuple(
            _question_from_dict(q, f"{where}.open_questions[{i}]")
            for i, q in enumerate(list_field(d, "open_questions", where, []))
        ),
        decision_gates=tuple(
            _gate_from_dict(g, f"{where}.decision_gates[{i}]")
            for i, g in enumerate(list_field(d, "decision_gates", where, []))
        ),
        analysis_version=int_field(d, "analysis_version", where, 1),
        prior_analysis_id=opt_str_field(d, "prior_analysis_id", where),
        tags=str_tuple_field(d, "tags", where),
    )


def analysis_snapshot_from_dict(data: Any, where: str = "analysis") -> AnalysisSnapshot:
    d = require_mapping(data, where)
    return AnalysisSnapshot(
        id=str_field(d, "id", where),
        determination=_determination(d, where),
        grounded=grounded_fields_from_dict(get_field(d, "grounded", where), f"{where}.grounded"),
    )
