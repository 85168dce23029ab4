"""Clause grounding: analysis statements to ingested clause anchors.

Pipeline (``ground_analysis``):
  1. ``build_cited_conclusions`` - one conclusion per coverage, exclusion and
     condition statement, each cited to matching section anchors
  2. ``detect_open_questions``   - gaps in the analysis that block a final call
  3. ``build_decision_gates``    - review workflow skeleton

Follow-up operations on a grounded analysis:
  - ``compare_analyses``        - deltas between two analysis versions
  - ``resolve_open_question``   - mark one question resolved
  - ``advance_decision_gate``   - record a gate decision

Citation matching is word overlap, not semantic search: a section qualifies
when any of its title words (4+ chars) occurs in the lowercased statement.
"""
from __future__ import annotations

import re
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import replace

from contract_truth.config import DEFAULT_GROUNDING_CONFIG, GroundingConfig
from contract_truth.grounding_types import (
    RELEVANCE_ORDER,
    AnalysisComparison,
    AnalysisSnapshot,
    ClauseAnchorCitation,
    ClauseGroundedFields,
    CitedConclusion,
    ComparisonStats,
    ConclusionDelta,
    CoverageDetermination,
    DecisionGate,
    DecisionGateStatus,
    FormSourceSnapshot,
    GroundingInput,
    OpenQuestion,
    OpenQuestionCategory,
    QuestionDelta,
    Relevance,
)
from contract_truth.ingestion_types import Chunk, Section
from contract_truth.section_patterns import SectionType
from contract_truth.textmatch import contains_any, significant_words, word_overlap

COVERAGE_SECTION_TYPES: tuple[SectionType, ...] = ("coverage", "insuring_agreement")
EXCLUSION_SECTION_TYPES: tuple[SectionType, ...] = ("exclusion",)
CONDITION_SECTION_TYPES: tuple[SectionType, ...] = ("condition", "limits", "deductibles")

NO_COVERAGE_STATEMENT = "No applicable coverage found in the reviewed forms."

_FOLLOW_UP_PHRASES = ("verify", "confirm", "obtain", "review additional", "check whether")

# Each pattern captures the rest of the sentence after the marker.
_UNCERTAINTY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"(?:it is unclear|cannot determine|insufficient information|not enough"
        r"|unable to assess|further review needed|more information is needed)([^.]*\.)",
        re.IGNORECASE,
    ),
    re.compile(
        r"(?:if the (?:insured|policy|endorsement)|depending on whether)([^.]*\.)",
        re.IGNORECASE,
    ),
)
_MIN_AMBIGUITY_CHARS = 20

DECIDABLE_GATE_STATUSES: tuple[DecisionGateStatus, ...] = ("approved", "rejected", "needs_review")


# ---------------------------------------------------------------------------
# Citation matching
# ---------------------------------------------------------------------------

def _relevance(anchor_score: int, section_score: int) -> Relevance:
    if anchor_score >= 2:
        return "direct"
    if section_score >= 2:
        return "supporting"
    return "contextual"


def find_anchor_citations(
    statement: str,
    conclusion_id: str,
    sections_by_form_version: Mapping[str, Sequence[Section]],
    chunks_by_form_version: Mapping[str, Sequence[Chunk]],
    sources: Sequence[FormSourceSnapshot],
    section_types: Sequence[SectionType] | None = None,
    config: GroundingConfig | None = None,
) -> tuple[ClauseAnchorCitation, ...]:
    """Anchor citations supporting ``statement``, best first, capped.

    Sources are walked in order. An anchor is cited at most once per form
    version (keyed by anchor hash). The result is a stable sort by relevance
    tier, so ties keep discovery order.
    """
    cfg = config or DEFAULT_GROUNDING_CONFIG
    statement_lower = statement.lower()
    citations: list[ClauseAnchorCitation] = []
    seen: set[tuple[str, str]] = set()

    for source in sources:
        fv = source.form_version_id
        sections = sections_by_form_version.get(fv, ())
        chunks = chunks_by_form_version.get(fv, ())
        form_label = f"{source.form_number} {source.edition_date}"

        for section in sections:
            if section_types is not None and section.type not in section_types:
                continue
            # Untitled leading text has no heading to cite.
            if not section.path:
                continue
            section_score = word_overlap(
                significant_words(section.title, min_chars=cfg.min_word_chars), statement_lower,
            )
            if section_score == 0:
                continue

            for chunk in chunks:
                if chunk.section_path != section.path:
                    continue
                for anchor in chunk.anchors:
                    key = (fv, anchor.hash)
                    if key in seen:
                        continue
                    anchor_score = word_overlap(
                        significant_words(anchor.anchor_text, min_chars=cfg.min_word_chars),
                        statement_lower,
                    )
                    if anchor_score == 0 and section_score < 2:
                        continue
                    seen.add(key)
                    excerpt = chunk.text[anchor.offset : anchor.offset + cfg.excerpt_chars]
                    citations.append(
                        ClauseAnchorCitation(
                            conclusion_id=conclusion_id,
                            form_version_id=fv,
                            form_label=form_label,
                            section_path=section.path,
                            section_type=section.type,
                            anchor_hash=anchor.hash,
                            anchor_slug=anchor.slug,
                            anchor_text=anchor.anchor_text,
                            page=anchor.page,
                            excerpt=excerpt.strip(),
                            relevance=_relevance(anchor_score, section_score),
                        )
                    )

    citations.sort(key=lambda c: RELEVANCE_ORDER[c.relevance])
    return tuple(citations[: cfg.max_citations])


# ---------------------------------------------------------------------------
# Conclusions
# ---------------------------------------------------------------------------

def build_cited_conclusions(
    grounding_input: GroundingInput,
    config: GroundingConfig | None = None,
) -> tuple[CitedConclusion, ...]:
    """Coverage, exclusion and condition conclusions, in that order."""
    sf = grounding_input.structured_fields
    conclusions: list[CitedConclusion] = []

    def cite(
        statement: str, conclusion_id: str, section_types: Sequence[SectionType] | None,
    ) -> tuple[ClauseAnchorCitation, ...]:
        return find_anchor_citations(
            statement,
            conclusion_id,
            grounding_input.sections_by_form_version,
            grounding_input.chunks_by_form_version,
            grounding_input.sources,
            section_types,
            config,
        )

    def next_id() -> str:
        return f"conc-{len(conclusions)}"

    for coverage in sf.applicable_coverages:
        cid = next_id()
        conclusions.append(
            CitedConclusion(
                id=cid,
                order=len(conclusions),
                type="coverage_grant",
                statement=coverage,
                reasoning=f"This coverage applies based on the policy language. {coverage}",
                citations=cite(coverage, cid, COVERAGE_SECTION_TYPES),
                confidence="high" if sf.determination == "covered" else "medium",
            )
        )

    for exclusion in sf.relevant_exclusions:
        cid = next_id()
        conclusions.append(
            CitedConclusion(
                id=cid,
                order=len(conclusions),
                type="exclusion_applies",
                statement=exclusion,
                reasoning=f"This exclusion may limit or bar coverage. {exclusion}",
                citations=cite(exclusion, cid, EXCLUSION_SECTION_TYPES),
                confidence="medium",
            )
        )

    for condition in sf.conditions_and_limitations:
        is_limitation = "limit" in condition.lower()
        cid = next_id()
        conclusions.append(
            CitedConclusion(
                id=cid,
                order=len(conclusions),
                type="limitation_applies" if is_limitation else "condition_met",
                statement=condition,
                reasoning=(
                    f"This {'limitation' if is_limitation else 'condition'} "
                    f"affects the coverage analysis. {condition}"
                ),
                citations=cite(condition, cid, CONDITION_SECTION_TYPES),
                confidence="medium",
            )
        )

    if sf.determination == "not_covered" and not sf.applicable_coverages:
        cid = next_id()
        conclusions.append(
            CitedConclusion(
                id=cid,
                order=len(conclusions),
                type="no_coverage",
                statement=sf.summary or NO_COVERAGE_STATEMENT,
                reasoning=(
                    "Based on the analysis of all provided forms, no coverage grant "
                    "applies to this claim scenario."
                ),
                citations=cite(sf.summary, cid, None),
                confidence="high",
            )
        )
    return tuple(conclusions)


# ---------------------------------------------------------------------------
# Open questions
# ---------------------------------------------------------------------------

def detect_open_questions(grounding_input: GroundingInput) -> tuple[OpenQuestion, ...]:
    """Gaps in the analysis, in detection order. All start unresolved."""
    sf = grounding_input.structured_fields
    markdown = grounding_input.output_markdown
    markdown_lower = markdown.lower()
    questions: list[OpenQuestion] = []

    def add(category: OpenQuestionCategory, question: str, impact: str) -> None:
        order = len(questions)
        questions.append(
            OpenQuestion(
                id=f"oq-{order}",
                order=order,
                category=category,
                question=question,
                impact=impact,
            )
        )

    if sf.determination == "insufficient_information":
        add(
            "missing_facts",
            "The available information is insufficient for a definitive coverage "
            "determination. What additional facts are needed?",
            "Cannot make a final determination without additional information.",
        )

    for rec in sf.recommendations:
        if contains_any(rec.lower(), _FOLLOW_UP_PHRASES):
            add(
                "missing_facts",
                rec,
                "Recommended action may affect the final coverage determination.",
            )

    for pattern in _UNCERTAINTY_PATTERNS:
        for match in pattern.finditer(markdown):
            text = match.group(0).strip()
            if len(text) <= _MIN_AMBIGUITY_CHARS:
                continue
            if any(q.question == text for q in questions):
                continue
            add(
                "ambiguous_language",
                text,
                "This ambiguity could change the coverage determination.",
            )

    if "endorsement" in markdown_lower and contains_any(
        markdown_lower, ("not provided", "not available"),
    ):
        add(
            "endorsement_unknown",
            "One or more endorsements may modify coverage but were not included in "
            "the reviewed forms.",
            "Endorsements can significantly expand or restrict coverage.",
        )

    if "state" in markdown_lower and contains_any(markdown_lower, ("may vary", "jurisdiction")):
        add(
            "jurisdiction_specific",
            "Coverage may be affected by state-specific regulations or mandates not "
            "reflected in the base forms.",
            "Jurisdictional requirements could override policy terms.",
        )

    if len(grounding_input.sources) <= 1:
        add(
            "missing_forms",
            "Only one form was analyzed. Are there additional policy forms, "
            "endorsements, or schedules that apply?",
            "Additional forms could grant or restrict coverage.",
        )
    return tuple(questions)


# ---------------------------------------------------------------------------
# Decision gates
# ---------------------------------------------------------------------------

def build_decision_gates(
    determination: CoverageDetermination,
    has_open_questions: bool,
) -> tuple[DecisionGate, ...]:
    """Review gates, all pending: initial, [questions], [supervisor], final."""
    gates = [
        DecisionGate(
            id="gate-initial-review",
            name="Initial Analysis Review",
            assignee_role="claims_analyst",
        )
    ]
    if has_open_questions:
        gates.append(
            DecisionGate(
                id="gate-open-questions",
                name="Open Questions Resolution",
                assignee_role="claims_analyst",
            )
        )
    if determination in ("partially_covered", "not_covered"):
        gates.append(
            DecisionGate(
                id="gate-supervisor-review",
                name="Supervisor Review",
                assignee_role="claims_supervisor",
            )
        )
    gates.append(
        DecisionGate(
            id="gate-final-determination",
            name="Final Determination",
            assignee_role="coverage_counsel",
        )
    )
    return tuple(gates)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

def ground_analysis(
    grounding_input: GroundingInput,
    analysis_version: int = 1,
    prior_analysis_id: str | None = None,
    config: GroundingConfig | None = None,
) -> ClauseGroundedFields:
    """Conclusions, open questions and decision gates for one analysis."""
    conclusions = build_cited_conclusions(grounding_input, config)
    questions = detect_open_questions(grounding_input)
    gates = build_decision_gates(
        grounding_input.structured_fields.determination, bool(questions),
    )
    return ClauseGroundedFields(
        conclusions=conclusions,
        open_questions=questions,
        decision_gates=gates,
        analysis_version=analysis_version,
        prior_analysis_id=prior_analysis_id,
    )


def next_analysis_version(prior: ClauseGroundedFields | None) -> int:
    """Version number for a re-analysis of ``prior`` (1 for a first analysis)."""
    return 1 if prior is None else prior.analysis_version + 1


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------

def compare_analyses(left: AnalysisSnapshot, right: AnalysisSnapshot) -> AnalysisComparison:
    """Deltas from ``left`` (older) to ``right`` (newer).

    Conclusions match by statement text and questions by question text; when
    a text repeats within one side, the last occurrence is the match target.
    """
    left_conclusions = {c.statement: c for c in left.grounded.conclusions}
    right_conclusions = {c.statement: c for c in right.grounded.conclusions}

    conclusion_deltas: list[ConclusionDelta] = []
    for rc in right.grounded.conclusions:
        lc = left_conclusions.get(rc.statement)
        if lc is None:
            conclusion_deltas.append(
                ConclusionDelta(rc.id, rc.type, rc.statement, "added")
            )
        elif lc.type != rc.type or lc.confidence != rc.confidence:
            conclusion_deltas.append(
                ConclusionDelta(
                    rc.id,
                    rc.type,
                    rc.statement,
                    "changed",
                    previous_statement=lc.statement,
                    previous_confidence=lc.confidence,
                )
            )
        else:
            conclusion_deltas.append(
                ConclusionDelta(rc.id, rc.type, rc.statement, "unchanged")
            )
    for lc in left.grounded.conclusions:
        if lc.statement not in right_conclusions:
            conclusion_deltas.append(
                ConclusionDelta(lc.id, lc.type, lc.statement, "removed")
            )

    left_questions = {q.question: q for q in left.grounded.open_questions}
    right_questions = {q.question: q for q in right.grounded.open_questions}

    question_deltas: list[QuestionDelta] = []
    for rq in right.grounded.open_questions:
        lq = left_questions.get(rq.question)
        if lq is None:
            question_deltas.append(QuestionDelta(rq.id, rq.question, "added"))
        else:
            question_deltas.append(
                QuestionDelta(
                    rq.id,
                    rq.question,
                    "changed" if rq.resolved != lq.resolved else "unchanged",
                    newly_resolved=rq.resolved and not lq.resolved,
                )
            )
    for lq in left.grounded.open_questions:
        if lq.question not in right_questions:
            question_deltas.append(QuestionDelta(lq.id, lq.question, "removed"))

    conclusion_counts = Counter(d.change_type for d in conclusion_deltas)
    question_counts = Counter(d.change_type for d in question_deltas)
    return AnalysisComparison(
        left_analysis_id=left.id,
        right_analysis_id=right.id,
        left_version=left.grounded.analysis_version,
        right_version=right.grounded.analysis_version,
        determination_changed=left.determination != right.determination,
        left_determination=left.determination,
        right_determination=right.determination,
        conclusion_deltas=tuple(conclusion_deltas),
        question_deltas=tuple(question_deltas),
        stats=ComparisonStats(
            conclusions_added=conclusion_counts["added"],
            conclusions_removed=conclusion_counts["removed"],
            conclusions_changed=conclusion_counts["changed"],
            conclusions_unchanged=conclusion_counts["unchanged"],
            questions_resolved=sum(1 for d in question_deltas if d.newly_resolved),
            questions_added=question_counts["added"],
            questions_removed=question_counts["removed"],
        ),
    )


# ---------------------------------------------------------------------------
# Workflow updates
# ---------------------------------------------------------------------------

def resolve_open_question(
    fields: ClauseGroundedFields,
    question_id: str,
    resolution: str,
) -> ClauseGroundedFields:
    """Copy of ``fields`` with one question marked resolved."""
    if not any(q.id == question_id for q in fields.open_questions):
        raise ValueError(f"Unknown open question id: {question_id!r}")
    questions = tuple(
        replace(q, resolved=True, resolution=resolution) if q.id == question_id else q
        for q in fields.open_questions
    )
    return replace(fields, open_questions=questions)


def advance_decision_gate(
    fields: ClauseGroundedFields,
    gate_id: str,
    status: DecisionGateStatus,
    *,
    decided_by: str,
    decided_at: str,
    notes: str | None = None,
) -> ClauseGroundedFields:
    """Copy of ``fields`` with one gate decided.

    ``decided_at`` is supplied by the caller (ISO-8601) so the result stays a
    pure function of its arguments.
    """
    if status not in DECIDABLE_GATE_STATUSES:
        raise ValueError(
            f"Invalid gate status {status!r}; expected one of "
            f"{', '.join(DECIDABLE_GATE_STATUSES)}"
        )
    if not any(g.id == gate_id for g in fields.decision_gates):
        raise ValueError(f"Unknown decision gate id: {gate_id!r}")
    gates = tuple(
        replace(g, status=status, decided_by=decided_by, decided_at=decided_at, notes=notes)
        if g.id == gate_id
        else g
        for g in fields.decision_gates
    )
    return replace(fields, decision_gates=gates)
