"""Redline engine: structural diff between two editions of one form.

- ``diff_sections``: match sections by heading path, compare chunk hashes
- ``diff_chunks``: match chunks by (path, index), falling back to ordinal
  position within the same path
- ``compute_impact``: downstream products, coverages, states, rules and
  clauses that may need review when anything changed
- ``compute_stats``: status counts
- ``run_redline_comparison``: all of the above for one ``RedlineInput``

Matching is by content hash only; no text-level diff is computed here.
"""
from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from contract_truth.ingestion_types import Chunk, Section
from contract_truth.redline_types import (
    SEVERITY_RANK,
    ChunkDiff,
    ClauseLink,
    FormUse,
    HashPair,
    ImpactCandidate,
    ImpactSeverity,
    RedlineComparisonResult,
    RedlineInput,
    RedlineStats,
    SectionDiff,
)
from contract_truth.section_patterns import SectionType


# ---------------------------------------------------------------------------
# Section-level diff
# ---------------------------------------------------------------------------

def _section_hashes(path: str, chunks: Sequence[Chunk]) -> list[str]:
    in_section = sorted((c for c in chunks if c.section_path == path), key=lambda c: c.index)
    return [c.hash for c in in_section]


def _changed_hash_pairs(left: list[str], right: list[str]) -> tuple[HashPair, ...]:
    pairs: list[HashPair] = []
    for i in range(max(len(left), len(right))):
        lh = left[i] if i < len(left) else ""
        rh = right[i] if i < len(right) else ""
        if lh != rh:
            pairs.append(HashPair(left=lh, right=rh))
    return tuple(pairs)


def repeated_section_paths(sections: Sequence[Section]) -> tuple[str, ...]:
    """Paths held by more than one section, in first-seen order.

    ``diff_sections`` keys the right edition by path, so only the last of
    these sections is matched; callers can surface the ambiguity.
    """
    counts = Counter(s.path for s in sections)
    return tuple(path for path, n in counts.items() if n > 1)


def diff_sections(
    left_sections: Sequence[Section],
    right_sections: Sequence[Section],
    left_chunks: Sequence[Chunk],
    right_chunks: Sequence[Chunk],
) -> tuple[SectionDiff, ...]:
    """Section diffs: left walk (unchanged/modified/removed), then added."""
    right_by_path: dict[str, Section] = {}
    for section in right_sections:
        right_by_path[section.path] = section  # last one wins

    diffs: list[SectionDiff] = []
    matched_paths: set[str] = set()
    for ls in left_sections:
        rs = right_by_path.get(ls.path)
        if rs is None:
            diffs.append(
                SectionDiff(
                    match_key=ls.path,
                    status="removed",
                    left_section=ls,
                    right_section=None,
                    section_type=ls.type,
                    title=ls.title,
                    left_pages=ls.page_refs,
                )
            )
            continue

        matched_paths.add(ls.path)
        left_hashes = _section_hashes(ls.path, left_chunks)
        right_hashes = _section_hashes(rs.path, right_chunks)
        identical = left_hashes == right_hashes
        diffs.append(
            SectionDiff(
                match_key=ls.path,
                status="unchanged" if identical else "modified",
                left_section=ls,
                right_section=rs,
                section_type=ls.type,
                title=ls.title,
                changed_chunk_hashes=None if identical else _changed_hash_pairs(left_hashes, right_hashes),
                left_pages=ls.page_refs,
                right_pages=rs.page_refs,
            )
        )

    for rs in right_sections:
        if rs.path in matched_paths:
            continue
        diffs.append(
            SectionDiff(
                match_key=rs.path,
                status="added",
                left_section=None,
                right_section=rs,
                section_type=rs.type,
                title=rs.title,
                right_pages=rs.page_refs,
            )
        )
    return tuple(diffs)


# ---------------------------------------------------------------------------
# Chunk-level diff
# ---------------------------------------------------------------------------

def chunk_match_key(chunk: Chunk) -> str:
    return f"{chunk.section_path}::{chunk.index}"


def _by_path(chunks: Sequence[Chunk]) -> dict[str, list[Chunk]]:
    grouped: dict[str, list[Chunk]] = {}
    for chunk in chunks:
        grouped.setdefault(chunk.section_path, []).append(chunk)
    for group in grouped.values():
        group.sort(key=lambda c: c.index)
    return grouped


def diff_chunks(
    left_chunks: Sequence[Chunk],
    right_chunks: Sequence[Chunk],
) -> tuple[ChunkDiff, ...]:
    """Chunk diffs keyed by ``path::index``.

    A left chunk without an exact key match pairs with the right chunk at the
    same ordinal position among chunks of the same path, which absorbs index
    shifts caused by insertions elsewhere in the document.
    """
    right_by_key = {chunk_match_key(c): c for c in right_chunks}
    left_groups = _by_path(left_chunks)
    right_groups = _by_path(right_chunks)

    diffs: list[ChunkDiff] = []
    matched_right_keys: set[str] = set()
    for lc in left_chunks:
        key = chunk_match_key(lc)
        rc = right_by_key.get(key)
        if rc is None:
            same_path_right = right_groups.get(lc.section_path, [])
            position = next(
                (i for i, c in enumerate(left_groups[lc.section_path]) if c.index == lc.index),
                -1,
            )
            if 0 <= position < len(same_path_right):
                rc = same_path_right[position]

        if rc is None:
            diffs.append(
                ChunkDiff(
                    match_key=key,
                    status="removed",
                    left_chunk=lc,
                    right_chunk=None,
                    left_text=lc.text,
                    right_text="",
                )
            )
            continue

        matched_right_keys.add(chunk_match_key(rc))
        diffs.append(
            ChunkDiff(
                match_key=key,
                status="unchanged" if lc.hash == rc.hash else "modified",
                left_chunk=lc,
                right_chunk=rc,
                left_text=lc.text,
                right_text=rc.text,
            )
        )

    for rc in right_chunks:
        key = chunk_match_key(rc)
        if key in matched_right_keys:
            continue
        diffs.append(
            ChunkDiff(
                match_key=key,
                status="added",
                left_chunk=None,
                right_chunk=rc,
                left_text="",
                right_text=rc.text,
            )
        )
    return tuple(diffs)


# ---------------------------------------------------------------------------
# Impact analysis
# ---------------------------------------------------------------------------

def section_severity(section_type: SectionType) -> ImpactSeverity:
    """Review severity implied by a change to a section of this type."""
    match section_type:
        case "coverage" | "exclusion" | "insuring_agreement" | "limits":
            return "high"
        case "condition" | "definition" | "deductibles":
            return "medium"
        case "endorsement" | "schedule" | "declarations" | "general":
            return "low"


def _max_severity(severities: Sequence[ImpactSeverity]) -> ImpactSeverity:
    best: ImpactSeverity = "low"
    for severity in severities:
        if SEVERITY_RANK[severity] > SEVERITY_RANK[best]:
            best = severity
    return best


def compute_impact(
    section_diffs: Sequence[SectionDiff],
    form_uses: Sequence[FormUse],
    clause_links: Sequence[ClauseLink],
) -> tuple[ImpactCandidate, ...]:
    """Candidates for every relation of the form, deduplicated by target.

    Empty when no section changed. Products and coverages inherit the highest
    severity among changed sections; states are low; rules and clauses medium.
    """
    changed = [d for d in section_diffs if d.status != "unchanged"]
    if not changed:
        return ()

    keys = tuple(d.match_key for d in changed)
    severity = _max_severity([section_severity(d.section_type) for d in changed])

    candidates: list[ImpactCandidate] = []
    seen: set[tuple[str, str]] = set()

    def add(candidate: ImpactCandidate) -> None:
        dedup_key = (candidate.target_type, candidate.target_id)
        if dedup_key in seen:
            return
        seen.add(dedup_key)
        candidates.append(candidate)

    for use in form_uses:
        if use.product_version_id:
            add(
                ImpactCandidate(
                    target_type="product",
                    target_id=use.product_version_id,
                    target_label=use.product_name or use.product_version_id,
                    reason=f"Form is attached to this product ({use.use_type})",
                    affected_section_keys=keys,
                    severity=severity,
                )
            )
        if use.coverage_version_id:
            add(
                ImpactCandidate(
                    target_type="coverage",
                    target_id=use.coverage_version_id,
                    target_label=use.coverage_name or use.coverage_version_id,
                    reason=f"Form scoped to this coverage ({use.use_type})",
                    affected_section_keys=keys,
                    severity=severity,
                )
            )
        if use.state_code:
            add(
                ImpactCandidate(
                    target_type="state",
                    target_id=use.state_code,
                    target_label=use.state_code,
                    reason="Form has state-specific usage",
                    affected_section_keys=keys,
                    severity="low",
                )
            )

    for link in clause_links:
        if link.rule_version_id:
            add(
                ImpactCandidate(
                    target_type="rule",
                    target_id=link.rule_version_id,
                    target_label=link.target_label or link.rule_version_id,
                    reason=f'Clause "{link.clause_name or link.clause_id}" is linked to this rule',
                    affected_section_keys=keys,
                    severity="medium",
                )
            )
        if link.clause_id:
            add(
                ImpactCandidate(
                    target_type="clause",
                    target_id=link.clause_id,
                    target_label=link.clause_name or link.clause_id,
                    reason="Clause is sourced from this form edition",
                    affected_section_keys=keys,
                    severity="medium",
                )
            )
    return tuple(candidates)


# ---------------------------------------------------------------------------
# Stats & orchestrator
# ---------------------------------------------------------------------------

def compute_stats(
    section_diffs: Sequence[SectionDiff],
    chunk_diffs: Sequence[ChunkDiff],
    impact_candidates: Sequence[ImpactCandidate],
) -> RedlineStats:
    sections = Counter(d.status for d in section_diffs)
    chunks = Counter(d.status for d in chunk_diffs)
    return RedlineStats(
        total_sections=len(section_diffs),
        unchanged_sections=sections["unchanged"],
        modified_sections=sections["modified"],
        added_sections=sections["added"],
        removed_sections=sections["removed"],
        total_chunks=len(chunk_diffs),
        unchanged_chunks=chunks["unchanged"],
        modified_chunks=chunks["modified"],
        added_chunks=chunks["added"],
        removed_chunks=chunks["removed"],
        impact_candidate_count=len(impact_candidates),
    )


def run_redline_comparison(redline_input: RedlineInput) -> RedlineComparisonResult:
    """Diff two editions and derive their downstream impact."""
    section_diffs = diff_sections(
        redline_input.left_sections,
        redline_input.right_sections,
        redline_input.left_chunks,
        redline_input.right_chunks,
    )
    chunk_diffs = diff_chunks(redline_input.left_chunks, redline_input.right_chunks)
    impact = compute_impact(section_diffs, redline_input.form_uses, redline_input.clause_links)
    return RedlineComparisonResult(
        form_id=redline_input.form_id,
        form_number=redline_input.form_number,
        form_title=redline_input.form_title,
        left_version_id=redline_input.left_version_id,
        left_edition_date=redline_input.left_edition_date,
        right_version_id=redline_input.right_version_id,
        right_edition_date=redline_input.right_edition_date,
        section_diffs=section_diffs,
        chunk_diffs=chunk_diffs,
        impact_candidates=impact,
        stats=compute_stats(section_diffs, chunk_diffs, impact),
    )
