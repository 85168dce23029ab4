"""Tests for contract_truth.redline (section/chunk diff, impact, stats)."""
from __future__ import annotations

import pytest

from contract_truth.hashing import djb2_hash
from contract_truth.ingestion import run_ingestion_pipeline
from contract_truth.ingestion_types import Chunk, IngestionInput, IngestionResult, PageText, Section
from contract_truth.redline import (
    compute_impact,
    compute_stats,
    diff_chunks,
    diff_sections,
    repeated_section_paths,
    run_redline_comparison,
    section_severity,
)
from contract_truth.redline_types import ClauseLink, FormUse, HashPair, RedlineInput


def _ingest(version_id: str, texts: list[str]) -> IngestionResult:
    pages = tuple(
        PageText(page_number=i + 1, text=t, char_count=len(t)) for i, t in enumerate(texts)
    )
    return run_ingestion_pipeline(
        IngestionInput(pages=pages, form_id="form-cgl", form_version_id=version_id)
    )


_COVERAGE = "COVERAGE A\n" + "We will pay damages.\n" * 8
_EXCLUSIONS_OLD = "EXCLUSIONS\n" + "War is excluded.\n" * 8
_EXCLUSIONS_NEW = "EXCLUSIONS\n" + "War and nuclear hazard are excluded.\n" * 8
_CONDITIONS = "CONDITIONS\n" + "Notify us promptly of any occurrence.\n" * 8


def _editions() -> tuple[IngestionResult, IngestionResult]:
    left = _ingest("fv-2019", [_COVERAGE, _EXCLUSIONS_OLD])
    right = _ingest("fv-2024", [_COVERAGE, _EXCLUSIONS_NEW, _CONDITIONS])
    return left, right


def _chunk(index: int, path: str, text: str) -> Chunk:
    return Chunk(
        index=index,
        text=text,
        page_start=1,
        page_end=1,
        anchors=(),
        section_path=path,
        hash=djb2_hash(text),
        char_count=len(text),
        section_type="exclusion",
    )


def _section(path: str, section_type: str = "exclusion", order: int = 0) -> Section:
    return Section(
        title=path,
        type=section_type,  # type: ignore[arg-type]
        anchors=(),
        page_refs=(1,),
        summary=f"{path} (pages 1-1)",
        order=order,
        path=path,
        chunk_ids=(),
    )


def _redline_input(
    left: IngestionResult,
    right: IngestionResult,
    form_uses: tuple[FormUse, ...] = (),
    clause_links: tuple[ClauseLink, ...] = (),
) -> RedlineInput:
    return RedlineInput(
        form_id="form-cgl",
        form_number="CG 00 01",
        form_title="Commercial General Liability Coverage Form",
        left_version_id=left.form_version_id,
        left_edition_date="04/13",
        right_version_id=right.form_version_id,
        right_edition_date="12/19",
        left_sections=left.sections,
        right_sections=right.sections,
        left_chunks=left.chunks,
        right_chunks=right.chunks,
        form_uses=form_uses,
        clause_links=clause_links,
    )


# ---------------------------------------------------------------------------
# Section diff
# ---------------------------------------------------------------------------

class TestDiffSections:
    def test_two_edition_scenario(self) -> None:
        left, right = _editions()
        diffs = diff_sections(left.sections, right.sections, left.chunks, right.chunks)
        assert [(d.match_key, d.status) for d in diffs] == [
            ("COVERAGE A", "unchanged"),
            ("EXCLUSIONS", "modified"),
            ("CONDITIONS", "added"),
        ]

    def test_modified_carries_hash_pairs(self) -> None:
        left, right = _editions()
        diffs = diff_sections(left.sections, right.sections, left.chunks, right.chunks)
        modified = diffs[1]
        assert modified.changed_chunk_hashes == (
            HashPair(left=left.chunks[1].hash, right=right.chunks[1].hash),
        )
        assert modified.left_pages == (2,)
        assert modified.right_pages == (2,)
        assert diffs[0].changed_chunk_hashes is None

    def test_missing_chunk_side_uses_empty_hash(self) -> None:
        left_chunks = [_chunk(0, "EXCLUSIONS", "a")]
        right_chunks = [_chunk(0, "EXCLUSIONS", "a"), _chunk(1, "EXCLUSIONS", "b")]
        (diff,) = diff_sections(
            [_section("EXCLUSIONS")], [_section("EXCLUSIONS")], left_chunks, right_chunks,
        )
        assert diff.status == "modified"
        assert diff.changed_chunk_hashes == (HashPair(left="", right=djb2_hash("b")),)

    def test_removed(self) -> None:
        left, _ = _editions()
        diffs = diff_sections(left.sections, (), left.chunks, ())
        assert {d.status for d in diffs} == {"removed"}
        assert all(d.right_section is None and d.right_pages is None for d in diffs)

    def test_identical_editions_all_unchanged(self) -> None:
        left, _ = _editions()
        diffs = diff_sections(left.sections, left.sections, left.chunks, left.chunks)
        assert {d.status for d in diffs} == {"unchanged"}

    def test_added_removed_symmetry(self) -> None:
        left, right = _editions()
        forward = diff_sections(left.sections, right.sections, left.chunks, right.chunks)
        backward = diff_sections(right.sections, left.sections, right.chunks, left.chunks)
        assert sum(d.status == "added" for d in forward) == sum(d.status == "removed" for d in backward)
        assert sum(d.status == "removed" for d in forward) == sum(d.status == "added" for d in backward)

    def test_repeated_right_path_matches_last(self) -> None:
        right = [_section("CONDITIONS", "condition", 0), _section("CONDITIONS", "condition", 1)]
        (diff,) = diff_sections([_section("CONDITIONS", "condition")], right, [], [])
        assert diff.right_section is right[1]
        assert diff.status == "unchanged"


def test_repeated_section_paths() -> None:
    sections = [
        _section("CONDITIONS", order=0),
        _section("EXCLUSIONS", order=1),
        _section("CONDITIONS", order=2),
    ]
    assert repeated_section_paths(sections) == ("CONDITIONS",)
    assert repeated_section_paths(sections[:2]) == ()


# ---------------------------------------------------------------------------
# Chunk diff
# ---------------------------------------------------------------------------

class TestDiffChunks:
    def test_two_edition_scenario(self) -> None:
        left, right = _editions()
        diffs = diff_chunks(left.chunks, right.chunks)
        assert [(d.match_key, d.status) for d in diffs] == [
            ("COVERAGE A::0", "unchanged"),
            ("EXCLUSIONS::1", "modified"),
            ("CONDITIONS::2", "added"),
        ]
        assert diffs[2].left_text == ""
        assert diffs[2].right_text.startswith("CONDITIONS")

    def test_positional_fallback_absorbs_index_shift(self) -> None:
        left = [_chunk(3, "EXCLUSIONS", "war"), _chunk(4, "EXCLUSIONS", "pollution")]
        right = [_chunk(5, "EXCLUSIONS", "war"), _chunk(6, "EXCLUSIONS", "pollution")]
        diffs = diff_chunks(left, right)
        assert [d.status for d in diffs] == ["unchanged", "unchanged"]
        assert [d.right_chunk for d in diffs] == right

    def test_removed_when_right_has_fewer(self) -> None:
        left = [_chunk(0, "EXCLUSIONS", "war"), _chunk(1, "EXCLUSIONS", "pollution")]
        right = [_chunk(0, "EXCLUSIONS", "war")]
        diffs = diff_chunks(left, right)
        assert [(d.match_key, d.status) for d in diffs] == [
            ("EXCLUSIONS::0", "unchanged"),
            ("EXCLUSIONS::1", "removed"),
        ]
        assert diffs[1].right_text == ""

    def test_empty_sides(self) -> None:
        assert diff_chunks([], []) == ()
        (diff,) = diff_chunks([], [_chunk(0, "", "body")])
        assert diff.status == "added"
        assert diff.match_key == "::0"


# ---------------------------------------------------------------------------
# Impact
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    ("section_type", "expected"),
    [
        ("coverage", "high"),
        ("exclusion", "high"),
        ("insuring_agreement", "high"),
        ("limits", "high"),
        ("condition", "medium"),
        ("definition", "medium"),
        ("deductibles", "medium"),
        ("endorsement", "low"),
        ("schedule", "low"),
        ("declarations", "low"),
        ("general", "low"),
    ],
)
def test_section_severity(section_type: str, expected: str) -> None:
    assert section_severity(section_type) == expected  # type: ignore[arg-type]


class TestComputeImpact:
    def _uses(self) -> tuple[FormUse, ...]:
        return (
            FormUse(
                form_id="form-cgl",
                form_version_id="fv-2024",
                use_type="base",
                product_version_id="pv-1",
                coverage_version_id="cv-1",
                state_code="CA",
                product_name="Commercial GL",
            ),
            FormUse(
                form_id="form-cgl",
                form_version_id="fv-2024",
                use_type="endorsement",
                product_version_id="pv-1",
            ),
        )

    def _links(self) -> tuple[ClauseLink, ...]:
        return (
            ClauseLink(clause_id="cl-1", clause_name="War Exclusion", rule_version_id="rv-1"),
        )

    def test_candidates(self) -> None:
        left, right = _editions()
        diffs = diff_sections(left.sections, right.sections, left.chunks, right.chunks)
        candidates = compute_impact(diffs, self._uses(), self._links())
        assert [(c.target_type, c.target_id, c.severity) for c in candidates] == [
            ("product", "pv-1", "high"),
            ("coverage", "cv-1", "high"),
            ("state", "CA", "low"),
            ("rule", "rv-1", "medium"),
            ("clause", "cl-1", "medium"),
        ]
        product, coverage, _, rule, clause = candidates
        assert product.target_label == "Commercial GL"
        assert product.reason == "Form is attached to this product (base)"
        assert coverage.target_label == "cv-1"
        assert rule.reason == 'Clause "War Exclusion" is linked to this rule'
        assert clause.target_label == "War Exclusion"
        assert all(c.affected_section_keys == ("EXCLUSIONS", "CONDITIONS") for c in candidates)

    def test_no_changes_no_candidates(self) -> None:
        left, _ = _editions()
        diffs = diff_sections(left.sections, left.sections, left.chunks, left.chunks)
        assert compute_impact(diffs, self._uses(), self._links()) == ()

    def test_severity_is_max_over_changed_sections(self) -> None:
        diffs = diff_sections(
            [_section("CONDITIONS", "condition"), _section("SCHEDULE", "schedule")], [], [], [],
        )
        (product,) = compute_impact(
            diffs,
            (FormUse(form_id="f", form_version_id="v", use_type="base", product_version_id="pv-9"),),
            (),
        )
        assert product.severity == "medium"
        assert product.target_label == "pv-9"


# ---------------------------------------------------------------------------
# Stats & orchestration
# ---------------------------------------------------------------------------

def test_compute_stats_totals() -> None:
    left, right = _editions()
    section_diffs = diff_sections(left.sections, right.sections, left.chunks, right.chunks)
    chunk_diffs = diff_chunks(left.chunks, right.chunks)
    stats = compute_stats(section_diffs, chunk_diffs, ())
    assert stats.total_sections == (
        stats.unchanged_sections + stats.modified_sections
        + stats.added_sections + stats.removed_sections
    )
    assert stats.total_chunks == 3
    assert (stats.unchanged_chunks, stats.modified_chunks, stats.added_chunks) == (1, 1, 1)
    assert stats.impact_candidate_count == 0


def test_run_redline_comparison() -> None:
    left, right = _editions()
    result = run_redline_comparison(
        _redline_input(left, right, clause_links=(ClauseLink(clause_id="cl-1"),))
    )
    assert result.form_number == "CG 00 01"
    assert result.left_version_id == "fv-2019"
    assert result.right_version_id == "fv-2024"
    assert result.stats.modified_sections == 1
    assert result.stats.added_sections == 1
    assert result.stats.unchanged_sections == 1
    assert result.stats.impact_candidate_count == 1
    assert result.impact_candidates[0].target_label == "cl-1"


def test_run_redline_comparison_deterministic() -> None:
    left, right = _editions()
    assert run_redline_comparison(_redline_input(left, right)) == run_redline_comparison(
        _redline_input(left, right)
    )
