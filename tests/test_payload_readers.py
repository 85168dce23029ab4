"""Tests for the JSON payload readers (``*_from_dict``) and payload helpers."""
from __future__ import annotations

import pytest

from contract_truth.grounding import ground_analysis
from contract_truth.grounding_types import (
    AnalysisStructuredFields,
    FormSourceSnapshot,
    GroundingInput,
    analysis_snapshot_from_dict,
    grounded_fields_from_dict,
    grounding_input_from_dict,
    structured_fields_from_dict,
)
from contract_truth.ingestion import run_ingestion_pipeline
from contract_truth.ingestion_types import (
    IngestionInput,
    IngestionResult,
    PageText,
    ingestion_result_from_dict,
    page_text_from_dict,
    pages_from_payload,
    warning_from_dict,
)
from contract_truth.io_utils import to_jsonable
from contract_truth.payload import camel_case, get_field, int_field
from contract_truth.redline import run_redline_comparison
from contract_truth.redline_types import (
    ClauseLink,
    FormUse,
    RedlineInput,
    form_use_from_dict,
    redline_input_from_dict,
)


def _ingest(version_id: str = "fv-1") -> IngestionResult:
    texts = [
        "COVERAGE A BODILY INJURY\n" + "We will pay damages because of bodily injury.\n" * 3,
        "EXCLUSIONS\n" + "Expected or intended injury is not covered.\n" * 3,
        "x",
    ]
    pages = tuple(PageText(i + 1, t, len(t)) for i, t in enumerate(texts))
    return run_ingestion_pipeline(IngestionInput(pages, "form-1", version_id))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestPayloadHelpers:
    def test_camel_case(self) -> None:
        assert camel_case("form_version_id") == "formVersionId"
        assert camel_case("page") == "page"

    def test_camel_case_alias_lookup(self) -> None:
        assert get_field({"formVersionId": "fv-1"}, "form_version_id", "x") == "fv-1"
        assert get_field({"form_version_id": "a", "formVersionId": "b"}, "form_version_id", "x") == "a"

    def test_missing_required_key(self) -> None:
        with pytest.raises(ValueError, match="page: missing required key 'page_number'"):
            page_text_from_dict({"text": "x"})

    def test_bool_is_not_an_integer(self) -> None:
        with pytest.raises(ValueError, match="expected an integer, got bool"):
            int_field({"page": True}, "page", "anchor")


# ---------------------------------------------------------------------------
# Ingestion payloads
# ---------------------------------------------------------------------------

class TestIngestionReaders:
    def test_pages_bare_list_and_wrapped(self) -> None:
        raw = [{"pageNumber": 1, "text": "COVERAGE A", "charCount": 10}, {"page_number": 2, "text": "abc"}]
        pages = pages_from_payload(raw)
        assert pages == (PageText(1, "COVERAGE A", 10), PageText(2, "abc", 3))
        assert pages_from_payload({"pages": raw}) == pages

    @pytest.mark.parametrize("page_number", [0, -1])
    def test_page_numbers_are_one_based(self, page_number: int) -> None:
        with pytest.raises(ValueError, match=r"pages\[0\].page_number: pages are 1-based"):
            pages_from_payload([{"page_number": page_number, "text": "COVERAGE A"}])

    def test_pages_not_a_list(self) -> None:
        with pytest.raises(ValueError, match="pages: expected a JSON array, got str"):
            pages_from_payload("nope")

    def test_ingestion_result_roundtrip(self) -> None:
        result = _ingest()
        assert result.warnings
        assert ingestion_result_from_dict(to_jsonable(result)) == result

    def test_unknown_section_type_rejected(self) -> None:
        data = to_jsonable(_ingest())
        data["sections"][0]["type"] = "rider"
        with pytest.raises(ValueError, match=r"ingestion.sections\[0\].type: 'rider' is not one of"):
            ingestion_result_from_dict(data)

    def test_warning_page_ref_optional(self) -> None:
        warning = warning_from_dict(
            {"type": "short_document", "message": "m", "severity": "warning"}
        )
        assert warning.page_ref is None
        with pytest.raises(ValueError, match="page_ref"):
            warning_from_dict(
                {"type": "truncated", "message": "m", "severity": "error", "pageRef": "2"}
            )


# ---------------------------------------------------------------------------
# Redline payloads
# ---------------------------------------------------------------------------

class TestRedlineReaders:
    def test_redline_input_roundtrip(self) -> None:
        left, right = _ingest("fv-1"), _ingest("fv-2")
        redline_input = RedlineInput(
            form_id="form-1",
            form_number="CG 00 01",
            form_title="CGL",
            left_version_id="fv-1",
            left_edition_date="04/13",
            right_version_id="fv-2",
            right_edition_date="12/19",
            left_sections=left.sections,
            right_sections=right.sections,
            left_chunks=left.chunks,
            right_chunks=right.chunks,
            form_uses=(FormUse("form-1", "fv-2", "base", product_version_id="pv-1"),),
            clause_links=(ClauseLink("cl-1"),),
        )
        parsed = redline_input_from_dict(to_jsonable(redline_input))
        assert parsed == redline_input
        assert run_redline_comparison(parsed) == run_redline_comparison(redline_input)

    def test_form_use_defaults_and_validation(self) -> None:
        use = form_use_from_dict({"formId": "f", "formVersionId": "v"})
        assert use.use_type == "base"
        with pytest.raises(ValueError, match="form_use.use_type: 'primary' is not one of"):
            form_use_from_dict({"form_id": "f", "form_version_id": "v", "use_type": "primary"})


# ---------------------------------------------------------------------------
# Grounding payloads
# ---------------------------------------------------------------------------

class TestGroundingReaders:
    def test_structured_fields_camel_case(self) -> None:
        sf = structured_fields_from_dict(
            {
                "determination": "covered",
                "applicableCoverages": ["Coverage A applies."],
                "conditionsAndLimitations": ["Notice is required."],
            }
        )
        assert sf == AnalysisStructuredFields(
            determination="covered",
            applicable_coverages=("Coverage A applies.",),
            conditions_and_limitations=("Notice is required.",),
        )

    def test_structured_fields_rejects_non_strings(self) -> None:
        with pytest.raises(ValueError, match=r"recommendations\[1\]: expected a string"):
            structured_fields_from_dict(
                {"determination": "covered", "recommendations": ["ok", 3]}
            )

    def test_grounding_input_from_ingestions(self) -> None:
        result = _ingest()
        data = {
            "structured_fields": {"determination": "covered"},
            "sources": [{"form_version_id": "fv-1", "form_number": "CG 00 01"}],
            "ingestions": [to_jsonable(result)],
            "existingCitations": [{"formVersionId": "fv-1", "section": "Coverage A"}],
        }
        grounding_input = grounding_input_from_dict(data)
        assert grounding_input.sections_by_form_version == {"fv-1": result.sections}
        assert grounding_input.chunks_by_form_version == {"fv-1": result.chunks}
        assert grounding_input.sources[0].status == "published"
        assert grounding_input.existing_citations[0].excerpt_text is None

    def test_grounded_fields_and_snapshot_roundtrip(self) -> None:
        result = _ingest()
        fields = ground_analysis(
            GroundingInput(
                structured_fields=AnalysisStructuredFields(
                    determination="partially_covered",
                    applicable_coverages=("Coverage A bodily injury applies.",),
                    relevant_exclusions=("Expected or intended injury exclusions apply.",),
                ),
                sources=(FormSourceSnapshot("form-1", "fv-1", "CG 00 01", "CGL", "04/13"),),
                sections_by_form_version={"fv-1": result.sections},
                chunks_by_form_version={"fv-1": result.chunks},
            ),
            analysis_version=2,
            prior_analysis_id="an-1",
        )
        assert any(c.citations for c in fields.conclusions)
        assert grounded_fields_from_dict(to_jsonable(fields)) == fields

        snapshot = analysis_snapshot_from_dict(
            {"id": "an-2", "determination": "partially_covered", "grounded": to_jsonable(fields)}
        )
        assert snapshot.grounded == fields
