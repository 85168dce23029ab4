#!/usr/bin/env python3
"""Ground a coverage analysis in the clause anchors of its source forms.

Reads the upstream analysis (structured fields, flat citations, markdown
output) plus one ingestion result per cited form edition, and emits cited
conclusions, open questions and decision gates. With ``--compare-with`` the
run is treated as a re-analysis: the version number advances from the prior
run and a delta report is attached.

Usage:
    python3 scripts/ground_analysis.py --analysis analysis.json \
        --ingestion out/fv-cgl-2019.ingestion.json --sources sources.json
    python3 scripts/ground_analysis.py --analysis analysis-v2.json \
        --ingestion out/fv-cgl-2019.ingestion.json --sources sources.json \
        --compare-with out/analysis-v1.grounded.json --output out/analysis-v2.grounded.json

The output object has two keys: ``analysis`` (id, determination, grounded
fields) and ``comparison`` (null unless ``--compare-with`` is given). Either
the whole object or its ``analysis`` member is accepted by ``--compare-with``.

Structured JSON output goes to stdout (or --output); human messages go to stderr.
"""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

from contract_truth.config import load_pipeline_config
from contract_truth.grounding import compare_analyses, ground_analysis, next_analysis_version
from contract_truth.grounding_types import (
    AnalysisSnapshot,
    GroundingInput,
    analysis_snapshot_from_dict,
    grounding_input_from_dict,
    sources_from_list,
)
from contract_truth.ingestion_types import ingestion_result_from_dict
from contract_truth.io_utils import dumps_json, load_json, save_json

log = logging.getLogger("ground_analysis")


def dump_json(obj: Any, output: Path | None) -> None:
    if output is not None:
        save_json(obj, output, pretty=True)
        return
    sys.stdout.buffer.write(dumps_json(obj, pretty=True))
    sys.stdout.buffer.write(b"\n")


def load_prior_snapshot(path: Path) -> AnalysisSnapshot:
    """Read a prior run's output, or a bare analysis snapshot."""
    data = load_json(path)
    if isinstance(data, dict) and "analysis" in data:
        return analysis_snapshot_from_dict(data["analysis"], "prior.analysis")
    return analysis_snapshot_from_dict(data, "prior")


def load_grounding_input(
    analysis_path: Path,
    ingestion_paths: list[Path],
    sources_path: Path | None,
) -> GroundingInput:
    """Analysis payload merged with ingestion files and a sources file."""
    grounding_input = grounding_input_from_dict(load_json(analysis_path), "analysis")

    sections = dict(grounding_input.sections_by_form_version)
    chunks = dict(grounding_input.chunks_by_form_version)
    for i, path in enumerate(ingestion_paths):
        result = ingestion_result_from_dict(load_json(path), f"ingestion[{i}]")
        if not result.form_version_id:
            raise ValueError(f"ingestion[{i}] ({path}) has no form_version_id")
        if result.form_version_id in sections:
            log.warning("Ingestion for %s given more than once; using %s",
                        result.form_version_id, path)
        sections[result.form_version_id] = result.sections
        chunks[result.form_version_id] = result.chunks

    sources = grounding_input.sources
    if sources_path is not None:
        sources = sources + sources_from_list(load_json(sources_path), "sources")

    return replace(
        grounding_input,
        sources=sources,
        sections_by_form_version=sections,
        chunks_by_form_version=chunks,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Cited conclusions, open questions and decision gates for an analysis.",
    )
    parser.add_argument("--analysis", type=Path, required=True, help="Analysis JSON payload")
    parser.add_argument(
        "--ingestion",
        type=Path,
        nargs="*",
        default=[],
        help="Ingestion result JSON, one per cited form edition",
    )
    parser.add_argument(
        "--sources",
        type=Path,
        default=None,
        help="JSON array of form source snapshots (number, title, edition)",
    )
    parser.add_argument("--analysis-id", default="current", help="Id recorded on the output")
    parser.add_argument(
        "--analysis-version",
        type=int,
        default=None,
        help="Explicit version (default: 1, or prior version + 1 with --compare-with)",
    )
    parser.add_argument("--prior-analysis-id", default=None, help="Explicit prior analysis id")
    parser.add_argument(
        "--compare-with",
        type=Path,
        default=None,
        help="Prior grounded output to diff against",
    )
    parser.add_argument("--config", type=Path, default=None, help="Optional pipeline config JSON")
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the result here instead of stdout",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    for path in (args.analysis, *args.ingestion, args.sources, args.compare_with, args.config):
        if path is not None and not path.exists():
            log.error("File not found: %s", path)
            return 1

    try:
        config = load_pipeline_config(args.config)
        grounding_input = load_grounding_input(args.analysis, args.ingestion, args.sources)
        prior = load_prior_snapshot(args.compare_with) if args.compare_with else None
    except ValueError as exc:
        log.error("Invalid payload: %s", exc)
        return 2

    analysis_version = args.analysis_version
    if analysis_version is None:
        analysis_version = next_analysis_version(prior.grounded if prior else None)
    prior_analysis_id = args.prior_analysis_id or (prior.id if prior else None)

    grounded = ground_analysis(
        grounding_input,
        analysis_version=analysis_version,
        prior_analysis_id=prior_analysis_id,
        config=config.grounding,
    )
    snapshot = AnalysisSnapshot(
        id=args.analysis_id,
        determination=grounding_input.structured_fields.determination,
        grounded=grounded,
    )

    uncited = [c.id for c in grounded.conclusions if not c.citations]
    log.info(
        "Analysis %s v%d: %d conclusions (%d uncited), %d open questions, %d gates",
        snapshot.id,
        analysis_version,
        len(grounded.conclusions),
        len(uncited),
        len(grounded.open_questions),
        len(grounded.decision_gates),
    )
    if uncited:
        log.debug("Uncited conclusions: %s", ", ".join(uncited))

    comparison = None
    if prior is not None:
        comparison = compare_analyses(prior, snapshot)
        log.info(
            "Compared with %s: determination %s, %d conclusions added, %d removed, "
            "%d questions resolved",
            prior.id,
            "changed" if comparison.determination_changed else "unchanged",
            comparison.stats.conclusions_added,
            comparison.stats.conclusions_removed,
            comparison.stats.questions_resolved,
        )

    dump_json({"analysis": snapshot, "comparison": comparison}, args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
