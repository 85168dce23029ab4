#!/usr/bin/env python3
"""Compare two ingested editions of one form.

Takes two ingestion results (as written by ``ingest_pages.py``) and emits the
redline: section diffs, chunk diffs, impact candidates and stats. Optional
``--relations`` supplies the form's uses and clause links for impact analysis.

Usage:
    python3 scripts/redline_compare.py \
        --left out/fv-cgl-2013.ingestion.json \
        --right out/fv-cgl-2019.ingestion.json \
        --relations relations.json --form-number "CG 00 01" \
        --left-edition 2013-04 --right-edition 2019-12

Structured JSON output goes to stdout (or --output); human messages go to stderr.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

from contract_truth.ingestion_types import IngestionResult, ingestion_result_from_dict
from contract_truth.io_utils import dumps_json, load_json, save_json
from contract_truth.redline import repeated_section_paths, run_redline_comparison
from contract_truth.redline_types import RedlineInput, form_relations_from_dict

log = logging.getLogger("redline_compare")


def dump_json(obj: Any, output: Path | None) -> None:
    if output is not None:
        save_json(obj, output, pretty=True)
        return
    sys.stdout.buffer.write(dumps_json(obj, pretty=True))
    sys.stdout.buffer.write(b"\n")


def _load_ingestion(path: Path, where: str) -> IngestionResult:
    return ingestion_result_from_dict(load_json(path), where)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Section/chunk redline and impact candidates between two form editions.",
    )
    parser.add_argument("--left", type=Path, required=True, help="Older edition ingestion JSON")
    parser.add_argument("--right", type=Path, required=True, help="Newer edition ingestion JSON")
    parser.add_argument(
        "--relations",
        type=Path,
        default=None,
        help='Optional {"form_uses": [...], "clause_links": [...]} JSON',
    )
    parser.add_argument("--form-number", default="", help="Display form number")
    parser.add_argument("--form-title", default="", help="Display form title")
    parser.add_argument("--left-edition", default="", help="Older edition date label")
    parser.add_argument("--right-edition", default="", help="Newer edition date label")
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the comparison here instead of stdout",
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

    for path in (args.left, args.right, args.relations):
        if path is not None and not path.exists():
            log.error("File not found: %s", path)
            return 1

    try:
        left = _load_ingestion(args.left, "left")
        right = _load_ingestion(args.right, "right")
        uses, links = (
            form_relations_from_dict(load_json(args.relations), "relations")
            if args.relations is not None
            else ((), ())
        )
    except ValueError as exc:
        log.error("Invalid payload: %s", exc)
        return 2

    if left.form_id and right.form_id and left.form_id != right.form_id:
        log.error(
            "Editions belong to different forms: %s vs %s", left.form_id, right.form_id,
        )
        return 2

    for side, result in (("right", right), ("left", left)):
        repeated = repeated_section_paths(result.sections)
        if repeated:
            log.warning(
                "%s edition %s repeats section paths %s; the last section per path is compared",
                side,
                result.form_version_id,
                ", ".join(repeated),
            )

    comparison = run_redline_comparison(
        RedlineInput(
            form_id=left.form_id or right.form_id,
            form_number=args.form_number,
            form_title=args.form_title,
            left_version_id=left.form_version_id,
            left_edition_date=args.left_edition,
            right_version_id=right.form_version_id,
            right_edition_date=args.right_edition,
            left_sections=left.sections,
            right_sections=right.sections,
            left_chunks=left.chunks,
            right_chunks=right.chunks,
            form_uses=uses,
            clause_links=links,
        )
    )

    stats = comparison.stats
    log.info(
        "Sections: %d unchanged, %d modified, %d added, %d removed",
        stats.unchanged_sections,
        stats.modified_sections,
        stats.added_sections,
        stats.removed_sections,
    )
    log.info(
        "Chunks: %d unchanged, %d modified, %d added, %d removed; %d impact candidates",
        stats.unchanged_chunks,
        stats.modified_chunks,
        stats.added_chunks,
        stats.removed_chunks,
        stats.impact_candidate_count,
    )
    for candidate in comparison.impact_candidates:
        log.debug(
            "[%s] %s %s: %s",
            candidate.severity,
            candidate.target_type,
            candidate.target_id,
            candidate.reason,
        )

    dump_json(comparison, args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
