#!/usr/bin/env python3
"""Ingest extracted page text for one form edition.

Reads a pages payload (a JSON array of ``{page_number, text, char_count}``
objects, or an object with a ``pages`` array, as written by the PDF
extraction step) and runs the ingestion pipeline: chunks, sections, anchors,
warnings and a quality score.

Usage:
    python3 scripts/ingest_pages.py --pages pages.json \
        --form-id form-cgl --form-version-id fv-cgl-2019 \
        --output out/fv-cgl-2019.ingestion.json --manifest
    python3 scripts/ingest_pages.py --pages pages.json \
        --form-id form-cgl --form-version-id fv-cgl-2019 --summary

Structured JSON output goes to stdout (or --output); human messages go to stderr.
"""
from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Any

from contract_truth.config import load_pipeline_config, pipeline_config_to_dict
from contract_truth.ingestion import run_ingestion_pipeline, summarize_ingestion
from contract_truth.ingestion_types import IngestionInput, pages_from_payload
from contract_truth.io_utils import dumps_json, load_json, save_json
from contract_truth.run_manifest import (
    build_manifest,
    compare_manifests,
    default_manifest_path,
    generate_run_id,
    git_commit_hash,
    load_manifest,
    payload_fingerprint,
    write_manifest,
)

log = logging.getLogger("ingest_pages")


def dump_json(obj: Any, output: Path | None) -> None:
    if output is not None:
        save_json(obj, output, pretty=True)
        return
    sys.stdout.buffer.write(dumps_json(obj, pretty=True))
    sys.stdout.buffer.write(b"\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Build the hash-anchored structural model of one form edition.",
    )
    parser.add_argument("--pages", type=Path, required=True, help="Pages JSON payload")
    parser.add_argument("--form-id", required=True, help="Form identifier")
    parser.add_argument("--form-version-id", required=True, help="Form edition identifier")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional pipeline config JSON (ingestion/grounding overrides)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the result here instead of stdout",
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Emit counts only (chunks, sections, anchors, warnings) instead of the full result",
    )
    parser.add_argument(
        "--manifest",
        action="store_true",
        help="Write run_manifest.json next to --output, compared with the previous one there",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.manifest and args.output is None:
        parser.error("--manifest requires --output")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    run_id = generate_run_id("ingestion")
    t0 = time.time()

    if not args.pages.exists():
        log.error("Pages file not found: %s", args.pages)
        return 1
    if args.config is not None and not args.config.exists():
        log.error("Config file not found: %s", args.config)
        return 1

    try:
        config = load_pipeline_config(args.config)
        pages = pages_from_payload(load_json(args.pages))
    except ValueError as exc:
        log.error("Invalid payload: %s", exc)
        return 2
    log.info("Loaded %d pages from %s", len(pages), args.pages)

    t_ingest = time.time()
    result = run_ingestion_pipeline(
        IngestionInput(
            pages=pages,
            form_id=args.form_id,
            form_version_id=args.form_version_id,
        ),
        config.ingestion,
    )
    ingest_sec = time.time() - t_ingest

    for warning in result.warnings:
        level = logging.WARNING if warning.severity == "error" else logging.DEBUG
        log.log(level, "[%s] %s", warning.type, warning.message)
    log.info(
        "Ingested %s: %d chunks, %d sections, quality %d/100",
        args.form_version_id,
        len(result.chunks),
        len(result.sections),
        result.quality_score,
    )

    summary = summarize_ingestion(result)
    dump_json(summary if args.summary else result, args.output)

    if args.manifest:
        previous: dict[str, Any] | None = None
        previous_path = default_manifest_path(args.output)
        if previous_path.exists():
            try:
                previous = load_manifest(previous_path)
            except ValueError as exc:
                log.warning("Ignoring unreadable previous manifest %s: %s", previous_path, exc)

        manifest = build_manifest(
            run_id=run_id,
            command="ingest_pages",
            input_fingerprint=payload_fingerprint(pages),
            output_fingerprint=payload_fingerprint(result),
            output_counts={
                "chunks": summary.chunk_count,
                "sections": summary.section_count,
                "anchors": summary.total_anchors,
                "warnings": len(result.warnings),
            },
            timings_sec={"ingest": round(ingest_sec, 4), "total": round(time.time() - t0, 4)},
            config=pipeline_config_to_dict(config),
            git_commit=git_commit_hash(search_from=args.pages.resolve()),
            notes={
                "form_id": args.form_id,
                "form_version_id": args.form_version_id,
                "quality_score": result.quality_score,
            },
        )
        if previous is not None:
            comparison = compare_manifests(manifest, previous)
            manifest["previous_run_comparison"] = comparison
            if comparison["reproducible"]:
                log.info(
                    "Compared with run %s: input %s, output %s",
                    comparison["previous_run_id"],
                    "changed" if comparison["input_changed"] else "unchanged",
                    "changed" if comparison["output_changed"] else "unchanged",
                )
            else:
                log.warning(
                    "Output differs from run %s despite identical input and config",
                    comparison["previous_run_id"],
                )
        canonical, versioned = write_manifest(args.output, manifest)
        log.info("Run manifest: %s", canonical)
        log.info("Versioned manifest: %s", versioned)
    return 0


if __name__ == "__main__":
    sys.exit(main())
