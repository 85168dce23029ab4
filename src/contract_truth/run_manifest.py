"""Run-manifest utilities for pipeline reproducibility and comparison.

A manifest records what a CLI run consumed and produced: fingerprints of the
input payload and of the output, output counts, timings, the effective config
and the git commit. Two runs over the same input must produce the same output
fingerprint; ``compare_manifests`` reports whether they did.
"""
from __future__ import annotations

import hashlib
import subprocess
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

import orjson

from contract_truth.io_utils import load_json, save_json

MANIFEST_VERSION = "1.0"
MANIFEST_FILENAME = "run_manifest.json"


def utc_now_iso() -> str:
    """Return current UTC timestamp in ISO-8601 format."""
    return datetime.now(UTC).isoformat()


def generate_run_id(prefix: str = "ingestion") -> str:
    """Generate a compact run id suitable for artifact naming."""
    ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
    return f"{prefix}_{ts}_{uuid4().hex[:8]}"


def default_manifest_path(output_path: Path) -> Path:
    """Canonical sidecar manifest path next to a run's output file."""
    return output_path.parent / MANIFEST_FILENAME


def versioned_manifest_path(output_path: Path, run_id: str) -> Path:
    """Run-id-specific sidecar manifest path next to a run's output file."""
    return output_path.parent / f"run_manifest_{run_id}.json"


def git_commit_hash(*, search_from: Path | None = None) -> str | None:
    """Best-effort current git commit hash for reproducibility metadata."""
    cwd = search_from or Path.cwd()
    if cwd.is_file():
        cwd = cwd.parent
    try:
        proc = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return None
    if proc.returncode != 0:
        return None
    out = proc.stdout.strip()
    return out if out else None


def payload_fingerprint(obj: Any) -> str:
    """SHA-256 over the sorted-key JSON encoding of ``obj`` (dataclasses included)."""
    return hashlib.sha256(orjson.dumps(obj, option=orjson.OPT_SORT_KEYS)).hexdigest()


def build_manifest(
    *,
    run_id: str,
    command: str,
    input_fingerprint: str,
    output_fingerprint: str,
    output_counts: dict[str, int],
    timings_sec: dict[str, float],
    config: dict[str, Any] | None = None,
    git_commit: str | None = None,
    notes: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build canonical manifest payload for one pipeline run."""
    return {
        "manifest_version": MANIFEST_VERSION,
        "created_at": utc_now_iso(),
        "run_id": run_id,
        "command": command,
        "git_commit": git_commit,
        "input_fingerprint": input_fingerprint,
        "output_fingerprint": output_fingerprint,
        "output_counts": {k: int(v) for k, v in output_counts.items()},
        "timings_sec": timings_sec,
        "config": config or {},
        "notes": notes or {},
    }


def write_manifest(
    output_path: Path,
    manifest: dict[str, Any],
) -> tuple[Path, Path]:
    """Write canonical + versioned manifest files side-by-side with the output."""
    canonical = default_manifest_path(output_path)
    versioned = versioned_manifest_path(output_path, str(manifest["run_id"]))
    save_json(manifest, canonical, pretty=True)
    save_json(manifest, versioned, pretty=True)
    return canonical, versioned


def load_manifest(path: Path) -> dict[str, Any]:
    """Load a manifest from JSON."""
    data = load_json(path)
    if not isinstance(data, dict):
        raise ValueError(f"Invalid manifest payload in {path}")
    return data


def compare_manifests(
    current: dict[str, Any],
    previous: dict[str, Any],
) -> dict[str, Any]:
    """Compare two manifest payloads and produce deterministic deltas."""
    curr_counts = current.get("output_counts", {})
    prev_counts = previous.get("output_counts", {})
    curr_counts = curr_counts if isinstance(curr_counts, dict) else {}
    prev_counts = prev_counts if isinstance(prev_counts, dict) else {}

    keys = sorted(set(curr_counts.keys()) | set(prev_counts.keys()))
    count_delta: dict[str, int] = {}
    for key in keys:
        curr_val = int(curr_counts.get(key, 0) or 0)
        prev_val = int(prev_counts.get(key, 0) or 0)
        count_delta[key] = curr_val - prev_val

    input_changed = current.get("input_fingerprint") != previous.get("input_fingerprint")
    output_changed = current.get("output_fingerprint") != previous.get("output_fingerprint")
    config_changed = current.get("config", {}) != previous.get("config", {})

    return {
        "current_run_id": current.get("run_id"),
        "previous_run_id": previous.get("run_id"),
        "input_changed": input_changed,
        "config_changed": config_changed,
        "output_changed": output_changed,
        # Same input and config must reproduce the same output.
        "reproducible": input_changed or config_changed or not output_changed,
        "output_count_delta": count_delta,
    }
