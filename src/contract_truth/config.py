"""Pipeline configuration.

Defaults are the production thresholds; a JSON config file only
needs the keys it overrides::

    {
      "ingestion": {"hash_algorithm": "sha256", "min_flush_chars": 80},
      "grounding": {"max_citations": 8}
    }

Unknown keys are ignored. Values that cannot be coerced to the field's type
are skipped and the default is kept.
"""
from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, TypeVar, cast

from contract_truth.hashing import HASH_ALGORITHMS, HashAlgorithm
from contract_truth.io_utils import load_json


@dataclass(frozen=True, slots=True)
class IngestionConfig:
    min_flush_chars: int = 100  # buffer must exceed this before a heading flushes it
    anchor_max_chars: int = 120
    heading_min_chars: int = 5
    heading_max_chars: int = 120  # all-caps lines at least this long are body text
    slug_max_chars: int = 60
    short_document_chars: int = 500
    low_density_page_chars: int = 50
    ocr_min_chars: int = 20
    ocr_min_alnum_ratio: float = 0.6
    max_control_chars: int = 5
    max_mojibake_runs: int = 2
    hash_algorithm: HashAlgorithm = "djb2"


@dataclass(frozen=True, slots=True)
class GroundingConfig:
    max_citations: int = 5
    excerpt_chars: int = 300
    min_word_chars: int = 4  # shorter title/anchor words never count as overlap


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    grounding: GroundingConfig = field(default_factory=GroundingConfig)


DEFAULT_INGESTION_CONFIG = IngestionConfig()
DEFAULT_GROUNDING_CONFIG = GroundingConfig()


def _coerce_hash_algorithm(value: Any) -> HashAlgorithm:
    if value not in HASH_ALGORITHMS:
        raise ValueError(f"unknown hash algorithm {value!r}")
    return cast(HashAlgorithm, value)


def _coerce_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("boolean is not a count")
    return max(0, int(value))


def _coerce_float(value: Any) -> float:
    return max(0.0, float(value))


def _coercer(name: str, default: Any) -> Callable[[Any], Any]:
    if name == "hash_algorithm":
        return _coerce_hash_algorithm
    if isinstance(default, float):
        return _coerce_float
    return _coerce_int


C = TypeVar("C", IngestionConfig, GroundingConfig)


def _apply_overrides(
    base: C, overrides: Any,
) -> C:
    if not isinstance(overrides, Mapping):
        return base
    updates: dict[str, Any] = {}
    for f in fields(base):
        if f.name not in overrides:
            continue
        coerce = _coercer(f.name, getattr(base, f.name))
        try:
            updates[f.name] = coerce(overrides[f.name])
        except (TypeError, ValueError):
            continue
    return replace(base, **updates) if updates else base


def pipeline_config_from_dict(data: Any) -> PipelineConfig:
    """Build a config from a (possibly partial) mapping; non-mappings give defaults."""
    if not isinstance(data, Mapping):
        return PipelineConfig()
    payload = cast(Mapping[str, Any], data)
    return PipelineConfig(
        ingestion=_apply_overrides(IngestionConfig(), payload.get("ingestion")),
        grounding=_apply_overrides(GroundingConfig(), payload.get("grounding")),
    )


def load_pipeline_config(path: Path | None) -> PipelineConfig:
    """Load a JSON config file; ``None`` means all defaults."""
    if path is None:
        return PipelineConfig()
    data = load_json(path)
    if not isinstance(data, dict):
        raise ValueError(f"Invalid config payload in {path}: expected a JSON object")
    return pipeline_config_from_dict(data)


def pipeline_config_to_dict(config: PipelineConfig) -> dict[str, Any]:
    return asdict(config)
