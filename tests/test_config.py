"""Tests for contract_truth.config."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from contract_truth.config import (
    DEFAULT_GROUNDING_CONFIG,
    DEFAULT_INGESTION_CONFIG,
    GroundingConfig,
    IngestionConfig,
    PipelineConfig,
    load_pipeline_config,
    pipeline_config_from_dict,
    pipeline_config_to_dict,
)


def test_defaults() -> None:
    assert DEFAULT_INGESTION_CONFIG.min_flush_chars == 100
    assert DEFAULT_INGESTION_CONFIG.anchor_max_chars == 120
    assert DEFAULT_INGESTION_CONFIG.heading_max_chars == 120
    assert DEFAULT_INGESTION_CONFIG.hash_algorithm == "djb2"
    assert DEFAULT_GROUNDING_CONFIG == GroundingConfig(
        max_citations=5, excerpt_chars=300, min_word_chars=4,
    )
    assert load_pipeline_config(None) == PipelineConfig()


class TestOverrides:
    def test_partial_override(self) -> None:
        config = pipeline_config_from_dict(
            {"ingestion": {"min_flush_chars": 80}, "grounding": {"max_citations": 8}}
        )
        assert config.ingestion == IngestionConfig(min_flush_chars=80)
        assert config.grounding.max_citations == 8
        assert config.grounding.excerpt_chars == 300

    def test_numeric_strings_coerced(self) -> None:
        config = pipeline_config_from_dict(
            {"ingestion": {"min_flush_chars": "150", "ocr_min_alnum_ratio": "0.5"}}
        )
        assert config.ingestion.min_flush_chars == 150
        assert config.ingestion.ocr_min_alnum_ratio == 0.5

    def test_invalid_values_keep_defaults(self) -> None:
        config = pipeline_config_from_dict(
            {
                "ingestion": {
                    "min_flush_chars": "many",
                    "heading_min_chars": True,
                    "hash_algorithm": "md5",
                },
                "grounding": {"max_citations": None},
            }
        )
        assert config == PipelineConfig()

    def test_negative_counts_clamped(self) -> None:
        config = pipeline_config_from_dict({"grounding": {"max_citations": -3}})
        assert config.grounding.max_citations == 0

    def test_unknown_keys_and_sections_ignored(self) -> None:
        config = pipeline_config_from_dict(
            {"ingestion": {"no_such_knob": 1}, "grounding": "nope", "extra": {}}
        )
        assert config == PipelineConfig()

    def test_non_mapping_gives_defaults(self) -> None:
        assert pipeline_config_from_dict([1, 2]) == PipelineConfig()


class TestLoad:
    def test_load_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"ingestion": {"hash_algorithm": "sha256"}}))
        config = load_pipeline_config(path)
        assert config.ingestion.hash_algorithm == "sha256"
        assert config.grounding == DEFAULT_GROUNDING_CONFIG

    def test_non_object_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text("[]")
        with pytest.raises(ValueError, match="expected a JSON object"):
            load_pipeline_config(path)

    def test_to_dict_roundtrip(self) -> None:
        config = pipeline_config_from_dict({"grounding": {"excerpt_chars": 120}})
        data = pipeline_config_to_dict(config)
        assert data["grounding"]["excerpt_chars"] == 120
        assert data["ingestion"]["hash_algorithm"] == "djb2"
        assert pipeline_config_from_dict(data) == config
