"""Tests for contract_truth.io_utils."""
from __future__ import annotations

from pathlib import Path

from contract_truth.ingestion_types import ContentAnchor
from contract_truth.io_utils import dumps_json, load_json, save_json, to_jsonable


def test_save_json_creates_parents_and_sorts_keys(tmp_path: Path) -> None:
    path = tmp_path / "a" / "b" / "out.json"
    save_json({"b": 1, "a": [1, 2]}, path)
    text = path.read_text()
    assert text.index('"a"') < text.index('"b"')
    assert "\n  " in text
    assert load_json(path) == {"a": [1, 2], "b": 1}


def test_dumps_json_compact() -> None:
    assert dumps_json({"b": 1, "a": None}, pretty=False) == b'{"a":null,"b":1}'


def test_dataclasses_serialize_natively() -> None:
    anchor = ContentAnchor(hash="00001505", slug="coverage-a", anchor_text="COVERAGE A", page=1, offset=0)
    assert to_jsonable((anchor,)) == [
        {
            "hash": "00001505",
            "slug": "coverage-a",
            "anchor_text": "COVERAGE A",
            "page": 1,
            "offset": 0,
        }
    ]
