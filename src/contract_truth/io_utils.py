"""I/O utilities for JSON files.

orjson handles all encoding; frozen dataclasses (chunks, sections, diffs,
conclusions) serialize natively, so results are written without a manual
to-dict pass.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson


def load_json(path: Path) -> Any:
    """Load JSON from a file."""
    return orjson.loads(path.read_bytes())


def dumps_json(obj: Any, *, pretty: bool = True) -> bytes:
    """Encode an object (dataclasses included) to JSON bytes with sorted keys."""
    opts = orjson.OPT_SORT_KEYS
    if pretty:
        opts |= orjson.OPT_INDENT_2
    return orjson.dumps(obj, option=opts)


def to_jsonable(obj: Any) -> Any:
    """Round-trip through orjson to get plain dicts/lists for dataclass trees."""
    return orjson.loads(orjson.dumps(obj))


def save_json(obj: Any, path: Path, *, pretty: bool = True) -> None:
    """Save an object as JSON, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(dumps_json(obj, pretty=pretty))

