"""Shape checks for JSON payloads read from disk.

Records come from two producers: this package (snake_case keys) and the
external extraction and persistence layers (camelCase keys). ``get_field`` looks
up a snake_case key and falls back to its camelCase alias, so one reader
accepts both.

Malformed payloads raise ``ValueError`` naming the offending location.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, cast

_MISSING: Any = object()


def camel_case(key: str) -> str:
    """``form_version_id`` -> ``formVersionId``."""
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def require_mapping(data: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"{where}: expected a JSON object, got {type(data).__name__}")
    return cast(Mapping[str, Any], data)


def require_list(data: Any, where: str) -> list[Any]:
    if not isinstance(data, list):
        raise ValueError(f"{where}: expected a JSON array, got {type(data).__name__}")
    return cast(list[Any], data)


def get_field(data: Mapping[str, Any], key: str, where: str, default: Any = _MISSING) -> Any:
    """Value at ``key`` (or its camelCase alias); ``default`` when absent.

    Without a default, a missing key raises ``ValueError``.
    """
    if key in data:
        return data[key]
    alias = camel_case(key)
    if alias in data:
        return data[alias]
    if default is _MISSING:
        raise ValueError(f"{where}: missing required key {key!r}")
    return default


def str_field(data: Mapping[str, Any], key: str, where: str, default: Any = _MISSING) -> str:
    value = get_field(data, key, where, default)
    if not isinstance(value, str):
        raise ValueError(f"{where}.{key}: expected a string, got {type(value).__name__}")
    return value


def opt_str_field(data: Mapping[str, Any], key: str, where: str) -> str | None:
    value = get_field(data, key, where, None)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{where}.{key}: expected a string or null, got {type(value).__name__}")
    return value


def int_field(data: Mapping[str, Any], key: str, where: str, default: Any = _MISSING) -> int:
    value = get_field(data, key, where, default)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{where}.{key}: expected an integer, got {type(value).__name__}")
    return value


def bool_field(data: Mapping[str, Any], key: str, where: str, default: Any = _MISSING) -> bool:
    value = get_field(data, key, where, default)
    if not isinstance(value, bool):
        raise ValueError(f"{where}.{key}: expected a boolean, got {type(value).__name__}")
    return value


def list_field(data: Mapping[str, Any], key: str, where: str, default: Any = _MISSING) -> list[Any]:
    return require_list(get_field(data, key, where, default), f"{where}.{key}")


def str_tuple_field(data: Mapping[str, Any], key: str, where: str) -> tuple[str, ...]:
    items = list_field(data, key, where, [])
    out: list[str] = []
    for i, item in enumerate(items):
        if not isinstance(item, str):
            raise ValueError(f"{where}.{key}[{i}]: expected a string, got {type(item).__name__}")
        out.append(item)
    return tuple(out)


def choice_field(
    data: Mapping[str, Any],
    key: str,
    where: str,
    choices: tuple[str, ...],
    default: Any = _MISSING,
) -> str:
    value = str_field(data, key, where, default)
    if value not in choices:
        raise ValueError(
            f"{where}.{key}: {value!r} is not one of {', '.join(choices)}"
        )
    return value
