"""Core types for document ingestion.

Type hierarchy:
  PageText         - One extracted page (input)
  ContentAnchor    - Stable, content-hashed pointer to a heading line
  Chunk            - Contiguous span of text between section headings
  Section          - Adjacent chunks sharing a heading path and type
  IngestionWarning - Quality signal about the extracted text
  IngestionInput   - Pages plus the form identifiers they belong to
  IngestionResult  - Full structural model of one form edition
  IngestionSummary - Counts derived from an IngestionResult for reporting

Every ``*_from_dict`` reader accepts snake_case keys and the camelCase keys
used by the extraction and persistence layers.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal, cast, TypeAlias

from contract_truth.payload import (
    choice_field,
    int_field,
    list_field,
    opt_str_field,
    require_list,
    require_mapping,
    str_field,
    str_tuple_field,
)
from contract_truth.section_patterns import SECTION_TYPES, SectionType

WarningSeverity: TypeAlias = Literal["info", "warning", "error"]
WarningType: TypeAlias = Literal[
    "low_text_density",
    "ocr_artifacts",
    "short_document",
    "missing_sections",
    "large_gap",
    "encoding_issue",
    "truncated",
    "no_structure_detected",
]

WARNING_SEVERITIES: tuple[WarningSeverity, ...] = ("info", "warning", "error")
WARNING_TYPES: tuple[WarningType, ...] = (
    "low_text_density",
    "ocr_artifacts",
    "short_document",
    "missing_sections",
    "large_gap",
    "encoding_issue",
    "truncated",
    "no_structure_detected",
)


@dataclass(frozen=True, slots=True)
class PageText:
    page_number: int  # 1-based
    text: str
    char_count: int


@dataclass(frozen=True, slots=True)
class ContentAnchor:
    """Pointer to a heading line inside a chunk.

    ``hash`` and ``slug`` depend only on ``anchor_text``; ``offset`` is the
    character position of the line within the chunk's raw text.
    """

    hash: str
    slug: str
    anchor_text: str  # trimmed heading, at most 120 chars
    page: int
    offset: int


@dataclass(frozen=True, slots=True)
class Chunk:
    index: int
    text: str  # trimmed
    page_start: int
    page_end: int
    anchors: tuple[ContentAnchor, ...]
    section_path: str  # "" before the first heading
    hash: str  # of the untrimmed accumulated text
    char_count: int  # of the untrimmed accumulated text
    section_type: SectionType | None

    @property
    def chunk_id(self) -> str:
        return chunk_id(self.index)


def chunk_id(index: int) -> str:
    return f"chunk-{index}"


@dataclass(frozen=True, slots=True)
class Section:
    title: str
    type: SectionType
    anchors: tuple[ContentAnchor, ...]
    page_refs: tuple[int, ...]  # deduplicated, first-seen order
    summary: str
    order: int
    path: str
    chunk_ids: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class IngestionWarning:
    type: WarningType
    message: str
    severity: WarningSeverity
    page_ref: int | None = None


@dataclass(frozen=True, slots=True)
class IngestionInput:
    pages: tuple[PageText, ...]
    form_id: str
    form_version_id: str


@dataclass(frozen=True, slots=True)
class IngestionResult:
    form_id: str
    form_version_id: str
    chunks: tuple[Chunk, ...]
    sections: tuple[Section, ...]
    warnings: tuple[IngestionWarning, ...]
    quality_score: int  # 0-100
    total_pages: int
    total_characters: int


@dataclass(frozen=True, slots=True)
class IngestionSummary:
    form_id: str
    form_version_id: str
    quality_score: int
    total_pages: int
    total_characters: int
    chunk_count: int
    section_count: int
    total_anchors: int
    section_type_counts: dict[str, int]
    warning_counts: dict[str, int]


# ---------------------------------------------------------------------------
# Payload readers
# ---------------------------------------------------------------------------

def page_text_from_dict(data: Any, where: str = "page") -> PageText:
    d = require_mapping(data, where)
    text = str_field(d, "text", where)
    page_number = int_field(d, "page_number", where)
    if page_number < 1:
        raise ValueError(f"{where}.page_number: pages are 1-based, got {page_number}")
    return PageText(
        page_number=page_number,
        text=text,
        char_count=int_field(d, "char_count", where, len(text)),
    )


def anchor_from_dict(data: Any, where: str = "anchor") -> ContentAnchor:
    d = require_mapping(data, where)
    return ContentAnchor(
        hash=str_field(d, "hash", where),
        slug=str_field(d, "slug", where),
        anchor_text=str_field(d, "anchor_text", where),
        page=int_field(d, "page", where),
        offset=int_field(d, "offset", where),
    )


def _anchors(d: Mapping[str, Any], where: str) -> tuple[ContentAnchor, ...]:
    return tuple(
        anchor_from_dict(a, f"{where}.anchors[{i}]")
        for i, a in enumerate(list_field(d, "anchors", where, []))
    )


def _section_type(d: Mapping[str, Any], key: str, where: str) -> SectionType | None:
    if opt_str_field(d, key, where) is None:
        return None
    return cast(SectionType, choice_field(d, key, where, SECTION_TYPES))


def chunk_from_dict(data: Any, where: str = "chunk") -> Chunk:
    d = require_mapping(data, where)
    text = str_field(d, "text", where)
    return Chunk(
        index=int_field(d, "index", where),
        text=text,
        page_start=int_field(d, "page_start", where),
        page_end=int_field(d, "page_end", where),
        anchors=_anchors(d, where),
        section_path=str_field(d, "section_path", where, ""),
        hash=str_field(d, "hash", where),
        char_count=int_field(d, "char_count", where, len(text)),
        section_type=_section_type(d, "section_type", where),
    )


def section_from_dict(data: Any, where: str = "section") -> Section:
    d = require_mapping(data, where)
    page_refs = []
    for i, ref in enumerate(list_field(d, "page_refs", where, [])):
        if isinstance(ref, bool) or not isinstance(ref, int):
            raise ValueError(f"{where}.page_refs[{i}]: expected an integer")
        page_refs.append(ref)
    return Section(
        title=str_field(d, "title", where),
        type=cast(SectionType, choice_field(d, "type", where, SECTION_TYPES)),
        anchors=_anchors(d, where),
        page_refs=tuple(page_refs),
        summary=str_field(d, "summary", where, ""),
        order=int_field(d, "order", where),
        path=str_field(d, "path", where, ""),
        chunk_ids=str_tuple_field(d, "chunk_ids", where),
    )


def warning_from_dict(data: Any, where: str = "warning") -> IngestionWarning:
    d = require_mapping(data, where)
    page_ref = d.get("page_ref", d.get("pageRef"))
    if page_ref is not None and (isinstance(page_ref, bool) or not isinstance(page_ref, int)):
        raise ValueError(f"{where}.page_ref: expected an integer or null")
    return IngestionWarning(
        type=cast(WarningType, choice_field(d, "type", where, WARNING_TYPES)),
        message=str_field(d, "message", where),
        severity=cast(WarningSeverity, choice_field(d, "severity", where, WARNING_SEVERITIES)),
        page_ref=page_ref,
    )


def pages_from_payload(data: Any, where: str = "pages") -> tuple[PageText, ...]:
    """Read pages from a bare array or an object with a ``pages`` array."""
    if isinstance(data, Mapping):
        data = list_field(cast(Mapping[str, Any], data), "pages", where)
    return tuple(
        page_text_from_dict(p, f"{where}[{i}]")
        for i, p in enumerate(require_list(data, where))
    )


def chunks_from_list(data: Any, where: str = "chunks") -> tuple[Chunk, ...]:
    return tuple(
        chunk_from_dict(c, f"{where}[{i}]") for i, c in enumerate(require_list(data, where))
    )


def sections_from_list(data: Any, where: str = "sections") -> tuple[Section, ...]:
    return tuple(
        section_from_dict(s, f"{where}[{i}]") for i, s in enumerate(require_list(data, where))
    )


def ingestion_result_from_dict(data: Any, where: str = "ingestion") -> IngestionResult:
    d = require_mapping(data, where)
    return IngestionResult(
        form_id=str_field(d, "form_id", where, ""),
        form_version_id=str_field(d, "form_version_id", where, ""),
        chunks=chunks_from_list(list_field(d, "chunks", where), f"{where}.chunks"),
        sections=sections_from_list(list_field(d, "sections", where), f"{where}.sections"),
        warnings=tuple(
            warning_from_dict(w, f"{where}.warnings[{i}]")
            for i, w in enumerate(list_field(d, "warnings", where, []))
        ),
        quality_score=int_field(d, "quality_score", where, 0),
        total_pages=int_field(d, "total_pages", where, 0),
        total_characters=int_field(d, "total_characters", where, 0),
    )
