"""Ingestion engine: raw page text to a hash-anchored structural model.

Pipeline (``run_ingestion_pipeline``):
  1. ``detect_warnings``   - per-page and document-level quality signals
  2. ``build_chunks``      - split text at section headings
  3. ``build_sections``    - merge adjacent chunks sharing (path, type)
  4. structure check       - info warning when no insurance section was found
  5. ``score_quality``     - 0-100 integer score

Every function is pure and never raises on well-typed input: empty input
yields empty collections, a boundary score and explicit warnings.
"""
from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field

from contract_truth.config import DEFAULT_INGESTION_CONFIG, IngestionConfig
from contract_truth.hashing import content_hash, slugify
from contract_truth.ingestion_types import (
    Chunk,
    ContentAnchor,
    IngestionInput,
    IngestionResult,
    IngestionSummary,
    IngestionWarning,
    PageText,
    Section,
    chunk_id,
)
from contract_truth.section_patterns import (
    STRUCTURED_SECTION_TYPES,
    SectionType,
    detect_section_type,
    is_anchor_heading,
)

TRUNCATION_MARKER = "[Error extracting page"

_ALNUM_OR_SPACE_RE = re.compile(r"[a-zA-Z0-9\s]")
_CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
_MOJIBAKE_RUN_RE = re.compile(r"[ïâãåæçèéêëìíîðñòóôõöùúûüý]{3,}", re.IGNORECASE)

# Score deductions per warning severity.
_SEVERITY_PENALTY = {"error": 15, "warning": 8, "info": 2}


# ---------------------------------------------------------------------------
# Anchors
# ---------------------------------------------------------------------------

def generate_anchors(
    text: str,
    page_start: int,
    config: IngestionConfig | None = None,
) -> tuple[ContentAnchor, ...]:
    """Anchors for every heading-like line of a chunk's raw text.

    ``offset`` advances by ``len(line) + 1`` per line, i.e. it is the position
    of the line in ``text``. All anchors carry ``page_start``.
    """
    cfg = config or DEFAULT_INGESTION_CONFIG
    anchors: list[ContentAnchor] = []
    offset = 0
    for line in text.split("\n"):
        trimmed = line.strip()
        if is_anchor_heading(
            trimmed,
            min_chars=cfg.heading_min_chars,
            max_chars=cfg.heading_max_chars,
        ):
            anchor_text = trimmed[: cfg.anchor_max_chars]
            anchors.append(
                ContentAnchor(
                    hash=content_hash(anchor_text, cfg.hash_algorithm),
                    slug=slugify(anchor_text, cfg.slug_max_chars),
                    anchor_text=anchor_text,
                    page=page_start,
                    offset=offset,
                )
            )
        offset += len(line) + 1
    return tuple(anchors)


# ---------------------------------------------------------------------------
# Chunker
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class _ChunkAccumulator:
    """Running state of one ``build_chunks`` call."""

    config: IngestionConfig
    page_start: int
    page_end: int
    buffer: str = ""
    section_path: str = ""
    section_type: SectionType | None = None
    chunks: list[Chunk] = field(default_factory=list[Chunk])

    def flush(self) -> None:
        raw = self.buffer
        self.chunks.append(
            Chunk(
                index=len(self.chunks),
                text=raw.strip(),
                page_start=self.page_start,
                page_end=self.page_end,
                anchors=generate_anchors(raw, self.page_start, self.config),
                section_path=self.section_path,
                hash=content_hash(raw, self.config.hash_algorithm),
                char_count=len(raw),
                section_type=self.section_type,
            )
        )
        self.buffer = ""


def build_chunks(
    pages: tuple[PageText, ...] | list[PageText],
    config: IngestionConfig | None = None,
) -> tuple[Chunk, ...]:
    """Split page text into chunks at detected section headings.

    A heading flushes the buffer only when the buffer holds more than
    ``min_flush_chars`` characters; shorter runs fold into the next chunk.
    The flushed chunk keeps the previous heading's path and type; the heading
    line itself opens the next chunk.
    """
    cfg = config or DEFAULT_INGESTION_CONFIG
    first_page = pages[0].page_number if pages else 1
    acc = _ChunkAccumulator(config=cfg, page_start=first_page, page_end=first_page)

    for page in pages:
        for line in page.text.split("\n"):
            detected = detect_section_type(line)
            if detected is not None and len(acc.buffer) > cfg.min_flush_chars:
                acc.flush()
                acc.page_start = page.page_number
            if detected is not None:
                acc.section_path = line.strip()
                acc.section_type = detected
            acc.buffer += line + "\n"
            acc.page_end = page.page_number

    if acc.buffer.strip():
        acc.flush()
    return tuple(acc.chunks)


# ---------------------------------------------------------------------------
# Section builder
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class _SectionDraft:
    title: str
    type: SectionType
    path: str
    order: int
    anchors: list[ContentAnchor]
    page_refs: list[int]
    chunk_ids: list[str]
    summary: str

    def freeze(self) -> Section:
        return Section(
            title=self.title,
            type=self.type,
            anchors=tuple(self.anchors),
            page_refs=tuple(self.page_refs),
            summary=self.summary,
            order=self.order,
            path=self.path,
            chunk_ids=tuple(self.chunk_ids),
        )


def build_sections(chunks: tuple[Chunk, ...] | list[Chunk]) -> tuple[Section, ...]:
    """Group adjacent chunks with equal (section_path, type) into sections.

    Merging is adjacent-only: a path that reappears after a different heading
    starts a new section.
    """
    drafts: list[_SectionDraft] = []
    for chunk in chunks:
        section_type: SectionType = chunk.section_type or "general"
        title = chunk.section_path or "Untitled Section"
        prev = drafts[-1] if drafts else None

        if prev is not None and prev.path == chunk.section_path and prev.type == section_type:
            for ref in (chunk.page_start, chunk.page_end):
                if ref not in prev.page_refs:
                    prev.page_refs.append(ref)
            prev.anchors.extend(chunk.anchors)
            prev.chunk_ids.append(chunk_id(chunk.index))
            prev.summary = f"{title} ({len(prev.page_refs)} pages)"
            continue

        page_refs = [chunk.page_start]
        if chunk.page_end != chunk.page_start:
            page_refs.append(chunk.page_end)
        drafts.append(
            _SectionDraft(
                title=title,
                type=section_type,
                path=chunk.section_path,
                order=len(drafts),
                anchors=list(chunk.anchors),
                page_refs=page_refs,
                chunk_ids=[chunk_id(chunk.index)],
                summary=f"{title} (pages {chunk.page_start}-{chunk.page_end})",
            )
        )
    return tuple(d.freeze() for d in drafts)


# ---------------------------------------------------------------------------
# Warnings & quality score
# ---------------------------------------------------------------------------

def _page_warnings(page: PageText, cfg: IngestionConfig) -> list[IngestionWarning]:
    out: list[IngestionWarning] = []
    n = page.page_number
    if page.char_count < cfg.low_density_page_chars:
        out.append(
            IngestionWarning(
                type="low_text_density",
                message=(
                    f"Page {n}: very little text ({page.char_count} chars). "
                    "Likely a scanned image."
                ),
                severity="warning",
                page_ref=n,
            )
        )

    text = page.text
    if text and len(text) >= cfg.ocr_min_chars:
        ratio = len(_ALNUM_OR_SPACE_RE.findall(text)) / len(text)
        if ratio < cfg.ocr_min_alnum_ratio:
            out.append(
                IngestionWarning(
                    type="ocr_artifacts",
                    message=f"Page {n}: suspected OCR artifacts (high non-alphanumeric ratio).",
                    severity="warning",
                    page_ref=n,
                )
            )

    control_chars = len(_CONTROL_CHAR_RE.findall(text))
    mojibake_runs = len(_MOJIBAKE_RUN_RE.findall(text))
    if control_chars > cfg.max_control_chars or mojibake_runs > cfg.max_mojibake_runs:
        out.append(
            IngestionWarning(
                type="encoding_issue",
                message=f"Page {n}: possible encoding issues detected.",
                severity="warning",
                page_ref=n,
            )
        )
    return out


def detect_warnings(
    pages: tuple[PageText, ...] | list[PageText],
    config: IngestionConfig | None = None,
) -> tuple[IngestionWarning, ...]:
    """Quality warnings for extracted pages, in document order."""
    cfg = config or DEFAULT_INGESTION_CONFIG
    if not pages:
        return (
            IngestionWarning(
                type="short_document",
                message="No pages were extracted from the PDF",
                severity="error",
            ),
        )

    warnings: list[IngestionWarning] = []
    total_chars = sum(p.char_count for p in pages)
    if total_chars < cfg.short_document_chars:
        warnings.append(
            IngestionWarning(
                type="short_document",
                message=(
                    f"Very short document ({total_chars} characters). "
                    "May be an image-only PDF."
                ),
                severity="warning",
            )
        )

    for page in pages:
        warnings.extend(_page_warnings(page, cfg))

    truncated = sum(1 for p in pages if TRUNCATION_MARKER in p.text)
    if truncated:
        warnings.append(
            IngestionWarning(
                type="truncated",
                message=f"{truncated} page(s) could not be fully extracted.",
                severity="error",
            )
        )
    return tuple(warnings)


def score_quality(
    pages: tuple[PageText, ...] | list[PageText],
    chunks: tuple[Chunk, ...] | list[Chunk],
    sections: tuple[Section, ...] | list[Section],
    warnings: tuple[IngestionWarning, ...] | list[IngestionWarning],
) -> int:
    """Integer quality score in [0, 100]."""
    score = 100
    for w in warnings:
        score -= _SEVERITY_PENALTY[w.severity]

    total_chars = sum(p.char_count for p in pages)
    avg_chars = total_chars / len(pages) if pages else 0
    if avg_chars < 100:
        score -= 25
    elif avg_chars < 200:
        score -= 15
    elif avg_chars < 400:
        score -= 5

    structured = sum(1 for s in sections if s.type in STRUCTURED_SECTION_TYPES)
    if structured == 0 and chunks:
        score -= 10
    elif structured >= 3:
        score += 5

    if total_chars < 500:
        score -= 20
    elif total_chars < 2000:
        score -= 10

    if not pages:
        score -= 50

    return max(0, min(100, score))


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

def run_ingestion_pipeline(
    ingestion_input: IngestionInput,
    config: IngestionConfig | None = None,
) -> IngestionResult:
    """Run warnings, chunking, sectioning and scoring for one form edition."""
    pages = ingestion_input.pages
    warnings = list(detect_warnings(pages, config))
    chunks = build_chunks(pages, config)
    sections = build_sections(chunks)

    if chunks and not any(s.type in STRUCTURED_SECTION_TYPES for s in sections):
        warnings.append(
            IngestionWarning(
                type="no_structure_detected",
                message=(
                    "No insurance-specific sections (coverage, exclusion, condition, etc.) "
                    "were detected."
                ),
                severity="info",
            )
        )

    return IngestionResult(
        form_id=ingestion_input.form_id,
        form_version_id=ingestion_input.form_version_id,
        chunks=chunks,
        sections=sections,
        warnings=tuple(warnings),
        quality_score=score_quality(pages, chunks, sections, warnings),
        total_pages=len(pages),
        total_characters=sum(p.char_count for p in pages),
    )


def summarize_ingestion(result: IngestionResult) -> IngestionSummary:
    """Reporting counts for an ingestion result."""
    section_types = Counter(s.type for s in result.sections)
    severities = Counter(w.severity for w in result.warnings)
    return IngestionSummary(
        form_id=result.form_id,
        form_version_id=result.form_version_id,
        quality_score=result.quality_score,
        total_pages=result.total_pages,
        total_characters=result.total_characters,
        chunk_count=len(result.chunks),
        section_count=len(result.sections),
        total_anchors=sum(len(c.anchors) for c in result.chunks),
        section_type_counts=dict(sorted(section_types.items())),
        warning_counts=dict(sorted(severities.items())),
    )
