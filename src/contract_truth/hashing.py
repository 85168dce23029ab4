"""Content hashing and slug helpers for anchors and chunks.

Hashes are pure functions of text: identical text always gives the identical
hash, across runs and processes. They are content identifiers, not security
primitives.

- ``djb2_hash``: 32-bit djb2 (xor variant) over UTF-16 code units, 8 hex chars.
  Default, compatible with anchors produced by earlier ingestions.
- ``sha256_hash``: 64-bit prefix of SHA-256 over UTF-8, 16 hex chars. Wider
  space for large corpora where djb2 collisions become plausible.
"""
from __future__ import annotations

import hashlib
import re
from typing import Literal, TypeAlias

HashAlgorithm: TypeAlias = Literal["djb2", "sha256"]

HASH_ALGORITHMS: tuple[HashAlgorithm, ...] = ("djb2", "sha256")

_DJB2_SEED = 5381
_MASK_32 = 0xFFFFFFFF
_SLUG_RUN_RE = re.compile(r"[^a-z0-9]+")


def djb2_hash(text: str) -> str:
    """Return the djb2-xor hash of ``text`` as 8 lowercase hex digits.

    Iterates UTF-16 code units (surrogate pairs count as two units) so the
    value matches hashes computed by UTF-16 string runtimes.
    """
    h = _DJB2_SEED
    raw = text.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(raw), 2):
        unit = raw[i] | (raw[i + 1] << 8)
        h = ((h * 33) ^ unit) & _MASK_32
    return f"{h:08x}"


def sha256_hash(text: str) -> str:
    """Return the first 16 hex chars of SHA-256 over the UTF-8 text."""
    return hashlib.sha256(text.encode("utf-8", "surrogatepass")).hexdigest()[:16]


def content_hash(text: str, algorithm: HashAlgorithm = "djb2") -> str:
    """Hash ``text`` with the named algorithm."""
    match algorithm:
        case "djb2":
            return djb2_hash(text)
        case "sha256":
            return sha256_hash(text)
        case _:
            raise ValueError(
                f"Unknown hash algorithm {algorithm!r}; "
                f"expected one of {', '.join(HASH_ALGORITHMS)}"
            )


def slugify(text: str, max_chars: int = 60) -> str:
    """Lowercase ``text``, collapse non-alphanumeric runs to ``-``, trim, truncate."""
    slug = _SLUG_RUN_RE.sub("-", text.lower())
    if slug.startswith("-"):
        slug = slug[1:]
    if slug.endswith("-"):
        slug = slug[:-1]
    return slug[:max_chars]
