from __future__ import annotations

"""Sentence-unit segmentation into overlapping chunks for embedding."""

import re

_WHITESPACE_RE = re.compile(r"[ \t\f\v]+")
_UNIT_BOUNDARY_RE = re.compile(r"(?<=[.!?])\s+|[\r\n]+")


def normalize_text(text: str) -> str:
    """Collapse runs of whitespace into single spaces."""
    return re.sub(r"\s+", " ", text.replace("\r\n", "\n")).strip()


def split_units(text: str) -> list[str]:
    """Split text into sentence-like units on terminal punctuation and line breaks."""
    units: list[str] = []
    for raw in _UNIT_BOUNDARY_RE.split(text):
        unit = _WHITESPACE_RE.sub(" ", raw).strip()
        if unit:
            units.append(unit)
    return units


def segment_text(text: str, chunk_size: int, overlap: int) -> list[str]:
    """Accumulate units into chunks of roughly ``chunk_size`` characters.

    A closed chunk seeds the next one with its trailing ``overlap`` characters.
    Units are never cut, so a unit longer than ``chunk_size`` becomes an
    oversized chunk of its own.
    """
    units = split_units(text)
    if not units:
        return []
    if chunk_size <= 0:
        return [" ".join(units)]
    if overlap >= chunk_size:
        overlap = max(0, chunk_size // 4)

    chunks: list[str] = []
    buffer = ""
    # buffer holds at least one unit not yet emitted
    pending = False
    for unit in units:
        if pending and len(buffer) + 1 + len(unit) > chunk_size:
            chunks.append(buffer)
            buffer = _overlap_tail(buffer, overlap)
            pending = False
        buffer = f"{buffer} {unit}" if buffer else unit
        pending = True
    if pending:
        chunks.append(buffer)
    return chunks


def _overlap_tail(chunk: str, overlap: int) -> str:
    """Return the trailing ``overlap`` characters of a closed chunk."""
    if overlap <= 0:
        return ""
    return chunk[-overlap:].strip()
