from __future__ import annotations

"""Chunking behavior tests."""

import pytest

from knowledge_assistant.loaders.chunking import normalize_text, segment_text, split_units


def test_segment_text_empty_input_has_no_chunks() -> None:
    assert segment_text("", 256, 25) == []
    assert segment_text("   \n\t ", 256, 25) == []


def test_segment_text_short_text_is_single_chunk() -> None:
    chunks = segment_text("First sentence. Second sentence.", 1000, 25)

    assert chunks == ["First sentence. Second sentence."]


def test_segment_text_seeds_next_chunk_with_overlap() -> None:
    """Ensure each closed chunk carries its tail into the next."""
    text = " ".join(f"Sentence number {i} talks about topic {i}." for i in range(12))

    chunks = segment_text(text, chunk_size=100, overlap=20)

    assert len(chunks) > 1
    for previous, current in zip(chunks, chunks[1:]):
        assert current.startswith(previous[-20:].strip())


def test_segment_text_keeps_oversized_unit_whole() -> None:
    long_unit = "word " * 80
    text = f"Short intro. {long_unit.strip()}. Short outro."

    chunks = segment_text(text, chunk_size=50, overlap=0)

    assert any(long_unit.strip() in chunk for chunk in chunks)
    assert chunks[0] == "Short intro."


def test_segment_text_splits_on_line_breaks() -> None:
    assert segment_text("Line one\nLine two", chunk_size=5, overlap=0) == ["Line one", "Line two"]


def test_segment_text_clamps_overlap_not_smaller_than_chunk() -> None:
    text = " ".join(f"Unit {i} is here." for i in range(20))

    chunks = segment_text(text, chunk_size=40, overlap=80)

    assert len(chunks) > 1
    assert all(len(chunk) < 200 for chunk in chunks)


def test_segment_text_never_emits_overlap_only_chunk() -> None:
    text = "Alpha beta gamma. Delta epsilon zeta."

    chunks = segment_text(text, chunk_size=20, overlap=10)

    assert chunks[-1].endswith("Delta epsilon zeta.")
    assert len(chunks) == 2


def test_split_units_keeps_punctuation() -> None:
    assert split_units("Hello there!  How are\tyou? Fine.") == [
        "Hello there!",
        "How are you?",
        "Fine.",
    ]


def test_normalize_text_collapses_whitespace() -> None:
    assert normalize_text("  a \n\n b\tc  ") == "a b c"


MIXED_TEXT = (
    "Note 1 covers topic alpha in detail. Note 2 is short!\n"
    "Note 3 sits on its own line\n"
    + " ".join(f"filler{i}" for i in range(40))
    + ". Note 4 asks a question? Note 5 closes the list."
)


@pytest.mark.parametrize("chunk_size", [20, 50, 100, 256])
@pytest.mark.parametrize("overlap", [0, 10, 25])
def test_segment_text_keeps_every_unit_whole_and_in_order(chunk_size: int, overlap: int) -> None:
    units = split_units(MIXED_TEXT)
    chunks = segment_text(MIXED_TEXT, chunk_size, overlap)

    chunk_index, position = 0, 0
    for unit in units:
        found = -1
        while chunk_index < len(chunks):
            found = chunks[chunk_index].find(unit, position)
            if found >= 0:
                break
            chunk_index, position = chunk_index + 1, 0
        assert found >= 0, f"unit {unit!r} missing or out of order"
        position = found + len(unit)

    assert all(chunk.strip() for chunk in chunks)
    assert chunks[-1].endswith(units[-1])
