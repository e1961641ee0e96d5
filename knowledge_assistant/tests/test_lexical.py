from __future__ import annotations

from knowledge_assistant.rag.highlights import build_highlights
from knowledge_assistant.rag.lexical import extract_keywords, score_sentence, split_sentences


def test_extract_keywords_drops_stop_words_and_short_tokens() -> None:
    assert extract_keywords("What is the capital of France?") == ["capital", "france"]


def test_extract_keywords_is_ordered_and_unique() -> None:
    assert extract_keywords("Dogs, cats; dogs (and) birds!") == ["dogs", "cats", "birds"]


def test_extract_keywords_of_stop_words_only_is_empty() -> None:
    assert extract_keywords("Can you tell me what it is?") == []


def test_score_sentence_is_fraction_of_contained_keywords() -> None:
    sentence = "Paris is the capital of France."

    assert score_sentence(sentence, ["capital", "france"]) == 1.0
    assert score_sentence(sentence, ["capital", "germany"]) == 0.5
    assert score_sentence(sentence, []) == 0.0


def test_split_sentences_uses_capitalized_boundaries() -> None:
    content = "Cats sleep a lot. Dogs like walks. e.g. this stays attached."

    assert split_sentences(content) == [
        "Cats sleep a lot.",
        "Dogs like walks. e.g. this stays attached.",
    ]


def test_split_sentences_falls_back_to_punctuation() -> None:
    content = "lowercase notes here. more lowercase notes follow. ok."

    assert split_sentences(content) == ["lowercase notes here", "more lowercase notes follow"]


def test_split_sentences_drops_out_of_band_lengths() -> None:
    content = (
        "Too short. " + "Long " * 80 + "sentence. Just right sentence here. Another fine sentence."
    )

    assert split_sentences(content) == ["Just right sentence here.", "Another fine sentence."]


def test_build_highlights_marks_keywords() -> None:
    highlights = build_highlights("Paris is the capital of France.", "capital of France?")

    assert highlights == ["Paris is the [[capital]] of [[France]]."]
    assert build_highlights("Paris", "what is it") == []
