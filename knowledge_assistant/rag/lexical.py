from __future__ import annotations

"""Keyword extraction and keyword-density scoring over raw sentences."""

import re

MIN_KEYWORD_CHARS = 3
MIN_SENTENCE_CHARS = 10
MAX_SENTENCE_CHARS = 300

STOP_WORDS = frozenset(
    {
        "a", "about", "above", "after", "again", "against", "all", "also", "am",
        "an", "and", "any", "are", "as", "at", "be", "because", "been", "before",
        "being", "below", "between", "both", "but", "by", "can", "could", "dare",
        "did", "do", "does", "doing", "down", "during", "each", "either", "even",
        "every", "few", "for", "from", "further", "had", "has", "have", "having",
        "he", "her", "here", "hers", "herself", "him", "himself", "his", "how",
        "i", "if", "in", "into", "is", "it", "its", "itself", "just", "may",
        "me", "might", "more", "most", "much", "must", "my", "myself", "need",
        "neither", "no", "nor", "not", "now", "of", "off", "on", "once", "only",
        "or", "other", "ought", "our", "ours", "ourselves", "out", "over", "own",
        "per", "quite", "rather", "same", "shall", "she", "should", "so", "some",
        "such", "than", "that", "the", "their", "theirs", "them", "themselves",
        "then", "there", "these", "they", "this", "those", "through", "to", "too",
        "under", "until", "up", "upon", "us", "very", "via", "was", "we", "were",
        "what", "when", "where", "which", "while", "who", "whom", "whose", "why",
        "will", "with", "within", "without", "would", "yet", "you", "your",
        "yours", "yourself", "tell", "please", "give", "show", "know",
    }
)

_TOKEN_SPLIT_RE = re.compile(r"[\s.,;:!?\"()\[\]{}<>/\\|*_`~=+]+")
_SENTENCE_CASE_RE = re.compile(r"(?<=[.!?])\s+(?=[A-Z])")
_SENTENCE_PUNCT_RE = re.compile(r"[.!?]")


def extract_keywords(text: str) -> list[str]:
    """Return unique lowercase content tokens in first-seen order."""
    seen: set[str] = set()
    keywords: list[str] = []
    for raw in _TOKEN_SPLIT_RE.split(text.lower()):
        token = raw.strip("'-")
        if len(token) < MIN_KEYWORD_CHARS or token in STOP_WORDS or token in seen:
            continue
        seen.add(token)
        keywords.append(token)
    return keywords


def score_sentence(sentence: str, keywords: list[str]) -> float:
    """Fraction of keywords contained in the sentence."""
    if not keywords:
        return 0.0
    lowered = sentence.lower()
    matched = sum(1 for keyword in keywords if keyword in lowered)
    return matched / len(keywords)


def split_sentences(content: str) -> list[str]:
    """Split document content into sentences within the scoring length band."""
    sentences = _in_band(_SENTENCE_CASE_RE.split(content))
    if len(sentences) < 2:
        sentences = _in_band(_SENTENCE_PUNCT_RE.split(content))
    return sentences


def _in_band(parts: list[str]) -> list[str]:
    kept: list[str] = []
    for part in parts:
        sentence = part.strip()
        if MIN_SENTENCE_CHARS < len(sentence) < MAX_SENTENCE_CHARS:
            kept.append(sentence)
    return kept
