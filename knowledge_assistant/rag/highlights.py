from __future__ import annotations

"""Highlight extraction for query keywords in candidate text."""

import re

from knowledge_assistant.rag.lexical import extract_keywords


def build_highlights(
    content: str,
    query: str,
    max_snippets: int = 3,
    window: int = 80,
) -> list[str]:
    """Extract snippets around query keywords, marking each keyword as ``[[kw]]``."""
    cleaned = content.strip()
    if not cleaned or not query.strip():
        return []
    keywords = extract_keywords(query)
    if not keywords:
        return []

    pattern = re.compile("|".join(re.escape(keyword) for keyword in keywords), re.IGNORECASE)
    lower = cleaned.lower()
    highlights: list[str] = []
    covered_until = -1
    for keyword in keywords:
        idx = lower.find(keyword)
        if idx == -1 or idx < covered_until:
            continue
        start = max(0, idx - window)
        end = min(len(cleaned), idx + len(keyword) + window)
        snippet = cleaned[start:end].strip()
        if not snippet:
            continue
        covered_until = end
        highlights.append(pattern.sub(lambda match: f"[[{match.group(0)}]]", snippet))
        if len(highlights) >= max_snippets:
            break
    return highlights
