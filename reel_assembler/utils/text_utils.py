"""Text utility functions for search-term handling."""

import re

# Tokens that point at a specific person; stock libraries return noise for them
NAME_INDICATORS = frozenset(
    {"he", "she", "they", "his", "her", "their", "mr", "mrs", "ms", "dr", "prof", "president", "ceo", "director"}
)

_TOKEN_RE = re.compile(r"[a-z0-9']+")


def tokenize(text: str) -> list[str]:
    """
    Split a query into lower-cased word tokens.

    Args:
        text: Free text or a space-joined keyword list.

    Returns:
        Tokens in order of appearance.
    """
    return _TOKEN_RE.findall(text.lower())


def query_similarity(first: str, second: str) -> float:
    """
    Jaccard overlap between the token sets of two queries.

    Args:
        first: A search query.
        second: Another search query.

    Returns:
        Value in [0, 1]; 0.0 when either query has no tokens.
    """
    a, b = set(tokenize(first)), set(tokenize(second))
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def is_name_term(term: str) -> bool:
    """True if any token of ``term`` is a pronoun or a title."""
    return any(token in NAME_INDICATORS for token in tokenize(term))


def clean_search_terms(terms: list[str]) -> list[str]:
    """
    Normalize a keyword list for a stock-media query.

    Lower-cases, strips whitespace, drops empty and person-referencing terms,
    and removes duplicates while preserving order.

    Args:
        terms: Raw keywords from the scene plan.

    Returns:
        Cleaned keywords.
    """
    seen: set[str] = set()
    cleaned = []
    for term in terms:
        term = " ".join(term.lower().split())
        if not term or term in seen or is_name_term(term):
            continue
        seen.add(term)
        cleaned.append(term)
    return cleaned
