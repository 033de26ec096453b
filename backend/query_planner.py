"""Key-term extraction and multi-query planning for scenic-area spot search."""

import config
from models import ScenicArea

GENERIC_QUERY = config.SEARCH_DEFAULT_QUERY


def _dedupe(items: list[str]) -> list[str]:
    return [s for s in dict.fromkeys(items) if s]


def strip_suffixes(name: str, suffixes: list[str] | None = None) -> tuple[str, list[str]]:
    """Strip generic tourism suffixes, longest first.

    A suffix is only removed when at least two characters remain, so short
    proper names ("清明上河园", "云台山") survive intact. Returns the cleaned
    name and every intermediate stripped form.
    """
    clean = name
    stripped = []
    # Longest first, so "风景区" goes whole instead of leaving a dangling "风".
    for suffix in sorted(suffixes or config.GENERIC_SUFFIXES, key=len, reverse=True):
        if clean.endswith(suffix) and len(clean) > len(suffix):
            remainder = clean[: -len(suffix)]
            if len(remainder) >= 2:
                stripped.append(remainder)
                clean = remainder
    return clean, stripped


def extract_key_terms(scenic_area_name: str) -> list[str]:
    """Ordered, de-duplicated search terms; the full name always comes first."""
    terms = [scenic_area_name]
    clean, stripped = strip_suffixes(scenic_area_name)
    terms.extend(stripped)

    terms.extend(clean[i:i + 3] for i in range(len(clean) - 2))
    terms.extend(clean[i:i + 2] for i in range(len(clean) - 1))
    if len(clean) <= 3:
        terms.extend(clean)

    return _dedupe(terms)


def generate_enhanced_queries(area: ScenicArea, max_term_queries: int = 2) -> list[str]:
    name = area.name
    queries = [f"{name} {GENERIC_QUERY}", name]
    for term in extract_key_terms(name)[:max_term_queries]:
        if len(term) >= 2:
            queries.append(f"{term} {GENERIC_QUERY}")
    queries.append(GENERIC_QUERY)
    return _dedupe(queries)
