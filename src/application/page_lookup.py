# src/application/page_lookup.py

from typing import List, Sequence

from src.domain.interfaces import PageSearchPort
from src.domain.models import Anchor


CONTEXT_RADIUS = 1


def search_with_fallback(
    page_search: PageSearchPort,
    terms: List[str],
    source_urls: Sequence[str],
    context_radius: int = CONTEXT_RADIUS,
) -> List[Anchor]:
    """
    Search `terms` in each source in order and return the first non-empty
    hit list. A failing source counts as "no hits" and the next one is tried.
    """
    if not terms:
        return []

    for source_url in source_urls:
        if not source_url:
            continue
        try:
            hits = page_search.search(terms, source_url, context_radius)
        except Exception as error:
            print(f"[PageLookup] ⚠ Page search failed on '{source_url}': {error}")
            continue
        if hits:
            return list(hits)

    return []
