# src/application/localizer.py

import re
from typing import List, Optional, Sequence

from src.application.page_lookup import search_with_fallback
from src.domain.interfaces import PageSearchPort
from src.domain.models import Anchor


PROBE_LIMIT = 6
PROBE_MIN_TOKEN_LENGTH = 4
PROBE_MIN_COUNT = 3
CHUNK_WEIGHT = 0.7
QUERY_WEIGHT = 0.3
OVERLAP_EPSILON = 1e-9

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def tokenize(text: str) -> List[str]:
    """Lowercase alphanumeric words; punctuation acts as a separator."""
    return _NON_ALNUM.sub(" ", (text or "").lower()).split()


def pick_probe_words(text: str, limit: int = PROBE_LIMIT) -> List[str]:
    """
    Short keyword set used to re-find a chunk on its page.
    Distinct tokens of length >= 4 in first-seen order, at most `limit`;
    below 3 such tokens, the first 3 raw whitespace tokens are used instead.
    """
    probes: List[str] = []
    seen = set()
    for token in tokenize(text):
        if len(token) < PROBE_MIN_TOKEN_LENGTH or token in seen:
            continue
        seen.add(token)
        probes.append(token)
        if len(probes) >= limit:
            break

    if len(probes) < PROBE_MIN_COUNT:
        return (text or "").split()[:PROBE_MIN_COUNT]
    return probes


def token_overlap(text_a: str, text_b: str) -> float:
    """Jaccard overlap of the token sets: |A ∩ B| / (|A ∪ B| + ε)."""
    set_a, set_b = set(tokenize(text_a)), set(tokenize(text_b))
    if not set_a or not set_b:
        return 0.0
    intersection = len(set_a & set_b)
    return intersection / (len(set_a | set_b) + OVERLAP_EPSILON)


def score_candidate(candidate: Anchor, chunk_text: str, query: str) -> float:
    return (
        CHUNK_WEIGHT * token_overlap(candidate.text, chunk_text)
        + QUERY_WEIGHT * token_overlap(candidate.text, query)
    )


class HighlightLocalizer:
    """
    Turns a semantic hit (document + page + chunk text) into one concrete
    on-page anchor.

    Pipeline:
        1. Derive probe words from the chunk text
        2. Page-search the probes (primary source, then OCR fallback)
        3. Keep only candidates on the hit's page
        4. Score against chunk + query; first strictly-best candidate wins
    """

    def __init__(self, page_search: PageSearchPort):
        self._page_search = page_search

    def localize(
        self,
        chunk_text: str,
        page: int,
        source_urls: Sequence[str],
        query: str,
    ) -> Optional[Anchor]:
        probes = pick_probe_words(chunk_text)
        candidates = search_with_fallback(self._page_search, probes, source_urls)
        on_page = [c for c in candidates if c.page_number is not None and c.page_number == page]
        return self.choose_best(on_page, chunk_text, query)

    @staticmethod
    def choose_best(candidates: List[Anchor], chunk_text: str, query: str) -> Optional[Anchor]:
        best: Optional[Anchor] = None
        best_score = -1.0

        for candidate in candidates:
            score = score_candidate(candidate, chunk_text, query)
            if score > best_score:
                best_score = score
                best = candidate

        return best
