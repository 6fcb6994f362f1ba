# src/application/hybrid_search.py

import itertools
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from src.application.localizer import HighlightLocalizer
from src.application.page_lookup import search_with_fallback
from src.application.semantic_query import SemanticQueryEngine
from src.domain.interfaces import PageSearchPort
from src.domain.models import Anchor, Document, OwnerMap, SearchResult


SEMANTIC_MARKER = "~"
KEYWORD_SEPARATOR = "|"
SEMANTIC_TOP_K = 30


@dataclass
class ParsedQuery:
    term: str
    keywords: List[str]
    force_semantic: bool


def parse_query(raw_query: str) -> ParsedQuery:
    """
    "~text"     → semantic only, marker stripped
    "a | b | c" → keyword alternatives a, b, c
    """
    raw = (raw_query or "").strip()
    force_semantic = raw.startswith(SEMANTIC_MARKER)
    term = raw[len(SEMANTIC_MARKER):].strip() if force_semantic else raw
    keywords = [part.strip() for part in term.split(KEYWORD_SEPARATOR) if part.strip()]
    return ParsedQuery(term=term, keywords=keywords, force_semantic=force_semantic)


def format_display_text(document_name: str, page: Optional[int], snippet: str) -> str:
    prefix = f"{document_name}{f' · p.{page}' if page else ''}"
    return f"{prefix} — {snippet or ''}"


class HybridSearchOrchestrator:
    """
    Cross-document search over the currently loaded documents.

    Precedence, exact match wins:
        - keyword hits exist (and "~" not used) → keyword hits only
        - otherwise                            → localized semantic hits only
    The two result sets are never blended into one ranking.

    `query_engine` may be None when no embedding service is configured;
    search then runs keyword-only.
    """

    def __init__(
        self,
        page_search: PageSearchPort,
        query_engine: Optional[SemanticQueryEngine],
        localizer: HighlightLocalizer,
        semantic_top_k: int = SEMANTIC_TOP_K,
    ):
        self._page_search = page_search
        self._query_engine = query_engine
        self._localizer = localizer
        self._semantic_top_k = semantic_top_k

    @property
    def semantic_enabled(self) -> bool:
        return self._query_engine is not None

    def search(
        self,
        raw_query: str,
        documents: Sequence[Document],
    ) -> Tuple[List[SearchResult], OwnerMap]:
        parsed = parse_query(raw_query)
        if not parsed.term:
            return [], {}

        ids = _ResultIds()
        results: List[SearchResult] = []

        if not parsed.force_semantic:
            results = self._keyword_search(parsed.keywords, documents, ids)

        if not results or parsed.force_semantic:
            results = self._semantic_search(parsed.term, documents, ids)

        owner_map = {r.result_id: r.document_id for r in results}
        print(
            f"[HybridSearch] '{parsed.term}' → {len(results)} result(s) "
            f"across {len(documents)} document(s)."
        )
        return results, owner_map

    # ─── Keyword path ─────────────────────────────────────────────────────────

    def _keyword_search(
        self,
        keywords: List[str],
        documents: Sequence[Document],
        ids: "_ResultIds",
    ) -> List[SearchResult]:
        results: List[SearchResult] = []

        for document in documents:
            if not document.source_url:
                continue
            hits = search_with_fallback(self._page_search, keywords, document.source_urls)
            for anchor in hits:
                results.append(self._to_result(anchor, document, ids.next(anchor, document.document_id)))

        return results

    # ─── Semantic path ────────────────────────────────────────────────────────

    def _semantic_search(
        self,
        term: str,
        documents: Sequence[Document],
        ids: "_ResultIds",
    ) -> List[SearchResult]:
        if self._query_engine is None:
            print("[HybridSearch] Semantic search unavailable, no embedding service configured.")
            return []

        by_id: Dict[str, Document] = {d.document_id: d for d in documents}
        if not by_id:
            return []

        try:
            hits = self._query_engine.query(term, list(by_id), top_k=self._semantic_top_k)
        except Exception as error:
            print(f"[HybridSearch] ⚠ Semantic fallback failed: {error}")
            return []

        results: List[SearchResult] = []
        for hit in hits:
            document = by_id.get(hit.document_id)
            if document is None or not document.source_url:
                continue

            try:
                anchor = self._localizer.localize(hit.text, hit.page_number, document.source_urls, term)
            except Exception as error:
                print(f"[HybridSearch] ⚠ Localization failed for '{document.name}' p.{hit.page_number}: {error}")
                continue
            if anchor is None:
                continue

            result_id = ids.next(anchor, document.document_id, tag="sem")
            results.append(self._to_result(anchor, document, result_id, origin="semantic", score=hit.score))

        return results

    # ─── Private ──────────────────────────────────────────────────────────────

    @staticmethod
    def _to_result(
        anchor: Anchor,
        document: Document,
        result_id: str,
        origin: str = "keyword",
        score: Optional[float] = None,
    ) -> SearchResult:
        return SearchResult(
            result_id=result_id,
            document_id=document.document_id,
            page_number=anchor.page_number,
            display_text=format_display_text(document.name, anchor.page_number, anchor.text),
            anchor=anchor,
            origin=origin,
            score=score,
        )


class _ResultIds:
    """Hands out result ids unique within one search call."""

    def __init__(self):
        self._used = set()
        self._counter = itertools.count()

    def next(self, anchor: Anchor, document_id: str, tag: str = "") -> str:
        candidate = anchor.anchor_id
        while not candidate or candidate in self._used:
            parts = [document_id, tag, str(next(self._counter))]
            candidate = "-".join(p for p in parts if p)
        self._used.add(candidate)
        return candidate
