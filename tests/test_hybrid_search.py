# tests/test_hybrid_search.py

import pytest
from unittest.mock import MagicMock

from src.application.hybrid_search import (
    HybridSearchOrchestrator,
    format_display_text,
    parse_query,
)
from src.application.localizer import HighlightLocalizer
from src.domain.models import Anchor, Document, SemanticHit


# ── Fixtures ──────────────────────────────────────────────────────────────────

def _documents():
    return [
        Document(document_id="d1", name="report.pdf", source_url="d1.pdf"),
        Document(document_id="d2", name="scan.pdf", source_url="d2.pdf", ocr_source_url="d2-ocr.pdf"),
    ]


def _make_page_search(hits_by_source: dict):
    page_search = MagicMock()
    page_search.search.side_effect = lambda terms, source_url, context_radius=1: list(hits_by_source.get(source_url, []))
    return page_search


def _make_orchestrator(page_search, query_engine=None, localizer=None):
    return HybridSearchOrchestrator(page_search, query_engine, localizer or HighlightLocalizer(page_search))


# ── parse_query ───────────────────────────────────────────────────────────────

def test_parse_plain_query():
    parsed = parse_query("  fox  ")
    assert parsed.term == "fox"
    assert parsed.keywords == ["fox"]
    assert parsed.force_semantic is False


def test_parse_forced_semantic_query():
    parsed = parse_query("~ animals that hunt ")
    assert parsed.term == "animals that hunt"
    assert parsed.force_semantic is True


def test_parse_keyword_alternatives():
    assert parse_query("fox | hound || ").keywords == ["fox", "hound"]


def test_display_text_with_and_without_page():
    assert format_display_text("a.pdf", 3, "snippet") == "a.pdf · p.3 — snippet"
    assert format_display_text("a.pdf", None, "snippet") == "a.pdf — snippet"


# ── Keyword path ──────────────────────────────────────────────────────────────

def test_keyword_hit_returned_before_any_semantic_call():
    page_search = _make_page_search({"d1.pdf": [Anchor(text="the fox", page_number=1)]})
    query_engine = MagicMock()
    orchestrator = _make_orchestrator(page_search, query_engine)

    results, owners = orchestrator.search("fox", _documents())

    assert len(results) == 1
    assert results[0].origin == "keyword"
    assert results[0].page_number == 1
    assert results[0].display_text == "report.pdf · p.1 — the fox"
    assert owners == {results[0].result_id: "d1"}
    query_engine.query.assert_not_called()


def test_keyword_alternatives_are_passed_to_page_search():
    page_search = _make_page_search({})
    orchestrator = _make_orchestrator(page_search)

    orchestrator.search("fox | hound", _documents()[:1])

    page_search.search.assert_called_once_with(["fox", "hound"], "d1.pdf", 1)


def test_keyword_search_uses_ocr_source_when_primary_is_empty():
    page_search = _make_page_search({"d2-ocr.pdf": [Anchor(text="scanned fox", page_number=1)]})
    orchestrator = _make_orchestrator(page_search)

    results, owners = orchestrator.search("fox", _documents())

    assert [r.document_id for r in results] == ["d2"]
    assert set(owners.values()) == {"d2"}


def test_documents_without_source_are_skipped():
    page_search = _make_page_search({})
    orchestrator = _make_orchestrator(page_search)

    orchestrator.search("fox", [Document(document_id="d3", name="pending.pdf")])

    page_search.search.assert_not_called()


def test_result_ids_are_unique_even_when_anchor_ids_collide():
    hits = {
        "d1.pdf": [Anchor(text="fox", page_number=1, anchor_id="a"), Anchor(text="fox", page_number=2, anchor_id="a")],
        "d2.pdf": [Anchor(text="fox", page_number=1, anchor_id="a"), Anchor(text="fox", page_number=1)],
    }
    orchestrator = _make_orchestrator(_make_page_search(hits))

    results, owners = orchestrator.search("fox", _documents())

    ids = [r.result_id for r in results]
    assert len(ids) == 4
    assert len(set(ids)) == 4
    assert ids[0] == "a"
    assert set(owners) == set(ids)


def test_blank_query_returns_nothing():
    page_search = _make_page_search({})
    results, owners = _make_orchestrator(page_search).search("   ", _documents())
    assert results == [] and owners == {}
    page_search.search.assert_not_called()


# ── Semantic path ─────────────────────────────────────────────────────────────

def _make_query_engine(hits):
    query_engine = MagicMock()
    query_engine.query.return_value = hits
    return query_engine


def test_semantic_fallback_when_no_keyword_hits():
    query_engine = _make_query_engine([SemanticHit("d1", 2, "quick brown fox", 0.87)])
    localizer = MagicMock()
    localizer.localize.return_value = Anchor(text="quick brown fox", page_number=2)
    orchestrator = _make_orchestrator(_make_page_search({}), query_engine, localizer)

    results, owners = orchestrator.search("canine", _documents())

    assert len(results) == 1
    assert results[0].origin == "semantic"
    assert results[0].score == pytest.approx(0.87)
    assert owners == {results[0].result_id: "d1"}
    query_engine.query.assert_called_once_with("canine", ["d1", "d2"], top_k=30)
    localizer.localize.assert_called_once_with("quick brown fox", 2, ["d1.pdf"], "canine")


def test_forced_semantic_never_blends_keyword_hits():
    page_search = _make_page_search({"d1.pdf": [Anchor(text="the fox", page_number=1)]})
    query_engine = _make_query_engine([SemanticHit("d2", 1, "vulpine", 0.5)])
    localizer = MagicMock()
    localizer.localize.return_value = Anchor(text="vulpine", page_number=1)
    orchestrator = _make_orchestrator(page_search, query_engine, localizer)

    results, _ = orchestrator.search("~fox", _documents())

    assert [r.origin for r in results] == ["semantic"]
    page_search.search.assert_not_called()


def test_semantic_failure_degrades_to_no_results():
    query_engine = MagicMock()
    query_engine.query.side_effect = ConnectionError("embedding service unavailable")
    orchestrator = _make_orchestrator(_make_page_search({}), query_engine)

    results, owners = orchestrator.search("canine", _documents())

    assert results == [] and owners == {}


def test_hits_outside_supplied_documents_are_dropped():
    query_engine = _make_query_engine([
        SemanticHit("elsewhere", 1, "quick brown fox", 0.9),
        SemanticHit("d1", 1, "quick brown fox", 0.8),
    ])
    localizer = MagicMock()
    localizer.localize.return_value = Anchor(text="fox", page_number=1)
    orchestrator = _make_orchestrator(_make_page_search({}), query_engine, localizer)

    results, owners = orchestrator.search("canine", _documents())

    assert set(owners.values()) == {"d1"}
    assert len(results) == 1


def test_unlocalizable_hits_are_dropped():
    query_engine = _make_query_engine([
        SemanticHit("d1", 1, "first", 0.9),
        SemanticHit("d2", 4, "second", 0.8),
    ])
    localizer = MagicMock()
    localizer.localize.side_effect = [None, Anchor(text="second", page_number=4)]
    orchestrator = _make_orchestrator(_make_page_search({}), query_engine, localizer)

    results, _ = orchestrator.search("canine", _documents())

    assert [(r.document_id, r.page_number) for r in results] == [("d2", 4)]


def test_no_query_engine_means_keyword_only():
    orchestrator = _make_orchestrator(_make_page_search({}))
    assert orchestrator.semantic_enabled is False
    assert orchestrator.search("~canine", _documents()) == ([], {})
