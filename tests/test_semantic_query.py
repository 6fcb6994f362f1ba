# tests/test_semantic_query.py

import numpy as np
import pytest
from unittest.mock import MagicMock

from src.application.semantic_query import SemanticQueryEngine, cosine_similarity
from src.domain.models import Chunk
from src.infrastructure.vector_store import InMemoryChunkStore


def _chunk(document_id: str, page: int, index: int, embedding) -> Chunk:
    return Chunk(
        document_id=document_id,
        page_number=page,
        chunk_index=index,
        text=f"{document_id} page {page} chunk {index}",
        embedding=np.asarray(embedding, dtype=np.float32),
    )


def _make_engine(query_vector):
    engine = MagicMock()
    engine.encode_single.return_value = np.asarray(query_vector, dtype=np.float32)
    return engine


@pytest.fixture
def store() -> InMemoryChunkStore:
    s = InMemoryChunkStore()
    s.replace_document_chunks("d1", [
        _chunk("d1", 1, 0, [1.0, 0.0, 0.0]),
        _chunk("d1", 2, 0, [0.0, 1.0, 0.0]),
    ])
    s.replace_document_chunks("d2", [
        _chunk("d2", 1, 0, [0.9, 0.1, 0.0]),
    ])
    return s


# ── cosine_similarity ─────────────────────────────────────────────────────────

def test_cosine_of_vector_with_itself_is_one():
    v = np.array([0.3, -1.2, 4.0])
    assert cosine_similarity(v, v) == pytest.approx(1.0)


def test_cosine_is_symmetric():
    a, b = np.array([1.0, 2.0, 3.0]), np.array([-2.0, 0.5, 1.0])
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))


def test_cosine_with_zero_vector_is_zero():
    score = cosine_similarity(np.zeros(3), np.array([1.0, 2.0, 3.0]))
    assert score == 0.0
    assert not np.isnan(score)


# ── query ─────────────────────────────────────────────────────────────────────

def test_query_ranks_by_similarity(store):
    engine = SemanticQueryEngine(_make_engine([1.0, 0.0, 0.0]), store)

    hits = engine.query("fox")

    assert [(h.document_id, h.page_number) for h in hits] == [("d1", 1), ("d2", 1), ("d1", 2)]
    assert hits[0].score == pytest.approx(1.0)
    assert hits[0].score >= hits[1].score >= hits[2].score


def test_query_filters_by_document(store):
    engine = SemanticQueryEngine(_make_engine([1.0, 0.0, 0.0]), store)

    hits = engine.query("fox", document_ids=["d2"])

    assert [h.document_id for h in hits] == ["d2"]


def test_query_respects_top_k(store):
    engine = SemanticQueryEngine(_make_engine([1.0, 0.0, 0.0]), store)
    assert len(engine.query("fox", top_k=2)) == 2


def test_equal_scores_keep_store_order():
    s = InMemoryChunkStore()
    s.replace_document_chunks("d1", [_chunk("d1", p, 0, [1.0, 1.0]) for p in (3, 1, 2)])
    engine = SemanticQueryEngine(_make_engine([1.0, 1.0]), s)

    hits = engine.query("anything")

    assert [h.page_number for h in hits] == [3, 1, 2]


def test_zero_query_vector_scores_zero(store):
    engine = SemanticQueryEngine(_make_engine([0.0, 0.0, 0.0]), store)
    hits = engine.query("nothing")
    assert all(h.score == 0.0 for h in hits)


def test_empty_store_returns_no_hits():
    engine = SemanticQueryEngine(_make_engine([1.0, 0.0]), InMemoryChunkStore())
    assert engine.query("fox") == []


def test_blank_query_raises():
    engine = SemanticQueryEngine(MagicMock(), InMemoryChunkStore())
    with pytest.raises(ValueError, match="empty"):
        engine.query("   ")
