# tests/test_api.py

import numpy as np
import pytest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient

from src.application.autosave import DebouncedHighlightWriter
from src.application.chunk_indexer import ChunkIndexer
from src.application.hybrid_search import HybridSearchOrchestrator
from src.application.ingestion import DocumentIngestion
from src.application.localizer import HighlightLocalizer
from src.application.semantic_query import SemanticQueryEngine
from src.application.session_manager import SearchSessionManager
from src.domain.models import Anchor, PageText
from src.infrastructure.highlight_store import SqlHighlightStore
from src.infrastructure.vector_store import InMemoryChunkStore
from src.interface.http_api import Services, create_app


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def page_search():
    mock = MagicMock()
    mock.search.return_value = []
    return mock


@pytest.fixture
def highlight_store(tmp_path):
    store = SqlHighlightStore(tmp_path / "highlights.db")
    yield store
    store.close()


@pytest.fixture
def autosaver(highlight_store):
    writer = DebouncedHighlightWriter(highlight_store, quiet_period=60)
    yield writer
    writer.cancel()


@pytest.fixture
def chunk_store():
    return InMemoryChunkStore()


@pytest.fixture
def services(tmp_path, page_search, highlight_store, autosaver, chunk_store) -> Services:
    engine = MagicMock()
    engine.encode.side_effect = lambda texts: np.ones((len(texts), 3), dtype=np.float32)
    engine.encode_single.return_value = np.array([1.0, 0.0, 0.0], dtype=np.float32)

    extractor = MagicMock()
    extractor.extract.return_value = [PageText(1, "The quick brown fox jumps over the lazy dog.")]

    indexer = ChunkIndexer(engine, chunk_store)
    query_engine = SemanticQueryEngine(engine, chunk_store)
    orchestrator = HybridSearchOrchestrator(page_search, query_engine, HighlightLocalizer(page_search))

    return Services(
        manager=SearchSessionManager(orchestrator, highlight_store=highlight_store, autosaver=autosaver),
        ingestion=DocumentIngestion(extractor, None, indexer),
        highlight_store=highlight_store,
        upload_directory=str(tmp_path / "uploads"),
        indexer=indexer,
        query_engine=query_engine,
        chunk_store=chunk_store,
    )


@pytest.fixture
def client(services) -> TestClient:
    return TestClient(create_app(services))


def _upload(client, name: str, content: bytes) -> str:
    response = client.post("/documents", files=[("files", (name, content, "application/pdf"))])
    assert response.status_code == 200
    return response.json()["documents"][0]["document_id"]


# ── Documents ─────────────────────────────────────────────────────────────────

def test_status_reports_semantic_mode(client):
    body = client.get("/status").json()
    assert body["semantic_enabled"] is True
    assert body["documents"] == 0
    assert body["search_mode"] is False


def test_upload_registers_and_indexes_document(client, chunk_store):
    document_id = _upload(client, "report.pdf", b"%PDF-1.4 report")

    listing = client.get("/documents").json()
    assert listing["active"] == document_id
    assert [d["name"] for d in listing["documents"]] == ["report.pdf"]
    assert chunk_store.count(document_id) == 1
    assert listing["documents"][0]["chunks"] == 1


def test_same_file_gets_same_id(client):
    first = _upload(client, "report.pdf", b"%PDF-1.4 report")
    second = _upload(client, "report.pdf", b"%PDF-1.4 report")
    assert first == second
    assert len(client.get("/documents").json()["documents"]) == 1


def test_open_unknown_document_is_404(client):
    assert client.post("/documents/nope/open").status_code == 404


# ── Search session ────────────────────────────────────────────────────────────

def test_search_activate_and_exit(client, page_search):
    first = _upload(client, "one.pdf", b"%PDF-1.4 one")
    second = _upload(client, "two.pdf", b"%PDF-1.4 two")
    page_search.search.side_effect = lambda terms, source_url, context_radius=1: (
        [Anchor(text="the fox", page_number=1)] if source_url.endswith("two.pdf") else []
    )

    body = client.post("/search", json={"query": "fox"}).json()

    assert body["search_mode"] is True
    assert len(body["results"]) == 1
    result = body["results"][0]
    assert result["origin"] == "keyword"
    assert body["owners"] == {result["id"]: second}
    assert body["overlay"] == []

    activated = client.post(f"/search/results/{result['id']}/activate").json()
    assert [a["action"] for a in activated["actions"]] == ["switch_document", "scroll_to"]
    assert activated["actions"][0]["document_id"] == second
    assert client.get("/documents").json()["active"] == second

    restored = client.post("/search/exit").json()
    assert restored["search_mode"] is False
    assert restored["document"]["document_id"] == first


def test_search_falls_back_to_semantic(client):
    document_id = _upload(client, "report.pdf", b"%PDF-1.4 report")

    body = client.post("/search", json={"query": "canine"}).json()

    # Nothing on the page to anchor the semantic hit to
    assert body["results"] == []
    assert body["search_mode"] is True
    assert client.get("/status").json()["chunks_indexed"] == 1
    assert document_id


def test_activate_unknown_result_is_404(client):
    assert client.post("/search/results/missing/activate").status_code == 404


# ── Semantic endpoints ────────────────────────────────────────────────────────

def test_semantic_index_and_query(client):
    response = client.post("/semantic/index", json={
        "document_id": "d9",
        "pages": [{"page": 1, "text": "hello world"}, {"page": 2, "text": ""}],
    })
    assert response.json() == {"ok": True, "chunks": 1}

    hits = client.post("/semantic/query", json={"query": "hello", "document_ids": ["d9"]}).json()
    assert [(h["document_id"], h["page"]) for h in hits] == [("d9", 1)]


def test_semantic_index_requires_pages(client):
    assert client.post("/semantic/index", json={"document_id": "d9"}).status_code == 400


def test_semantic_index_rejects_page_without_number(client, chunk_store):
    response = client.post("/semantic/index", json={
        "document_id": "d9",
        "pages": [{"page": 1, "text": "hello"}, {"text": "no page number"}],
    })

    assert response.status_code == 400
    assert "page number" in response.json()["detail"]
    assert chunk_store.count("d9") == 0


def test_semantic_query_requires_text(client):
    assert client.post("/semantic/query", json={"query": "  "}).status_code == 400


def test_semantic_endpoints_unavailable_without_configuration(services):
    services.indexer = None
    services.query_engine = None
    services.configuration_error = "OPENAI_API_KEY is not set."
    client = TestClient(create_app(services))

    response = client.post("/semantic/query", json={"query": "fox"})
    assert response.status_code == 503
    assert "OPENAI_API_KEY" in response.json()["detail"]
    assert client.post("/semantic/index", json={"document_id": "d", "pages": []}).status_code == 503


# ── Highlights ────────────────────────────────────────────────────────────────

def _highlight_payload(hid: str, text: str = "note") -> dict:
    return {"id": hid, "text": text, "page_number": 1, "position": {"pageNumber": 1}}


def test_highlights_replace_then_upsert(client):
    client.post("/highlights/update", json={
        "document_id": "d1",
        "highlights": [_highlight_payload("h1"), _highlight_payload("h2")],
    })
    client.post("/highlights/update", json=[{**_highlight_payload("h2", "edited"), "document_id": "d1"}])

    stored = client.post("/highlights/get", json={"document_id": "d1"}).json()
    assert [(h["id"], h["text"]) for h in stored] == [("h1", "note"), ("h2", "edited")]


def test_highlights_update_rejects_bad_payload(client):
    assert client.post("/highlights/update", json={"highlights": []}).status_code == 400
    assert client.post("/highlights/get", json={}).status_code == 400


def test_highlight_edits_autosave_outside_search(client, autosaver, highlight_store):
    document_id = _upload(client, "report.pdf", b"%PDF-1.4 report")

    response = client.post("/highlights/edit", json={"highlights": [_highlight_payload("h1")]})
    assert response.json()["saved"] is True
    autosaver.flush()

    assert [h.highlight_id for h in highlight_store.get_by_document(document_id)] == ["h1"]


def test_highlight_edits_not_saved_in_search_mode(client, autosaver):
    document_id = _upload(client, "report.pdf", b"%PDF-1.4 report")
    client.post("/search", json={"query": "fox"})

    response = client.post("/highlights/edit", json={"highlights": [_highlight_payload("h1")]})

    assert response.json()["saved"] is False
    assert autosaver.has_pending(document_id) is False
