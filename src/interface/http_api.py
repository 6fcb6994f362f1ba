# src/interface/http_api.py

import shutil
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from fastapi import BackgroundTasks, FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from src.application.chunk_indexer import ChunkIndexer
from src.application.ingestion import DocumentIngestion
from src.application.semantic_query import DEFAULT_TOP_K, SemanticQueryEngine
from src.application.session_manager import SearchSessionManager
from src.domain.errors import ConfigurationError, IndexingError, InvalidInputError
from src.domain.interfaces import ChunkStorePort, HighlightStorePort, ViewerPort
from src.domain.models import Anchor, Document, Highlight, PageText, SearchSession, ViewerState
from src.infrastructure.file_hasher import compute_file_hash, document_id_for


# ── API Models ───────────────────────────────────────────────────────────────

class PageSchema(BaseModel):
    page: Optional[int] = None
    text: str = ""


class IndexRequest(BaseModel):
    document_id: Optional[str] = None
    pages: Optional[List[PageSchema]] = None


class SemanticQueryRequest(BaseModel):
    query: Optional[str] = None
    document_ids: Optional[List[str]] = None
    top_k: int = DEFAULT_TOP_K


class SearchRequest(BaseModel):
    query: str


class HighlightSchema(BaseModel):
    id: str
    document_id: Optional[str] = None
    text: str = ""
    page_number: Optional[int] = None
    comment: str = ""
    position: dict = {}

    def to_domain(self, document_id: Optional[str] = None) -> Highlight:
        return Highlight(
            highlight_id=self.id,
            document_id=document_id or self.document_id or "",
            text=self.text,
            page_number=self.page_number,
            comment=self.comment,
            position=self.position,
        )


class ReplaceHighlightsRequest(BaseModel):
    document_id: Optional[str] = None
    highlights: Optional[List[HighlightSchema]] = None


class GetHighlightsRequest(BaseModel):
    document_id: Optional[str] = None


class EditHighlightsRequest(BaseModel):
    highlights: List[HighlightSchema]


# ── Wiring ───────────────────────────────────────────────────────────────────

@dataclass
class Services:
    """Everything the HTTP layer needs. Semantic parts are None when unconfigured."""
    manager: SearchSessionManager
    ingestion: DocumentIngestion
    highlight_store: HighlightStorePort
    upload_directory: str
    indexer: Optional[ChunkIndexer] = None
    query_engine: Optional[SemanticQueryEngine] = None
    chunk_store: Optional[ChunkStorePort] = None
    configuration_error: Optional[str] = None


@dataclass
class Workspace:
    """The single user's working set and search session."""
    session: SearchSession = field(default_factory=SearchSession)
    viewer: ViewerState = field(default_factory=ViewerState)
    lock: threading.RLock = field(default_factory=threading.RLock)
    index_locks: Dict[str, threading.Lock] = field(default_factory=dict)
    index_locks_guard: threading.Lock = field(default_factory=threading.Lock)

    def index_lock(self, document_id: str) -> threading.Lock:
        with self.index_locks_guard:
            return self.index_locks.setdefault(document_id, threading.Lock())


class RecordingViewer(ViewerPort):
    """Collects viewer actions so the client can replay them in order."""

    def __init__(self):
        self.actions: List[dict] = []

    def switch_document(self, document: Document) -> None:
        self.actions.append({
            "action": "switch_document",
            "document_id": document.document_id,
            "name": document.name,
            "source_url": document.source_url,
            "ocr_source_url": document.ocr_source_url,
        })

    def scroll_to(self, anchor: Anchor) -> None:
        self.actions.append({
            "action": "scroll_to",
            "page_number": anchor.page_number,
            "text": anchor.text,
            "position": anchor.position,
        })


def create_app(services: Services, workspace: Optional[Workspace] = None) -> FastAPI:
    workspace = workspace or Workspace()

    app = FastAPI(
        title="Hybrid Document Search API",
        description="Keyword + semantic search with on-page highlight localization.",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.services = services
    app.state.workspace = workspace

    # ── Endpoints: documents ─────────────────────────────────────────────────

    @app.get("/status")
    def get_status():
        return {
            "semantic_enabled": services.query_engine is not None,
            "configuration_error": services.configuration_error,
            "documents": len(workspace.session.documents),
            "search_mode": workspace.session.active,
            "chunks_indexed": services.chunk_store.count() if services.chunk_store else 0,
        }

    @app.get("/documents")
    def list_documents():
        chunk_counts = {}
        if services.chunk_store is not None:
            chunk_counts = {s["document_id"]: s["count"] for s in services.chunk_store.get_document_stats()}
        return {
            "active": workspace.viewer.document_id,
            "documents": [
                {**_document_payload(d), "chunks": chunk_counts.get(d.document_id)}
                for d in workspace.session.documents.values()
            ],
        }

    @app.post("/documents")
    def upload_documents(background_tasks: BackgroundTasks, files: List[UploadFile] = File(...)):
        """Save PDFs, register them, and index each one in the background."""
        upload_dir = Path(services.upload_directory)
        upload_dir.mkdir(parents=True, exist_ok=True)

        registered = []
        for upload in files:
            file_path = upload_dir / Path(upload.filename).name
            with open(file_path, "wb") as buffer:
                shutil.copyfileobj(upload.file, buffer)

            document = _register_document(file_path)
            background_tasks.add_task(_index_document, document.document_id, document.source_url)
            registered.append(_document_payload(document))

        return {"message": f"Uploaded {len(registered)} file(s).", "documents": registered}

    @app.post("/documents/{document_id}/open")
    def open_document(document_id: str):
        with workspace.lock:
            document = services.manager.open_document(document_id, workspace.viewer, workspace.session)
            if document is None:
                raise HTTPException(status_code=404, detail=f"Unknown document '{document_id}'")
            return _viewer_payload()

    # ── Endpoints: semantic index ────────────────────────────────────────────

    @app.post("/semantic/index")
    def semantic_index(request: IndexRequest):
        if services.indexer is None:
            raise HTTPException(status_code=503, detail=services.configuration_error or "Semantic indexing unavailable.")
        if not request.document_id or request.pages is None:
            raise HTTPException(status_code=400, detail="Expected body: { document_id, pages: [{page, text}, ...] }")

        pages = [PageText(page=p.page, text=p.text) for p in request.pages]
        try:
            with workspace.index_lock(request.document_id):
                chunk_count = services.indexer.index(request.document_id, pages)
        except InvalidInputError as error:
            raise HTTPException(status_code=400, detail=str(error))
        except ConfigurationError as error:
            raise HTTPException(status_code=503, detail=str(error))
        except IndexingError as error:
            print(f"[API] Semantic indexing failed: {error}")
            raise HTTPException(status_code=500, detail=str(error))

        return {"ok": True, "chunks": chunk_count}

    @app.post("/semantic/query")
    def semantic_query(request: SemanticQueryRequest):
        if services.query_engine is None:
            raise HTTPException(status_code=503, detail=services.configuration_error or "Semantic search unavailable.")
        if not (request.query or "").strip():
            raise HTTPException(status_code=400, detail="Missing query")

        try:
            hits = services.query_engine.query(request.query, request.document_ids, request.top_k)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        return [
            {"document_id": h.document_id, "page": h.page_number, "text": h.text, "score": h.score}
            for h in hits
        ]

    # ── Endpoints: search session ────────────────────────────────────────────

    @app.post("/search")
    def search(request: SearchRequest):
        with workspace.lock:
            session = services.manager.search(request.query, workspace.viewer, workspace.session)
            return {
                "query": request.query,
                "search_mode": session.active,
                "results": [r.to_dict() for r in session.results],
                "owners": dict(session.owner_map),
                "overlay": [r.result_id for r in session.overlay_for(workspace.viewer.document_id)],
            }

    @app.post("/search/exit")
    def exit_search():
        with workspace.lock:
            services.manager.exit(workspace.viewer, workspace.session)
            return _viewer_payload()

    @app.post("/search/results/{result_id}/activate")
    def activate_result(result_id: str):
        viewer_port = RecordingViewer()
        with workspace.lock:
            result = services.manager.activate(result_id, workspace.viewer, workspace.session, viewer_port)
            if result is None:
                raise HTTPException(status_code=404, detail=f"Unknown result '{result_id}'")
            return {"result": result.to_dict(), "actions": viewer_port.actions}

    # ── Endpoints: highlights ────────────────────────────────────────────────

    @app.post("/highlights/get")
    def get_highlights(request: GetHighlightsRequest):
        if not request.document_id:
            raise HTTPException(status_code=400, detail="Missing document_id")
        try:
            highlights = services.highlight_store.get_by_document(request.document_id)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        return [h.to_dict() for h in highlights]

    @app.post("/highlights/update")
    def update_highlights(body: Union[ReplaceHighlightsRequest, List[HighlightSchema]]):
        """
        { document_id, highlights: [...] } → replace all for that document
        [ {...}, ... ]                      → upsert by id
        """
        try:
            if isinstance(body, list):
                services.highlight_store.upsert([h.to_domain() for h in body])
            else:
                if not body.document_id or body.highlights is None:
                    raise InvalidInputError("Invalid payload: expected { document_id, highlights: [...] }")
                services.highlight_store.replace_for_document(
                    body.document_id,
                    [h.to_domain(body.document_id) for h in body.highlights],
                )
        except InvalidInputError as error:
            raise HTTPException(status_code=400, detail=str(error))
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Update failed: {str(e)}")
        return {"ok": True}

    @app.post("/highlights/edit")
    def edit_highlights(request: EditHighlightsRequest):
        """Viewer edits on the active document; autosaved unless in search mode."""
        with workspace.lock:
            document_id = workspace.viewer.document_id
            highlights = [h.to_domain(document_id) for h in request.highlights]
            services.manager.record_edit(highlights, workspace.viewer, workspace.session)
            return {"ok": True, "saved": not workspace.session.active and document_id is not None}

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _register_document(file_path: Path) -> Document:
        source_url = str(file_path)
        document_id = document_id_for(file_path.name, compute_file_hash(source_url))
        pages = services.ingestion.extract_pages(source_url).value
        ocr_source_url = services.ingestion.build_ocr_source(source_url, pages).value

        with workspace.lock:
            document = workspace.session.documents.get(document_id)
            if document is None:
                document = Document(document_id=document_id, name=file_path.name)
                workspace.session.documents[document_id] = document
            document.source_url = source_url
            document.ocr_source_url = ocr_source_url

            if workspace.viewer.document is None:
                services.manager.open_document(document_id, workspace.viewer, workspace.session)
        return document

    def _index_document(document_id: str, source_url: str) -> None:
        """Background task: one index run per document id at a time."""
        with workspace.index_lock(document_id):
            try:
                outcome = services.ingestion.run(document_id, source_url)
            except ConfigurationError as error:
                print(f"[API] ⚠ Indexing skipped for '{document_id}': {error}")
                return
        if not outcome.ok:
            print(f"[API] ⚠ '{document_id}' not semantically indexed: {outcome.error}")

    def _viewer_payload() -> dict:
        viewer = workspace.viewer
        return {
            "search_mode": workspace.session.active,
            "document": _document_payload(viewer.document) if viewer.document else None,
            "highlights": [h.to_dict() for h in viewer.highlights],
        }

    return app


def _document_payload(document: Document) -> dict:
    return {
        "document_id": document.document_id,
        "name": document.name,
        "source_url": document.source_url,
        "ocr_source_url": document.ocr_source_url,
    }
