# src/application/session_manager.py

from typing import List, Optional

from src.application.autosave import DebouncedHighlightWriter
from src.application.hybrid_search import HybridSearchOrchestrator
from src.domain.interfaces import HighlightStorePort, ViewerPort
from src.domain.models import (
    Document,
    Highlight,
    SearchResult,
    SearchSession,
    SessionSnapshot,
    ViewerState,
)


class SearchSessionManager:
    """
    Owns the enter/search/activate/exit lifecycle around the orchestrator.

    State lives in the SearchSession and ViewerState passed in by the
    caller; the manager itself keeps none between calls.
    """

    def __init__(
        self,
        orchestrator: HybridSearchOrchestrator,
        highlight_store: Optional[HighlightStorePort] = None,
        autosaver: Optional[DebouncedHighlightWriter] = None,
    ):
        self._orchestrator = orchestrator
        self._highlight_store = highlight_store
        self._autosaver = autosaver

    # ─── Search mode ──────────────────────────────────────────────────────────

    def enter(self, viewer: ViewerState, session: SearchSession) -> SearchSession:
        """Snapshot the viewer once; later calls while searching are no-ops."""
        if session.active:
            return session

        document = viewer.document
        session.snapshot = SessionSnapshot(
            document_id=document.document_id if document else None,
            name=document.name if document else None,
            source_url=document.source_url if document else None,
            ocr_source_url=document.ocr_source_url if document else None,
            highlights=list(viewer.highlights),
        )
        session.active = True
        return session

    def search(self, raw_query: str, viewer: ViewerState, session: SearchSession) -> SearchSession:
        if not (raw_query or "").strip():
            return session

        self.enter(viewer, session)
        viewer.highlights = []

        results, owner_map = self._orchestrator.search(raw_query, self._loaded_documents(viewer, session))
        session.results = results
        session.owner_map = owner_map
        viewer.highlights = list(results)
        return session

    def exit(
        self,
        viewer: ViewerState,
        session: SearchSession,
        viewer_port: Optional[ViewerPort] = None,
    ) -> SearchSession:
        """Restore the pre-search viewer and discard all search state."""
        snapshot = session.snapshot
        session.active = False
        session.owner_map = {}
        session.results = []
        session.snapshot = None

        if snapshot is None:
            return session

        document = session.documents.get(snapshot.document_id) if snapshot.document_id else None
        if document is None and snapshot.document_id:
            document = Document(
                document_id=snapshot.document_id,
                name=snapshot.name or "",
                source_url=snapshot.source_url,
                ocr_source_url=snapshot.ocr_source_url,
            )

        viewer.document = document
        viewer.highlights = list(snapshot.highlights)
        if viewer_port is not None and document is not None:
            viewer_port.switch_document(document)
        return session

    def activate(
        self,
        result_id: str,
        viewer: ViewerState,
        session: SearchSession,
        viewer_port: ViewerPort,
    ) -> Optional[SearchResult]:
        """
        Focus one result. A result owned by another document switches the
        active document first (its anchor only resolves once that document
        is loaded), then the scroll is requested.
        """
        result = session.find_result(result_id)
        if result is None:
            return None

        owner = session.owner_map.get(result_id)
        if owner and owner != viewer.document_id:
            document = self.open_document(owner, viewer, session)
            if document is not None:
                viewer_port.switch_document(document)

        viewer_port.scroll_to(result.anchor)
        return result

    # ─── Documents & highlights ───────────────────────────────────────────────

    def open_document(self, document_id: str, viewer: ViewerState, session: SearchSession) -> Optional[Document]:
        """
        Make `document_id` active. Outside search mode its own highlights are
        (re)loaded; inside it the result list stays on screen.
        """
        document = session.documents.get(document_id)
        if document is None:
            return None

        viewer.document = document
        if not session.active:
            document.highlights = self._load_highlights(document)
            viewer.highlights = list(document.highlights)
        return document

    def record_edit(self, highlights: List[Highlight], viewer: ViewerState, session: SearchSession) -> None:
        """Apply a highlight edit from the viewer; persisted only outside search mode."""
        viewer.highlights = list(highlights)
        if session.active or viewer.document is None:
            return

        viewer.document.highlights = list(highlights)
        if self._autosaver is not None:
            self._autosaver.schedule(viewer.document.document_id, highlights)

    # ─── Private ──────────────────────────────────────────────────────────────

    def _load_highlights(self, document: Document) -> List[Highlight]:
        if self._highlight_store is None:
            return document.highlights
        try:
            return self._highlight_store.get_by_document(document.document_id)
        except Exception as error:
            print(f"[SessionManager] ⚠ Loading highlights for '{document.name}' failed: {error}")
            return document.highlights

    @staticmethod
    def _loaded_documents(viewer: ViewerState, session: SearchSession) -> List[Document]:
        if session.documents:
            return list(session.documents.values())
        if viewer.document is not None and viewer.document.source_url:
            return [viewer.document]
        return []
