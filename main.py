# main.py

import os
import sys
from pathlib import Path
from typing import Dict, Optional

from src.application.chunk_indexer import ChunkIndexer
from src.application.hybrid_search import HybridSearchOrchestrator
from src.application.ingestion import DocumentIngestion
from src.application.localizer import HighlightLocalizer
from src.application.semantic_query import SemanticQueryEngine
from src.application.session_manager import SearchSessionManager
from src.domain.errors import ConfigurationError
from src.domain.models import Document, SearchSession, ViewerState
from src.infrastructure.chroma_store import ChromaChunkStore
from src.infrastructure.embedding_engine import create_embedding_engine
from src.infrastructure.file_hasher import compute_directory_hashes, document_id_for
from src.infrastructure.ocr_engine import TesseractOcrEngine
from src.infrastructure.page_search import PdfPageSearch
from src.infrastructure.pdf_text_extractor import PdfTextExtractor
from src.interface.cli import (
    display_welcome_banner,
    display_documents,
    prompt_for_query,
    display_results,
    display_warning,
    display_error,
    ask_continue,
)


DATA_DIRECTORY = os.environ.get("DOCSEARCH_DATA_DIR", "data")
CHROMA_PERSIST_DIRECTORY = str(Path(DATA_DIRECTORY) / "chroma_db")
OCR_OUTPUT_DIRECTORY = str(Path(DATA_DIRECTORY) / "ocr")


def main() -> None:
    # ── 1. Initialize infrastructure ─────────────────────────────────────────
    page_search = PdfPageSearch()
    ocr_engine = TesseractOcrEngine(OCR_OUTPUT_DIRECTORY)

    chunk_store: Optional[ChromaChunkStore] = None
    indexer: Optional[ChunkIndexer] = None
    query_engine: Optional[SemanticQueryEngine] = None
    try:
        embedding_engine = create_embedding_engine()
        chunk_store = ChromaChunkStore(
            persist_directory=CHROMA_PERSIST_DIRECTORY,
            embedding_model_name=embedding_engine.model_name,
        )
        indexer = ChunkIndexer(embedding_engine, chunk_store)
        query_engine = SemanticQueryEngine(embedding_engine, chunk_store)
    except ConfigurationError as error:
        display_warning(f"{error}\nContinuing with keyword search only.")
    except RuntimeError as error:
        display_error(str(error))
        sys.exit(1)

    display_welcome_banner(semantic_enabled=query_engine is not None)

    ingestion = DocumentIngestion(PdfTextExtractor(), ocr_engine, indexer)
    orchestrator = HybridSearchOrchestrator(page_search, query_engine, HighlightLocalizer(page_search))
    manager = SearchSessionManager(orchestrator)

    # ── 2. Load documents, index only new or changed ones ────────────────────
    session = SearchSession()
    try:
        hashes = compute_directory_hashes(DATA_DIRECTORY)
    except FileNotFoundError:
        hashes = {}
    if not hashes:
        display_error(f"No PDF documents found in '{DATA_DIRECTORY}/'.")
        sys.exit(1)

    indexed = _chunk_counts(chunk_store)
    for filename, content_hash in hashes.items():
        document = _load_document(filename, content_hash, ingestion, chunk_store, indexed)
        session.documents[document.document_id] = document

    chunk_counts = _chunk_counts(chunk_store)
    display_documents(list(session.documents.values()), chunk_counts)

    # ── 3. Interactive search loop ────────────────────────────────────────────
    viewer = ViewerState(document=next(iter(session.documents.values())))
    while True:
        query = prompt_for_query()
        if not query.strip():
            continue
        manager.search(query, viewer, session)
        display_results(query, session.results)

        if not ask_continue():
            break

    manager.exit(viewer, session)


def _load_document(
    filename: str,
    content_hash: str,
    ingestion: DocumentIngestion,
    chunk_store: Optional[ChromaChunkStore],
    indexed: Dict[str, int],
) -> Document:
    """Register one PDF; index it unless the store already lists its id."""
    source_url = str(Path(DATA_DIRECTORY) / filename)
    document_id = document_id_for(filename, content_hash)

    pages = ingestion.extract_pages(source_url).value
    document = Document(
        document_id=document_id,
        name=filename,
        source_url=source_url,
        ocr_source_url=ingestion.build_ocr_source(source_url, pages).value,
    )

    if chunk_store is not None and document_id not in indexed:
        print(f"[Main] Indexing '{filename}'...")
        outcome = ingestion.run(document_id, source_url, pages=pages)
        if not outcome.ok:
            print(f"[Main] ⚠ '{filename}' is keyword-searchable only: {outcome.error}")

    return document


def _chunk_counts(chunk_store: Optional[ChromaChunkStore]) -> Dict[str, int]:
    """document_id → chunk count for every indexed document, empty ones included."""
    if chunk_store is None:
        return {}
    return {stat["document_id"]: stat["count"] for stat in chunk_store.get_document_stats()}


if __name__ == "__main__":
    main()
