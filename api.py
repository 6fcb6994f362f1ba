import os
from pathlib import Path

import uvicorn

from src.application.autosave import DebouncedHighlightWriter
from src.application.chunk_indexer import ChunkIndexer
from src.application.hybrid_search import HybridSearchOrchestrator
from src.application.ingestion import DocumentIngestion
from src.application.localizer import HighlightLocalizer
from src.application.semantic_query import SemanticQueryEngine
from src.application.session_manager import SearchSessionManager
from src.domain.errors import ConfigurationError
from src.infrastructure.chroma_store import ChromaChunkStore
from src.infrastructure.embedding_engine import create_embedding_engine
from src.infrastructure.highlight_store import SqlHighlightStore
from src.infrastructure.ocr_engine import TesseractOcrEngine
from src.infrastructure.page_search import PdfPageSearch
from src.infrastructure.pdf_text_extractor import PdfTextExtractor
from src.interface.http_api import Services, create_app

# ── Configuration ────────────────────────────────────────────────────────────
DATA_DIRECTORY = os.environ.get("DOCSEARCH_DATA_DIR", "data")
UPLOAD_DIRECTORY = str(Path(DATA_DIRECTORY) / "uploads")
OCR_OUTPUT_DIRECTORY = str(Path(DATA_DIRECTORY) / "ocr")
CHROMA_PERSIST_DIRECTORY = str(Path(DATA_DIRECTORY) / "chroma_db")
HIGHLIGHT_DB_PATH = str(Path(DATA_DIRECTORY) / "highlights.db")


def build_services() -> Services:
    page_search = PdfPageSearch()
    highlight_store = SqlHighlightStore(HIGHLIGHT_DB_PATH)

    chunk_store = None
    indexer = None
    query_engine = None
    configuration_error = None
    try:
        embedding_engine = create_embedding_engine()
        chunk_store = ChromaChunkStore(
            persist_directory=CHROMA_PERSIST_DIRECTORY,
            embedding_model_name=embedding_engine.model_name,
        )
        indexer = ChunkIndexer(embedding_engine, chunk_store)
        query_engine = SemanticQueryEngine(embedding_engine, chunk_store)
        print("[API] Semantic search is READY.")
    except ConfigurationError as error:
        configuration_error = str(error)
        print(f"[API] WARNING: {error} Running keyword-only.")

    orchestrator = HybridSearchOrchestrator(page_search, query_engine, HighlightLocalizer(page_search))
    manager = SearchSessionManager(
        orchestrator,
        highlight_store=highlight_store,
        autosaver=DebouncedHighlightWriter(highlight_store),
    )

    return Services(
        manager=manager,
        ingestion=DocumentIngestion(PdfTextExtractor(), TesseractOcrEngine(OCR_OUTPUT_DIRECTORY), indexer),
        highlight_store=highlight_store,
        upload_directory=UPLOAD_DIRECTORY,
        indexer=indexer,
        query_engine=query_engine,
        chunk_store=chunk_store,
        configuration_error=configuration_error,
    )


app = create_app(build_services())

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
