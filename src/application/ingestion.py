# src/application/ingestion.py

from typing import List, Optional

from src.application.chunk_indexer import ChunkIndexer
from src.domain.errors import ConfigurationError
from src.domain.interfaces import OcrPort, TextExtractorPort
from src.domain.models import PageText, StepResult


# Fewer non-space characters than this means "no usable text layer"
MIN_PAGE_TEXT_LENGTH = 2


def has_usable_text(text: str) -> bool:
    return len((text or "").strip()) >= MIN_PAGE_TEXT_LENGTH


class DocumentIngestion:
    """
    Upload-time pipeline, one fallible step after another:

        extract text layer → OCR pages without text → build semantic index

    A failing step is logged and replaced by an empty/default value so the
    next step still runs. Only a ConfigurationError stops the pipeline.
    OCR is never run on a page that already has a usable text layer.
    """

    def __init__(
        self,
        extractor: TextExtractorPort,
        ocr: Optional[OcrPort],
        indexer: Optional[ChunkIndexer],
    ):
        self._extractor = extractor
        self._ocr = ocr
        self._indexer = indexer

    def extract_pages(self, source_url: str) -> StepResult:
        try:
            pages = self._extractor.extract(source_url)
        except Exception as error:
            print(f"[Ingestion] ⚠ Text extraction failed; will OCR all pages. ({error})")
            return StepResult(ok=False, value=[], error=str(error))
        return StepResult(ok=True, value=list(pages))

    def fill_missing_text(self, source_url: str, pages: List[PageText]) -> StepResult:
        """OCR the whole document if `pages` is empty, else only the text-less pages."""
        if self._ocr is None:
            return StepResult(ok=True, value=pages)

        if not pages:
            try:
                total = self._ocr.page_count(source_url)
            except Exception as error:
                print(f"[Ingestion] ⚠ Could not read page count for OCR: {error}")
                return StepResult(ok=False, value=[], error=str(error))
            targets = list(range(1, total + 1))
            pages = [PageText(page=p, text="") for p in targets]
        else:
            targets = [p.page for p in pages if not has_usable_text(p.text)]

        if not targets:
            return StepResult(ok=True, value=pages)

        failed = []
        recognized = {}
        for page in targets:
            try:
                recognized[page] = self._ocr.recognize(source_url, page)
            except Exception as error:
                print(f"[Ingestion] ⚠ OCR failed on page {page}: {error}")
                failed.append(page)

        filled = [
            PageText(page=p.page, text=recognized.get(p.page, p.text)) for p in pages
        ]
        print(f"[Ingestion] OCR'd {len(recognized)} page(s), {len(failed)} failed.")
        return StepResult(
            ok=not failed,
            value=filled,
            error=f"OCR failed on pages {failed}" if failed else None,
        )

    def build_ocr_source(self, source_url: str, pages: List[PageText]) -> StepResult:
        """Searchable copy of page 1 when the original has no text there."""
        first_page = next((p for p in pages if p.page == 1), None)
        if self._ocr is None or (first_page is not None and has_usable_text(first_page.text)):
            return StepResult(ok=True, value=None)

        try:
            return StepResult(ok=True, value=self._ocr.searchable_copy(source_url, 1))
        except Exception as error:
            print(f"[Ingestion] ⚠ Page-1 OCR fallback failed: {error}")
            return StepResult(ok=False, value=None, error=str(error))

    def index(self, document_id: str, pages: List[PageText]) -> StepResult:
        if self._indexer is None:
            return StepResult(ok=False, value=0, error="Semantic indexing is not configured.")
        try:
            return StepResult(ok=True, value=self._indexer.index(document_id, pages))
        except ConfigurationError:
            raise
        except Exception as error:
            print(f"[Ingestion] ⚠ Semantic indexing failed for '{document_id}': {error}")
            return StepResult(ok=False, value=0, error=str(error))

    def run(self, document_id: str, source_url: str, pages: Optional[List[PageText]] = None) -> StepResult:
        """Full pipeline. `pages` skips extraction when the caller already has them."""
        if pages is None:
            pages = self.extract_pages(source_url).value
        pages = self.fill_missing_text(source_url, pages).value
        return self.index(document_id, pages)
