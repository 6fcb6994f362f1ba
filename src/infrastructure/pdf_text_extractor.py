# src/infrastructure/pdf_text_extractor.py

import re
from pathlib import Path
from typing import List
from urllib.parse import unquote, urlparse

import fitz
import pdfplumber

from src.domain.errors import ExternalServiceError
from src.domain.interfaces import TextExtractorPort
from src.domain.models import PageText


def to_local_path(source_url: str) -> Path:
    """Sources are local paths or file:// URLs."""
    if source_url.startswith("file://"):
        return Path(unquote(urlparse(source_url).path))
    return Path(source_url)


class PdfTextExtractor(TextExtractorPort):
    """
    Reads the PDF text layer page by page.

    Every page is returned, including text-less ones (empty string), so the
    ingestion pipeline can OCR exactly those pages. pdfplumber is tried
    first; PyMuPDF is the fallback when pdfplumber fails or finds nothing.
    """

    def extract(self, source_url: str) -> List[PageText]:
        file_path = to_local_path(source_url)
        if not file_path.exists():
            raise ExternalServiceError(f"Document not found: {source_url}")

        pages = self._extract_pages_pdfplumber(file_path)
        if not any(p.text.strip() for p in pages):
            fallback = self._extract_pages_pymupdf(file_path)
            if fallback:
                pages = fallback

        return pages

    # ─── Private: PDF Extractors ──────────────────────────────────────────────

    def _extract_pages_pdfplumber(self, file_path: Path) -> List[PageText]:
        try:
            pages = []
            with pdfplumber.open(str(file_path)) as pdf:
                for i, page in enumerate(pdf.pages):
                    text = page.extract_text(x_tolerance=2, y_tolerance=2) or ""
                    pages.append(PageText(page=i + 1, text=self._clean_text(text)))
            return pages
        except Exception as error:
            print(f"[PdfTextExtractor] pdfplumber error on {file_path.name}: {error}")
            return []

    def _extract_pages_pymupdf(self, file_path: Path) -> List[PageText]:
        try:
            pages = []
            with fitz.open(str(file_path)) as pdf:
                for i, page in enumerate(pdf):
                    pages.append(PageText(page=i + 1, text=self._clean_text(page.get_text())))
            return pages
        except Exception as error:
            print(f"[PdfTextExtractor] PyMuPDF error on {file_path.name}: {error}")
            return []

    @staticmethod
    def _clean_text(text: str) -> str:
        """Normalize runs of spaces and blank lines; keep everything else."""
        text = re.sub(r"[ \t]{2,}", " ", text)
        text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()
