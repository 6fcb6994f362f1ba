# src/infrastructure/ocr_engine.py

from pathlib import Path
from typing import Optional

import fitz
import pytesseract
from PIL import Image

from src.domain.errors import ExternalServiceError
from src.domain.interfaces import OcrPort
from src.infrastructure.pdf_text_extractor import to_local_path


DEFAULT_DPI = 300
DEFAULT_LANG = "eng"


def _basic_cleanup(text: str) -> str:
    return text.replace("\x0c", "").strip()


class TesseractOcrEngine(OcrPort):
    """Renders single PDF pages with PyMuPDF and recognizes them with Tesseract."""

    def __init__(self, output_directory: str, dpi: int = DEFAULT_DPI, lang: str = DEFAULT_LANG):
        self._output_directory = Path(output_directory)
        self._dpi = dpi
        self._lang = lang

    def recognize(self, source_url: str, page: int) -> str:
        image = self._render_page(source_url, page)
        try:
            return _basic_cleanup(pytesseract.image_to_string(image, lang=self._lang))
        except Exception as error:
            raise ExternalServiceError(f"OCR failed on page {page}: {error}") from error

    def page_count(self, source_url: str) -> int:
        with fitz.open(str(to_local_path(source_url))) as pdf:
            return pdf.page_count

    def searchable_copy(self, source_url: str, page: int) -> Optional[str]:
        image = self._render_page(source_url, page)
        try:
            pdf_bytes = pytesseract.image_to_pdf_or_hocr(image, lang=self._lang, extension="pdf")
        except Exception as error:
            raise ExternalServiceError(f"OCR PDF generation failed on page {page}: {error}") from error

        self._output_directory.mkdir(parents=True, exist_ok=True)
        output_path = self._output_directory / f"{to_local_path(source_url).stem}-p{page}-ocr.pdf"
        output_path.write_bytes(pdf_bytes)
        print(f"[OcrEngine] ✓ Wrote searchable copy of page {page}: {output_path}")
        return str(output_path)

    # ─── Private ──────────────────────────────────────────────────────────────

    def _render_page(self, source_url: str, page: int) -> Image.Image:
        try:
            with fitz.open(str(to_local_path(source_url))) as pdf:
                pixmap = pdf[page - 1].get_pixmap(dpi=self._dpi)
                return Image.frombytes("RGB", (pixmap.width, pixmap.height), pixmap.samples)
        except Exception as error:
            raise ExternalServiceError(f"Rendering page {page} of '{source_url}' failed: {error}") from error
