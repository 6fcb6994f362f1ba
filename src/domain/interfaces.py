# src/domain/interfaces.py

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence
import numpy as np

from .models import Anchor, Chunk, Document, Highlight, PageText


class EmbeddingPort(ABC):
    """
    Port for any embedding engine. Model naming stays in the adapters.
    """

    @abstractmethod
    def encode(self, texts: List[str]) -> np.ndarray: ...

    @abstractmethod
    def encode_single(self, text: str) -> np.ndarray: ...


class ChunkStorePort(ABC):

    @abstractmethod
    def replace_document_chunks(self, document_id: str, chunks: List[Chunk]) -> None:
        """
        Replace every stored chunk of `document_id` with `chunks`.
        Either the whole new set is committed or the previous set is kept.
        """
        ...

    @abstractmethod
    def delete_document(self, document_id: str) -> None: ...

    @abstractmethod
    def load_chunks(self, document_ids: Optional[Sequence[str]] = None) -> List[Chunk]:
        """All chunks (with embeddings), optionally restricted to `document_ids`."""
        ...

    @abstractmethod
    def count(self, document_id: Optional[str] = None) -> int: ...

    @abstractmethod
    def get_document_stats(self) -> List[dict]:
        """
        [{document_id, count}] for every indexed document, sorted by id.
        A document that indexed to zero chunks is listed with count 0.
        """
        ...


class PageSearchPort(ABC):
    """Exact/fuzzy on-page text locator over a rendered document."""

    @abstractmethod
    def search(
        self,
        terms: List[str],
        source_url: str,
        context_radius: int = 1,
    ) -> List[Anchor]: ...


class TextExtractorPort(ABC):

    @abstractmethod
    def extract(self, source_url: str) -> List[PageText]:
        """
        Per-page text layer. May return [] (no text layer at all) or pages
        with empty text; both mean "page text unavailable".
        """
        ...


class OcrPort(ABC):

    @abstractmethod
    def recognize(self, source_url: str, page: int) -> str: ...

    @abstractmethod
    def page_count(self, source_url: str) -> int: ...

    @abstractmethod
    def searchable_copy(self, source_url: str, page: int) -> Optional[str]:
        """Write an OCR'd, text-searchable PDF of `page` and return its location."""
        ...


class HighlightStorePort(ABC):

    @abstractmethod
    def get_by_document(self, document_id: str) -> List[Highlight]: ...

    @abstractmethod
    def replace_for_document(self, document_id: str, highlights: List[Highlight]) -> None: ...

    @abstractmethod
    def upsert(self, highlights: List[Highlight]) -> None: ...


class ViewerPort(ABC):
    """Presentation-side actions requested by the session manager."""

    @abstractmethod
    def switch_document(self, document: Document) -> None: ...

    @abstractmethod
    def scroll_to(self, anchor: Anchor) -> None: ...
