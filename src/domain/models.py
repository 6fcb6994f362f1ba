# src/domain/models.py

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import numpy as np


# result_id → document_id, rebuilt on every search
OwnerMap = Dict[str, str]


@dataclass
class Highlight:
    """
    A user annotation persisted against one document.
    `position` is the viewer's opaque geometry payload, stored as-is.
    """
    highlight_id: str
    document_id: str
    text: str
    page_number: Optional[int] = None
    comment: str = ""
    position: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.highlight_id,
            "document_id": self.document_id,
            "page_number": self.page_number,
            "text": self.text,
            "comment": self.comment,
            "position": self.position,
        }

    @classmethod
    def from_dict(cls, data: dict, document_id: Optional[str] = None) -> "Highlight":
        return cls(
            highlight_id=data["id"],
            document_id=document_id or data["document_id"],
            text=data.get("text", ""),
            page_number=data.get("page_number"),
            comment=data.get("comment", ""),
            position=data.get("position") or {},
        )


@dataclass
class Document:
    """
    An uploaded document in the user's working set.
    `ocr_source_url` points at an OCR-generated copy used when the primary
    source has no usable text layer.
    """
    document_id: str
    name: str
    source_url: Optional[str] = None
    ocr_source_url: Optional[str] = None
    highlights: List[Highlight] = field(default_factory=list)

    @property
    def source_urls(self) -> List[str]:
        """Primary source first, OCR fallback second."""
        return [url for url in (self.source_url, self.ocr_source_url) if url]


@dataclass
class PageText:
    page: int
    text: str


@dataclass
class Chunk:
    """
    A bounded slice of one page's text, the unit of embedding and retrieval.
    """
    document_id: str
    page_number: int
    chunk_index: int
    text: str
    embedding: np.ndarray = field(default=None, repr=False)

    @property
    def chunk_id(self) -> str:
        return f"{self.document_id}:{self.page_number}:{self.chunk_index}"


@dataclass
class Anchor:
    """
    An on-page location reported by the page search collaborator.
    `page_number` is None when the locator could not resolve the page.
    """
    text: str
    page_number: Optional[int] = None
    anchor_id: Optional[str] = None
    position: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SemanticHit:
    document_id: str
    page_number: int
    text: str
    score: float


@dataclass
class SearchResult:
    """
    Unified result shape for both the keyword and the semantic path.
    """
    result_id: str
    document_id: str
    page_number: Optional[int]
    display_text: str
    anchor: Anchor
    origin: str = "keyword"
    score: Optional[float] = None

    def __repr__(self) -> str:
        preview = self.display_text[:80].replace("\n", " ")
        score = f"{self.score:.4f}" if self.score is not None else "-"
        return (
            f"SearchResult(id='{self.result_id}', origin={self.origin}, "
            f"score={score}, preview='{preview}...')"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.result_id,
            "document_id": self.document_id,
            "page_number": self.page_number,
            "text": self.display_text,
            "origin": self.origin,
            "score": None if self.score is None else round(float(self.score), 4),
            "position": self.anchor.position,
        }


@dataclass
class SessionSnapshot:
    """Viewer state captured once when entering search mode."""
    document_id: Optional[str]
    name: Optional[str]
    source_url: Optional[str]
    ocr_source_url: Optional[str]
    highlights: List[Highlight] = field(default_factory=list)


@dataclass
class ViewerState:
    """
    What the viewer is currently showing. Outside search mode `highlights`
    holds the active document's annotations; inside it holds SearchResults.
    """
    document: Optional[Document] = None
    highlights: List[Any] = field(default_factory=list)

    @property
    def document_id(self) -> Optional[str]:
        return self.document.document_id if self.document else None


@dataclass
class SearchSession:
    """
    Session-scoped search state, passed explicitly between the orchestrator,
    the session manager and the presentation layer.
    """
    documents: Dict[str, Document] = field(default_factory=dict)
    active: bool = False
    snapshot: Optional[SessionSnapshot] = None
    results: List[SearchResult] = field(default_factory=list)
    owner_map: OwnerMap = field(default_factory=dict)

    def find_result(self, result_id: str) -> Optional[SearchResult]:
        return next((r for r in self.results if r.result_id == result_id), None)

    def overlay_for(self, document_id: Optional[str]) -> List[SearchResult]:
        """Results to draw over `document_id` while in search mode."""
        return [r for r in self.results if self.owner_map.get(r.result_id) == document_id]


@dataclass
class StepResult:
    """Outcome of one fallible ingestion step."""
    ok: bool
    value: Any = None
    error: Optional[str] = None
